"""Parser dispatch for snapshot tables."""
from __future__ import annotations

from pathlib import Path

from .base import ParsedDataset


def parse_file(path: Path, *, worksheet: str | None = None, encoding: str | None = None) -> ParsedDataset:
    """Parse *path* according to its file extension."""

    suffix = path.suffix.lower()
    if suffix == ".csv":
        from .csv_loader import parse_csv

        return parse_csv(path, encoding=encoding)
    if suffix in {".xlsx", ".xlsm"}:
        from .xlsx_loader import parse_xlsx

        return parse_xlsx(path, worksheet=worksheet)
    raise ValueError(f"Unsupported snapshot format '{path.suffix}' for {path.name}")


__all__ = ["ParsedDataset", "parse_file"]
