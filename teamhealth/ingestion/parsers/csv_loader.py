"""CSV snapshot tables."""
from __future__ import annotations

import csv
from pathlib import Path
from typing import Dict, List

from .base import ParsedDataset


def parse_csv(path: Path, *, encoding: str | None = None) -> ParsedDataset:
    encoding = encoding or "utf-8"
    with path.open("r", encoding=encoding, newline="") as handle:
        reader = csv.DictReader(handle)
        records: List[Dict[str, str]] = [dict(row) for row in reader]
    metadata = {
        "columns": [name.strip() for name in reader.fieldnames or []],
        "encoding": encoding,
        "source": path.name,
    }
    return ParsedDataset(records=records, metadata=metadata)
