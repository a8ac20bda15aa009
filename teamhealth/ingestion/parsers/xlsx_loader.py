"""XLSX snapshot tables exported from spreadsheets."""
from __future__ import annotations

from pathlib import Path
from typing import Dict, List

from openpyxl import load_workbook

from .base import ParsedDataset


def parse_xlsx(path: Path, *, worksheet: str | None = None) -> ParsedDataset:
    workbook = load_workbook(path, data_only=True, read_only=True)
    try:
        if worksheet:
            if worksheet not in workbook.sheetnames:
                raise ValueError(f"Worksheet '{worksheet}' not found in {path.name}")
            sheet = workbook[worksheet]
        else:
            sheet = workbook.active
        rows = list(sheet.iter_rows(values_only=True))
        title = sheet.title
    finally:
        workbook.close()
    if not rows:
        return ParsedDataset(records=[], metadata={"columns": [], "worksheet": title})
    headers = [str(value).strip() if value is not None else "" for value in rows[0]]
    records: List[Dict[str, object]] = []
    for row in rows[1:]:
        if all(value is None for value in row):
            continue
        records.append(
            {
                headers[index] if index < len(headers) else f"column_{index}": value
                for index, value in enumerate(row)
            }
        )
    metadata = {
        "columns": headers,
        "worksheet": title,
        "source": path.name,
    }
    return ParsedDataset(records=records, metadata=metadata)
