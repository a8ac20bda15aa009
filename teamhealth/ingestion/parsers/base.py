"""Common parsing primitives for snapshot ingestion."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List


@dataclass(slots=True)
class ParsedDataset:
    """Rows read from a snapshot table plus details about where they came from."""

    records: List[Dict[str, Any]]
    metadata: Dict[str, Any]

    @property
    def row_count(self) -> int:
        return len(self.records)

    @property
    def columns(self) -> List[str]:
        return list(self.metadata.get("columns") or [])
