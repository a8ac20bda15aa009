from __future__ import annotations

"""Build team histories from parsed snapshot tables."""

import logging
from collections import OrderedDict
from datetime import date, datetime
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from teamhealth.scoring.indicators import IndicatorCatalog
from teamhealth.scoring.models import TeamHistory, TeamIndicatorSnapshot

from .parsers import ParsedDataset, parse_file

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS = ("team_id", "captured_at")
PERCENTILE_SUFFIX = "_percentile"


class SnapshotFormatError(ValueError):
    """Raised when a snapshot table lacks required columns or dates."""


def _parse_date(raw: object, row_number: int) -> date:
    if isinstance(raw, datetime):
        return raw.date()
    if isinstance(raw, date):
        return raw
    text = str(raw or "").strip()
    try:
        return date.fromisoformat(text[:10])
    except ValueError as exc:
        raise SnapshotFormatError(f"Row {row_number}: invalid captured_at '{text}'") from exc


def _parse_number(raw: object, column: str, row_number: int) -> Optional[float]:
    if raw is None:
        return None
    if isinstance(raw, (int, float)):
        return float(raw)
    text = str(raw).strip()
    if not text:
        return None
    try:
        return float(text.replace(",", ""))
    except ValueError:
        logger.warning(
            "Row %d: non-numeric value %r in column %s treated as missing", row_number, text, column
        )
        return None


def _snapshot_from_record(
    record: Mapping[str, object], catalog: IndicatorCatalog, row_number: int
) -> Tuple[str, str, TeamIndicatorSnapshot]:
    team_id = str(record.get("team_id") or "").strip()
    team_name = str(record.get("team_name") or team_id).strip()
    values: Dict[str, Optional[float]] = {}
    coverage: Dict[str, bool] = {}
    percentiles: Dict[str, float] = {}
    for indicator_id in catalog.ids():
        value = _parse_number(record.get(indicator_id), indicator_id, row_number)
        values[indicator_id] = value
        coverage[indicator_id] = value is not None
        percentile_column = f"{indicator_id}{PERCENTILE_SUFFIX}"
        percentile = _parse_number(record.get(percentile_column), percentile_column, row_number)
        if percentile is not None:
            percentiles[indicator_id] = percentile
    snapshot = TeamIndicatorSnapshot(
        team_id=team_id,
        captured_at=_parse_date(record.get("captured_at"), row_number),
        values=values,
        coverage=coverage,
        percentiles=percentiles,
    )
    return team_id, team_name, snapshot


def histories_from_records(
    records: Iterable[Mapping[str, object]], catalog: IndicatorCatalog | None = None
) -> List[TeamHistory]:
    """Group snapshot rows by team and order each team's rows by date."""

    catalog = catalog or IndicatorCatalog.default()
    grouped: "OrderedDict[str, List[TeamIndicatorSnapshot]]" = OrderedDict()
    names: Dict[str, str] = {}
    for row_number, record in enumerate(records, start=2):
        if not str(record.get("team_id") or "").strip():
            logger.warning("Row %d: missing team_id; row skipped", row_number)
            continue
        team_id, team_name, snapshot = _snapshot_from_record(record, catalog, row_number)
        grouped.setdefault(team_id, []).append(snapshot)
        names.setdefault(team_id, team_name)
    return [
        TeamHistory(
            team_id=team_id,
            team_name=names[team_id],
            snapshots=tuple(sorted(snapshots, key=lambda snapshot: snapshot.captured_at)),
        )
        for team_id, snapshots in grouped.items()
    ]


def validate_columns(dataset: ParsedDataset, catalog: IndicatorCatalog) -> List[str]:
    """Raise for missing required columns; return indicator columns absent from the table."""

    columns = set(dataset.columns)
    missing_required = [name for name in REQUIRED_COLUMNS if name not in columns]
    if missing_required:
        raise SnapshotFormatError(
            f"Snapshot table {dataset.metadata.get('source')} is missing columns: "
            f"{', '.join(missing_required)}"
        )
    return [indicator_id for indicator_id in catalog.ids() if indicator_id not in columns]


def load_snapshots(
    path: Path,
    catalog: IndicatorCatalog | None = None,
    *,
    worksheet: str | None = None,
) -> List[TeamHistory]:
    """Read a CSV or XLSX snapshot table into team histories."""

    if not path.exists():
        raise FileNotFoundError(f"Snapshot table not found at {path}")
    catalog = catalog or IndicatorCatalog.default()
    dataset = parse_file(path, worksheet=worksheet)
    absent = validate_columns(dataset, catalog)
    if absent:
        logger.warning(
            "Snapshot table %s has no column for %d indicator(s): %s",
            path.name,
            len(absent),
            ", ".join(absent),
        )
    histories = histories_from_records(dataset.records, catalog)
    logger.info(
        "Loaded %d snapshot row(s) for %d team(s) from %s",
        dataset.row_count,
        len(histories),
        path,
    )
    return histories


__all__ = [
    "SnapshotFormatError",
    "histories_from_records",
    "load_snapshots",
    "validate_columns",
]
