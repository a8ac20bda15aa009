"""Snapshot ingestion stage."""
from __future__ import annotations

import logging

from teamhealth.core import register_stage
from teamhealth.core.stage import StageContext
from teamhealth.scoring.indicators import IndicatorCatalog

from .snapshots import SnapshotFormatError, load_snapshots

logger = logging.getLogger(__name__)


@register_stage("load", "Load team indicator snapshots from CSV/XLSX.", order=10)
def run(context: StageContext) -> None:
    """Read the configured snapshot table into ``context.artifacts``."""

    path = context.settings.snapshot_path
    catalog = context.artifacts.get("catalog") or IndicatorCatalog.default()
    try:
        histories = load_snapshots(path, catalog)
    except FileNotFoundError as exc:
        logger.error("Snapshot table missing: %s", exc)
        raise
    context.artifacts["catalog"] = catalog
    context.artifacts["histories"] = histories
    single = sum(1 for history in histories if len(history.snapshots) < 2)
    if single:
        logger.warning("%d team(s) have a single snapshot and cannot be scored.", single)


__all__ = ["SnapshotFormatError", "load_snapshots", "run"]
