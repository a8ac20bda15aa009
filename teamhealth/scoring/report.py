from __future__ import annotations

"""Serialise portfolio summaries for downstream consumers."""

import json
import logging
from dataclasses import asdict
from pathlib import Path
from typing import Dict

from .models import PortfolioSummary

logger = logging.getLogger(__name__)


def summary_to_dict(summary: PortfolioSummary) -> Dict[str, object]:
    payload = asdict(summary)
    for entry, result in zip(payload["results"], summary.results):
        entry["model_type"] = result.model_type
        entry["is_sensitive"] = bool(result.sensitivity and result.sensitivity.is_sensitive)
    return payload


def write_summary(summary: PortfolioSummary, path: Path, *, run_id: str, version: str) -> Path:
    """Write *summary* as JSON to *path* and return the path."""

    path.parent.mkdir(parents=True, exist_ok=True)
    payload = {"run_id": run_id, "engine_version": version, "summary": summary_to_dict(summary)}
    with path.open("w", encoding="utf-8") as handle:
        json.dump(payload, handle, indent=2, default=str)
    logger.info("Wrote %s summary for %d team(s) to %s", summary.kind, len(summary.results), path)
    return path


__all__ = ["summary_to_dict", "write_summary"]
