"""Progress and health scoring stages."""
from __future__ import annotations

import logging

from teamhealth.core import engine_version, register_stage
from teamhealth.core.stage import StageContext

from .config import EngineConfig, load_engine_config
from .indicators import IndicatorCatalog
from .pipeline import run_health_portfolio, run_progress_portfolio
from .report import write_summary

logger = logging.getLogger(__name__)


def _engine_config(context: StageContext) -> EngineConfig:
    config = context.artifacts.get("engine_config")
    if config is None:
        config = load_engine_config(context.settings.engine_config)
        context.artifacts["engine_config"] = config
    return config


def _histories(context: StageContext) -> list:
    histories = context.artifacts.get("histories")
    if histories is None:
        raise RuntimeError("No team histories loaded; run the 'load' stage first.")
    return histories


@register_stage("progress", "Compute Composite Progress Scores (API/CGP/TNV).", order=20)
def run_progress(context: StageContext) -> None:
    histories = _histories(context)
    summary = run_progress_portfolio(
        histories,
        context.artifacts.get("catalog") or IndicatorCatalog.default(),
        _engine_config(context),
        workers=context.settings.workers,
    )
    context.artifacts["progress_summary"] = summary
    logger.info(
        "CPS summary: %d team(s), mean %.1f, median %.1f, %d sensitive (%.0f%%)",
        summary.distribution.count,
        summary.distribution.mean,
        summary.distribution.median,
        summary.sensitivity.teams_with_category_change,
        summary.sensitivity.ratio * 100,
    )
    write_summary(
        summary,
        context.settings.output_dir / f"progress_{context.run_id}.json",
        run_id=context.run_id,
        version=engine_version(),
    )


@register_stage("health", "Compute Composite Health Scores (CSS/TRS/PGS).", order=30)
def run_health(context: StageContext) -> None:
    histories = _histories(context)
    summary = run_health_portfolio(
        histories,
        context.artifacts.get("catalog") or IndicatorCatalog.default(),
        _engine_config(context),
        workers=context.settings.workers,
    )
    context.artifacts["health_summary"] = summary
    logger.info(
        "CHS summary: %d team(s), mean %.1f, median %.1f, %d sensitive (%.0f%%)",
        summary.distribution.count,
        summary.distribution.mean,
        summary.distribution.median,
        summary.sensitivity.teams_with_category_change,
        summary.sensitivity.ratio * 100,
    )
    write_summary(
        summary,
        context.settings.output_dir / f"health_{context.run_id}.json",
        run_id=context.run_id,
        version=engine_version(),
    )
