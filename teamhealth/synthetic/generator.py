"""Synthetic team portfolios for demos and tests.

Teams draw an improvement pattern, a latent health factor shared across their
indicators, per-indicator noise, occasional coverage gaps and measurement
intervals that are either near-quarterly or deliberately varied.
"""
from __future__ import annotations

import csv
import logging
import math
from dataclasses import dataclass
from datetime import date, timedelta
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from openpyxl import Workbook

from teamhealth.scoring.indicators import IndicatorCatalog
from teamhealth.scoring.models import TeamHistory, TeamIndicatorSnapshot

from .random_source import RandomSource, SeededRandomSource

logger = logging.getLogger(__name__)

DAYS_PER_MONTH = 30.44


@dataclass(slots=True, frozen=True)
class IndicatorDistribution:
    mean: float
    std_dev: float
    minimum: float
    maximum: float

    def clip(self, value: float) -> float:
        return max(self.minimum, min(self.maximum, value))


@dataclass(slots=True, frozen=True)
class ImprovementPattern:
    name: str
    probability: float
    effect_low: float
    effect_high: float


INDICATOR_DISTRIBUTIONS: Dict[str, IndicatorDistribution] = {
    "acceptanceCriteria": IndicatorDistribution(65, 18, 10, 98),
    "firstTimePassRate": IndicatorDistribution(72, 15, 30, 95),
    "storyEstimationRate": IndicatorDistribution(70, 20, 15, 98),
    "workCarriedOver": IndicatorDistribution(22, 12, 0, 60),
    "midSprintCreations": IndicatorDistribution(18, 10, 0, 50),
    "staleWorkItems": IndicatorDistribution(15, 10, 0, 50),
    "avgCommentsPerIssue": IndicatorDistribution(3.5, 1.8, 0.5, 12),
    "singleContributorIssueRate": IndicatorDistribution(45, 18, 10, 90),
    "throughputVariability": IndicatorDistribution(0.35, 0.15, 0.05, 0.80),
    "siloedWorkItems": IndicatorDistribution(25, 15, 0, 70),
    "jiraUpdateFrequency": IndicatorDistribution(1.2, 0.5, 0.2, 3.0),
    "lastDayCompletions": IndicatorDistribution(28, 12, 5, 70),
    "policyExclusions": IndicatorDistribution(8, 6, 0, 35),
}
FALLBACK_DISTRIBUTION = IndicatorDistribution(50, 15, 0, 100)

IMPROVEMENT_PATTERNS = (
    ImprovementPattern("strong-improvement", 0.20, 0.5, 1.0),
    ImprovementPattern("moderate-improvement", 0.30, 0.2, 0.5),
    ImprovementPattern("stable", 0.30, -0.2, 0.2),
    ImprovementPattern("slight-decline", 0.15, -0.5, -0.2),
    ImprovementPattern("significant-decline", 0.05, -0.8, -0.5),
)

INTERVAL_MONTHS = {"uniform": (2.8, 3.2), "varied": (2.0, 6.0)}


def _gap_days(source: RandomSource, mode: str) -> int:
    low, high = INTERVAL_MONTHS[mode]
    return max(1, round(source.uniform(low, high) * DAYS_PER_MONTH))


def generate_team(
    team_id: str,
    catalog: IndicatorCatalog,
    source: RandomSource,
    *,
    snapshots: int = 3,
    interval_mode: str = "varied",
    missing_rate: float = 0.12,
    health_correlation: float = 0.3,
    noise_scale: float = 0.3,
    start: date = date(2024, 1, 1),
) -> TeamHistory:
    pattern = source.choice(IMPROVEMENT_PATTERNS, [item.probability for item in IMPROVEMENT_PATTERNS])
    effect = source.uniform(pattern.effect_low, pattern.effect_high)
    health = source.normal()
    unique = math.sqrt(1 - health_correlation**2)

    dates = [start]
    for _ in range(snapshots - 1):
        dates.append(dates[-1] + timedelta(days=_gap_days(source, interval_mode)))
    span = (dates[-1] - dates[0]).days or 1

    removed: List[str] = []
    if source.random() < missing_rate:
        removed = source.sample(list(catalog.ids()), source.integers(1, 4))

    series: Dict[str, List[Optional[float]]] = {}
    for definition in catalog:
        distribution = INDICATOR_DISTRIBUTIONS.get(definition.indicator_id, FALLBACK_DISTRIBUTION)
        if definition.indicator_id in removed:
            series[definition.indicator_id] = [None] * snapshots
            continue
        latent = health_correlation * health + unique * source.normal()
        baseline = distribution.mean + definition.direction * latent * distribution.std_dev
        values: List[Optional[float]] = []
        for captured in dates:
            progress = (captured - dates[0]).days / span
            drift = definition.direction * effect * distribution.std_dev * progress
            noise = source.normal(0.0, noise_scale * distribution.std_dev) if progress else 0.0
            values.append(round(distribution.clip(baseline + drift + noise), 3))
        series[definition.indicator_id] = values

    history_snapshots = tuple(
        TeamIndicatorSnapshot(
            team_id=team_id,
            captured_at=captured,
            values={key: values[index] for key, values in series.items()},
            coverage={key: values[index] is not None for key, values in series.items()},
        )
        for index, captured in enumerate(dates)
    )
    return TeamHistory(
        team_id=team_id,
        team_name=f"Team {team_id.split('-')[-1]}",
        snapshots=history_snapshots,
        metadata={
            "pattern": pattern.name,
            "effect_size": effect,
            "health_factor": health,
            "missing_indicators": list(removed),
        },
    )


def generate_portfolio(
    catalog: IndicatorCatalog | None = None,
    source: RandomSource | None = None,
    *,
    team_count: int = 47,
    snapshots_per_team: int = 3,
    interval_mode: str = "varied",
    missing_rate: float = 0.12,
    start: date = date(2024, 1, 1),
) -> List[TeamHistory]:
    """Generate *team_count* synthetic team histories.

    The same seeded *source* always yields the same portfolio.
    """

    if snapshots_per_team < 2:
        raise ValueError("Each team needs at least a baseline and a current snapshot")
    if interval_mode not in INTERVAL_MONTHS:
        raise ValueError(
            f"Unknown interval mode '{interval_mode}'; expected one of {sorted(INTERVAL_MONTHS)}"
        )
    catalog = catalog or IndicatorCatalog.default()
    source = source or SeededRandomSource()
    histories = [
        generate_team(
            f"team-{number:03d}",
            catalog,
            source,
            snapshots=snapshots_per_team,
            interval_mode=interval_mode,
            missing_rate=missing_rate,
            start=start,
        )
        for number in range(1, team_count + 1)
    ]
    logger.info(
        "Generated %d synthetic team(s) with %d snapshot(s) each (%s intervals)",
        team_count,
        snapshots_per_team,
        interval_mode,
    )
    return histories


def snapshot_rows(histories: Sequence[TeamHistory], catalog: IndicatorCatalog) -> List[Dict[str, object]]:
    rows: List[Dict[str, object]] = []
    for history in histories:
        for snapshot in history.snapshots:
            row: Dict[str, object] = {
                "team_id": history.team_id,
                "team_name": history.team_name,
                "captured_at": snapshot.captured_at.isoformat(),
            }
            for indicator_id in catalog.ids():
                value = snapshot.value(indicator_id)
                row[indicator_id] = "" if value is None else value
            rows.append(row)
    return rows


def write_snapshot_table(
    histories: Sequence[TeamHistory], path: Path, catalog: IndicatorCatalog | None = None
) -> Path:
    """Write *histories* in the ingestion table layout (CSV or XLSX by suffix)."""

    catalog = catalog or IndicatorCatalog.default()
    columns = ["team_id", "team_name", "captured_at", *catalog.ids()]
    rows = snapshot_rows(histories, catalog)
    path.parent.mkdir(parents=True, exist_ok=True)
    if path.suffix.lower() == ".xlsx":
        workbook = Workbook()
        sheet = workbook.active
        sheet.title = "Snapshots"
        sheet.append(columns)
        for row in rows:
            sheet.append([None if row[column] == "" else row[column] for column in columns])
        workbook.save(path)
    else:
        with path.open("w", encoding="utf-8", newline="") as handle:
            writer = csv.DictWriter(handle, fieldnames=columns)
            writer.writeheader()
            writer.writerows(rows)
    logger.info("Wrote %d snapshot row(s) to %s", len(rows), path)
    return path


__all__ = [
    "FALLBACK_DISTRIBUTION",
    "IMPROVEMENT_PATTERNS",
    "INDICATOR_DISTRIBUTIONS",
    "ImprovementPattern",
    "IndicatorDistribution",
    "generate_portfolio",
    "generate_team",
    "snapshot_rows",
    "write_snapshot_table",
]
