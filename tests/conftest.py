from __future__ import annotations

from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Dict, Mapping, Optional, Sequence, Tuple

import pytest

from teamhealth.core.stage import StageContext
from teamhealth.scoring.indicators import IndicatorCatalog, IndicatorDefinition
from teamhealth.scoring.models import (
    BaselineGroup,
    IndicatorNorm,
    TeamHistory,
    TeamIndicatorSnapshot,
)
from teamhealth.settings import Settings


def _build_history(
    team_id: str,
    snapshots: Sequence[Mapping[str, Optional[float]]],
    *,
    gap_days: int = 90,
    start: date = date(2024, 1, 1),
    percentiles: Optional[Mapping[str, float]] = None,
) -> TeamHistory:
    items = []
    for index, values in enumerate(snapshots):
        last = index == len(snapshots) - 1
        items.append(
            TeamIndicatorSnapshot(
                team_id=team_id,
                captured_at=start + timedelta(days=gap_days * index),
                values=dict(values),
                coverage={key: value is not None for key, value in values.items()},
                percentiles=dict(percentiles or {}) if last else {},
            )
        )
    return TeamHistory(team_id=team_id, team_name=team_id.title(), snapshots=tuple(items))


def _build_cohort(
    norms: Mapping[str, Tuple[float, float]], size: int = 5, cohort_id: str = "cohort-01"
) -> BaselineGroup:
    return BaselineGroup(
        cohort_id=cohort_id,
        team_ids=tuple(f"team-{index}" for index in range(size)),
        norms={
            key: IndicatorNorm(indicator_id=key, mean=mean, std_dev=std_dev, count=size)
            for key, (mean, std_dev) in norms.items()
        },
    )


@pytest.fixture
def stage_context(tmp_path: Path) -> StageContext:
    """Create a temporary stage context for tests."""

    settings = Settings(
        data_dir=tmp_path / "data",
        output_dir=tmp_path / "artifacts",
        snapshot_path=tmp_path / "data" / "snapshots.csv",
        engine_config=tmp_path / "engine.yaml",
        workers=0,
        log_level="INFO",
    )
    settings.ensure_directories()
    return StageContext(
        settings=settings,
        run_id="test-run",
        timestamp=datetime(2024, 1, 1, 12, 0, 0),
        workspace=tmp_path,
    )


@pytest.fixture
def make_history():
    return _build_history


@pytest.fixture
def make_cohort():
    return _build_cohort


@pytest.fixture
def pair_catalog() -> IndicatorCatalog:
    """Two higher-is-better indicators weighted 0.6 / 0.4."""

    return IndicatorCatalog(
        [
            IndicatorDefinition("a", "Indicator A", 0.6, True, "percent"),
            IndicatorDefinition("b", "Indicator B", 0.4, True, "percent"),
        ]
    )


@pytest.fixture
def equal_catalog() -> IndicatorCatalog:
    return IndicatorCatalog(
        [
            IndicatorDefinition("a", "Indicator A", 0.5, True, "percent"),
            IndicatorDefinition("b", "Indicator B", 0.5, True, "percent"),
        ]
    )


@pytest.fixture
def norms_by_indicator() -> Dict[str, Tuple[float, float]]:
    return {"a": (10.0, 5.0), "b": (20.0, 10.0)}
