from __future__ import annotations

from pathlib import Path

import pytest

from teamhealth.scoring.indicators import IndicatorCatalog
from teamhealth.synthetic import SeededRandomSource, generate_portfolio, write_snapshot_table
from teamhealth.synthetic.generator import DAYS_PER_MONTH, INDICATOR_DISTRIBUTIONS


def _values(histories):
    return [
        (history.team_id, snapshot.captured_at, tuple(sorted(snapshot.values.items())))
        for history in histories
        for snapshot in history.snapshots
    ]


def test_same_seed_same_portfolio() -> None:
    first = generate_portfolio(source=SeededRandomSource(7), team_count=10)
    second = generate_portfolio(source=SeededRandomSource(7), team_count=10)
    other = generate_portfolio(source=SeededRandomSource(8), team_count=10)

    assert _values(first) == _values(second)
    assert _values(first) != _values(other)


def test_portfolio_shape() -> None:
    histories = generate_portfolio(source=SeededRandomSource(1), team_count=12, snapshots_per_team=4)

    assert [history.team_id for history in histories][:2] == ["team-001", "team-002"]
    assert all(len(history.snapshots) == 4 for history in histories)
    for history in histories:
        dates = [snapshot.captured_at for snapshot in history.snapshots]
        assert dates == sorted(dates)
        assert history.metadata["pattern"]


def test_invalid_arguments_are_rejected() -> None:
    with pytest.raises(ValueError):
        generate_portfolio(snapshots_per_team=1)
    with pytest.raises(ValueError):
        generate_portfolio(interval_mode="weekly")


def test_values_respect_indicator_bounds() -> None:
    histories = generate_portfolio(source=SeededRandomSource(2), team_count=20, missing_rate=0.0)

    for history in histories:
        for snapshot in history.snapshots:
            for indicator_id, value in snapshot.values.items():
                bounds = INDICATOR_DISTRIBUTIONS[indicator_id]
                assert bounds.minimum <= value <= bounds.maximum


def test_uniform_intervals_stay_near_quarterly() -> None:
    histories = generate_portfolio(source=SeededRandomSource(3), team_count=15, interval_mode="uniform")

    low = round(2.8 * DAYS_PER_MONTH)
    high = round(3.2 * DAYS_PER_MONTH)
    for history in histories:
        for gap in history.spacing_days:
            assert low <= gap <= high


def test_missing_indicators_are_uncovered() -> None:
    histories = generate_portfolio(source=SeededRandomSource(4), team_count=8, missing_rate=1.0)

    for history in histories:
        removed = history.metadata["missing_indicators"]
        assert 1 <= len(removed) <= 4
        for indicator_id in removed:
            assert all(not snapshot.is_covered(indicator_id) for snapshot in history.snapshots)


def test_xlsx_output(tmp_path: Path) -> None:
    histories = generate_portfolio(source=SeededRandomSource(5), team_count=3)

    path = write_snapshot_table(histories, tmp_path / "out" / "snapshots.xlsx", IndicatorCatalog.default())

    assert path.exists()
    assert path.suffix == ".xlsx"
