from __future__ import annotations

import numpy as np
import pytest

from teamhealth.scoring.cohorts import (
    build_baseline_cohorts,
    cohort_count_for,
    merge_undersized_cohorts,
)
from teamhealth.scoring.config import CohortConfig
from teamhealth.scoring.indicators import IndicatorCatalog
from teamhealth.synthetic import SeededRandomSource, generate_portfolio


def test_cohort_count_follows_portfolio_size() -> None:
    assert cohort_count_for(60) == 10
    assert cohort_count_for(47) == 5
    assert cohort_count_for(25) == 4
    assert cohort_count_for(12) == 1
    assert cohort_count_for(3, configured=6) == 3


def test_merge_undersized_cohort_joins_nearest_neighbour() -> None:
    points = np.array([[0.0]] * 6 + [[10.0]] * 6 + [[9.0]] * 3)
    clusters = [list(range(0, 6)), list(range(6, 12)), [12, 13, 14]]

    merged, origins = merge_undersized_cohorts(clusters, points, min_size=5)

    assert [len(group) for group in merged] == [6, 9]
    assert origins == [[0], [1, 2]]


def test_merge_stops_at_single_cohort() -> None:
    points = np.array([[0.0], [1.0], [5.0]])
    merged, _ = merge_undersized_cohorts([[0], [1], [2]], points, min_size=5)

    assert merged == [[0, 1, 2]]


def test_cohort_of_three_is_merged_before_ranking(make_history, pair_catalog) -> None:
    histories = []
    for index in range(7):
        value = 10.0 + index * 0.5
        histories.append(make_history(f"low-{index}", [{"a": value, "b": value}, {"a": value, "b": value}]))
    for index in range(3):
        value = 90.0 + index * 0.5
        histories.append(make_history(f"high-{index}", [{"a": value, "b": value}, {"a": value, "b": value}]))

    assignment = build_baseline_cohorts(
        histories, pair_catalog, CohortConfig(min_size=5, group_count=2)
    )

    assert len(assignment.groups) == 1
    group = assignment.groups[0]
    assert group.size == 10
    assert group.size >= 5
    assert len(group.merged_from) == 2


def test_every_team_belongs_to_exactly_one_cohort() -> None:
    histories = generate_portfolio(source=SeededRandomSource(11), team_count=47)
    assignment = build_baseline_cohorts(histories, IndicatorCatalog.default(), CohortConfig())

    members = [team_id for group in assignment.groups for team_id in group.team_ids]
    assert sorted(members) == sorted(history.team_id for history in histories)
    assert all(group.size >= 5 for group in assignment.groups)
    for history in histories:
        assert history.team_id in assignment.group_for(history.team_id).team_ids


def test_norms_skip_uncovered_baseline_values(make_history, pair_catalog) -> None:
    histories = [
        make_history(f"team-{index}", [{"a": float(index), "b": 5.0}, {"a": 1.0, "b": 5.0}])
        for index in range(4)
    ]
    histories.append(make_history("team-gap", [{"a": None, "b": 5.0}, {"a": 2.0, "b": 5.0}]))

    assignment = build_baseline_cohorts(histories, pair_catalog, CohortConfig(min_size=5))
    norm_a = assignment.groups[0].norm("a")
    norm_b = assignment.groups[0].norm("b")

    assert norm_a.count == 4
    assert norm_a.mean == pytest.approx(1.5)
    assert norm_b.std_dev == 0.0
    assert "team-gap" in assignment.groups[0].team_ids


def test_cohorts_are_deterministic() -> None:
    histories = generate_portfolio(source=SeededRandomSource(5), team_count=55)
    catalog = IndicatorCatalog.default()
    first = build_baseline_cohorts(histories, catalog)
    second = build_baseline_cohorts(list(reversed(histories)), catalog)

    assert dict(first.by_team) == dict(second.by_team)
