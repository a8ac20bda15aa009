from __future__ import annotations

from dataclasses import replace

import pytest

from teamhealth.scoring.config import EngineConfig
from teamhealth.scoring.models import THREE_COMPONENT, TWO_COMPONENT
from teamhealth.scoring.pipeline import (
    run_dimension_health,
    run_health_portfolio,
    run_outcome_health,
    run_progress_portfolio,
    score_distribution,
    team_percentile,
    teams_by_category,
    teams_needing_attention,
    top_performers,
)
from teamhealth.scoring.indicators import IndicatorCatalog
from teamhealth.synthetic import SeededRandomSource, generate_portfolio


@pytest.fixture(scope="module")
def varied_portfolio():
    return generate_portfolio(source=SeededRandomSource(42), team_count=47, interval_mode="varied")


@pytest.fixture(scope="module")
def progress_summary(varied_portfolio):
    return run_progress_portfolio(varied_portfolio)


def test_progress_scores_stay_in_range(progress_summary) -> None:
    assert progress_summary.kind == "CPS"
    assert progress_summary.results
    for result in progress_summary.results:
        assert 0.0 <= result.score <= 100.0
        lower, upper = result.confidence_interval
        assert 0.0 <= lower <= result.score <= upper <= 100.0
        assert sum(result.weights_used.values()) == pytest.approx(1.0)
        assert result.sensitivity is not None


def test_every_team_is_scored_or_excluded(varied_portfolio, progress_summary) -> None:
    scored = {result.team_id for result in progress_summary.results}
    excluded = {item.team_id for item in progress_summary.excluded}

    assert not scored & excluded
    assert len(scored) + len(excluded) == len(varied_portfolio)
    for item in progress_summary.excluded:
        assert item.reason == "insufficient_coverage"
        assert item.coverage < 0.70


def test_varied_intervals_enable_three_component_model(progress_summary) -> None:
    assert progress_summary.metadata["tnv_eligible"]
    assert progress_summary.model_counts.get(THREE_COMPONENT, 0) > 0
    sample = next(result for result in progress_summary.results if result.model_type == THREE_COMPONENT)
    assert sample.component("tnv") is not None


def test_uniform_intervals_fall_back_to_two_components() -> None:
    histories = generate_portfolio(
        source=SeededRandomSource(42), team_count=30, interval_mode="uniform"
    )
    summary = run_progress_portfolio(histories)

    assert not summary.metadata["tnv_eligible"]
    assert summary.model_counts == {TWO_COMPONENT: len(summary.results)}
    for result in summary.results:
        assert set(result.weights_used) == {"api", "cgp"}


def test_category_distribution_covers_all_bands(progress_summary) -> None:
    names = [item.category for item in progress_summary.category_distribution]

    assert names == list(EngineConfig.default().progress.categories.names())
    assert sum(item.count for item in progress_summary.category_distribution) == len(
        progress_summary.results
    )
    assert sum(item.share for item in progress_summary.category_distribution) == pytest.approx(1.0)


def test_portfolio_sensitivity_ratio(progress_summary) -> None:
    sensitivity = progress_summary.sensitivity
    changed = sum(1 for result in progress_summary.results if result.sensitivity.is_sensitive)

    assert sensitivity.total_teams == len(progress_summary.results)
    assert sensitivity.teams_with_category_change == changed
    assert sensitivity.ratio == pytest.approx(changed / len(progress_summary.results))
    assert sensitivity.is_sensitive == (sensitivity.ratio > 0.20)
    assert set(sensitivity.flips_by_configuration) == {"API-Dominant", "CGP-Dominant", "Equal"}


def test_parallel_scoring_matches_sequential(varied_portfolio, progress_summary) -> None:
    parallel = run_progress_portfolio(varied_portfolio, workers=4)

    assert [result.team_id for result in parallel.results] == [
        result.team_id for result in progress_summary.results
    ]
    assert [result.score for result in parallel.results] == pytest.approx(
        [result.score for result in progress_summary.results]
    )


def test_insufficient_history_is_excluded(make_history, varied_portfolio) -> None:
    lonely = make_history("zz-single", [{"acceptanceCriteria": 50.0}])
    summary = run_progress_portfolio([*varied_portfolio[:20], lonely])

    reasons = {item.team_id: item.reason for item in summary.excluded}
    assert reasons["zz-single"] == "insufficient_history"
    assert summary.result_for("zz-single") is None


def test_health_portfolio_uses_peer_growth_in_large_cohorts(varied_portfolio) -> None:
    summary = run_health_portfolio(varied_portfolio)

    assert summary.kind == "CHS"
    assert all(group.size >= 5 for group in summary.cohorts)
    assert summary.model_counts.get(THREE_COMPONENT, 0) == len(summary.results)
    for result in summary.results:
        assert 0.0 <= result.score <= 100.0


def test_small_health_portfolio_omits_peer_growth() -> None:
    histories = generate_portfolio(source=SeededRandomSource(3), team_count=3, missing_rate=0.0)
    summary = run_health_portfolio(histories)

    assert len(summary.results) == 3
    assert summary.model_counts == {TWO_COMPONENT: 3}
    for result in summary.results:
        assert result.component("pgs") is None
        assert set(result.weights_used) == {"css", "trs"}


def test_estimated_kappa_is_reported(varied_portfolio) -> None:
    config = EngineConfig.default()
    config = replace(config, statistics=replace(config.statistics, estimate_kappa=True))

    summary = run_progress_portfolio(varied_portfolio, config=config)

    low, high = config.statistics.kappa_bounds
    assert low <= summary.metadata["kappa"] <= high


def test_ranking_helpers(progress_summary) -> None:
    top = top_performers(progress_summary, count=3)
    assert len(top) == 3
    assert top[0].score >= top[1].score >= top[2].score

    lowest = {item.category for item in progress_summary.category_distribution[:2]}
    for result in teams_needing_attention(progress_summary):
        assert result.category in lowest

    grouped = teams_by_category(progress_summary)
    assert sum(len(items) for items in grouped.values()) == len(progress_summary.results)

    best = top[0]
    assert team_percentile(progress_summary, best.team_id) > 50.0
    assert team_percentile(progress_summary, "missing-team") is None


def test_score_distribution_summary() -> None:
    distribution = score_distribution([40.0, 50.0, 60.0])
    assert distribution.count == 3
    assert distribution.mean == pytest.approx(50.0)
    assert distribution.median == pytest.approx(50.0)
    assert distribution.minimum == 40.0
    assert distribution.maximum == 60.0
    assert score_distribution([]).count == 0


def test_progress_effects_are_bounded_by_cohort_population(progress_summary) -> None:
    for result in progress_summary.results:
        api = result.component("api")
        assert api.metadata["winsorize_bounds"] == "cohort"
        assert -4.5 <= api.raw <= 4.5


def test_dimension_and_outcome_health(varied_portfolio) -> None:
    catalog = IndicatorCatalog.default()
    by_dimension = run_dimension_health(varied_portfolio, catalog)

    assert by_dimension
    for team_id, results in by_dimension.items():
        assert set(results) <= set(catalog.dimensions())
        for dimension, result in results.items():
            assert result.kind == "CHS"
            assert result.metadata["dimension"] == dimension
            assert 0.0 <= result.score <= 100.0

    outcomes = run_outcome_health(by_dimension, outcome="delivery-health")

    assert set(outcomes) == {team_id for team_id, results in by_dimension.items() if results}
    for team_id, result in outcomes.items():
        assert result.metadata["dimension"] == "delivery-health"
        assert len(result.metadata["dimension_contributions"]) == len(by_dimension[team_id])
        assert 0.0 <= result.score <= 100.0
