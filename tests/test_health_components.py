from __future__ import annotations

import math

import pytest

from teamhealth.scoring.config import default_health_model
from teamhealth.scoring.health import (
    calculate_css,
    calculate_dimension_chs,
    calculate_outcome_chs,
    calculate_pgs,
    calculate_series_trs,
    calculate_trs,
    css_series,
    current_indicators,
    outcome_css,
)
from teamhealth.scoring.indicators import IndicatorCatalog, IndicatorDefinition
from teamhealth.scoring.models import ONE_COMPONENT, THREE_COMPONENT, TWO_COMPONENT, ComponentResult


@pytest.fixture
def single_catalog() -> IndicatorCatalog:
    return IndicatorCatalog([IndicatorDefinition("a", "Indicator A", 1.0, True, "percent")])


def test_css_restandardizes_correlated_sum(make_history, make_cohort, equal_catalog) -> None:
    history = make_history("team-1", [{"a": 40.0, "b": 40.0}, {"a": 60.0, "b": 60.0}])
    cohort = make_cohort({"a": (50.0, 10.0), "b": (50.0, 10.0)})

    css = calculate_css(history, cohort, equal_catalog)

    assert css.metadata["weighted_sum"] == pytest.approx(1.0)
    assert css.metadata["variance_factor"] == pytest.approx(0.65)
    assert css.raw == pytest.approx(1 / math.sqrt(0.65))
    assert css.scaled == pytest.approx(62.403, abs=1e-3)


def test_css_falls_back_to_percentile(make_history, make_cohort, equal_catalog) -> None:
    history = make_history(
        "team-1",
        [{"a": 40.0, "b": 40.0}, {"a": 60.0, "b": None}],
        percentiles={"b": 84.1345},
    )
    cohort = make_cohort({"a": (50.0, 10.0), "b": (50.0, 10.0)})

    css = calculate_css(history, cohort, equal_catalog)

    sources = {item.indicator_id: item.source for item in css.contributions}
    assert sources == {"a": "raw", "b": "percentile"}
    assert css.metadata["percentile_fallbacks"] == ["b"]
    assert css.scaled == pytest.approx(62.403, abs=1e-2)


def test_current_indicators_accept_percentile_only(make_history, equal_catalog) -> None:
    history = make_history("team-1", [{"a": 1.0, "b": 1.0}, {"a": None, "b": 2.0}], percentiles={"a": 40.0})
    assert current_indicators(history, equal_catalog) == ["a", "b"]

    bare = make_history("team-2", [{"a": 1.0, "b": 1.0}, {"a": None, "b": 2.0}])
    assert current_indicators(bare, equal_catalog) == ["b"]


def test_trs_compares_early_and_recent_halves(make_history, make_cohort, single_catalog) -> None:
    history = make_history("team-1", [{"a": 10.0}, {"a": 10.0}, {"a": 20.0}, {"a": 20.0}])
    cohort = make_cohort({"a": (15.0, 5.0)})

    trs = calculate_trs(history, cohort, single_catalog)

    assert trs.raw == pytest.approx(math.sqrt(3))
    assert trs.scaled == pytest.approx(67.32, abs=1e-2)
    assert trs.metadata["cohort_sd_indicators"] == []
    assert trs.metadata["periods"] == 4


def test_trs_short_series_uses_cohort_spread(make_history, make_cohort, single_catalog) -> None:
    history = make_history("team-1", [{"a": 10.0}, {"a": 15.0}])
    cohort = make_cohort({"a": (12.0, 5.0)})

    trs = calculate_trs(history, cohort, single_catalog)

    assert trs.raw == pytest.approx(1.0)
    assert trs.metadata["cohort_sd_indicators"] == ["a"]


def test_trs_flat_series_is_neutral(make_history, make_cohort, single_catalog) -> None:
    history = make_history("team-1", [{"a": 10.0}] * 4)
    cohort = make_cohort({"a": (10.0, 0.0)})

    trs = calculate_trs(history, cohort, single_catalog)

    assert trs.raw == 0.0
    assert trs.scaled == 50.0


def test_pgs_requires_enough_peers() -> None:
    trs = ComponentResult(name="trs", raw=0.8, scaled=58.0, standard_error=3.0, metadata={"cohort_id": "c1"})

    assert calculate_pgs(trs, [0.1, 0.2, 0.8, 0.3]) is None

    pgs = calculate_pgs(trs, [0.1, 0.2, 0.8, 0.3, -0.4])
    assert pgs is not None
    assert pgs.name == "pgs"
    assert pgs.raw == pytest.approx(90.0)
    assert pgs.metadata["group_size"] == 5
    assert 50.0 < pgs.scaled < pgs.raw


def test_css_applies_cohort_bounds_before_fixed_cap(make_history, make_cohort, single_catalog) -> None:
    history = make_history("team-1", [{"a": 0.0}, {"a": 2.5}])
    cohort = make_cohort({"a": (0.0, 1.0)})

    narrow = calculate_css(history, cohort, single_catalog, bounds={"a": (-1.0, 1.2)})
    wide = calculate_css(history, cohort, single_catalog, bounds={"a": (-5.0, 5.0)})
    extreme = calculate_css(
        make_history("team-2", [{"a": 0.0}, {"a": 4.0}]), cohort, single_catalog, bounds={"a": (-5.0, 5.0)}
    )

    assert narrow.contributions[0].effect == pytest.approx(1.2)
    assert narrow.contributions[0].winsorized
    assert not wide.contributions[0].winsorized
    assert wide.raw == pytest.approx(2.5)
    assert extreme.contributions[0].effect == pytest.approx(3.0, abs=1e-3)


def test_css_series_scores_each_snapshot(make_history, make_cohort, single_catalog) -> None:
    history = make_history("team-1", [{"a": 0.0}, {"a": 1.0}, {"a": 2.0}])
    cohort = make_cohort({"a": (0.0, 1.0)})

    series = css_series(history, cohort, single_catalog)

    assert [item.scaled for item in series] == pytest.approx([50.0, 60.0, 70.0])


def test_series_trajectory_compares_halves() -> None:
    trs = calculate_series_trs([50.0, 52.0, 56.0, 58.0], cohort_id="c1")

    assert trs.raw == pytest.approx(6.0)
    assert trs.scaled == pytest.approx(70.0)
    assert trs.standard_error == pytest.approx(math.sqrt(26.0) / 2)
    assert trs.metadata["cohort_id"] == "c1"
    assert calculate_series_trs([55.0]) is None
    assert calculate_series_trs([20.0, 80.0]).scaled == 100.0


def _dimension_css(scaled: float) -> ComponentResult:
    return ComponentResult(
        name="css",
        raw=(scaled - 50.0) / 10.0,
        scaled=scaled,
        standard_error=2.0,
        metadata={"cohort_id": "c1"},
    )


def test_dimension_health_drops_missing_components() -> None:
    model_config = default_health_model()

    current_only = calculate_dimension_chs("team-1", "planning", _dimension_css(60.0), model_config)
    with_trend = calculate_dimension_chs(
        "team-1",
        "planning",
        _dimension_css(60.0),
        model_config,
        css_history=[50.0, 52.0, 56.0, 58.0],
        peer_trajectories=[0.0, 1.0],
    )
    with_peers = calculate_dimension_chs(
        "team-1",
        "planning",
        _dimension_css(60.0),
        model_config,
        css_history=[50.0, 52.0, 56.0, 58.0],
        peer_trajectories=[0.0, 1.0, 2.0, 3.0, 6.0],
    )

    assert current_only.model_type == ONE_COMPONENT
    assert current_only.score == pytest.approx(60.0)
    assert current_only.weights_used == {"css": 1.0}
    assert with_trend.model_type == TWO_COMPONENT
    assert with_trend.score == pytest.approx((0.5 * 60.0 + 0.35 * 70.0) / 0.85)
    assert with_trend.category == "good"
    assert with_trend.metadata["dimension"] == "planning"
    assert with_peers.model_type == THREE_COMPONENT
    assert with_peers.component("pgs").metadata["group_size"] == 5


def test_outcome_css_normalizes_weights() -> None:
    scores = {"planning": 60.0, "delivery": 40.0}

    assert outcome_css(scores, {"planning": 0.6, "delivery": 0.4})[0] == pytest.approx(52.0)
    assert outcome_css(scores)[0] == pytest.approx(50.0)
    score, contributions = outcome_css(scores, {"planning": 3.0, "delivery": 1.0})
    assert score == pytest.approx(55.0)
    assert [item.weighted_contribution for item in contributions] == pytest.approx([45.0, 10.0])
    with pytest.raises(ValueError):
        outcome_css(scores, {"hygiene": 1.0})


def test_outcome_health_rolls_up_dimensions() -> None:
    model_config = default_health_model()
    dimensions = {
        "planning": calculate_dimension_chs(
            "team-1", "planning", _dimension_css(60.0), model_config,
            css_history=[50.0, 52.0, 56.0, 58.0],
        ),
        "delivery": calculate_dimension_chs(
            "team-1", "delivery", _dimension_css(40.0), model_config,
            css_history=[40.0, 40.0, 40.0, 40.0],
        ),
    }

    outcome = calculate_outcome_chs("team-1", dimensions, model_config, outcome="flow")

    css = outcome.component("css")
    assert css.scaled == pytest.approx(50.0)
    assert css.standard_error == pytest.approx(math.sqrt(2.0))
    assert outcome.component("trs").raw == pytest.approx(3.0)
    assert outcome.score == pytest.approx((0.5 * 50.0 + 0.35 * 60.0) / 0.85)
    assert outcome.category == "average"
    assert outcome.metadata["dimension"] == "flow"
    shares = {item.dimension: item.weighted_contribution for item in outcome.metadata["dimension_contributions"]}
    assert shares == pytest.approx({"planning": 30.0, "delivery": 20.0})
