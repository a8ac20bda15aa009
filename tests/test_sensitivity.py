from __future__ import annotations

import pytest

from teamhealth.scoring.composite import aggregate
from teamhealth.scoring.config import WeightConfiguration, default_health_model, default_progress_model
from teamhealth.scoring.models import (
    ComponentResult,
    HealthTwoComponent,
    ProgressThreeComponent,
    ProgressTwoComponent,
)
from teamhealth.scoring.sensitivity import analyze_sensitivity


def _component(name: str, scaled: float) -> ComponentResult:
    return ComponentResult(name=name, raw=0.0, scaled=scaled, standard_error=1.0)


@pytest.fixture
def borderline_result():
    model = ProgressThreeComponent(
        api=_component("api", 60.0), cgp=_component("cgp", 45.0), tnv=_component("tnv", 45.0)
    )
    return aggregate("team-1", model, default_progress_model())


def test_alternate_configurations_are_rescored(borderline_result) -> None:
    report = analyze_sensitivity(borderline_result, default_progress_model())
    scores = {item.name: item.score for item in report.configurations}

    assert borderline_result.category == "stable"
    assert scores == pytest.approx(
        {"API-Dominant": 53.25, "CGP-Dominant": 48.75, "Equal": 49.95}
    )


def test_category_changes_are_flagged(borderline_result) -> None:
    report = analyze_sensitivity(borderline_result, default_progress_model())
    changed = {item.name: item.category_changed for item in report.configurations}

    assert changed == {"API-Dominant": True, "CGP-Dominant": False, "Equal": False}
    assert report.change_count == 1
    assert report.is_sensitive
    api_dominant = report.configurations[0]
    assert api_dominant.category == "moderate-progress"
    assert api_dominant.score_delta == pytest.approx(3.0)


def test_sensitivity_does_not_touch_the_result(borderline_result) -> None:
    before = (borderline_result.score, borderline_result.category)
    analyze_sensitivity(borderline_result, default_progress_model())

    assert (borderline_result.score, borderline_result.category) == before


def test_explicit_alternates_and_two_component_renormalization() -> None:
    model = HealthTwoComponent(css=_component("css", 80.0), trs=_component("trs", 40.0))
    result = aggregate("team-2", model, default_health_model())
    alternates = [WeightConfiguration("CSS-Only", {"css": 1.0, "trs": 0.0, "pgs": 0.0})]

    report = analyze_sensitivity(result, default_health_model(), alternates)

    assert len(report.configurations) == 1
    assert report.configurations[0].weights == {"css": 1.0, "trs": 0.0}
    assert report.configurations[0].score == pytest.approx(80.0)
    assert report.configurations[0].category == "excellent"


def test_two_component_progress_uses_two_component_alternates() -> None:
    model = ProgressTwoComponent(api=_component("api", 60.0), cgp=_component("cgp", 40.0))
    result = aggregate("team-4", model, default_progress_model())

    report = analyze_sensitivity(result, default_progress_model())
    scores = {item.name: item.score for item in report.configurations}

    assert scores == pytest.approx({"API-Dominant": 53.0, "CGP-Dominant": 47.0, "Equal": 50.0})
    assert report.configurations[0].weights == pytest.approx({"api": 0.65, "cgp": 0.35})
    assert [item.category for item in report.configurations] == [
        "moderate-progress",
        "moderate-decline",
        "stable",
    ]


def test_repeated_analysis_is_identical(borderline_result) -> None:
    first = analyze_sensitivity(borderline_result, default_progress_model())
    second = analyze_sensitivity(borderline_result, default_progress_model())

    assert first == second
    assert [item.score for item in first.configurations] == [
        item.score for item in second.configurations
    ]


def test_stable_result_is_not_sensitive() -> None:
    model = ProgressThreeComponent(
        api=_component("api", 50.0), cgp=_component("cgp", 50.0), tnv=_component("tnv", 50.0)
    )
    result = aggregate("team-3", model, default_progress_model())

    report = analyze_sensitivity(result, default_progress_model())

    assert report.change_count == 0
    assert not report.is_sensitive
