from __future__ import annotations

from pathlib import Path

import pytest

from teamhealth.scoring.config import (
    CategoryBand,
    CategoryScheme,
    CompositeModelConfig,
    EngineConfig,
    WeightConfiguration,
    WeightConfigurationError,
    load_engine_config,
)

PROJECT_ROOT = Path(__file__).resolve().parents[1]


def test_defaults_without_path() -> None:
    config = load_engine_config(None)

    assert config.progress.default.weights == {"api": 0.35, "cgp": 0.40, "tnv": 0.25}
    assert config.health.default.name == "Balanced"
    assert [item.name for item in config.progress.alternates] == ["API-Dominant", "CGP-Dominant", "Equal"]
    assert config.coverage.min_coverage == pytest.approx(0.70)
    assert config.tnv.reference_days == 90.0


def test_missing_file_falls_back_to_defaults(tmp_path: Path) -> None:
    config = load_engine_config(tmp_path / "absent.yaml")

    assert config == EngineConfig.default()


def test_shipped_configuration_matches_defaults() -> None:
    config = load_engine_config(PROJECT_ROOT / "config" / "engine.yaml")
    defaults = EngineConfig.default()

    assert config.progress.default.weights == pytest.approx(defaults.progress.default.weights)
    assert config.health.categories.names() == defaults.health.categories.names()
    assert config.progress.categories.categorize(52.0) == "moderate-progress"
    assert config.statistics.kappa == pytest.approx(10.0)


def test_yaml_overrides_sections_and_weights(tmp_path: Path) -> None:
    path = tmp_path / "engine.yaml"
    path.write_text(
        "\n".join(
            [
                "statistics:",
                "  kappa: 20",
                "  percentile_clip: [5, 95]",
                "cohorts:",
                "  min_size: 3",
                "progress:",
                "  default:",
                "    name: Custom",
                "    weights: {api: 0.5, cgp: 0.3, tnv: 0.2}",
                "  alternates:",
                "    Flat:",
                "      weights: {api: 0.34, cgp: 0.33, tnv: 0.33}",
                "health:",
                "  categories:",
                "    high: {min: 60, label: High}",
                "    low: {min: 0, label: Low}",
            ]
        ),
        encoding="utf-8",
    )

    config = load_engine_config(path)

    assert config.statistics.kappa == 20
    assert config.statistics.percentile_clip == (5, 95)
    assert config.statistics.average_correlation == pytest.approx(0.3)
    assert config.cohorts.min_size == 3
    assert config.progress.default.name == "Custom"
    assert [item.name for item in config.progress.alternates] == ["Flat"]
    assert config.health.categories.categorize(61.0) == "high"
    assert config.health.default.name == "Balanced"


def test_invalid_weight_sum_in_yaml_raises(tmp_path: Path) -> None:
    path = tmp_path / "engine.yaml"
    path.write_text(
        "progress:\n  default:\n    weights: {api: 0.6, cgp: 0.6, tnv: 0.2}\n",
        encoding="utf-8",
    )

    with pytest.raises(WeightConfigurationError):
        load_engine_config(path)


def test_unknown_component_is_rejected() -> None:
    scheme = CategoryScheme((CategoryBand("all", 0.0),))
    with pytest.raises(WeightConfigurationError):
        CompositeModelConfig(
            kind="CPS",
            components=("api", "cgp", "tnv"),
            default=WeightConfiguration("Odd", {"api": 0.5, "css": 0.5}),
            alternates=(),
            categories=scheme,
        )


def test_category_scheme_validation() -> None:
    with pytest.raises(ValueError):
        CategoryScheme((CategoryBand("top", 50.0),))
    with pytest.raises(ValueError):
        CategoryScheme((CategoryBand("x", 50.0), CategoryBand("x", 0.0)))

    scheme = CategoryScheme((CategoryBand("low", 0.0), CategoryBand("high", 50.0)))
    assert scheme.names() == ("low", "high")
    assert scheme.categorize(50.0) == "high"


def test_two_component_progress_weights(tmp_path: Path) -> None:
    defaults = EngineConfig.default()
    shipped = load_engine_config(PROJECT_ROOT / "config" / "engine.yaml")

    assert defaults.progress.two_component_default.weights == pytest.approx({"api": 0.45, "cgp": 0.55})
    assert shipped.progress.two_component_default.weights == pytest.approx(
        defaults.progress.two_component_default.weights
    )
    assert [item.name for item in shipped.progress.two_component_alternates] == [
        "API-Dominant",
        "CGP-Dominant",
        "Equal",
    ]
    assert defaults.health.two_component_default is None

    path = tmp_path / "engine.yaml"
    path.write_text(
        "progress:\n  two_component:\n    default:\n      weights: {api: 0.5, cgp: 0.5}\n",
        encoding="utf-8",
    )
    assert load_engine_config(path).progress.two_component_default.weights == {"api": 0.5, "cgp": 0.5}

    path.write_text("progress:\n  two_component: {}\n", encoding="utf-8")
    reset = load_engine_config(path).progress
    assert reset.two_component_default is None
    assert reset.two_component_alternates == ()


def test_weight_configurations_compare_by_value() -> None:
    first = WeightConfiguration("Even", {"api": 0.5, "cgp": 0.5})
    second = WeightConfiguration("Even", {"api": 0.5, "cgp": 0.5})

    assert first == second
    assert dict(first.weights) == {"api": 0.5, "cgp": 0.5}
