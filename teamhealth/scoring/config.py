from __future__ import annotations

"""Engine configuration: weight sets, category bands and statistical constants.

Nothing here is module-level mutable state. ``EngineConfig.default()`` builds
a fresh configuration on every call and ``load_engine_config`` overlays a YAML
file on top of it, so alternate configurations can run side by side.
"""

import logging
import math
from dataclasses import dataclass, field, replace
from pathlib import Path
from types import MappingProxyType
from typing import Dict, Mapping, Optional, Tuple

import yaml

from .models import TWO_COMPONENT

logger = logging.getLogger(__name__)

PROGRESS_COMPONENTS = ("api", "cgp", "tnv")
HEALTH_COMPONENTS = ("css", "trs", "pgs")
WEIGHT_TOLERANCE = 1e-3


class WeightConfigurationError(ValueError):
    """Raised when a weight configuration does not sum to one."""


@dataclass(slots=True, frozen=True)
class WeightConfiguration:
    """Named set of component weights summing to one."""

    name: str
    weights: Mapping[str, float]
    description: str = ""

    def __post_init__(self) -> None:
        object.__setattr__(self, "weights", MappingProxyType(dict(self.weights)))
        if not self.weights:
            raise WeightConfigurationError(f"Weight configuration '{self.name}' is empty")
        for component, weight in self.weights.items():
            if not 0.0 <= weight <= 1.0:
                raise WeightConfigurationError(
                    f"Weight for '{component}' in configuration '{self.name}' "
                    f"must be between 0 and 1, got {weight}"
                )
        total = math.fsum(self.weights.values())
        if abs(total - 1.0) > WEIGHT_TOLERANCE:
            raise WeightConfigurationError(
                f"Weights in configuration '{self.name}' sum to {total:.4f}, expected 1.0"
            )

    def renormalized(self, components: Tuple[str, ...]) -> Dict[str, float]:
        """Weights restricted to *components*, rescaled to sum to one."""

        active = {name: self.weights.get(name, 0.0) for name in components}
        total = math.fsum(active.values())
        if total <= 0:
            return {name: 1.0 / len(components) for name in components} if components else {}
        return {name: weight / total for name, weight in active.items()}


@dataclass(slots=True, frozen=True)
class CategoryBand:
    name: str
    min_score: float
    label: str = ""


@dataclass(slots=True, frozen=True)
class CategoryScheme:
    """Five ordered score bands; bands are held highest first."""

    bands: Tuple[CategoryBand, ...]

    def __post_init__(self) -> None:
        if not self.bands:
            raise ValueError("Category scheme needs at least one band")
        ordered = tuple(sorted(self.bands, key=lambda band: band.min_score, reverse=True))
        if ordered[-1].min_score > 0:
            raise ValueError("Lowest category band must start at 0")
        names = [band.name for band in ordered]
        if len(set(names)) != len(names):
            raise ValueError(f"Duplicate category names in {names}")
        object.__setattr__(self, "bands", ordered)

    def categorize(self, score: float) -> str:
        for band in self.bands:
            if score >= band.min_score:
                return band.name
        return self.bands[-1].name

    def names(self) -> Tuple[str, ...]:
        """Category names from lowest to highest."""

        return tuple(band.name for band in reversed(self.bands))


@dataclass(slots=True, frozen=True)
class CompositeModelConfig:
    """Weights and bands for one composite (CPS or CHS).

    A two-component result uses ``two_component_default`` and
    ``two_component_alternates`` when they are set; otherwise the full
    weight sets are renormalised over the components that are present.
    """

    kind: str
    components: Tuple[str, ...]
    default: WeightConfiguration
    alternates: Tuple[WeightConfiguration, ...]
    categories: CategoryScheme
    two_component_default: Optional[WeightConfiguration] = None
    two_component_alternates: Tuple[WeightConfiguration, ...] = ()

    def __post_init__(self) -> None:
        configurations = (self.default, *self.alternates, *self.two_component_alternates)
        if self.two_component_default is not None:
            configurations += (self.two_component_default,)
        for configuration in configurations:
            unknown = set(configuration.weights) - set(self.components)
            if unknown:
                raise WeightConfigurationError(
                    f"Configuration '{configuration.name}' for {self.kind} references "
                    f"unknown components: {', '.join(sorted(unknown))}"
                )
        if self.two_component_alternates and self.two_component_default is None:
            raise WeightConfigurationError(
                f"Two-component alternates for {self.kind} need a two-component default"
            )

    def default_for(self, model_type: str) -> WeightConfiguration:
        if model_type == TWO_COMPONENT and self.two_component_default is not None:
            return self.two_component_default
        return self.default

    def alternates_for(self, model_type: str) -> Tuple[WeightConfiguration, ...]:
        if model_type == TWO_COMPONENT and self.two_component_default is not None:
            return self.two_component_alternates
        return self.alternates


@dataclass(slots=True, frozen=True)
class CohortConfig:
    min_size: int = 5
    group_count: Optional[int] = None
    random_state: int = 42
    n_init: int = 10


@dataclass(slots=True, frozen=True)
class StatisticsConfig:
    winsorize_lower_pct: float = 0.135
    winsorize_upper_pct: float = 99.865
    cohort_winsorize_lower_pct: float = 2.0
    cohort_winsorize_upper_pct: float = 98.0
    cohort_winsorize_min_count: int = 5
    api_limit: float = 4.5
    average_correlation: float = 0.3
    kappa: float = 10.0
    estimate_kappa: bool = False
    kappa_bounds: Tuple[float, float] = (1.0, 50.0)
    percentile_clip: Tuple[float, float] = (1.0, 99.0)


@dataclass(slots=True, frozen=True)
class CoverageConfig:
    min_coverage: float = 0.70
    min_snapshots: int = 2


@dataclass(slots=True, frozen=True)
class TnvConfig:
    reference_days: float = 90.0
    min_interval_days: int = 14
    max_interval_days: int = 400
    min_cv: float = 0.10
    max_cv: float = 1.0


@dataclass(slots=True, frozen=True)
class ConfidenceConfig:
    z: float = 1.96
    se_inflation: float = 1.0


@dataclass(slots=True, frozen=True)
class EngineConfig:
    """Full set of caller-supplied engine settings."""

    progress: CompositeModelConfig
    health: CompositeModelConfig
    cohorts: CohortConfig = field(default_factory=CohortConfig)
    statistics: StatisticsConfig = field(default_factory=StatisticsConfig)
    coverage: CoverageConfig = field(default_factory=CoverageConfig)
    tnv: TnvConfig = field(default_factory=TnvConfig)
    confidence: ConfidenceConfig = field(default_factory=ConfidenceConfig)
    portfolio_sensitivity_threshold: float = 0.20

    @classmethod
    def default(cls) -> "EngineConfig":
        return cls(progress=default_progress_model(), health=default_health_model())


def default_progress_model() -> CompositeModelConfig:
    return CompositeModelConfig(
        kind="CPS",
        components=PROGRESS_COMPONENTS,
        default=WeightConfiguration(
            "Default", {"api": 0.35, "cgp": 0.40, "tnv": 0.25}, "Balanced progress weighting"
        ),
        alternates=(
            WeightConfiguration(
                "API-Dominant", {"api": 0.55, "cgp": 0.30, "tnv": 0.15},
                "Emphasises absolute change",
            ),
            WeightConfiguration(
                "CGP-Dominant", {"api": 0.25, "cgp": 0.55, "tnv": 0.20},
                "Emphasises growth relative to peers",
            ),
            WeightConfiguration(
                "Equal", {"api": 0.33, "cgp": 0.34, "tnv": 0.33}, "Equal component weights"
            ),
        ),
        categories=CategoryScheme(
            (
                CategoryBand("strong-progress", 70.0, "Strong Progress"),
                CategoryBand("moderate-progress", 52.0, "Moderate Progress"),
                CategoryBand("stable", 48.0, "Stable"),
                CategoryBand("moderate-decline", 40.0, "Moderate Decline"),
                CategoryBand("significant-decline", 0.0, "Significant Decline"),
            )
        ),
        two_component_default=WeightConfiguration(
            "Default", {"api": 0.45, "cgp": 0.55}, "Progress weighting without TNV"
        ),
        two_component_alternates=(
            WeightConfiguration("API-Dominant", {"api": 0.65, "cgp": 0.35}),
            WeightConfiguration("CGP-Dominant", {"api": 0.35, "cgp": 0.65}),
            WeightConfiguration("Equal", {"api": 0.50, "cgp": 0.50}),
        ),
    )


def default_health_model() -> CompositeModelConfig:
    return CompositeModelConfig(
        kind="CHS",
        components=HEALTH_COMPONENTS,
        default=WeightConfiguration(
            "Balanced", {"css": 0.50, "trs": 0.35, "pgs": 0.15}, "Default health weighting"
        ),
        alternates=(
            WeightConfiguration(
                "Snapshot-Focus", {"css": 0.65, "trs": 0.25, "pgs": 0.10},
                "Emphasises current state",
            ),
            WeightConfiguration(
                "Growth-Focus", {"css": 0.40, "trs": 0.45, "pgs": 0.15},
                "Emphasises trajectory",
            ),
            WeightConfiguration(
                "Peer-Comparison", {"css": 0.45, "trs": 0.30, "pgs": 0.25},
                "Emphasises peer growth",
            ),
        ),
        categories=CategoryScheme(
            (
                CategoryBand("excellent", 70.0, "Excellent"),
                CategoryBand("good", 55.0, "Good"),
                CategoryBand("average", 45.0, "Average"),
                CategoryBand("below-average", 30.0, "Below Average"),
                CategoryBand("needs-attention", 0.0, "Needs Attention"),
            )
        ),
    )


def _load_weight_configuration(name: str, payload: Mapping[str, object]) -> WeightConfiguration:
    weights_raw = payload.get("weights", payload)
    if not isinstance(weights_raw, Mapping):
        raise WeightConfigurationError(f"Weights for configuration '{name}' must be a mapping")
    try:
        weights = {str(key): float(value) for key, value in weights_raw.items()}
    except (TypeError, ValueError) as exc:
        raise WeightConfigurationError(
            f"Non-numeric weight in configuration '{name}': {exc}"
        ) from exc
    return WeightConfiguration(
        name=name, weights=weights, description=str(payload.get("description", ""))
    )


def _load_categories(payload: Mapping[str, object]) -> CategoryScheme:
    bands = []
    for name, band_payload in payload.items():
        if isinstance(band_payload, Mapping):
            bands.append(
                CategoryBand(
                    name=str(name),
                    min_score=float(band_payload.get("min", 0.0)),
                    label=str(band_payload.get("label", "")),
                )
            )
        else:
            bands.append(CategoryBand(name=str(name), min_score=float(band_payload)))
    return CategoryScheme(tuple(bands))


def _load_weight_sets(
    default: Optional[WeightConfiguration],
    alternates: Tuple[WeightConfiguration, ...],
    payload: Mapping[str, object],
) -> Tuple[Optional[WeightConfiguration], Tuple[WeightConfiguration, ...]]:
    if "default" in payload:
        default_payload = payload["default"] or {}
        fallback = default.name if default is not None else "Default"
        name = str(default_payload.get("name", fallback))
        default = _load_weight_configuration(name, default_payload)
    if "alternates" in payload:
        alternates = tuple(
            _load_weight_configuration(str(name), alt_payload or {})
            for name, alt_payload in (payload["alternates"] or {}).items()
        )
    return default, alternates


def _load_model(base: CompositeModelConfig, payload: Mapping[str, object]) -> CompositeModelConfig:
    default, alternates = _load_weight_sets(base.default, base.alternates, payload)
    two_default, two_alternates = base.two_component_default, base.two_component_alternates
    if "two_component" in payload:
        two_payload = payload["two_component"]
        if two_payload:
            two_default, two_alternates = _load_weight_sets(
                two_default, two_alternates, two_payload
            )
        else:
            # An explicit empty section falls back to renormalising the full sets.
            two_default, two_alternates = None, ()
    categories = base.categories
    if payload.get("categories"):
        categories = _load_categories(payload["categories"])
    return CompositeModelConfig(
        kind=base.kind,
        components=base.components,
        default=default,
        alternates=alternates,
        categories=categories,
        two_component_default=two_default,
        two_component_alternates=two_alternates,
    )


def _overlay(section: object, payload: Mapping[str, object] | None) -> object:
    """Replace dataclass fields on *section* with matching keys in *payload*."""

    if not payload:
        return section
    updates: Dict[str, object] = {}
    for key, value in payload.items():
        if key not in section.__dataclass_fields__:
            logger.warning("Ignoring unknown engine setting '%s'", key)
            continue
        current = getattr(section, key)
        if isinstance(current, tuple) and isinstance(value, list):
            value = tuple(value)
        updates[key] = value
    return replace(section, **updates)


def load_engine_config(path: Path | None) -> EngineConfig:
    """Load the engine configuration, falling back to defaults when *path* is absent."""

    base = EngineConfig.default()
    if path is None:
        return base
    if not path.exists():
        logger.info("Engine configuration %s not found; using defaults.", path)
        return base
    with path.open("r", encoding="utf-8") as handle:
        payload = yaml.safe_load(handle) or {}
    if not isinstance(payload, Mapping):
        raise ValueError(f"Engine configuration {path} must be a mapping")

    config = EngineConfig(
        progress=_load_model(base.progress, payload.get("progress") or {}),
        health=_load_model(base.health, payload.get("health") or {}),
        cohorts=_overlay(base.cohorts, payload.get("cohorts")),
        statistics=_overlay(base.statistics, payload.get("statistics")),
        coverage=_overlay(base.coverage, payload.get("coverage")),
        tnv=_overlay(base.tnv, payload.get("tnv")),
        confidence=_overlay(base.confidence, payload.get("confidence")),
        portfolio_sensitivity_threshold=float(
            payload.get("portfolio_sensitivity_threshold", base.portfolio_sensitivity_threshold)
        ),
    )
    logger.info(
        "Loaded engine configuration from %s (%d CPS and %d CHS alternates)",
        path,
        len(config.progress.alternates),
        len(config.health.alternates),
    )
    return config


__all__ = [
    "CategoryBand",
    "CategoryScheme",
    "CohortConfig",
    "CompositeModelConfig",
    "ConfidenceConfig",
    "CoverageConfig",
    "EngineConfig",
    "HEALTH_COMPONENTS",
    "PROGRESS_COMPONENTS",
    "StatisticsConfig",
    "TnvConfig",
    "WeightConfiguration",
    "WeightConfigurationError",
    "default_health_model",
    "default_progress_model",
    "load_engine_config",
]
