from __future__ import annotations

"""Dataclasses used across the scoring pipeline."""

from dataclasses import dataclass, field
from datetime import date
from typing import Dict, List, Mapping, Optional, Tuple, Union

ONE_COMPONENT = "one-component"
TWO_COMPONENT = "two-component"
THREE_COMPONENT = "three-component"


@dataclass(slots=True, frozen=True)
class TeamIndicatorSnapshot:
    """Raw indicator observation for a team at one measurement event."""

    team_id: str
    captured_at: date
    values: Mapping[str, Optional[float]]
    coverage: Mapping[str, bool] = field(default_factory=dict)
    percentiles: Mapping[str, float] = field(default_factory=dict)

    def is_covered(self, indicator_id: str) -> bool:
        if not self.coverage.get(indicator_id, True):
            return False
        return self.values.get(indicator_id) is not None

    def value(self, indicator_id: str) -> Optional[float]:
        if not self.is_covered(indicator_id):
            return None
        return self.values[indicator_id]

    def percentile(self, indicator_id: str) -> Optional[float]:
        return self.percentiles.get(indicator_id)


@dataclass(slots=True, frozen=True)
class TeamHistory:
    """Chronological snapshots for a single team."""

    team_id: str
    team_name: str
    snapshots: Tuple[TeamIndicatorSnapshot, ...]
    metadata: Mapping[str, object] = field(default_factory=dict)

    @property
    def baseline(self) -> TeamIndicatorSnapshot:
        return self.snapshots[0]

    @property
    def current(self) -> TeamIndicatorSnapshot:
        return self.snapshots[-1]

    @property
    def interval_days(self) -> int:
        """Days between the baseline and the current snapshot."""

        return (self.current.captured_at - self.baseline.captured_at).days

    @property
    def spacing_days(self) -> List[int]:
        return [
            (later.captured_at - earlier.captured_at).days
            for earlier, later in zip(self.snapshots, self.snapshots[1:])
        ]


@dataclass(slots=True, frozen=True)
class IndicatorNorm:
    """Reference mean and sample standard deviation for one indicator."""

    indicator_id: str
    mean: float
    std_dev: float
    count: int


@dataclass(slots=True, frozen=True)
class BaselineGroup:
    """Peer cohort of teams sharing a similar baseline profile."""

    cohort_id: str
    team_ids: Tuple[str, ...]
    norms: Mapping[str, IndicatorNorm]
    centroid: Tuple[float, ...] = ()
    merged_from: Tuple[str, ...] = ()

    @property
    def size(self) -> int:
        return len(self.team_ids)

    def norm(self, indicator_id: str) -> Optional[IndicatorNorm]:
        return self.norms.get(indicator_id)


@dataclass(slots=True, frozen=True)
class IndicatorContribution:
    """Per-indicator breakdown of a component's raw statistic."""

    indicator_id: str
    effect: float
    winsorized: bool
    weight: float
    effective_weight: float
    weighted_contribution: float
    baseline_value: Optional[float] = None
    current_value: Optional[float] = None
    source: str = "raw"


@dataclass(slots=True, frozen=True)
class MissingDataResult:
    """Which indicators a team lacked and how their weight was redistributed."""

    team_id: str
    excluded_indicators: Tuple[str, ...]
    coverage: float
    effective_weights: Mapping[str, float]

    @property
    def has_missing(self) -> bool:
        return bool(self.excluded_indicators)


@dataclass(slots=True, frozen=True)
class ComponentResult:
    """Outcome of a single component calculator (API, CGP, TNV, CSS, TRS, PGS)."""

    name: str
    raw: float
    scaled: float
    standard_error: float
    contributions: Tuple[IndicatorContribution, ...] = ()
    metadata: Mapping[str, object] = field(default_factory=dict)


@dataclass(slots=True, frozen=True)
class ProgressTwoComponent:
    api: ComponentResult
    cgp: ComponentResult

    @property
    def model_type(self) -> str:
        return TWO_COMPONENT

    def components(self) -> Dict[str, ComponentResult]:
        return {"api": self.api, "cgp": self.cgp}


@dataclass(slots=True, frozen=True)
class ProgressThreeComponent:
    api: ComponentResult
    cgp: ComponentResult
    tnv: ComponentResult

    @property
    def model_type(self) -> str:
        return THREE_COMPONENT

    def components(self) -> Dict[str, ComponentResult]:
        return {"api": self.api, "cgp": self.cgp, "tnv": self.tnv}


@dataclass(slots=True, frozen=True)
class HealthCurrentOnly:
    """Current state alone, used when no trajectory can be measured."""

    css: ComponentResult

    @property
    def model_type(self) -> str:
        return ONE_COMPONENT

    def components(self) -> Dict[str, ComponentResult]:
        return {"css": self.css}


@dataclass(slots=True, frozen=True)
class HealthTwoComponent:
    css: ComponentResult
    trs: ComponentResult

    @property
    def model_type(self) -> str:
        return TWO_COMPONENT

    def components(self) -> Dict[str, ComponentResult]:
        return {"css": self.css, "trs": self.trs}


@dataclass(slots=True, frozen=True)
class HealthThreeComponent:
    css: ComponentResult
    trs: ComponentResult
    pgs: ComponentResult

    @property
    def model_type(self) -> str:
        return THREE_COMPONENT

    def components(self) -> Dict[str, ComponentResult]:
        return {"css": self.css, "trs": self.trs, "pgs": self.pgs}


ProgressModel = Union[ProgressTwoComponent, ProgressThreeComponent]
HealthModel = Union[HealthCurrentOnly, HealthTwoComponent, HealthThreeComponent]
ComponentModel = Union[ProgressModel, HealthModel]


@dataclass(slots=True, frozen=True)
class DimensionContribution:
    """Share of one dimension in an outcome-level current state."""

    dimension: str
    weight: float
    css: float
    weighted_contribution: float


@dataclass(slots=True, frozen=True)
class SensitivityConfiguration:
    """Composite recomputed under one alternate weight configuration."""

    name: str
    weights: Mapping[str, float]
    score: float
    category: str
    category_changed: bool
    score_delta: float


@dataclass(slots=True, frozen=True)
class SensitivityReport:
    configurations: Tuple[SensitivityConfiguration, ...]

    @property
    def change_count(self) -> int:
        return sum(1 for item in self.configurations if item.category_changed)

    @property
    def is_sensitive(self) -> bool:
        return self.change_count > 0


@dataclass(slots=True, frozen=True)
class CompositeResult:
    """Composite score (CPS or CHS) for a single team."""

    team_id: str
    kind: str
    score: float
    category: str
    standard_error: float
    confidence_interval: Tuple[float, float]
    weights_used: Mapping[str, float]
    model: ComponentModel
    configuration: str
    missing_data: Optional[MissingDataResult] = None
    sensitivity: Optional[SensitivityReport] = None
    metadata: Mapping[str, object] = field(default_factory=dict)

    @property
    def model_type(self) -> str:
        return self.model.model_type

    def component(self, name: str) -> Optional[ComponentResult]:
        return self.model.components().get(name)


@dataclass(slots=True, frozen=True)
class ExcludedTeam:
    team_id: str
    reason: str
    coverage: Optional[float] = None


@dataclass(slots=True, frozen=True)
class ScoreDistribution:
    count: int
    mean: float
    median: float
    std_dev: float
    minimum: float
    maximum: float


@dataclass(slots=True, frozen=True)
class CategoryCount:
    category: str
    count: int
    share: float


@dataclass(slots=True, frozen=True)
class PortfolioSensitivity:
    """How many teams flip category under the alternate configurations."""

    teams_with_category_change: int
    total_teams: int
    ratio: float
    flips_by_configuration: Mapping[str, int]
    is_sensitive: bool


@dataclass(slots=True, frozen=True)
class PortfolioSummary:
    """Everything produced by one portfolio run."""

    kind: str
    results: Tuple[CompositeResult, ...]
    distribution: ScoreDistribution
    category_distribution: Tuple[CategoryCount, ...]
    sensitivity: PortfolioSensitivity
    cohorts: Tuple[BaselineGroup, ...]
    excluded: Tuple[ExcludedTeam, ...] = ()
    model_counts: Mapping[str, int] = field(default_factory=dict)
    metadata: Mapping[str, object] = field(default_factory=dict)

    def result_for(self, team_id: str) -> Optional[CompositeResult]:
        for result in self.results:
            if result.team_id == team_id:
                return result
        return None


__all__ = [
    "BaselineGroup",
    "CategoryCount",
    "ComponentModel",
    "ComponentResult",
    "DimensionContribution",
    "CompositeResult",
    "ExcludedTeam",
    "HealthCurrentOnly",
    "HealthModel",
    "HealthThreeComponent",
    "HealthTwoComponent",
    "IndicatorContribution",
    "IndicatorNorm",
    "MissingDataResult",
    "ONE_COMPONENT",
    "PortfolioSensitivity",
    "PortfolioSummary",
    "ProgressModel",
    "ProgressThreeComponent",
    "ProgressTwoComponent",
    "ScoreDistribution",
    "SensitivityConfiguration",
    "SensitivityReport",
    "TeamHistory",
    "TeamIndicatorSnapshot",
    "THREE_COMPONENT",
    "TWO_COMPONENT",
]
