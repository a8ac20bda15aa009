from __future__ import annotations

"""Per-team scoring engines for the progress and health composites."""

import logging
from dataclasses import dataclass, replace
from typing import Dict, List, Mapping, Sequence, Tuple

from .cohorts import CohortAssignment
from .composite import aggregate
from .config import EngineConfig
from .coverage import assess_coverage, paired_indicators
from .health import (
    calculate_css,
    calculate_dimension_chs,
    calculate_pgs,
    calculate_trs,
    css_effects,
    css_series,
    current_indicators,
    trs_effects,
)
from .indicators import IndicatorCatalog
from .models import (
    BaselineGroup,
    ComponentResult,
    CompositeResult,
    HealthThreeComponent,
    HealthTwoComponent,
    MissingDataResult,
    ProgressThreeComponent,
    ProgressTwoComponent,
    TeamHistory,
)
from .progress import api_effects, calculate_api, calculate_cgp, calculate_tnv
from .sensitivity import analyze_sensitivity

logger = logging.getLogger(__name__)

Bounds = Mapping[str, Tuple[float, float]]


@dataclass(slots=True, frozen=True)
class ProgressInputs:
    """First-pass values for one team, shared with its cohort peers."""

    history: TeamHistory
    cohort: BaselineGroup
    missing: MissingDataResult
    api: ComponentResult


@dataclass(slots=True, frozen=True)
class HealthInputs:
    history: TeamHistory
    cohort: BaselineGroup
    missing: MissingDataResult
    css: ComponentResult
    trs: ComponentResult


@dataclass(slots=True, frozen=True)
class DimensionInputs:
    """Current state of one dimension and its history as of each snapshot."""

    dimension: str
    cohort: BaselineGroup
    css: ComponentResult
    css_history: Tuple[float, ...]


class ProgressEngine:
    """Compute the Composite Progress Score for individual teams."""

    def __init__(self, catalog: IndicatorCatalog, config: EngineConfig) -> None:
        self.catalog = catalog
        self.config = config

    def coverage(self, history: TeamHistory) -> MissingDataResult:
        return assess_coverage(
            history.team_id, self.catalog, paired_indicators(history, self.catalog)
        )

    def effects(self, history: TeamHistory, cohorts: CohortAssignment) -> Dict[str, float]:
        return api_effects(history, cohorts.group_for(history.team_id), self.catalog)

    def prepare(
        self,
        history: TeamHistory,
        cohorts: CohortAssignment,
        bounds: Bounds | None = None,
    ) -> ProgressInputs:
        cohort = cohorts.group_for(history.team_id)
        missing = self.coverage(history)
        api = calculate_api(
            history, cohort, self.catalog, self.config.statistics, missing, bounds
        )
        return ProgressInputs(history=history, cohort=cohort, missing=missing, api=api)

    def score(
        self,
        inputs: ProgressInputs,
        peer_growth: Sequence[float],
        *,
        tnv_allowed: bool,
        kappa: float | None = None,
    ) -> CompositeResult:
        stats = self.config.statistics
        cgp = calculate_cgp(inputs.api, peer_growth, stats, kappa=kappa)
        tnv = None
        if tnv_allowed:
            tnv = calculate_tnv(
                inputs.api, inputs.history.interval_days, stats, self.config.tnv
            )
        if tnv is None:
            model = ProgressTwoComponent(api=inputs.api, cgp=cgp)
        else:
            model = ProgressThreeComponent(api=inputs.api, cgp=cgp, tnv=tnv)
        result = aggregate(
            inputs.history.team_id,
            model,
            self.config.progress,
            self.config.confidence,
            missing_data=inputs.missing,
            metadata={
                "team_name": inputs.history.team_name,
                "cohort_id": inputs.cohort.cohort_id,
                "interval_days": inputs.history.interval_days,
            },
        )
        report = analyze_sensitivity(result, self.config.progress)
        return replace(result, sensitivity=report)


class HealthEngine:
    """Compute the Composite Health Score for individual teams."""

    def __init__(self, catalog: IndicatorCatalog, config: EngineConfig) -> None:
        self.catalog = catalog
        self.config = config

    def coverage(self, history: TeamHistory) -> MissingDataResult:
        return assess_coverage(
            history.team_id, self.catalog, current_indicators(history, self.catalog)
        )

    def effects(
        self, history: TeamHistory, cohorts: CohortAssignment
    ) -> Tuple[Dict[str, float], Dict[str, float]]:
        """Uncapped CSS and TRS effects, used to derive cohort bounds."""

        cohort = cohorts.group_for(history.team_id)
        return (
            css_effects(history, cohort, self.catalog, self.config.statistics),
            trs_effects(history, cohort, self.catalog),
        )

    def prepare(
        self,
        history: TeamHistory,
        cohorts: CohortAssignment,
        css_bounds: Bounds | None = None,
        trs_bounds: Bounds | None = None,
    ) -> HealthInputs:
        cohort = cohorts.group_for(history.team_id)
        stats = self.config.statistics
        return HealthInputs(
            history=history,
            cohort=cohort,
            missing=self.coverage(history),
            css=calculate_css(history, cohort, self.catalog, stats, css_bounds),
            trs=calculate_trs(history, cohort, self.catalog, stats, trs_bounds),
        )

    def score(
        self,
        inputs: HealthInputs,
        peer_trajectories: Sequence[float],
        *,
        kappa: float | None = None,
    ) -> CompositeResult:
        pgs = None
        if inputs.cohort.size >= self.config.cohorts.min_size:
            pgs = calculate_pgs(
                inputs.trs,
                peer_trajectories,
                self.config.statistics,
                min_group_size=self.config.cohorts.min_size,
                kappa=kappa,
            )
        if pgs is None:
            model = HealthTwoComponent(css=inputs.css, trs=inputs.trs)
        else:
            model = HealthThreeComponent(css=inputs.css, trs=inputs.trs, pgs=pgs)
        result = aggregate(
            inputs.history.team_id,
            model,
            self.config.health,
            self.config.confidence,
            missing_data=inputs.missing,
            metadata={
                "team_name": inputs.history.team_name,
                "cohort_id": inputs.cohort.cohort_id,
                "periods": len(inputs.history.snapshots),
            },
        )
        report = analyze_sensitivity(result, self.config.health)
        return replace(result, sensitivity=report)

    def prepare_dimensions(
        self,
        history: TeamHistory,
        cohorts: CohortAssignment,
        css_bounds: Bounds | None = None,
    ) -> List[DimensionInputs]:
        """CSS and CSS history for every dimension the team currently reports on."""

        cohort = cohorts.group_for(history.team_id)
        usable = set(current_indicators(history, self.catalog))
        prepared: List[DimensionInputs] = []
        for dimension, indicator_ids in self.catalog.dimensions().items():
            if not usable.intersection(indicator_ids):
                logger.debug("Team %s has no current data for dimension %s", history.team_id, dimension)
                continue
            series = css_series(
                history,
                cohort,
                self.catalog.for_dimension(dimension),
                self.config.statistics,
                css_bounds,
            )
            prepared.append(
                DimensionInputs(
                    dimension=dimension,
                    cohort=cohort,
                    css=series[-1],
                    css_history=tuple(item.scaled for item in series),
                )
            )
        return prepared

    def score_dimension(
        self,
        history: TeamHistory,
        inputs: DimensionInputs,
        peer_trajectories: Sequence[float],
        *,
        kappa: float | None = None,
    ) -> CompositeResult:
        result = calculate_dimension_chs(
            history.team_id,
            inputs.dimension,
            inputs.css,
            self.config.health,
            self.config.confidence,
            css_history=inputs.css_history,
            peer_trajectories=peer_trajectories,
            stats=self.config.statistics,
            min_group_size=self.config.cohorts.min_size,
            kappa=kappa,
            metadata={"team_name": history.team_name},
        )
        report = analyze_sensitivity(result, self.config.health)
        return replace(result, sensitivity=report)


__all__ = [
    "DimensionInputs",
    "HealthEngine",
    "HealthInputs",
    "ProgressEngine",
    "ProgressInputs",
]
