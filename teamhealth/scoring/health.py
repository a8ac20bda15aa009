from __future__ import annotations

"""Health components: Current State Score, Trajectory Score and Peer Growth
Score, plus the dimension- and outcome-level health composites built from
them."""

import logging
import math
from dataclasses import replace
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from .composite import aggregate
from .config import CompositeModelConfig, ConfidenceConfig, StatisticsConfig
from .coverage import assess_coverage
from .indicators import IndicatorCatalog
from .models import (
    BaselineGroup,
    ComponentResult,
    CompositeResult,
    DimensionContribution,
    HealthCurrentOnly,
    HealthModel,
    HealthThreeComponent,
    HealthTwoComponent,
    IndicatorContribution,
    MissingDataResult,
    TeamHistory,
)
from .progress import bound_effect, calculate_peer_percentile
from .statistics import (
    SCALE_CENTER,
    SCALE_SPREAD,
    clamp,
    component_standard_error,
    correlated_variance_factor,
    percentile_to_z_score,
    sample_std,
    winsorize,
    z_score,
    z_score_to_scaled,
)

logger = logging.getLogger(__name__)

Bounds = Mapping[str, Tuple[float, float]]

# Points of change in a display-scale series that move the trajectory by half
# the scale.
SERIES_TREND_SPAN = 15.0
OUTCOME_WEIGHT_TOLERANCE = 0.01


def current_indicators(history: TeamHistory, catalog: IndicatorCatalog) -> List[str]:
    """Indicators usable for the current state: a raw value or a percentile."""

    current = history.current
    return [
        indicator_id
        for indicator_id in catalog.ids()
        if current.is_covered(indicator_id) or current.percentile(indicator_id) is not None
    ]


def trend_series(history: TeamHistory, indicator_id: str) -> List[float]:
    return [
        snapshot.value(indicator_id)
        for snapshot in history.snapshots
        if snapshot.is_covered(indicator_id)
    ]


def _capped(indicator_id: str, effect: float, stats: StatisticsConfig, bounds: Bounds | None) -> float:
    bounded = bound_effect(indicator_id, effect, stats, bounds)
    return winsorize(bounded, stats.winsorize_lower_pct, stats.winsorize_upper_pct)


def _current_effects(
    history: TeamHistory,
    cohort: BaselineGroup,
    catalog: IndicatorCatalog,
    stats: StatisticsConfig,
) -> Tuple[MissingDataResult, Dict[str, Tuple[float, str]]]:
    current = history.current
    missing = assess_coverage(history.team_id, catalog, current_indicators(history, catalog))
    low, high = stats.percentile_clip
    effects: Dict[str, Tuple[float, str]] = {}
    for indicator_id in missing.effective_weights:
        value = current.value(indicator_id)
        if value is not None:
            norm = cohort.norm(indicator_id)
            mean = norm.mean if norm else value
            std_dev = norm.std_dev if norm else 0.0
            effect = catalog.by_id(indicator_id).direction * z_score(value, mean, std_dev)
            effects[indicator_id] = (effect, "raw")
        else:
            percentile = clamp(current.percentile(indicator_id), low, high)
            effects[indicator_id] = (percentile_to_z_score(percentile), "percentile")
    return missing, effects


def css_effects(
    history: TeamHistory,
    cohort: BaselineGroup,
    catalog: IndicatorCatalog,
    stats: StatisticsConfig | None = None,
) -> Dict[str, float]:
    """Uncapped current-state effect size per usable indicator."""

    _, effects = _current_effects(history, cohort, catalog, stats or StatisticsConfig())
    return {indicator_id: effect for indicator_id, (effect, _) in effects.items()}


def calculate_css(
    history: TeamHistory,
    cohort: BaselineGroup,
    catalog: IndicatorCatalog,
    stats: StatisticsConfig | None = None,
    bounds: Bounds | None = None,
) -> ComponentResult:
    """Where the team stands now relative to its cohort's baseline norms.

    Raw indicator values are converted to z-scores. An indicator known only
    through its peer percentile falls back to the inverse-normal of that
    percentile and is flagged with ``source="percentile"``. Effects are
    winsorized at the cohort *bounds* when given and always at the fixed
    z-bounds. The weighted sum is rescaled by the standard deviation of a
    weighted sum of equicorrelated z-scores so that the result is again on a
    unit scale.
    """

    stats = stats or StatisticsConfig()
    current = history.current
    missing, effects = _current_effects(history, cohort, catalog, stats)

    contributions: List[IndicatorContribution] = []
    for indicator_id, effective_weight in missing.effective_weights.items():
        effect, source = effects[indicator_id]
        capped = _capped(indicator_id, effect, stats, bounds)
        contributions.append(
            IndicatorContribution(
                indicator_id=indicator_id,
                effect=capped,
                winsorized=capped != effect,
                weight=catalog.by_id(indicator_id).weight,
                effective_weight=effective_weight,
                weighted_contribution=effective_weight * capped,
                current_value=current.value(indicator_id),
                source=source,
            )
        )

    weights = [item.effective_weight for item in contributions]
    weighted_sum = math.fsum(item.weighted_contribution for item in contributions)
    variance = correlated_variance_factor(weights, stats.average_correlation)
    spread = math.sqrt(variance) if variance > 0 else 1.0
    raw = weighted_sum / spread
    error = component_standard_error(weights, cohort.size, stats.average_correlation) / spread
    return ComponentResult(
        name="css",
        raw=raw,
        scaled=z_score_to_scaled(raw),
        standard_error=error,
        contributions=tuple(contributions),
        metadata={
            "cohort_id": cohort.cohort_id,
            "weighted_sum": weighted_sum,
            "variance_factor": variance,
            "percentile_fallbacks": [
                item.indicator_id for item in contributions if item.source == "percentile"
            ],
            "excluded_indicators": list(missing.excluded_indicators),
        },
    )


def _trend_effects(
    history: TeamHistory,
    cohort: BaselineGroup,
    catalog: IndicatorCatalog,
    min_within_points: int,
) -> Tuple[MissingDataResult, Dict[str, Tuple[float, float, float, bool]]]:
    series: Dict[str, List[float]] = {}
    for indicator_id in catalog.ids():
        values = trend_series(history, indicator_id)
        if len(values) >= 2:
            series[indicator_id] = values
    missing = assess_coverage(history.team_id, catalog, series)

    effects: Dict[str, Tuple[float, float, float, bool]] = {}
    for indicator_id in missing.effective_weights:
        values = series[indicator_id]
        midpoint = len(values) // 2
        early, recent = values[:midpoint], values[midpoint:]
        early_mean = math.fsum(early) / len(early)
        recent_mean = math.fsum(recent) / len(recent)
        pooled = sample_std(values) if len(values) >= min_within_points else 0.0
        cohort_sd = pooled == 0
        if cohort_sd:
            norm = cohort.norm(indicator_id)
            pooled = norm.std_dev if norm else 0.0
        effect = catalog.by_id(indicator_id).direction * z_score(recent_mean, early_mean, pooled)
        effects[indicator_id] = (effect, early_mean, recent_mean, cohort_sd)
    return missing, effects


def trs_effects(
    history: TeamHistory,
    cohort: BaselineGroup,
    catalog: IndicatorCatalog,
    *,
    min_within_points: int = 4,
) -> Dict[str, float]:
    """Uncapped early-versus-recent effect size per indicator with a series."""

    _, effects = _trend_effects(history, cohort, catalog, min_within_points)
    return {indicator_id: item[0] for indicator_id, item in effects.items()}


def calculate_trs(
    history: TeamHistory,
    cohort: BaselineGroup,
    catalog: IndicatorCatalog,
    stats: StatisticsConfig | None = None,
    bounds: Bounds | None = None,
    *,
    min_within_points: int = 4,
) -> ComponentResult:
    """Cohen's d between the early and recent halves of the snapshot window."""

    stats = stats or StatisticsConfig()
    missing, effects = _trend_effects(history, cohort, catalog, min_within_points)

    contributions: List[IndicatorContribution] = []
    cohort_sd_used: List[str] = []
    for indicator_id, effective_weight in missing.effective_weights.items():
        effect, early_mean, recent_mean, cohort_sd = effects[indicator_id]
        if cohort_sd:
            cohort_sd_used.append(indicator_id)
        capped = _capped(indicator_id, effect, stats, bounds)
        contributions.append(
            IndicatorContribution(
                indicator_id=indicator_id,
                effect=capped,
                winsorized=capped != effect,
                weight=catalog.by_id(indicator_id).weight,
                effective_weight=effective_weight,
                weighted_contribution=effective_weight * capped,
                baseline_value=early_mean,
                current_value=recent_mean,
            )
        )

    raw = math.fsum(item.weighted_contribution for item in contributions)
    error = component_standard_error(
        [item.effective_weight for item in contributions],
        len(history.snapshots),
        stats.average_correlation,
    )
    return ComponentResult(
        name="trs",
        raw=raw,
        scaled=z_score_to_scaled(raw),
        standard_error=error,
        contributions=tuple(contributions),
        metadata={
            "cohort_id": cohort.cohort_id,
            "periods": len(history.snapshots),
            "cohort_sd_indicators": cohort_sd_used,
            "excluded_indicators": list(missing.excluded_indicators),
        },
    )


def calculate_pgs(
    trs: ComponentResult,
    peer_trajectories: Sequence[float],
    stats: StatisticsConfig | None = None,
    *,
    min_group_size: int = 5,
    kappa: float | None = None,
) -> Optional[ComponentResult]:
    """Peer-relative trajectory rank; ``None`` when there are too few peers."""

    if len(peer_trajectories) < min_group_size:
        logger.debug(
            "PGS omitted for cohort %s: %d peer(s), need %d",
            trs.metadata.get("cohort_id"),
            len(peer_trajectories),
            min_group_size,
        )
        return None
    return calculate_peer_percentile(
        "pgs",
        trs.raw,
        peer_trajectories,
        stats,
        kappa=kappa,
        cohort_id=trs.metadata.get("cohort_id"),
    )


def css_series(
    history: TeamHistory,
    cohort: BaselineGroup,
    catalog: IndicatorCatalog,
    stats: StatisticsConfig | None = None,
    bounds: Bounds | None = None,
) -> List[ComponentResult]:
    """Current State Score as of every snapshot of *history*, oldest first."""

    return [
        calculate_css(
            replace(history, snapshots=history.snapshots[:end]), cohort, catalog, stats, bounds
        )
        for end in range(1, len(history.snapshots) + 1)
    ]


def calculate_series_trs(
    scores: Sequence[float],
    current: float | None = None,
    *,
    span: float = SERIES_TREND_SPAN,
    cohort_id: str | None = None,
) -> Optional[ComponentResult]:
    """Trajectory of a display-scale score series (oldest first).

    ``raw`` is the difference between the recent-half and early-half means
    in display points; a change of *span* points moves the scaled score by
    half the scale. ``None`` when fewer than two scores are available.
    """

    if len(scores) < 2:
        return None
    midpoint = len(scores) // 2
    early, recent = scores[:midpoint], scores[midpoint:]
    early_mean = math.fsum(early) / len(early)
    recent_mean = math.fsum(recent) / len(recent)
    change = recent_mean - early_mean
    anchor = scores[-1] if current is None else current
    spread = math.sqrt(math.fsum((score - anchor) ** 2 for score in scores) / len(scores))
    return ComponentResult(
        name="trs",
        raw=change,
        scaled=clamp(SCALE_CENTER + change / span * SCALE_CENTER),
        standard_error=spread / math.sqrt(len(scores)),
        metadata={
            "cohort_id": cohort_id,
            "periods": len(scores),
            "early_mean": early_mean,
            "recent_mean": recent_mean,
        },
    )


def health_model(
    css: ComponentResult,
    trs: ComponentResult | None = None,
    pgs: ComponentResult | None = None,
) -> HealthModel:
    if trs is None:
        return HealthCurrentOnly(css=css)
    if pgs is None:
        return HealthTwoComponent(css=css, trs=trs)
    return HealthThreeComponent(css=css, trs=trs, pgs=pgs)


def calculate_dimension_chs(
    team_id: str,
    dimension: str,
    css: ComponentResult,
    model_config: CompositeModelConfig,
    confidence: ConfidenceConfig | None = None,
    *,
    css_history: Sequence[float] = (),
    peer_trajectories: Sequence[float] = (),
    stats: StatisticsConfig | None = None,
    min_group_size: int = 5,
    kappa: float | None = None,
    metadata: Mapping[str, object] | None = None,
) -> CompositeResult:
    """Health composite for one dimension of a team.

    The trajectory comes from the dimension's CSS history and the peer
    score ranks that trajectory among *peer_trajectories*. Components that
    cannot be computed are left out and the remaining weights renormalised.
    """

    cohort_id = css.metadata.get("cohort_id")
    trs = calculate_series_trs(css_history, css.scaled, cohort_id=cohort_id)
    pgs = None
    if trs is not None:
        pgs = calculate_pgs(
            trs, peer_trajectories, stats, min_group_size=min_group_size, kappa=kappa
        )
    return aggregate(
        team_id,
        health_model(css, trs, pgs),
        model_config,
        confidence,
        metadata={
            "dimension": dimension,
            "cohort_id": cohort_id,
            "css_history": list(css_history),
            **dict(metadata or {}),
        },
    )


def outcome_css(
    dimension_css: Mapping[str, float],
    weights: Mapping[str, float] | None = None,
) -> Tuple[float, Tuple[DimensionContribution, ...]]:
    """Weighted mean of dimension CSS scores and each dimension's share.

    Weights default to equal shares. When the supplied weights do not sum to
    one (within 0.01) the contributions are divided by their total.
    """

    if not dimension_css:
        raise ValueError("Outcome current state needs at least one dimension")
    if weights is None:
        weights = {dimension: 1.0 / len(dimension_css) for dimension in dimension_css}
    applied = {dimension: float(weights.get(dimension, 0.0)) for dimension in dimension_css}
    total = math.fsum(applied.values())
    if total <= 0:
        raise ValueError("Outcome dimension weights must be positive")
    divisor = total if abs(total - 1.0) > OUTCOME_WEIGHT_TOLERANCE else 1.0
    contributions = tuple(
        DimensionContribution(
            dimension=dimension,
            weight=weight,
            css=dimension_css[dimension],
            weighted_contribution=weight * dimension_css[dimension] / divisor,
        )
        for dimension, weight in applied.items()
    )
    return math.fsum(item.weighted_contribution for item in contributions), contributions


def outcome_css_history(
    dimension_results: Mapping[str, CompositeResult],
    weights: Mapping[str, float] | None = None,
) -> List[float]:
    """Outcome CSS per period from the dimensions' CSS histories."""

    histories = {
        dimension: list(result.metadata.get("css_history") or ())
        for dimension, result in dimension_results.items()
    }
    periods = min((len(values) for values in histories.values()), default=0)
    return [
        outcome_css({dimension: values[index] for dimension, values in histories.items()}, weights)[0]
        for index in range(periods)
    ]


def calculate_outcome_chs(
    team_id: str,
    dimension_results: Mapping[str, CompositeResult],
    model_config: CompositeModelConfig,
    confidence: ConfidenceConfig | None = None,
    *,
    weights: Mapping[str, float] | None = None,
    peer_trajectories: Sequence[float] = (),
    stats: StatisticsConfig | None = None,
    min_group_size: int = 5,
    kappa: float | None = None,
    outcome: str = "outcome",
) -> CompositeResult:
    """Health composite for an outcome fed by several dimensions.

    The outcome's current state is the weighted mean of the dimensions' CSS
    scores; its error combines the dimensions' CSS errors in quadrature.
    Trajectory and peer score follow :func:`calculate_dimension_chs` on the
    outcome's own CSS history.
    """

    dimension_css = {
        dimension: result.component("css") for dimension, result in dimension_results.items()
    }
    score, contributions = outcome_css(
        {dimension: css.scaled for dimension, css in dimension_css.items()}, weights
    )
    total = math.fsum(item.weight for item in contributions)
    error = math.sqrt(
        math.fsum(
            (item.weight / total * dimension_css[item.dimension].standard_error) ** 2
            for item in contributions
        )
    )
    cohort_ids = {css.metadata.get("cohort_id") for css in dimension_css.values()}
    cohort_id = cohort_ids.pop() if len(cohort_ids) == 1 else None
    css = ComponentResult(
        name="css",
        raw=(score - SCALE_CENTER) / SCALE_SPREAD,
        scaled=score,
        standard_error=error,
        metadata={"cohort_id": cohort_id, "dimension_count": len(contributions)},
    )
    return calculate_dimension_chs(
        team_id,
        outcome,
        css,
        model_config,
        confidence,
        css_history=outcome_css_history(dimension_results, weights),
        peer_trajectories=peer_trajectories,
        stats=stats,
        min_group_size=min_group_size,
        kappa=kappa,
        metadata={"dimension_contributions": list(contributions)},
    )


__all__ = [
    "SERIES_TREND_SPAN",
    "calculate_css",
    "calculate_dimension_chs",
    "calculate_outcome_chs",
    "calculate_pgs",
    "calculate_series_trs",
    "calculate_trs",
    "css_effects",
    "css_series",
    "current_indicators",
    "health_model",
    "outcome_css",
    "outcome_css_history",
    "trend_series",
    "trs_effects",
]
