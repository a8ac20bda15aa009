from __future__ import annotations

"""Progress components: Absolute Progress Index, Conditional Growth
Percentile and Time-Normalized Velocity."""

import logging
import math
from dataclasses import dataclass
from typing import Dict, Mapping, Optional, Sequence, Tuple

import numpy as np

from .config import StatisticsConfig, TnvConfig
from .coverage import assess_coverage, paired_indicators
from .indicators import IndicatorCatalog
from .models import BaselineGroup, ComponentResult, IndicatorContribution, MissingDataResult, TeamHistory
from .statistics import (
    clamp,
    component_standard_error,
    empirical_bayes_shrink,
    percentile_rank,
    shrinkage_factor,
    winsorize,
    z_score,
    z_score_to_scaled,
)

logger = logging.getLogger(__name__)


def api_effects(
    history: TeamHistory,
    cohort: BaselineGroup,
    catalog: IndicatorCatalog,
    missing: MissingDataResult | None = None,
) -> Dict[str, float]:
    """Direction-adjusted baseline-to-current effect size per paired indicator."""

    if missing is None:
        missing = assess_coverage(history.team_id, catalog, paired_indicators(history, catalog))
    baseline, current = history.baseline, history.current
    effects: Dict[str, float] = {}
    for indicator_id in missing.effective_weights:
        norm = cohort.norm(indicator_id)
        std_dev = norm.std_dev if norm else 0.0
        effects[indicator_id] = catalog.by_id(indicator_id).direction * z_score(
            current.value(indicator_id), baseline.value(indicator_id), std_dev
        )
    return effects


def bound_effect(
    indicator_id: str,
    effect: float,
    stats: StatisticsConfig,
    bounds: Mapping[str, Tuple[float, float]] | None,
) -> float:
    """Winsorize at the cohort bounds when known, else at the fixed z-bounds."""

    if bounds and indicator_id in bounds:
        lower, upper = bounds[indicator_id]
        return clamp(effect, lower, upper)
    return winsorize(effect, stats.winsorize_lower_pct, stats.winsorize_upper_pct)


def calculate_api(
    history: TeamHistory,
    cohort: BaselineGroup,
    catalog: IndicatorCatalog,
    stats: StatisticsConfig | None = None,
    missing: MissingDataResult | None = None,
    bounds: Mapping[str, Tuple[float, float]] | None = None,
) -> ComponentResult:
    """Weighted, winsorized effect size of baseline-to-current change.

    Each indicator's change is expressed in units of the cohort's baseline
    standard deviation and sign-flipped for lower-is-better indicators.
    Effects are winsorized at the cohort's observed percentile *bounds*
    (see :func:`teamhealth.scoring.statistics.effect_bounds`) or, without
    them, at the fixed z-bounds. The weighted sum is capped at
    ``stats.api_limit``.
    """

    stats = stats or StatisticsConfig()
    if missing is None:
        missing = assess_coverage(history.team_id, catalog, paired_indicators(history, catalog))
    baseline, current = history.baseline, history.current
    effects = api_effects(history, cohort, catalog, missing)

    contributions: list[IndicatorContribution] = []
    for indicator_id, effective_weight in missing.effective_weights.items():
        effect = effects[indicator_id]
        capped = bound_effect(indicator_id, effect, stats, bounds)
        contributions.append(
            IndicatorContribution(
                indicator_id=indicator_id,
                effect=capped,
                winsorized=capped != effect,
                weight=catalog.by_id(indicator_id).weight,
                effective_weight=effective_weight,
                weighted_contribution=effective_weight * capped,
                baseline_value=baseline.value(indicator_id),
                current_value=current.value(indicator_id),
            )
        )

    total = math.fsum(item.weighted_contribution for item in contributions)
    raw = clamp(total, -stats.api_limit, stats.api_limit)
    if raw != total:
        logger.debug("API for %s capped from %.3f to %.3f", history.team_id, total, raw)
    error = component_standard_error(
        [item.effective_weight for item in contributions],
        cohort.size,
        stats.average_correlation,
    )
    return ComponentResult(
        name="api",
        raw=raw,
        scaled=z_score_to_scaled(raw),
        standard_error=error,
        contributions=tuple(contributions),
        metadata={
            "cohort_id": cohort.cohort_id,
            "indicator_count": len(contributions),
            "winsorized_indicators": [item.indicator_id for item in contributions if item.winsorized],
            "winsorize_bounds": "cohort" if bounds else "fixed",
            "api_winsorized": raw != total,
            "excluded_indicators": list(missing.excluded_indicators),
        },
    )


def calculate_peer_percentile(
    name: str,
    value: float,
    peers: Sequence[float],
    stats: StatisticsConfig | None = None,
    *,
    kappa: float | None = None,
    cohort_id: str | None = None,
) -> ComponentResult:
    """Shrunken percentile rank of *value* among *peers* (which include it)."""

    stats = stats or StatisticsConfig()
    kappa = stats.kappa if kappa is None else kappa
    group_size = len(peers)
    raw_percentile = percentile_rank(value, peers)
    alpha = shrinkage_factor(group_size, kappa)
    shrunk = empirical_bayes_shrink(raw_percentile, group_size, alpha)
    return ComponentResult(
        name=name,
        raw=raw_percentile,
        scaled=clamp(shrunk),
        standard_error=50.0 / math.sqrt(group_size) if group_size else 50.0,
        metadata={
            "cohort_id": cohort_id,
            "rank": 1 + sum(1 for peer in peers if peer > value),
            "group_size": group_size,
            "shrinkage_alpha": alpha,
            "kappa": kappa,
            "growth": value,
        },
    )


def calculate_cgp(
    api: ComponentResult,
    peer_growth: Sequence[float],
    stats: StatisticsConfig | None = None,
    *,
    kappa: float | None = None,
) -> ComponentResult:
    """Rank aggregate growth (API raw) within the team's baseline cohort."""

    return calculate_peer_percentile(
        "cgp",
        api.raw,
        peer_growth,
        stats,
        kappa=kappa,
        cohort_id=api.metadata.get("cohort_id"),
    )


@dataclass(slots=True, frozen=True)
class TnvEligibility:
    eligible: bool
    interval_cv: float
    reason: str = ""


def interval_cv(intervals: Sequence[float]) -> float:
    """Coefficient of variation (sample standard deviation) of measurement intervals."""

    if len(intervals) < 2:
        return 0.0
    values = np.asarray(intervals, dtype=float)
    mean = float(values.mean())
    if mean <= 0:
        return 0.0
    return float(values.std(ddof=1)) / mean


def portfolio_tnv_eligibility(intervals: Sequence[float], config: TnvConfig) -> TnvEligibility:
    cv = interval_cv(intervals)
    if cv < config.min_cv:
        return TnvEligibility(False, cv, "intervals too uniform for time normalization")
    if cv > config.max_cv:
        return TnvEligibility(False, cv, "intervals too irregular for time normalization")
    return TnvEligibility(True, cv)


def should_calculate_tnv(
    interval_days: float, portfolio_cv: float, config: TnvConfig | None = None
) -> bool:
    """True when both the team's interval and the portfolio spacing CV are in bounds."""

    config = config or TnvConfig()
    if not config.min_cv <= portfolio_cv <= config.max_cv:
        return False
    return config.min_interval_days <= interval_days <= config.max_interval_days


def calculate_tnv(
    api: ComponentResult,
    interval_days: float,
    stats: StatisticsConfig | None = None,
    config: TnvConfig | None = None,
) -> Optional[ComponentResult]:
    """Per-day velocity of the API effect, rescaled to a reference interval."""

    stats = stats or StatisticsConfig()
    config = config or TnvConfig()
    if interval_days <= 0:
        logger.debug("Skipping TNV for non-positive interval %s", interval_days)
        return None
    velocity = api.raw / interval_days
    normalized = velocity * config.reference_days
    capped = winsorize(normalized, stats.winsorize_lower_pct, stats.winsorize_upper_pct)
    return ComponentResult(
        name="tnv",
        raw=velocity,
        scaled=z_score_to_scaled(capped),
        standard_error=api.standard_error * config.reference_days / interval_days,
        metadata={
            "interval_days": interval_days,
            "reference_days": config.reference_days,
            "normalized_effect": capped,
            "winsorized": capped != normalized,
        },
    )


__all__ = [
    "TnvEligibility",
    "api_effects",
    "bound_effect",
    "calculate_api",
    "calculate_cgp",
    "calculate_peer_percentile",
    "calculate_tnv",
    "interval_cv",
    "portfolio_tnv_eligibility",
    "should_calculate_tnv",
]
