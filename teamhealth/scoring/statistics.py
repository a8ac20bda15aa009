from __future__ import annotations

"""Scalar statistical helpers shared by the component calculators.

Every function here is pure. The display scale used throughout the engine
maps a z-score of 0 to 50 and one standard deviation to 10 points, clamped to
the closed interval [0, 100].
"""

import math
from typing import Dict, Iterable, List, Mapping, Sequence, Tuple

import numpy as np

SCALE_CENTER = 50.0
SCALE_SPREAD = 10.0
SCALE_MIN = 0.0
SCALE_MAX = 100.0

# Acklam's rational approximation of the inverse normal CDF.
_A = (
    -3.969683028665376e01,
    2.209460984245205e02,
    -2.759285104469687e02,
    1.383577518672690e02,
    -3.066479806614716e01,
    2.506628277459239e00,
)
_B = (
    -5.447609879822406e01,
    1.615858368580409e02,
    -1.556989798598866e02,
    6.680131188771972e01,
    -1.328068155288572e01,
)
_C = (
    -7.784894002430293e-03,
    -3.223964580411365e-01,
    -2.400758277161838e00,
    -2.549732539343734e00,
    4.374664141464968e00,
    2.938163982698783e00,
)
_D = (
    7.784695709041462e-03,
    3.224671290700398e-01,
    2.445134137142996e00,
    3.754408661907416e00,
)
_P_LOW = 0.02425
_P_HIGH = 1 - _P_LOW


def clamp(value: float, lower: float = SCALE_MIN, upper: float = SCALE_MAX) -> float:
    return max(lower, min(upper, value))


def z_score(value: float, mean: float, std_dev: float) -> float:
    """Standardise *value*; a degenerate population (std_dev 0) yields 0."""

    if std_dev == 0 or not math.isfinite(std_dev):
        return 0.0
    return (value - mean) / std_dev


def _tail(q: float) -> float:
    numerator = ((((_C[0] * q + _C[1]) * q + _C[2]) * q + _C[3]) * q + _C[4]) * q + _C[5]
    denominator = (((_D[0] * q + _D[1]) * q + _D[2]) * q + _D[3]) * q + 1
    return numerator / denominator


def percentile_to_z_score(percentile: float) -> float:
    """Inverse normal CDF for a percentile expressed on the 0-100 scale.

    Values at or beyond the ends of the scale clamp to -3 and 3.
    """

    if percentile <= 0:
        return -3.0
    if percentile >= 100:
        return 3.0
    p = percentile / 100.0
    if p < _P_LOW:
        return _tail(math.sqrt(-2 * math.log(p)))
    if p > _P_HIGH:
        return -_tail(math.sqrt(-2 * math.log(1 - p)))
    q = p - 0.5
    r = q * q
    numerator = (((((_A[0] * r + _A[1]) * r + _A[2]) * r + _A[3]) * r + _A[4]) * r + _A[5]) * q
    denominator = ((((_B[0] * r + _B[1]) * r + _B[2]) * r + _B[3]) * r + _B[4]) * r + 1
    return numerator / denominator


def z_score_to_percentile(z: float) -> float:
    """Forward normal CDF, returned as a percentile in [0, 100]."""

    return 50.0 * (1.0 + math.erf(z / math.sqrt(2.0)))


def z_score_to_scaled(z: float) -> float:
    return clamp(SCALE_CENTER + SCALE_SPREAD * z)


def percentile_to_scaled(percentile: float) -> float:
    """Display score for an indicator known only by its peer percentile."""

    return z_score_to_scaled(percentile_to_z_score(percentile))


def winsorize_bounds(lower_pct: float, upper_pct: float) -> Tuple[float, float]:
    if not 0 < lower_pct < 50 < upper_pct < 100:
        raise ValueError(
            f"Winsorization percentiles must satisfy 0 < lower < 50 < upper < 100, "
            f"got {lower_pct} and {upper_pct}"
        )
    return percentile_to_z_score(lower_pct), percentile_to_z_score(upper_pct)


def winsorize(value: float, lower_pct: float = 0.135, upper_pct: float = 99.865) -> float:
    """Cap an effect size at the z-bounds of the given percentiles.

    With the default percentiles the bounds are roughly -3 and +3.
    """

    lower, upper = winsorize_bounds(lower_pct, upper_pct)
    return clamp(value, lower, upper)


def population_bounds(
    values: Iterable[float],
    lower_pct: float = 2.0,
    upper_pct: float = 98.0,
    *,
    min_count: int = 5,
) -> Tuple[float, float]:
    """Winsorization bounds taken from an observed population.

    Bounds are the linearly interpolated ``lower_pct`` / ``upper_pct``
    percentiles of the finite values. Populations smaller than *min_count*
    use their minimum and maximum; an empty population is unbounded.
    """

    finite = np.asarray([value for value in values if math.isfinite(value)], dtype=float)
    if finite.size == 0:
        return -math.inf, math.inf
    if finite.size < min_count:
        return float(finite.min()), float(finite.max())
    lower, upper = np.percentile(finite, [lower_pct, upper_pct])
    return float(lower), float(upper)


def effect_bounds(
    samples: Iterable[Mapping[str, float]],
    lower_pct: float = 2.0,
    upper_pct: float = 98.0,
    *,
    min_count: int = 5,
) -> Dict[str, Tuple[float, float]]:
    """Per-indicator :func:`population_bounds` over a group's effect sizes."""

    pooled: Dict[str, List[float]] = {}
    for sample in samples:
        for indicator_id, effect in sample.items():
            pooled.setdefault(indicator_id, []).append(effect)
    return {
        indicator_id: population_bounds(values, lower_pct, upper_pct, min_count=min_count)
        for indicator_id, values in pooled.items()
    }


def standard_error(variance: float, n: int) -> float:
    if n <= 0:
        raise ValueError("Standard error requires at least one observation")
    return math.sqrt(max(variance, 0.0) / n)


def confidence_interval(
    score: float,
    std_error: float,
    z: float = 1.96,
    lower: float = SCALE_MIN,
    upper: float = SCALE_MAX,
) -> Tuple[float, float]:
    """``score ± z*SE`` clamped to the display range."""

    margin = z * std_error
    return clamp(score - margin, lower, upper), clamp(score + margin, lower, upper)


def shrinkage_factor(group_size: int, kappa: float) -> float:
    """Weight given to the group centre; shrinks toward 0 as groups grow."""

    if kappa <= 0:
        return 0.0
    return kappa / (kappa + max(group_size, 0))


def empirical_bayes_shrink(
    raw_rank: float,
    group_size: int,
    shrinkage_alpha: float | None = None,
    *,
    kappa: float = 10.0,
    center: float = SCALE_CENTER,
) -> float:
    """Pull a small-sample percentile rank toward *center*."""

    alpha = shrinkage_factor(group_size, kappa) if shrinkage_alpha is None else shrinkage_alpha
    alpha = clamp(alpha, 0.0, 1.0)
    return alpha * center + (1.0 - alpha) * raw_rank


def estimate_kappa(
    values: Sequence[float],
    sampling_variance: float,
    *,
    group_size: float = 1.0,
    default: float = 10.0,
    bounds: Tuple[float, float] = (1.0, 50.0),
) -> float:
    """Method-of-moments estimate of the shrinkage strength.

    *values* are group means, *sampling_variance* the variance of a single
    observation around its group mean and *group_size* the typical number of
    observations behind each mean. The between-group variance is the observed
    variance of the means minus the sampling noise they carry; the prior
    strength is the ratio of the per-observation variance to it.
    """

    lower, upper = bounds
    if len(values) < 2 or sampling_variance <= 0 or group_size <= 0:
        return default
    mean = math.fsum(values) / len(values)
    observed = math.fsum((value - mean) ** 2 for value in values) / (len(values) - 1)
    between = observed - sampling_variance / group_size
    if between <= 0:
        return upper
    return clamp(sampling_variance / between, lower, upper)


def percentile_rank(value: float, population: Sequence[float]) -> float:
    """Mid-rank percentile of *value* within *population* on the 0-100 scale.

    Ties share the average rank, and the half-step continuity correction keeps
    the result strictly inside (0, 100) when *value* belongs to the population.
    """

    if not population:
        return SCALE_CENTER
    below = sum(1 for item in population if item < value)
    equal = sum(1 for item in population if item == value)
    return (below + 0.5 * equal) / len(population) * 100.0


def sample_std(values: Sequence[float]) -> float:
    if len(values) < 2:
        return 0.0
    mean = math.fsum(values) / len(values)
    return math.sqrt(math.fsum((value - mean) ** 2 for value in values) / (len(values) - 1))


def correlated_variance_factor(weights: Sequence[float], correlation: float) -> float:
    """Variance of a weighted sum of unit-variance, equicorrelated terms."""

    sum_w = math.fsum(weights)
    sum_w2 = math.fsum(weight * weight for weight in weights)
    return sum_w2 + correlation * (sum_w * sum_w - sum_w2)


def component_standard_error(
    weights: Sequence[float], observations: int, correlation: float
) -> float:
    """Standard error of a weighted effect-size sum on the display scale."""

    if not weights:
        return 0.0
    n = max(observations, 2)
    sum_w2 = math.fsum(weight * weight for weight in weights)
    design_effect = math.sqrt(1 + correlation * (len(weights) - 1))
    return SCALE_SPREAD * math.sqrt(sum_w2 * 2.0 / (n - 1)) * design_effect


__all__ = [
    "SCALE_CENTER",
    "SCALE_MAX",
    "SCALE_MIN",
    "SCALE_SPREAD",
    "clamp",
    "component_standard_error",
    "confidence_interval",
    "correlated_variance_factor",
    "effect_bounds",
    "empirical_bayes_shrink",
    "estimate_kappa",
    "percentile_rank",
    "population_bounds",
    "percentile_to_scaled",
    "percentile_to_z_score",
    "sample_std",
    "shrinkage_factor",
    "standard_error",
    "winsorize",
    "winsorize_bounds",
    "z_score",
    "z_score_to_percentile",
    "z_score_to_scaled",
]
