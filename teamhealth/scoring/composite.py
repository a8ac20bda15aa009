from __future__ import annotations

"""Weighted combination of component results into a composite score."""

import math
from typing import Dict, Mapping, Optional, Tuple

from .config import CompositeModelConfig, ConfidenceConfig, WeightConfiguration
from .models import ComponentModel, ComponentResult, CompositeResult, MissingDataResult
from .statistics import clamp, confidence_interval


def combine(
    components: Mapping[str, ComponentResult], configuration: WeightConfiguration
) -> Tuple[float, Dict[str, float]]:
    """Composite score and the renormalised weights actually applied."""

    weights = configuration.renormalized(tuple(components))
    score = math.fsum(components[name].scaled * weight for name, weight in weights.items())
    return clamp(score), weights


def propagate_error(
    components: Mapping[str, ComponentResult],
    weights: Mapping[str, float],
    inflation: float = 1.0,
) -> float:
    variance = math.fsum(
        (weight * components[name].standard_error) ** 2 for name, weight in weights.items()
    )
    return math.sqrt(variance) * inflation


def aggregate(
    team_id: str,
    model: ComponentModel,
    model_config: CompositeModelConfig,
    confidence: ConfidenceConfig | None = None,
    *,
    configuration: Optional[WeightConfiguration] = None,
    missing_data: Optional[MissingDataResult] = None,
    metadata: Optional[Mapping[str, object]] = None,
) -> CompositeResult:
    """Build the composite for *model* under *configuration* (default weights)."""

    confidence = confidence or ConfidenceConfig()
    configuration = configuration or model_config.default_for(model.model_type)
    components = model.components()
    score, weights = combine(components, configuration)
    error = propagate_error(components, weights, confidence.se_inflation)
    return CompositeResult(
        team_id=team_id,
        kind=model_config.kind,
        score=score,
        category=model_config.categories.categorize(score),
        standard_error=error,
        confidence_interval=confidence_interval(score, error, confidence.z),
        weights_used=weights,
        model=model,
        configuration=configuration.name,
        missing_data=missing_data,
        metadata=dict(metadata or {}),
    )


__all__ = ["aggregate", "combine", "propagate_error"]
