from __future__ import annotations

"""Re-score a composite under alternate weight configurations."""

from typing import Iterable, List

from .composite import combine
from .config import CompositeModelConfig, WeightConfiguration
from .models import CompositeResult, SensitivityConfiguration, SensitivityReport


def analyze_sensitivity(
    result: CompositeResult,
    model_config: CompositeModelConfig,
    alternates: Iterable[WeightConfiguration] | None = None,
) -> SensitivityReport:
    """Recompute *result* from its existing component values for each alternate.

    Only the weights change; the component scores are reused as-is, so the
    report is a pure function of the result and the configurations.
    """

    components = result.model.components()
    configurations: List[SensitivityConfiguration] = []
    if alternates is None:
        alternates = model_config.alternates_for(result.model_type)
    for configuration in alternates:
        score, weights = combine(components, configuration)
        category = model_config.categories.categorize(score)
        configurations.append(
            SensitivityConfiguration(
                name=configuration.name,
                weights=weights,
                score=score,
                category=category,
                category_changed=category != result.category,
                score_delta=score - result.score,
            )
        )
    return SensitivityReport(configurations=tuple(configurations))


__all__ = ["analyze_sensitivity"]
