from __future__ import annotations

"""Indicator coverage checks and proportional weight redistribution."""

import math
from typing import Iterable

from .indicators import IndicatorCatalog
from .models import MissingDataResult, TeamHistory


def assess_coverage(
    team_id: str, catalog: IndicatorCatalog, present: Iterable[str]
) -> MissingDataResult:
    """Redistribute catalog weight over the indicators in *present*.

    Indicators a team lacks are dropped for that team only; the remaining
    weights are rescaled proportionally so they still sum to one.
    """

    present_ids = {indicator_id for indicator_id in present if indicator_id in catalog}
    excluded = tuple(
        definition.indicator_id for definition in catalog if definition.indicator_id not in present_ids
    )
    available = math.fsum(
        definition.weight for definition in catalog if definition.indicator_id in present_ids
    )
    effective = {}
    if available > 0:
        for definition in catalog:
            if definition.indicator_id in present_ids:
                effective[definition.indicator_id] = definition.weight / available
    return MissingDataResult(
        team_id=team_id,
        excluded_indicators=excluded,
        coverage=len(present_ids) / len(catalog),
        effective_weights=effective,
    )


def paired_indicators(history: TeamHistory, catalog: IndicatorCatalog) -> list[str]:
    """Indicators covered at both the baseline and the current snapshot."""

    baseline, current = history.baseline, history.current
    return [
        definition.indicator_id
        for definition in catalog
        if baseline.is_covered(definition.indicator_id)
        and current.is_covered(definition.indicator_id)
    ]


def history_coverage(history: TeamHistory, catalog: IndicatorCatalog) -> MissingDataResult:
    return assess_coverage(history.team_id, catalog, paired_indicators(history, catalog))


__all__ = ["assess_coverage", "history_coverage", "paired_indicators"]
