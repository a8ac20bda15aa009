from __future__ import annotations

"""Delivery practice indicator definitions."""

import math
from dataclasses import dataclass, replace
from typing import Dict, Iterable, Iterator, List, Tuple


class IndicatorCatalogError(ValueError):
    """Raised when an indicator catalog is malformed."""


@dataclass(slots=True, frozen=True)
class IndicatorDefinition:
    """Immutable registry entry for a single team indicator."""

    indicator_id: str
    name: str
    weight: float
    higher_is_better: bool
    unit: str
    description: str | None = None
    dimension: str = "general"

    @property
    def direction(self) -> int:
        """+1 when growth is good, -1 for inverted indicators."""

        return 1 if self.higher_is_better else -1


def indicator_catalog() -> List[IndicatorDefinition]:
    """Return the static team indicator catalog."""

    return [
        IndicatorDefinition(
            indicator_id="acceptanceCriteria",
            name="AC Coverage",
            weight=0.10,
            higher_is_better=True,
            unit="percent",
            description="Share of stories carrying acceptance criteria.",
            dimension="planning",
        ),
        IndicatorDefinition(
            indicator_id="firstTimePassRate",
            name="First Pass Rate",
            weight=0.08,
            higher_is_better=True,
            unit="percent",
            description="Work items accepted without being reopened.",
            dimension="delivery",
        ),
        IndicatorDefinition(
            indicator_id="storyEstimationRate",
            name="Story Estimation",
            weight=0.10,
            higher_is_better=True,
            unit="percent",
            description="Stories estimated before the sprint starts.",
            dimension="planning",
        ),
        IndicatorDefinition(
            indicator_id="workCarriedOver",
            name="Carryover Rate",
            weight=0.12,
            higher_is_better=False,
            unit="percent",
            description="Committed work rolled into the next sprint.",
            dimension="delivery",
        ),
        IndicatorDefinition(
            indicator_id="midSprintCreations",
            name="Scope Change",
            weight=0.08,
            higher_is_better=False,
            unit="percent",
            description="Items created after sprint start.",
            dimension="planning",
        ),
        IndicatorDefinition(
            indicator_id="staleWorkItems",
            name="Stale Items",
            weight=0.07,
            higher_is_better=False,
            unit="percent",
            description="Open items without updates for two weeks.",
            dimension="hygiene",
        ),
        IndicatorDefinition(
            indicator_id="avgCommentsPerIssue",
            name="Comment Rate",
            weight=0.08,
            higher_is_better=True,
            unit="count",
            description="Average comments per resolved issue.",
            dimension="collaboration",
        ),
        IndicatorDefinition(
            indicator_id="singleContributorIssueRate",
            name="Solo Work %",
            weight=0.07,
            higher_is_better=False,
            unit="percent",
            description="Issues touched by a single contributor.",
            dimension="collaboration",
        ),
        IndicatorDefinition(
            indicator_id="throughputVariability",
            name="Throughput Var",
            weight=0.08,
            higher_is_better=False,
            unit="ratio",
            description="Coefficient of variation of sprint throughput.",
            dimension="delivery",
        ),
        IndicatorDefinition(
            indicator_id="siloedWorkItems",
            name="Siloed Work",
            weight=0.07,
            higher_is_better=False,
            unit="percent",
            description="Items with no linked collaborators.",
            dimension="collaboration",
        ),
        IndicatorDefinition(
            indicator_id="jiraUpdateFrequency",
            name="Update Freq",
            weight=0.05,
            higher_is_better=True,
            unit="per day",
            description="Tracker updates per item per day.",
            dimension="hygiene",
        ),
        IndicatorDefinition(
            indicator_id="lastDayCompletions",
            name="Last Day %",
            weight=0.05,
            higher_is_better=False,
            unit="percent",
            description="Items closed on the final day of the sprint.",
            dimension="delivery",
        ),
        IndicatorDefinition(
            indicator_id="policyExclusions",
            name="Policy Exclusions",
            weight=0.05,
            higher_is_better=False,
            unit="percent",
            description="Items excluded from team working agreements.",
            dimension="hygiene",
        ),
    ]


class IndicatorCatalog:
    """Ordered lookup helper over indicator definitions.

    The catalog is validated on construction: identifiers must be unique,
    weights non-negative, and the weights must sum to 1.
    """

    TOLERANCE = 1e-6

    def __init__(self, indicators: Iterable[IndicatorDefinition]):
        definitions = list(indicators)
        if not definitions:
            raise IndicatorCatalogError("Indicator catalog is empty")
        self._definitions: Dict[str, IndicatorDefinition] = {}
        for definition in definitions:
            if definition.indicator_id in self._definitions:
                raise IndicatorCatalogError(
                    f"Duplicate indicator id '{definition.indicator_id}'"
                )
            if definition.weight < 0:
                raise IndicatorCatalogError(
                    f"Indicator '{definition.indicator_id}' has negative weight"
                )
            self._definitions[definition.indicator_id] = definition
        total = math.fsum(definition.weight for definition in definitions)
        if abs(total - 1.0) > self.TOLERANCE:
            raise IndicatorCatalogError(
                f"Indicator weights must sum to 1.0, got {total:.6f}"
            )

    @classmethod
    def default(cls) -> "IndicatorCatalog":
        return cls(indicator_catalog())

    def __iter__(self) -> Iterator[IndicatorDefinition]:
        return iter(self._definitions.values())

    def __len__(self) -> int:
        return len(self._definitions)

    def __contains__(self, indicator_id: object) -> bool:
        return indicator_id in self._definitions

    def by_id(self, indicator_id: str) -> IndicatorDefinition | None:
        return self._definitions.get(indicator_id)

    def ids(self) -> Tuple[str, ...]:
        return tuple(self._definitions)

    def weights(self) -> Dict[str, float]:
        return {key: definition.weight for key, definition in self._definitions.items()}

    def dimensions(self) -> Dict[str, Tuple[str, ...]]:
        """Indicator ids per dimension, dimensions in first-seen order."""

        grouped: Dict[str, List[str]] = {}
        for definition in self._definitions.values():
            grouped.setdefault(definition.dimension, []).append(definition.indicator_id)
        return {dimension: tuple(ids) for dimension, ids in grouped.items()}

    def for_dimension(self, dimension: str) -> "IndicatorCatalog":
        """Sub-catalog of one dimension with its weights rescaled to sum to 1."""

        members = [item for item in self._definitions.values() if item.dimension == dimension]
        total = math.fsum(item.weight for item in members)
        if not members or total <= 0:
            raise IndicatorCatalogError(f"No weighted indicators in dimension '{dimension}'")
        return IndicatorCatalog(replace(item, weight=item.weight / total) for item in members)


__all__ = [
    "IndicatorCatalog",
    "IndicatorCatalogError",
    "IndicatorDefinition",
    "indicator_catalog",
]
