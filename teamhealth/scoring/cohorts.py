from __future__ import annotations

"""Peer cohort construction from baseline indicator profiles."""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

import numpy as np
from sklearn.cluster import KMeans
from sklearn.preprocessing import StandardScaler

from .config import CohortConfig
from .indicators import IndicatorCatalog
from .models import BaselineGroup, IndicatorNorm, TeamHistory
from .statistics import sample_std

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class CohortAssignment:
    """Cohorts for one portfolio run plus a team lookup."""

    groups: Tuple[BaselineGroup, ...]
    by_team: Mapping[str, str] = field(default_factory=dict)

    def group_for(self, team_id: str) -> Optional[BaselineGroup]:
        cohort_id = self.by_team.get(team_id)
        if cohort_id is None:
            return None
        for group in self.groups:
            if group.cohort_id == cohort_id:
                return group
        return None


def cohort_count_for(team_count: int, configured: Optional[int] = None) -> int:
    """Initial number of clusters before undersized cohorts are merged."""

    if configured is not None:
        count = configured
    elif team_count >= 50:
        count = 10
    elif team_count >= 30:
        count = 5
    elif team_count >= 20:
        count = 4
    else:
        count = 1
    return max(1, min(count, team_count))


def baseline_matrix(
    histories: Sequence[TeamHistory], catalog: IndicatorCatalog
) -> np.ndarray:
    """Baseline values as an (teams x indicators) array with NaN for gaps."""

    rows = []
    for history in histories:
        baseline = history.baseline
        row = [baseline.value(indicator_id) for indicator_id in catalog.ids()]
        rows.append([np.nan if value is None else float(value) for value in row])
    return np.array(rows, dtype=float).reshape(len(histories), len(catalog))


def standardize(matrix: np.ndarray) -> np.ndarray:
    """Column-standardise *matrix*; missing cells land on the column mean (0)."""

    if matrix.size == 0:
        return matrix
    observed = ~np.all(np.isnan(matrix), axis=0)
    points = np.zeros_like(matrix)
    if observed.any():
        scaled = StandardScaler().fit_transform(matrix[:, observed])
        points[:, observed] = np.nan_to_num(scaled, nan=0.0)
    return points


def merge_undersized_cohorts(
    clusters: Sequence[Sequence[int]], points: np.ndarray, min_size: int
) -> Tuple[List[List[int]], List[List[int]]]:
    """Merge clusters smaller than *min_size* into their nearest neighbour.

    The smallest undersized cluster is merged first, into the cluster whose
    centroid is closest. This repeats until every cluster meets the minimum or
    only one cluster remains. Returns the merged member lists and, for each,
    the indices of the original clusters it absorbed.
    """

    groups = [sorted(cluster) for cluster in clusters if len(cluster) > 0]
    origins = [[index] for index in range(len(groups))]
    while len(groups) > 1:
        sizes = [len(group) for group in groups]
        undersized = [index for index, size in enumerate(sizes) if size < min_size]
        if not undersized:
            break
        source = min(undersized, key=lambda index: (sizes[index], groups[index][0]))
        centroids = np.array([points[group].mean(axis=0) for group in groups])
        distances = np.linalg.norm(centroids - centroids[source], axis=1)
        distances[source] = np.inf
        target = int(np.argmin(distances))
        logger.debug(
            "Merging cohort of %d team(s) into neighbour of %d team(s)",
            sizes[source],
            sizes[target],
        )
        groups[target] = sorted(groups[target] + groups[source])
        origins[target] = origins[target] + origins[source]
        del groups[source]
        del origins[source]
    return groups, origins


def compute_norms(
    histories: Sequence[TeamHistory], catalog: IndicatorCatalog
) -> Dict[str, IndicatorNorm]:
    """Per-indicator mean and sample SD over covered baseline values only."""

    norms: Dict[str, IndicatorNorm] = {}
    for indicator_id in catalog.ids():
        values = [
            history.baseline.value(indicator_id)
            for history in histories
            if history.baseline.is_covered(indicator_id)
        ]
        if values:
            mean = float(np.mean(values))
            std_dev = sample_std(values)
        else:
            mean, std_dev = 0.0, 0.0
        norms[indicator_id] = IndicatorNorm(
            indicator_id=indicator_id, mean=mean, std_dev=std_dev, count=len(values)
        )
    return norms


def build_baseline_cohorts(
    histories: Sequence[TeamHistory],
    catalog: IndicatorCatalog,
    config: CohortConfig | None = None,
) -> CohortAssignment:
    """Cluster teams into peer cohorts by their standardised baseline profile."""

    config = config or CohortConfig()
    ordered = sorted(histories, key=lambda history: history.team_id)
    if not ordered:
        return CohortAssignment(groups=())

    points = standardize(baseline_matrix(ordered, catalog))
    k = cohort_count_for(len(ordered), config.group_count)
    if k > 1:
        model = KMeans(n_clusters=k, n_init=config.n_init, random_state=config.random_state)
        labels = model.fit_predict(points)
    else:
        labels = np.zeros(len(ordered), dtype=int)

    clusters = [
        [index for index, label in enumerate(labels) if label == cluster]
        for cluster in sorted(set(int(label) for label in labels))
    ]
    merged, origins = merge_undersized_cohorts(clusters, points, config.min_size)
    pairs = sorted(zip(merged, origins), key=lambda pair: pair[0][0])

    groups: List[BaselineGroup] = []
    by_team: Dict[str, str] = {}
    for number, (members, absorbed) in enumerate(pairs, start=1):
        cohort_id = f"cohort-{number:02d}"
        member_histories = [ordered[index] for index in members]
        team_ids = tuple(history.team_id for history in member_histories)
        groups.append(
            BaselineGroup(
                cohort_id=cohort_id,
                team_ids=team_ids,
                norms=compute_norms(member_histories, catalog),
                centroid=tuple(float(value) for value in points[members].mean(axis=0)),
                merged_from=tuple(f"cluster-{index}" for index in absorbed)
                if len(absorbed) > 1
                else (),
            )
        )
        for team_id in team_ids:
            by_team[team_id] = cohort_id

    undersized = [group.cohort_id for group in groups if group.size < config.min_size]
    if undersized:
        logger.warning(
            "Portfolio of %d team(s) is smaller than the minimum cohort size %d; "
            "using a single cohort.",
            len(ordered),
            config.min_size,
        )
    logger.info(
        "Built %d cohort(s) from %d initial cluster(s) over %d team(s)",
        len(groups),
        len(clusters),
        len(ordered),
    )
    return CohortAssignment(groups=tuple(groups), by_team=by_team)


__all__ = [
    "CohortAssignment",
    "baseline_matrix",
    "build_baseline_cohorts",
    "cohort_count_for",
    "compute_norms",
    "merge_undersized_cohorts",
    "standardize",
]
