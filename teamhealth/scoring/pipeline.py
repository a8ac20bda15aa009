from __future__ import annotations

"""Portfolio orchestration for the progress and health composites."""

import logging
from collections import Counter, defaultdict
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Dict, Hashable, List, Mapping, Optional, Sequence, Tuple, TypeVar

import numpy as np

from .cohorts import CohortAssignment, build_baseline_cohorts
from .config import CompositeModelConfig, EngineConfig
from .engine import HealthEngine, ProgressEngine
from .health import calculate_outcome_chs, calculate_series_trs, outcome_css_history
from .indicators import IndicatorCatalog
from .models import (
    CategoryCount,
    CompositeResult,
    ExcludedTeam,
    MissingDataResult,
    PortfolioSensitivity,
    PortfolioSummary,
    ScoreDistribution,
    TeamHistory,
)
from .progress import portfolio_tnv_eligibility, should_calculate_tnv
from .statistics import effect_bounds, estimate_kappa, percentile_rank

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")

CohortBounds = Dict[str, Dict[str, Tuple[float, float]]]


def _map(func: Callable[[T], R], items: Sequence[T], workers: Optional[int]) -> List[R]:
    """Apply *func* to *items* in order, on a thread pool when *workers* > 1."""

    if workers and workers > 1 and len(items) > 1:
        with ThreadPoolExecutor(max_workers=workers) as executor:
            return list(executor.map(func, items))
    return [func(item) for item in items]


def _screen(
    histories: Sequence[TeamHistory],
    coverage: Callable[[TeamHistory], MissingDataResult],
    config: EngineConfig,
) -> Tuple[List[TeamHistory], List[ExcludedTeam]]:
    eligible: List[TeamHistory] = []
    excluded: List[ExcludedTeam] = []
    for history in sorted(histories, key=lambda item: item.team_id):
        if len(history.snapshots) < config.coverage.min_snapshots:
            excluded.append(ExcludedTeam(history.team_id, "insufficient_history"))
            continue
        missing = coverage(history)
        if missing.coverage < config.coverage.min_coverage:
            excluded.append(
                ExcludedTeam(history.team_id, "insufficient_coverage", missing.coverage)
            )
            continue
        eligible.append(history)
    if excluded:
        logger.warning(
            "%d team(s) excluded from scoring: %s",
            len(excluded),
            ", ".join(f"{item.team_id} ({item.reason})" for item in excluded),
        )
    return eligible, excluded


def _peer_values(cohorts: CohortAssignment, values: Dict[str, float]) -> Dict[str, List[float]]:
    peers: Dict[str, List[float]] = defaultdict(list)
    for team_id, value in sorted(values.items()):
        peers[cohorts.by_team[team_id]].append(value)
    return dict(peers)


def _cohort_bounds(
    cohorts: CohortAssignment,
    effects: Mapping[str, Mapping[str, float]],
    config: EngineConfig,
) -> CohortBounds:
    """Per-cohort, per-indicator winsorization bounds from the teams' effect sizes."""

    stats = config.statistics
    grouped: Dict[str, List[Mapping[str, float]]] = defaultdict(list)
    for team_id, team_effects in sorted(effects.items()):
        grouped[cohorts.by_team[team_id]].append(team_effects)
    return {
        cohort_id: effect_bounds(
            samples,
            stats.cohort_winsorize_lower_pct,
            stats.cohort_winsorize_upper_pct,
            min_count=stats.cohort_winsorize_min_count,
        )
        for cohort_id, samples in grouped.items()
    }


def _health_bounds(
    engine: HealthEngine,
    eligible: Sequence[TeamHistory],
    cohorts: CohortAssignment,
    config: EngineConfig,
    workers: Optional[int],
) -> Tuple[CohortBounds, CohortBounds]:
    effects = _map(lambda history: engine.effects(history, cohorts), eligible, workers)
    css = {history.team_id: item[0] for history, item in zip(eligible, effects)}
    trs = {history.team_id: item[1] for history, item in zip(eligible, effects)}
    return _cohort_bounds(cohorts, css, config), _cohort_bounds(cohorts, trs, config)


def _kappa(config: EngineConfig, peers: Mapping[Hashable, List[float]]) -> float:
    """Shrinkage strength, estimated from the cohorts when configured."""

    stats = config.statistics
    if not stats.estimate_kappa:
        return stats.kappa
    groups = [values for values in peers.values() if len(values) >= 2]
    if len(groups) < 2:
        return stats.kappa
    means = [float(np.mean(values)) for values in groups]
    within = float(np.mean([np.var(values, ddof=1) for values in groups]))
    size = float(np.mean([len(values) for values in groups]))
    kappa = estimate_kappa(
        means, within, group_size=size, default=stats.kappa, bounds=stats.kappa_bounds
    )
    logger.info("Estimated shrinkage kappa %.2f from %d cohort(s)", kappa, len(groups))
    return kappa


def run_progress_portfolio(
    histories: Sequence[TeamHistory],
    catalog: IndicatorCatalog | None = None,
    config: EngineConfig | None = None,
    *,
    workers: Optional[int] = None,
) -> PortfolioSummary:
    """Score every team's Composite Progress Score and summarise the portfolio."""

    catalog = catalog or IndicatorCatalog.default()
    config = config or EngineConfig.default()
    engine = ProgressEngine(catalog, config)

    eligible, excluded = _screen(histories, engine.coverage, config)
    cohorts = build_baseline_cohorts(eligible, catalog, config.cohorts)
    effects = _map(lambda history: engine.effects(history, cohorts), eligible, workers)
    bounds = _cohort_bounds(
        cohorts, {history.team_id: item for history, item in zip(eligible, effects)}, config
    )
    prepared = _map(
        lambda history: engine.prepare(
            history, cohorts, bounds.get(cohorts.by_team[history.team_id])
        ),
        eligible,
        workers,
    )

    peers = _peer_values(cohorts, {item.history.team_id: item.api.raw for item in prepared})
    kappa = _kappa(config, peers)
    tnv = portfolio_tnv_eligibility([item.interval_days for item in eligible], config.tnv)
    if not tnv.eligible:
        logger.info(
            "TNV disabled for this portfolio (interval CV %.3f): %s", tnv.interval_cv, tnv.reason
        )

    def score(inputs):
        allowed = should_calculate_tnv(
            inputs.history.interval_days, tnv.interval_cv, config.tnv
        )
        return engine.score(
            inputs,
            peers[inputs.cohort.cohort_id],
            tnv_allowed=allowed,
            kappa=kappa,
        )

    results = _map(score, prepared, workers)
    summary = summarize_portfolio(
        results,
        config.progress,
        cohorts,
        excluded,
        threshold=config.portfolio_sensitivity_threshold,
        metadata={
            "interval_cv": tnv.interval_cv,
            "tnv_eligible": tnv.eligible,
            "tnv_reason": tnv.reason,
            "kappa": kappa,
        },
    )
    logger.info(
        "Progress scoring complete for %d team(s); mean CPS %.1f, %d excluded.",
        len(results),
        summary.distribution.mean,
        len(excluded),
    )
    return summary


def run_health_portfolio(
    histories: Sequence[TeamHistory],
    catalog: IndicatorCatalog | None = None,
    config: EngineConfig | None = None,
    *,
    workers: Optional[int] = None,
) -> PortfolioSummary:
    """Score every team's Composite Health Score and summarise the portfolio."""

    catalog = catalog or IndicatorCatalog.default()
    config = config or EngineConfig.default()
    engine = HealthEngine(catalog, config)

    eligible, excluded = _screen(histories, engine.coverage, config)
    cohorts = build_baseline_cohorts(eligible, catalog, config.cohorts)
    css_bounds, trs_bounds = _health_bounds(engine, eligible, cohorts, config, workers)
    prepared = _map(
        lambda history: engine.prepare(
            history,
            cohorts,
            css_bounds.get(cohorts.by_team[history.team_id]),
            trs_bounds.get(cohorts.by_team[history.team_id]),
        ),
        eligible,
        workers,
    )

    peers = _peer_values(cohorts, {item.history.team_id: item.trs.raw for item in prepared})
    kappa = _kappa(config, peers)
    results = _map(
        lambda inputs: engine.score(inputs, peers[inputs.cohort.cohort_id], kappa=kappa),
        prepared,
        workers,
    )
    summary = summarize_portfolio(
        results,
        config.health,
        cohorts,
        excluded,
        threshold=config.portfolio_sensitivity_threshold,
        metadata={"kappa": kappa},
    )
    logger.info(
        "Health scoring complete for %d team(s); mean CHS %.1f, %d excluded.",
        len(results),
        summary.distribution.mean,
        len(excluded),
    )
    return summary


def run_dimension_health(
    histories: Sequence[TeamHistory],
    catalog: IndicatorCatalog | None = None,
    config: EngineConfig | None = None,
    *,
    workers: Optional[int] = None,
) -> Dict[str, Dict[str, CompositeResult]]:
    """Health composite per team and indicator dimension.

    Teams are screened and grouped exactly as in :func:`run_health_portfolio`.
    Peer scores rank a dimension's trajectory against the same dimension of
    the team's cohort peers.
    """

    catalog = catalog or IndicatorCatalog.default()
    config = config or EngineConfig.default()
    engine = HealthEngine(catalog, config)

    eligible, _ = _screen(histories, engine.coverage, config)
    cohorts = build_baseline_cohorts(eligible, catalog, config.cohorts)
    css_bounds, _ = _health_bounds(engine, eligible, cohorts, config, workers)
    prepared = _map(
        lambda history: engine.prepare_dimensions(
            history, cohorts, css_bounds.get(cohorts.by_team[history.team_id])
        ),
        eligible,
        workers,
    )

    peers: Dict[Tuple[str, str], List[float]] = defaultdict(list)
    for dimensions in prepared:
        for item in dimensions:
            trend = calculate_series_trs(item.css_history, item.css.scaled)
            if trend is not None:
                peers[(item.cohort.cohort_id, item.dimension)].append(trend.raw)
    kappa = _kappa(config, peers)

    def score(pair):
        history, dimensions = pair
        return {
            item.dimension: engine.score_dimension(
                history, item, peers.get((item.cohort.cohort_id, item.dimension), []), kappa=kappa
            )
            for item in dimensions
        }

    scored = _map(score, list(zip(eligible, prepared)), workers)
    logger.info(
        "Dimension health scored for %d team(s) across %d dimension(s).",
        len(scored),
        len(catalog.dimensions()),
    )
    return {history.team_id: results for history, results in zip(eligible, scored)}


def run_outcome_health(
    dimension_results: Mapping[str, Mapping[str, CompositeResult]],
    weights: Mapping[str, float] | None = None,
    config: EngineConfig | None = None,
    *,
    outcome: str = "outcome",
) -> Dict[str, CompositeResult]:
    """Roll each team's dimension results up into one outcome-level composite."""

    config = config or EngineConfig.default()
    teams = {team_id: results for team_id, results in sorted(dimension_results.items()) if results}

    peers: Dict[Optional[str], List[float]] = defaultdict(list)
    cohort_of: Dict[str, Optional[str]] = {}
    for team_id, results in teams.items():
        cohort_of[team_id] = next(iter(results.values())).metadata.get("cohort_id")
        trend = calculate_series_trs(outcome_css_history(results, weights))
        if trend is not None:
            peers[cohort_of[team_id]].append(trend.raw)
    kappa = _kappa(config, peers)

    return {
        team_id: calculate_outcome_chs(
            team_id,
            results,
            config.health,
            config.confidence,
            weights=weights,
            peer_trajectories=peers.get(cohort_of[team_id], []),
            stats=config.statistics,
            min_group_size=config.cohorts.min_size,
            kappa=kappa,
            outcome=outcome,
        )
        for team_id, results in teams.items()
    }


def score_distribution(scores: Sequence[float]) -> ScoreDistribution:
    if not scores:
        return ScoreDistribution(0, 0.0, 0.0, 0.0, 0.0, 0.0)
    values = np.asarray(scores, dtype=float)
    return ScoreDistribution(
        count=len(values),
        mean=float(values.mean()),
        median=float(np.median(values)),
        std_dev=float(values.std()),
        minimum=float(values.min()),
        maximum=float(values.max()),
    )


def summarize_portfolio(
    results: Sequence[CompositeResult],
    model_config: CompositeModelConfig,
    cohorts: CohortAssignment,
    excluded: Sequence[ExcludedTeam] = (),
    *,
    threshold: float = 0.20,
    metadata: Optional[Dict[str, object]] = None,
) -> PortfolioSummary:
    """Distribution, category histogram and aggregated sensitivity for *results*."""

    total = len(results)
    counts = Counter(result.category for result in results)
    categories = tuple(
        CategoryCount(name, counts.get(name, 0), counts.get(name, 0) / total if total else 0.0)
        for name in model_config.categories.names()
    )

    flips = {
        configuration.name: 0
        for configuration in (*model_config.alternates, *model_config.two_component_alternates)
    }
    changed_teams = 0
    for result in results:
        if result.sensitivity is None:
            continue
        if result.sensitivity.is_sensitive:
            changed_teams += 1
        for item in result.sensitivity.configurations:
            if item.category_changed:
                flips[item.name] = flips.get(item.name, 0) + 1
    ratio = changed_teams / total if total else 0.0

    return PortfolioSummary(
        kind=model_config.kind,
        results=tuple(results),
        distribution=score_distribution([result.score for result in results]),
        category_distribution=categories,
        sensitivity=PortfolioSensitivity(
            teams_with_category_change=changed_teams,
            total_teams=total,
            ratio=ratio,
            flips_by_configuration=flips,
            is_sensitive=ratio > threshold,
        ),
        cohorts=cohorts.groups,
        excluded=tuple(excluded),
        model_counts=dict(Counter(result.model_type for result in results)),
        metadata=dict(metadata or {}),
    )


def _ranked(summary: PortfolioSummary) -> List[CompositeResult]:
    return sorted(summary.results, key=lambda result: (-result.score, result.team_id))


def top_performers(summary: PortfolioSummary, count: int = 5) -> List[CompositeResult]:
    return _ranked(summary)[:count]


def teams_needing_attention(summary: PortfolioSummary, bands: int = 2) -> List[CompositeResult]:
    """Teams in the lowest *bands* categories, worst first."""

    lowest = {item.category for item in summary.category_distribution[:bands]}
    return [result for result in reversed(_ranked(summary)) if result.category in lowest]


def teams_by_category(summary: PortfolioSummary) -> Dict[str, List[CompositeResult]]:
    grouped: Dict[str, List[CompositeResult]] = {
        item.category: [] for item in summary.category_distribution
    }
    for result in _ranked(summary):
        grouped.setdefault(result.category, []).append(result)
    return grouped


def team_percentile(summary: PortfolioSummary, team_id: str) -> Optional[float]:
    """Percentile of a team's composite within the portfolio."""

    result = summary.result_for(team_id)
    if result is None:
        return None
    return percentile_rank(result.score, [item.score for item in summary.results])


__all__ = [
    "run_dimension_health",
    "run_health_portfolio",
    "run_outcome_health",
    "run_progress_portfolio",
    "score_distribution",
    "summarize_portfolio",
    "team_percentile",
    "teams_by_category",
    "teams_needing_attention",
    "top_performers",
]
