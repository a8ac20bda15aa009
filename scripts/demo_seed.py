"""Generate a synthetic snapshot table for local QA and demos."""
from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import List, Optional

from teamhealth.scoring.indicators import IndicatorCatalog
from teamhealth.settings import Settings
from teamhealth.synthetic import SeededRandomSource, generate_portfolio, write_snapshot_table

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--teams", type=int, default=47, help="Number of teams to generate.")
    parser.add_argument("--snapshots", type=int, default=3, help="Snapshots per team.")
    parser.add_argument("--seed", type=int, default=42, help="Random seed.")
    parser.add_argument(
        "--intervals",
        choices=("uniform", "varied"),
        default="varied",
        help="Measurement spacing: near-quarterly or varied 2-6 months.",
    )
    parser.add_argument("--missing-rate", type=float, default=0.12)
    parser.add_argument(
        "--output",
        type=Path,
        default=None,
        help="Destination table (.csv or .xlsx); defaults to TEAMHEALTH_SNAPSHOTS.",
    )
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    args = build_parser().parse_args(argv)
    settings = Settings.load()
    settings.ensure_directories()
    catalog = IndicatorCatalog.default()
    histories = generate_portfolio(
        catalog,
        SeededRandomSource(args.seed),
        team_count=args.teams,
        snapshots_per_team=args.snapshots,
        interval_mode=args.intervals,
        missing_rate=args.missing_rate,
    )
    output = args.output or settings.snapshot_path
    write_snapshot_table(histories, output, catalog)
    logger.info("Demo snapshot table ready at %s (seed %d)", output, args.seed)
    return 0


if __name__ == "__main__":  # pragma: no cover - entry point for CLI usage
    raise SystemExit(main())
