"""Command line interface for the teamhealth scoring workflow."""
from __future__ import annotations

import argparse
import logging
import logging.config
import os
from dataclasses import replace
from pathlib import Path
from typing import Iterable, List, Optional

from teamhealth import StageContext, StageRunner, bootstrap, create_default_context, registry
from teamhealth.settings import Settings


def load_environment() -> None:
    candidates = []
    if env_file := os.getenv("ENV_FILE"):
        candidates.append(Path(env_file))
    candidates.append(Path(".env"))

    for path in candidates:
        if not path.exists():
            continue
        with path.open("r", encoding="utf-8") as handle:
            for raw_line in handle:
                line = raw_line.strip()
                if not line or line.startswith("#") or "=" not in line:
                    continue
                key, _, value = line.partition("=")
                os.environ.setdefault(key.strip(), value.strip().strip('"'))


load_environment()

logger = logging.getLogger(__name__)


def configure_logging() -> None:
    """Configure logging from an INI file when present, else basic configuration."""

    config_candidates = []
    if config_env := os.getenv("LOGGING_CONFIG"):
        config_candidates.append(Path(config_env))
    config_candidates.append(Path("logging.ini"))

    for config_path in config_candidates:
        if not config_path.exists():
            continue
        if config_path.suffix.lower() not in {".ini", ".cfg"}:
            print(f"Skipping unsupported logging config {config_path}.")
            continue
        try:
            logging.config.fileConfig(config_path, disable_existing_loggers=False)
            return
        except (OSError, ValueError, KeyError) as exc:
            print(f"Failed to load logging config {config_path}: {exc}. Using basic logging.")
            break

    logging.basicConfig(
        level=os.getenv("LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


configure_logging()
bootstrap()
runner = StageRunner(registry)


def _context(args: argparse.Namespace) -> StageContext:
    settings = Settings.load()
    if getattr(args, "snapshots", None):
        settings = replace(settings, snapshot_path=Path(args.snapshots))
    if getattr(args, "workers", None) is not None:
        settings = replace(settings, workers=args.workers)
    return create_default_context(settings)


def _run_stages(args: argparse.Namespace, stages: Optional[Iterable[str]]) -> None:
    context = _context(args)
    try:
        resolved = runner.resolve(stages)
    except ValueError as exc:
        print(f"Error: {exc}")
        raise SystemExit(2) from exc
    if resolved and resolved[0] != "load":
        resolved = ["load", *[name for name in resolved if name != "load"]]
    logger.info(
        "Running stages %s on %s with output %s.",
        resolved,
        context.settings.snapshot_path,
        context.settings.output_dir,
    )
    runner.run(resolved, context)


def command_run(args: argparse.Namespace) -> None:
    _run_stages(args, args.stages or None)


def command_stages(_: argparse.Namespace) -> None:
    print("teamhealth registered stages:")
    for definition in registry.items():
        print(f"- {definition.name}: {definition.description} ({definition.module})")


def command_progress(args: argparse.Namespace) -> None:
    _run_stages(args, ["progress"])


def command_health(args: argparse.Namespace) -> None:
    _run_stages(args, ["health"])


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Score team progress and health portfolios.")
    subparsers = parser.add_subparsers(dest="command")
    subparsers.required = True

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("--snapshots", help="Snapshot table (CSV or XLSX) to score.")
    common.add_argument(
        "--workers", type=int, default=None, help="Worker threads for per-team scoring."
    )

    parser_run = subparsers.add_parser("run", parents=[common], help="Run the full pipeline")
    parser_run.add_argument(
        "stages",
        nargs="*",
        help="Optional ordered list of stages to run instead of all registered stages.",
    )
    parser_run.set_defaults(func=command_run)

    parser_stages = subparsers.add_parser("stages", help="List registered stages")
    parser_stages.set_defaults(func=command_stages)

    for name, func in (("progress", command_progress), ("health", command_health)):
        sub = subparsers.add_parser(name, parents=[common], help=f"Load snapshots and run the {name} stage")
        sub.set_defaults(func=func)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    args.func(args)
    return 0


if __name__ == "__main__":  # pragma: no cover - entry point for CLI usage
    raise SystemExit(main())
