"""teamhealth - progress and health scoring for delivery team portfolios."""
from __future__ import annotations

from datetime import datetime
from importlib import metadata
from pathlib import Path

from teamhealth.core import StageContext, StageRunner, registry
from teamhealth.settings import Settings

__all__ = [
    "__version__",
    "StageContext",
    "StageRunner",
    "Settings",
    "registry",
    "bootstrap",
    "create_default_context",
]


def __getattr__(name: str):  # pragma: no cover - passthrough to package metadata
    if name == "__version__":
        try:
            return metadata.version("teamhealth")
        except metadata.PackageNotFoundError:
            return "0.0.0"
    raise AttributeError(name)


def bootstrap() -> None:
    """Import stage modules so their stages are registered."""

    from teamhealth import ingestion, scoring  # noqa: F401


def create_default_context(settings: Settings | None = None) -> StageContext:
    """Construct a :class:`StageContext` for command-line runs."""

    settings = settings or Settings.load()
    settings.ensure_directories()
    now = datetime.utcnow()
    return StageContext(
        settings=settings,
        run_id=now.strftime("%Y%m%d%H%M%S"),
        timestamp=now,
        workspace=Path.cwd(),
    )
