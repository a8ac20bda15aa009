"""Small helpers shared by stages."""
from __future__ import annotations

from importlib import metadata

__all__ = ["engine_version"]


def engine_version() -> str:
    """Installed teamhealth version, stamped on every report."""

    try:
        return metadata.version("teamhealth")
    except metadata.PackageNotFoundError:  # pragma: no cover - source checkout
        return "0.0.0"
