"""Seeded synthetic data for demos and tests."""
from __future__ import annotations

from .generator import generate_portfolio, generate_team, write_snapshot_table
from .random_source import RandomSource, SeededRandomSource

__all__ = [
    "RandomSource",
    "SeededRandomSource",
    "generate_portfolio",
    "generate_team",
    "write_snapshot_table",
]
