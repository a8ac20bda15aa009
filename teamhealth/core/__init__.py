"""Core orchestration utilities for the teamhealth runtime."""
from __future__ import annotations

from .registry import StageRegistry, register_stage, registry
from .runner import StageRunner
from .stage import StageContext, StageDefinition
from .utils import engine_version

__all__ = [
    "StageRegistry",
    "StageRunner",
    "StageContext",
    "StageDefinition",
    "engine_version",
    "register_stage",
    "registry",
]
