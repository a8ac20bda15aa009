"""Sequential stage runner used by the teamhealth CLI."""
from __future__ import annotations

import logging
import time
from typing import Dict, Iterable, List, Sequence

from .registry import StageRegistry
from .stage import StageContext

logger = logging.getLogger(__name__)


class StageRunner:
    """Execute registered stages one after another on a shared context."""

    def __init__(self, registry: StageRegistry) -> None:
        self._registry = registry

    def available(self) -> List[str]:
        return self._registry.names()

    def run(self, stages: Sequence[str], context: StageContext) -> Dict[str, float]:
        """Run each stage in *stages* and return the duration of each in seconds."""

        durations: Dict[str, float] = {}
        for name in stages:
            definition = self._registry.get(name)
            stage_logger = logging.getLogger(definition.module)
            stage_logger.info(
                "Starting stage '%s' (run_id=%s, timestamp=%s)",
                definition.name,
                context.run_id,
                context.timestamp.isoformat(),
            )
            started = time.perf_counter()
            try:
                definition.callable(context)
            except Exception:
                stage_logger.exception("Stage '%s' failed", definition.name)
                raise
            durations[name] = time.perf_counter() - started
            stage_logger.info(
                "Completed stage '%s' in %.2fs", definition.name, durations[name]
            )
        return durations

    def resolve(self, requested: Iterable[str] | None) -> List[str]:
        """Validate *requested* stage names; ``None`` or empty means all stages."""

        requested = list(requested or [])
        if not requested:
            return self.available()
        missing = [name for name in requested if name not in self._registry]
        if missing:
            raise ValueError(f"Unknown stages requested: {', '.join(missing)}")
        # Keep first occurrence order
        result: List[str] = []
        for name in requested:
            if name not in result:
                result.append(name)
        return result
