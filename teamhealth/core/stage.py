"""Stage primitives for the teamhealth orchestration runtime."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Dict, Protocol

from teamhealth.settings import Settings


class StageCallable(Protocol):
    """Callable protocol for a pipeline stage."""

    def __call__(self, context: "StageContext") -> None:
        """Execute the stage logic."""


@dataclass(slots=True)
class StageContext:
    """Context object passed to every stage run.

    ``artifacts`` carries values produced by earlier stages (loaded team
    histories, the engine configuration, portfolio summaries) so later stages
    in the same run can pick them up without re-reading the inputs.
    """

    settings: Settings
    run_id: str
    timestamp: datetime
    workspace: Path
    artifacts: Dict[str, object] = field(default_factory=dict)


@dataclass(slots=True, frozen=True)
class StageDefinition:
    """Metadata about a registered stage."""

    name: str
    callable: StageCallable
    description: str
    module: str
    order: int = 100
