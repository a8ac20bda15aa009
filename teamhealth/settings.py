"""Environment-driven configuration for the teamhealth runtime."""
from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path


@dataclass(slots=True)
class Settings:
    """Runtime settings loaded from environment variables."""

    data_dir: Path
    output_dir: Path
    snapshot_path: Path
    engine_config: Path
    workers: int
    log_level: str

    @classmethod
    def load(cls) -> "Settings":
        """Load settings from environment variables with sensible defaults."""

        data_dir = Path(os.getenv("TEAMHEALTH_DATA_DIR", "data"))
        output_dir = Path(os.getenv("TEAMHEALTH_OUTPUT_DIR", "artifacts"))
        snapshot_path = Path(
            os.getenv("TEAMHEALTH_SNAPSHOTS", str(data_dir / "snapshots.csv"))
        )
        engine_config = Path(
            os.getenv("TEAMHEALTH_ENGINE_CONFIG", "config/engine.yaml")
        )
        workers = int(os.getenv("TEAMHEALTH_WORKERS", "0"))
        log_level = os.getenv("LOG_LEVEL", "INFO")
        return cls(
            data_dir=data_dir,
            output_dir=output_dir,
            snapshot_path=snapshot_path,
            engine_config=engine_config,
            workers=workers,
            log_level=log_level,
        )

    def ensure_directories(self) -> None:
        """Create directories required for the runtime to operate."""

        for path in {self.data_dir, self.output_dir}:
            if not path.exists():
                path.mkdir(parents=True, exist_ok=True)
