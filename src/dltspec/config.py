from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()


def _env_flag(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_path(name: str) -> Path | None:
    raw = os.getenv(name)
    return Path(raw) if raw else None


@dataclass(slots=True)
class AppConfig:
    """
    Runtime configuration for the dlt spec generator.

    Users can override defaults through environment variables:
      - ``DLTSPEC_OUTPUT_DIR``: Root folder for ``research/`` and ``specs/`` documents.
      - ``DLTSPEC_DESTINATION``: dlt destination named in generated documents.
      - ``DLTSPEC_TEMPLATE_DIR``: Folder of ``*.md`` templates overlaying the built-ins.
      - ``DLTSPEC_STATE_DIR``: Where workflow state files are kept.
      - ``DLTSPEC_SEED_CHECKLISTS``: Seed default checklist items when a phase starts.
      - ``DLTSPEC_ENABLE_EVENT_LOG``: Append workflow events to ``events.jsonl``.
    """
    output_dir: Path = field(
        default_factory=lambda: Path(os.getenv("DLTSPEC_OUTPUT_DIR", "."))
    )
    destination: str = field(
        default_factory=lambda: os.getenv("DLTSPEC_DESTINATION", "duckdb")
    )
    template_dir: Path | None = field(default_factory=lambda: _env_path("DLTSPEC_TEMPLATE_DIR"))
    state_dir: Path = field(
        default_factory=lambda: Path(os.getenv("DLTSPEC_STATE_DIR", ".dltspec"))
    )
    seed_checklists: bool = field(default_factory=lambda: _env_flag("DLTSPEC_SEED_CHECKLISTS", True))
    enable_event_log: bool = field(default_factory=lambda: _env_flag("DLTSPEC_ENABLE_EVENT_LOG", False))

    def ensure_output_path(self, relative: Path) -> Path:
        """Return ``<output_dir>/<relative>`` with its parent folder created."""
        path = relative if relative.is_absolute() else self.output_dir / relative
        path.parent.mkdir(parents=True, exist_ok=True)
        return path
