"""Engine configuration from .party-review/config.yaml."""

from __future__ import annotations

from datetime import timedelta
from pathlib import Path

import yaml
from pydantic import BaseModel, Field

from party_review.session_store import DEFAULT_IDLE_TIMEOUT, DEFAULT_MAX_SESSIONS


class EngineConfig(BaseModel):
    project_dir: Path = Field(default_factory=Path.cwd)
    max_sessions: int = Field(default=DEFAULT_MAX_SESSIONS, ge=1)
    session_ttl_minutes: float = Field(default=DEFAULT_IDLE_TIMEOUT.total_seconds() / 60, gt=0)

    @property
    def idle_timeout(self) -> timedelta:
        return timedelta(minutes=self.session_ttl_minutes)


def load_config(project_dir: str | Path) -> EngineConfig:
    """Load config from .party-review/config.yaml, falling back to defaults."""
    root = Path(project_dir)
    config_file = root / ".party-review" / "config.yaml"

    if not config_file.exists():
        return EngineConfig(project_dir=root)

    raw = yaml.safe_load(config_file.read_text(encoding="utf-8"))
    if not raw:
        return EngineConfig(project_dir=root)

    discussion = raw.get("discussion") or {}

    return EngineConfig(
        project_dir=root,
        max_sessions=discussion.get("max_sessions", DEFAULT_MAX_SESSIONS),
        session_ttl_minutes=discussion.get("session_ttl_minutes", DEFAULT_IDLE_TIMEOUT.total_seconds() / 60),
    )
