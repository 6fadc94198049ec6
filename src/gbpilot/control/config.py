"""Controller configuration."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from gbpilot.errors import ConfigurationError

from .executor import DEFAULT_PRESS_DURATION_MS


def _env_bool(value: str) -> bool:
    return value.strip().lower() in {"1", "true", "yes", "on"}


@dataclass
class ControllerConfig:
    """Runtime configuration for the CycleController."""

    capture_interval_ms: int = 2000
    game_context: str = ""
    title: Optional[str] = None  # overrides the device-reported title
    history_capacity: int = 10
    require_feedback_profile: bool = True
    default_press_duration_ms: int = DEFAULT_PRESS_DURATION_MS
    trace_path: Optional[Path] = None
    notes_query: Optional[str] = None

    def __post_init__(self) -> None:
        if self.capture_interval_ms <= 0:
            raise ConfigurationError("capture_interval_ms must be positive.")
        if self.history_capacity <= 0:
            raise ConfigurationError("history_capacity must be positive.")

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "ControllerConfig":
        env = os.environ if environ is None else environ
        config = cls()
        if env.get("GBPILOT_INTERVAL_MS"):
            config.capture_interval_ms = int(env["GBPILOT_INTERVAL_MS"])
        config.game_context = env.get("GBPILOT_GAME_CONTEXT", config.game_context)
        config.title = env.get("GBPILOT_TITLE") or None
        if env.get("GBPILOT_HISTORY"):
            config.history_capacity = int(env["GBPILOT_HISTORY"])
        if env.get("GBPILOT_REQUIRE_PROFILE"):
            config.require_feedback_profile = _env_bool(env["GBPILOT_REQUIRE_PROFILE"])
        if env.get("GBPILOT_PRESS_MS"):
            config.default_press_duration_ms = int(env["GBPILOT_PRESS_MS"])
        if env.get("GBPILOT_TRACE"):
            config.trace_path = Path(env["GBPILOT_TRACE"])
        config.__post_init__()
        return config


__all__ = ["ControllerConfig"]
