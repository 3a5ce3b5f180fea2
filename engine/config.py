"""Configuration loader for the action engine."""

from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict


DEFAULTS: Dict[str, Any] = {
    "action_timeout_ms": 5000,
    "poll_interval_ms": 20,
    "detach_restarts": 1,
    "log_root": "runs",
    "log_events": False,
}

ENV_PREFIX = "ENGINE_"


def _as_bool(value: Any) -> bool:
    return str(value).strip().lower() in {"true", "1", "yes", "on"}


@dataclass(slots=True)
class EngineConfig:
    action_timeout_ms: int = DEFAULTS["action_timeout_ms"]
    poll_interval_ms: int = DEFAULTS["poll_interval_ms"]
    detach_restarts: int = DEFAULTS["detach_restarts"]
    log_root: Path = field(default_factory=lambda: Path(DEFAULTS["log_root"]))
    log_events: bool = DEFAULTS["log_events"]

    def __post_init__(self) -> None:
        if self.action_timeout_ms < 0:
            raise ValueError("action_timeout_ms must be >= 0")
        if self.poll_interval_ms <= 0:
            raise ValueError("poll_interval_ms must be > 0")
        if self.detach_restarts < 0:
            raise ValueError("detach_restarts must be >= 0")

    @classmethod
    def from_mapping(cls, mapping: Dict[str, Any]) -> "EngineConfig":
        data = dict(DEFAULTS)
        data.update({key: value for key, value in mapping.items() if key in DEFAULTS})
        return cls(
            action_timeout_ms=int(data["action_timeout_ms"]),
            poll_interval_ms=int(data["poll_interval_ms"]),
            detach_restarts=int(data["detach_restarts"]),
            log_root=Path(data["log_root"]),
            log_events=_as_bool(data["log_events"]),
        )


def _engine_table(path: Path) -> Dict[str, Any]:
    if not path.is_file():
        return {}
    with path.open("rb") as fh:
        document = tomllib.load(fh)
    table = document.get("engine", {})
    if not isinstance(table, dict):
        raise ValueError(f"[engine] in {path} must be a table")
    return table


def _environment_overrides() -> Dict[str, str]:
    return {
        key[len(ENV_PREFIX):].lower(): value
        for key, value in os.environ.items()
        if key.startswith(ENV_PREFIX)
    }


def load_config(config_path: Path | None = None) -> EngineConfig:
    """Defaults, overlaid by the ``[engine]`` table of ``config.toml``, overlaid by ``ENGINE_*`` variables."""

    merged = _engine_table(config_path or Path("config.toml"))
    merged.update(_environment_overrides())
    return EngineConfig.from_mapping(merged)
