"""Actionability-gated action engine."""

from .clock import Clock, MonotonicClock
from .config import EngineConfig, load_config
from .engine import ActionEngine, BoundLocator
from .hosts import PlaywrightHost, VirtualPage
from .outcome import (
    ActionError,
    ActionOutcome,
    ActionTimeout,
    Cancelled,
    ElementDetached,
    InvalidOptionValue,
    NotFound,
    UnsupportedForKind,
)

__all__ = [
    "ActionEngine",
    "ActionError",
    "ActionOutcome",
    "ActionTimeout",
    "BoundLocator",
    "Cancelled",
    "Clock",
    "ElementDetached",
    "EngineConfig",
    "InvalidOptionValue",
    "MonotonicClock",
    "NotFound",
    "PlaywrightHost",
    "UnsupportedForKind",
    "VirtualPage",
    "load_config",
]
