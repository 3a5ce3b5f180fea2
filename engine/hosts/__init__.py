"""Page hosts the engine can drive."""

from .base import (
    WINDOW,
    ElementInfo,
    FocusChange,
    HostDetachedError,
    OptionInfo,
    PageHost,
    ScrollPort,
)
from .playwright_host import PlaywrightHost
from .virtual import RecordedEvent, VirtualEvent, VirtualPage

__all__ = [
    "WINDOW",
    "ElementInfo",
    "FocusChange",
    "HostDetachedError",
    "OptionInfo",
    "PageHost",
    "PlaywrightHost",
    "RecordedEvent",
    "ScrollPort",
    "VirtualEvent",
    "VirtualPage",
]
