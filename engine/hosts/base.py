"""Contract between the engine and the page it drives."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol, Sequence

from automation.dsl.resolution import Box

WINDOW = -1

TEXT_INPUT_TYPES = frozenset(
    {
        "",
        "text",
        "email",
        "password",
        "search",
        "tel",
        "url",
        "number",
        "date",
        "datetime-local",
        "month",
        "time",
        "week",
    }
)


class HostDetachedError(Exception):
    """Raised by a host when an operation targets a node no longer in the document."""


@dataclass(slots=True)
class ElementInfo:
    """Everything the checker and executor read about one element in one call."""

    attached: bool
    tag: str = ""
    input_type: str = ""
    box: Optional[Box] = None
    visible: bool = False
    disabled: bool = False
    readonly: bool = False
    content_editable: bool = False
    checked: Optional[bool] = None
    value: Optional[str] = None
    multiple: bool = False

    @property
    def is_text_control(self) -> bool:
        if self.content_editable or self.tag == "textarea":
            return True
        return self.tag == "input" and self.input_type in TEXT_INPUT_TYPES

    @property
    def is_checkable(self) -> bool:
        return self.tag == "input" and self.input_type in {"checkbox", "radio"}

    @property
    def is_form_control(self) -> bool:
        return self.tag in {"input", "textarea", "select", "button"}

    @property
    def editable(self) -> bool:
        return not self.readonly and not self.disabled


@dataclass(slots=True)
class OptionInfo:
    index: int
    value: str
    label: str
    selected: bool = False
    disabled: bool = False


@dataclass(slots=True)
class ScrollPort:
    """One scrollable area, identified by its ancestor depth from the element.

    Depth 0 is the element itself and :data:`WINDOW` is the top-level viewport.
    """

    depth: int
    box: Box
    scroll_left: float = 0.0
    scroll_top: float = 0.0
    max_left: float = 0.0
    max_top: float = 0.0


@dataclass(slots=True)
class FocusChange:
    previous: Any = field(default=None, repr=False)
    native_events: bool = False


class PageHost(Protocol):
    async def query_all(self, selector: str, scope: Any = None) -> List[Any]: ...

    async def describe(self, handle: Any) -> ElementInfo: ...

    async def text_content(self, handle: Any) -> str: ...

    async def hit_test(self, handle: Any, x: float, y: float) -> bool: ...

    async def viewport(self) -> Box: ...

    async def dispatch_event(self, handle: Any, event_type: str, init: Dict[str, Any]) -> None: ...

    async def set_value(self, handle: Any, value: str) -> None: ...

    async def set_checked(self, handle: Any, checked: bool) -> None: ...

    async def options(self, handle: Any) -> List[OptionInfo]: ...

    async def select_indices(self, handle: Any, indices: Sequence[int]) -> None: ...

    async def has_focus(self, handle: Any) -> bool: ...

    async def focus(self, handle: Any) -> FocusChange: ...

    async def blur(self, handle: Any) -> bool: ...

    async def submit(self, handle: Any) -> bool: ...

    async def scroll_chain(self, handle: Any) -> List[ScrollPort]: ...

    async def scroll_port(self, handle: Any) -> ScrollPort: ...

    async def set_scroll(self, handle: Any, depth: int, left: float, top: float) -> None: ...
