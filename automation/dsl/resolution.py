"""Data structures describing one resolution and readiness sample."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Iterable, List, Optional, Tuple

from .models import ElementRef, Position

ATTACHED = "attached"
VISIBLE = "visible"
STABLE = "stable"
ENABLED = "enabled"
EDITABLE = "editable"
RECEIVES_POINTER_EVENTS = "receives_pointer_events"

PREDICATES: Tuple[str, ...] = (
    ATTACHED,
    VISIBLE,
    STABLE,
    ENABLED,
    EDITABLE,
    RECEIVES_POINTER_EVENTS,
)

POINTER_PREDICATES: FrozenSet[str] = frozenset({ATTACHED, VISIBLE, STABLE, RECEIVES_POINTER_EVENTS, ENABLED})
EDIT_PREDICATES: FrozenSet[str] = frozenset({ATTACHED, VISIBLE, EDITABLE, ENABLED})
SELECT_PREDICATES: FrozenSet[str] = frozenset({ATTACHED, VISIBLE, ENABLED})
ATTACHED_ONLY: FrozenSet[str] = frozenset({ATTACHED})


@dataclass(frozen=True, slots=True)
class Box:
    """Rectangle in viewport (client) coordinates."""

    x: float
    y: float
    width: float
    height: float

    @property
    def right(self) -> float:
        return self.x + self.width

    @property
    def bottom(self) -> float:
        return self.y + self.height

    @property
    def is_empty(self) -> bool:
        return self.width <= 0 or self.height <= 0

    def center(self) -> Tuple[float, float]:
        return self.x + self.width / 2, self.y + self.height / 2

    def point(self, position: Optional[Position]) -> Tuple[float, float]:
        if position is None:
            return self.center()
        return self.x + position.x, self.y + position.y

    def contains(self, x: float, y: float) -> bool:
        return self.x <= x < self.right and self.y <= y < self.bottom

    def translate(self, dx: float, dy: float) -> "Box":
        return Box(self.x + dx, self.y + dy, self.width, self.height)

    @classmethod
    def from_mapping(cls, data: Optional[Dict[str, Any]]) -> Optional["Box"]:
        if not data:
            return None
        return cls(
            float(data["x"]),
            float(data["y"]),
            float(data["width"]),
            float(data["height"]),
        )


@dataclass(slots=True)
class ResolvedElement:
    """A live handle valid for a single polling iteration."""

    ref: ElementRef
    handle: Any = field(repr=False)
    position: int
    total: int


@dataclass(frozen=True, slots=True)
class ActionabilityState:
    """Readiness predicates sampled at one instant.

    ``None`` marks a predicate that was not evaluated for this action.
    """

    attached: bool = False
    visible: Optional[bool] = None
    stable: Optional[bool] = None
    enabled: Optional[bool] = None
    editable: Optional[bool] = None
    receives_pointer_events: Optional[bool] = None
    box: Optional[Box] = None
    in_viewport: Optional[bool] = None
    forced: bool = False

    def value(self, predicate: str) -> Optional[bool]:
        return getattr(self, predicate)

    def missing(self, required: Iterable[str]) -> List[str]:
        return [name for name in PREDICATES if name in required and self.value(name) is not True]

    def is_ready(self, required: Iterable[str]) -> bool:
        if self.forced:
            return self.attached
        return not self.missing(required)

    def as_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {name: self.value(name) for name in PREDICATES if self.value(name) is not None}
        if self.box is not None:
            data["box"] = {
                "x": self.box.x,
                "y": self.box.y,
                "width": self.box.width,
                "height": self.box.height,
            }
        if self.forced:
            data["forced"] = True
        return data

    def describe(self) -> str:
        parts = []
        for name in PREDICATES:
            value = self.value(name)
            if value is None:
                continue
            parts.append(f"{name}={'true' if value else 'false'}")
        return ", ".join(parts)
