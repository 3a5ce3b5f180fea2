"""Typed DSL models for engine actions."""

from __future__ import annotations

import re
from typing import Any, ClassVar, Dict, List, Literal, Optional, Union

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    field_validator,
    model_validator,
)

PointerButton = Literal["primary", "secondary"]

_BUTTON_ALIASES = {
    "left": "primary",
    "right": "secondary",
    "primary": "primary",
    "secondary": "secondary",
}

_PERCENT_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*%\s*$")
_START_KEYWORDS = frozenset({"start", "top", "left"})
_END_KEYWORDS = frozenset({"end", "bottom", "right"})


class ElementRef(BaseModel):
    """Re-resolvable element reference.

    Holds no live handle. Every use goes back to the page with the selector,
    applies the optional ``has``/``has_text`` filters and then picks
    ``index`` from the matches (negative values count from the end).
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    selector: str = Field(validation_alias=AliasChoices("selector", "css"))
    index: Optional[int] = None
    has: Optional[str] = None
    has_text: Optional[str] = Field(default=None, validation_alias=AliasChoices("has_text", "hasText"))

    @model_validator(mode="before")
    @classmethod
    def _coerce_from_string(cls, value: Any) -> Any:
        if isinstance(value, str):
            return {"selector": value}
        return value

    @field_validator("selector")
    @classmethod
    def _validate_selector(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("selector must not be empty")
        return value

    def nth(self, index: int) -> "ElementRef":
        return self.model_copy(update={"index": index})

    def first(self) -> "ElementRef":
        return self.nth(0)

    def last(self) -> "ElementRef":
        return self.nth(-1)

    def filter(self, *, has: Optional[str] = None, has_text: Optional[str] = None) -> "ElementRef":
        update: Dict[str, Any] = {}
        if has is not None:
            update["has"] = has
        if has_text is not None:
            update["has_text"] = has_text
        return self.model_copy(update=update)

    def describe(self) -> str:
        text = self.selector
        if self.has is not None:
            text += f" >> has={self.has}"
        if self.has_text is not None:
            text += f" >> has_text={self.has_text!r}"
        if self.index is not None:
            text += f" >> nth={self.index}"
        return text

    def __str__(self) -> str:
        return self.describe()


TargetLike = Union[ElementRef, str]


class Position(BaseModel):
    """Interaction point relative to the element's top-left corner."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    x: float
    y: float

    @model_validator(mode="before")
    @classmethod
    def _coerce_pair(cls, value: Any) -> Any:
        if isinstance(value, (tuple, list)) and len(value) == 2:
            return {"x": value[0], "y": value[1]}
        return value


ScrollCoordinate = Union[float, str]


def resolve_scroll_coordinate(value: Optional[ScrollCoordinate], current: float, maximum: float) -> float:
    """Turn ``12``, ``"75%"``, ``"start"`` or ``"end"`` into an absolute offset."""

    if value is None:
        return current
    if isinstance(value, (int, float)):
        return float(value)
    keyword = value.strip().lower()
    if keyword in _START_KEYWORDS:
        return 0.0
    if keyword in _END_KEYWORDS:
        return maximum
    match = _PERCENT_RE.match(keyword)
    if match:
        return maximum * float(match.group(1)) / 100.0
    return float(keyword)


class ActionBase(BaseModel):
    """Base class for all engine actions."""

    model_config = ConfigDict(populate_by_name=True, extra="forbid", frozen=True)

    __action_name__: ClassVar[str]
    __version__: ClassVar[int] = 1

    target: ElementRef = Field(validation_alias=AliasChoices("target", "selector"))
    force: bool = False
    timeout_ms: Optional[int] = Field(
        default=None,
        ge=0,
        validation_alias=AliasChoices("timeout_ms", "timeoutMs", "timeout"),
    )

    @property
    def kind(self) -> str:
        return self.__action_name__

    def payload(self) -> Dict[str, Any]:
        data = self.model_dump(exclude_none=True)
        data.setdefault("type", self.__action_name__)
        data["target"] = self.target.describe()
        return data


class _PointerMixin(BaseModel):
    position: Optional[Position] = None
    button: PointerButton = "primary"
    delay_ms: Optional[int] = Field(default=None, ge=0, validation_alias=AliasChoices("delay_ms", "delayMs", "delay"))

    @field_validator("button", mode="before")
    @classmethod
    def _normalize_button(cls, value: Any) -> Any:
        if isinstance(value, str):
            normalized = _BUTTON_ALIASES.get(value.strip().lower())
            if normalized is None:
                raise ValueError(f"unsupported pointer button '{value}'")
            return normalized
        return value


class ClickAction(_PointerMixin, ActionBase):
    __action_name__ = "click"

    type: Literal["click"] = Field(default="click", validation_alias=AliasChoices("type", "action"))


class DblClickAction(_PointerMixin, ActionBase):
    __action_name__ = "dblclick"

    type: Literal["dblclick"] = Field(default="dblclick", validation_alias=AliasChoices("type", "action"))


class RightClickAction(_PointerMixin, ActionBase):
    __action_name__ = "rightclick"

    type: Literal["rightclick"] = Field(default="rightclick", validation_alias=AliasChoices("type", "action"))
    button: PointerButton = "secondary"


class FillAction(ActionBase):
    __action_name__ = "fill"

    type: Literal["fill"] = Field(default="fill", validation_alias=AliasChoices("type", "action"))
    value: str = Field(validation_alias=AliasChoices("value", "text"))
    delay_ms: Optional[int] = Field(default=None, ge=0, validation_alias=AliasChoices("delay_ms", "delayMs", "delay"))


class ClearAction(ActionBase):
    __action_name__ = "clear"

    type: Literal["clear"] = Field(default="clear", validation_alias=AliasChoices("type", "action"))


class PressAction(ActionBase):
    __action_name__ = "press"

    type: Literal["press"] = Field(default="press", validation_alias=AliasChoices("type", "action"))
    key: str = Field(validation_alias=AliasChoices("key", "keys"))
    delay_ms: Optional[int] = Field(default=None, ge=0, validation_alias=AliasChoices("delay_ms", "delayMs", "delay"))

    @field_validator("key")
    @classmethod
    def _ensure_key(cls, value: str) -> str:
        if not value:
            raise ValueError("key must not be empty")
        return value


class CheckAction(_PointerMixin, ActionBase):
    __action_name__ = "check"

    type: Literal["check"] = Field(default="check", validation_alias=AliasChoices("type", "action"))


class UncheckAction(_PointerMixin, ActionBase):
    __action_name__ = "uncheck"

    type: Literal["uncheck"] = Field(default="uncheck", validation_alias=AliasChoices("type", "action"))


class SelectOptionAction(ActionBase):
    __action_name__ = "select_option"

    type: Literal["select_option"] = Field(
        default="select_option",
        validation_alias=AliasChoices("type", "action"),
    )
    values: List[str] = Field(validation_alias=AliasChoices("values", "value", "value_or_label"))

    @field_validator("values", mode="before")
    @classmethod
    def _coerce_values(cls, value: Any) -> Any:
        if isinstance(value, str):
            return [value]
        return value


class FocusAction(ActionBase):
    __action_name__ = "focus"

    type: Literal["focus"] = Field(default="focus", validation_alias=AliasChoices("type", "action"))


class BlurAction(ActionBase):
    __action_name__ = "blur"

    type: Literal["blur"] = Field(default="blur", validation_alias=AliasChoices("type", "action"))


class ScrollIntoViewAction(ActionBase):
    __action_name__ = "scroll_into_view"

    type: Literal["scroll_into_view"] = Field(
        default="scroll_into_view",
        validation_alias=AliasChoices("type", "action"),
    )


class TriggerEventAction(ActionBase):
    __action_name__ = "trigger_event"

    type: Literal["trigger_event"] = Field(
        default="trigger_event",
        validation_alias=AliasChoices("type", "action"),
    )
    event: str
    init: Dict[str, Any] = Field(default_factory=dict)
    value: Optional[str] = None

    @field_validator("value", mode="before")
    @classmethod
    def _stringify_value(cls, value: Any) -> Any:
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return value


class ScrollToAction(ActionBase):
    """Scroll an element's own scroll port, or the window when ``target`` is omitted."""

    __action_name__ = "scroll_to"

    type: Literal["scroll_to"] = Field(default="scroll_to", validation_alias=AliasChoices("type", "action"))
    target: Optional[ElementRef] = Field(default=None, validation_alias=AliasChoices("target", "selector"))
    x: Optional[ScrollCoordinate] = Field(default=None, validation_alias=AliasChoices("x", "left"))
    y: Optional[ScrollCoordinate] = Field(default=None, validation_alias=AliasChoices("y", "top"))

    @field_validator("x", "y")
    @classmethod
    def _validate_coordinate(cls, value: Optional[ScrollCoordinate]) -> Optional[ScrollCoordinate]:
        if value is None or isinstance(value, (int, float)):
            return value
        keyword = value.strip().lower()
        if keyword in _START_KEYWORDS or keyword in _END_KEYWORDS or _PERCENT_RE.match(keyword):
            return keyword
        try:
            return float(keyword)
        except ValueError:
            raise ValueError(
                f"scroll coordinate {value!r} must be a number, a percentage, 'start' or 'end'"
            ) from None

    def payload(self) -> Dict[str, Any]:
        data = self.model_dump(exclude_none=True)
        data.setdefault("type", self.__action_name__)
        data["target"] = self.target.describe() if self.target is not None else "window"
        return data


class SubmitAction(ActionBase):
    __action_name__ = "submit"

    type: Literal["submit"] = Field(default="submit", validation_alias=AliasChoices("type", "action"))


ActionTypes = Union[
    ClickAction,
    DblClickAction,
    RightClickAction,
    FillAction,
    ClearAction,
    PressAction,
    CheckAction,
    UncheckAction,
    SelectOptionAction,
    FocusAction,
    BlurAction,
    ScrollIntoViewAction,
    TriggerEventAction,
    ScrollToAction,
    SubmitAction,
]
