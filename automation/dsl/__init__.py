"""Typed action DSL shared by the engine and plan payloads."""

from . import models
from .models import (
    ActionBase,
    BlurAction,
    CheckAction,
    ClearAction,
    ClickAction,
    DblClickAction,
    ElementRef,
    FillAction,
    FocusAction,
    Position,
    PressAction,
    RightClickAction,
    ScrollIntoViewAction,
    ScrollToAction,
    SelectOptionAction,
    SubmitAction,
    TargetLike,
    TriggerEventAction,
    UncheckAction,
)
from .registry import ActionRegistry, ActionSpec, RunPlan, RunRequest, registry
from .resolution import ActionabilityState, Box, ResolvedElement

__all__ = [
    "models",
    "registry",
    "ActionRegistry",
    "ActionSpec",
    "RunPlan",
    "RunRequest",
    "ActionBase",
    "ActionabilityState",
    "Box",
    "BlurAction",
    "CheckAction",
    "ClearAction",
    "ClickAction",
    "DblClickAction",
    "ElementRef",
    "FillAction",
    "FocusAction",
    "Position",
    "PressAction",
    "ResolvedElement",
    "RightClickAction",
    "ScrollIntoViewAction",
    "ScrollToAction",
    "SelectOptionAction",
    "SubmitAction",
    "TargetLike",
    "TriggerEventAction",
    "UncheckAction",
]
