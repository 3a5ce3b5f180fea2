"""Typed action registry built on top of pydantic models."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, FrozenSet, Iterator, List, Optional, Type, TypeVar

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, model_validator

from .models import (
    ActionBase,
    BlurAction,
    CheckAction,
    ClearAction,
    ClickAction,
    DblClickAction,
    FillAction,
    FocusAction,
    PressAction,
    RightClickAction,
    ScrollIntoViewAction,
    ScrollToAction,
    SelectOptionAction,
    SubmitAction,
    TriggerEventAction,
    UncheckAction,
)
from .resolution import (
    ATTACHED_ONLY,
    EDIT_PREDICATES,
    POINTER_PREDICATES,
    RECEIVES_POINTER_EVENTS,
    SELECT_PREDICATES,
)


@dataclass(slots=True)
class ActionSpec:
    name: str
    model: Type[ActionBase]
    requires: FrozenSet[str]
    version: int = 1
    description: str | None = None

    @property
    def uses_pointer(self) -> bool:
        return RECEIVES_POINTER_EVENTS in self.requires

    def to_metadata(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "version": self.version,
            "requires": sorted(self.requires),
            "description": self.description or "",
        }


A = TypeVar("A", bound=ActionBase)


class ActionRegistry:
    """Central registry of action kinds and the readiness each one demands."""

    def __init__(self) -> None:
        self._actions: Dict[str, ActionSpec] = {}
        self._adapter: Optional[TypeAdapter[Any]] = None

    def register(
        self,
        model: Type[A],
        *,
        requires: FrozenSet[str],
        name: Optional[str] = None,
        version: int = 1,
        description: str | None = None,
    ) -> Type[A]:
        if not issubclass(model, ActionBase):
            raise TypeError("model must subclass ActionBase")
        action_name = name or getattr(model, "__action_name__", None) or model.__name__
        model.__action_name__ = action_name
        model.__version__ = version
        self._actions[action_name] = ActionSpec(
            name=action_name,
            model=model,
            requires=frozenset(requires),
            version=version,
            description=description,
        )
        self._adapter = None
        return model

    def get(self, name: str) -> ActionSpec:
        try:
            return self._actions[name]
        except KeyError as exc:
            raise KeyError(f"Unknown action '{name}'") from exc

    def spec_for(self, action: ActionBase) -> ActionSpec:
        return self.get(action.kind)

    def __contains__(self, name: str) -> bool:  # pragma: no cover - trivial
        return name in self._actions

    def __iter__(self) -> Iterator[ActionSpec]:  # pragma: no cover - trivial
        return iter(self._actions.values())

    def _ensure_adapter(self) -> TypeAdapter[Any]:
        if self._adapter is None:
            if not self._actions:
                raise RuntimeError("No actions registered")
            action_types = tuple(spec.model for spec in self._actions.values())
            union = action_types[0]
            for model in action_types[1:]:
                union = union | model  # type: ignore[operator]
            self._adapter = TypeAdapter(union)
        return self._adapter

    def parse_action(self, data: Any) -> ActionBase:
        if isinstance(data, ActionBase):
            return data
        adapter = self._ensure_adapter()
        return adapter.validate_python(data)

    def schema(self) -> Dict[str, Any]:
        return {name: spec.to_metadata() for name, spec in self._actions.items()}


registry = ActionRegistry()

registry.register(ClickAction, requires=POINTER_PREDICATES, description="Primary or secondary click")
registry.register(DblClickAction, requires=POINTER_PREDICATES, description="Two click sequences and dblclick")
registry.register(RightClickAction, requires=POINTER_PREDICATES, description="Secondary button click")
registry.register(CheckAction, requires=POINTER_PREDICATES, description="Idempotently check a checkbox or radio")
registry.register(UncheckAction, requires=POINTER_PREDICATES, description="Idempotently uncheck a checkbox")
registry.register(FillAction, requires=EDIT_PREDICATES, description="Replace the value of a text control")
registry.register(ClearAction, requires=EDIT_PREDICATES, description="Delete the value of a text control")
registry.register(SelectOptionAction, requires=SELECT_PREDICATES, description="Set the selected options")
registry.register(PressAction, requires=ATTACHED_ONLY, description="Press a key or key combination")
registry.register(FocusAction, requires=ATTACHED_ONLY)
registry.register(BlurAction, requires=ATTACHED_ONLY)
registry.register(ScrollIntoViewAction, requires=ATTACHED_ONLY, description="Minimal scroll until fully visible")
registry.register(TriggerEventAction, requires=ATTACHED_ONLY, description="Dispatch an arbitrary event")
registry.register(ScrollToAction, requires=ATTACHED_ONLY, description="Scroll window or element to offsets")
registry.register(SubmitAction, requires=ATTACHED_ONLY, description="Submit a form element")


class RunPlan(BaseModel):
    """Ordered actions, each validated through the registry."""

    model_config = ConfigDict(extra="forbid")

    actions: List[ActionBase] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def _parse_actions(cls, value: Any) -> Any:
        if isinstance(value, list):
            return {"actions": [registry.parse_action(item) for item in value]}
        if isinstance(value, dict) and isinstance(value.get("actions"), list):
            return {**value, "actions": [registry.parse_action(item) for item in value["actions"]]}
        return value


class RunRequest(BaseModel):
    """A named plan with per-run engine overrides and caller metadata."""

    model_config = ConfigDict(extra="forbid")

    run_id: str
    plan: RunPlan
    config: Dict[str, Any] = Field(default_factory=dict)
    metadata: Dict[str, Any] = Field(default_factory=dict)

    def to_payload(self) -> Dict[str, Any]:
        return {
            "run_id": self.run_id,
            "plan": [action.payload() for action in self.plan.actions],
            "config": dict(self.config),
            "metadata": dict(self.metadata),
        }
