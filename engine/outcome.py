"""Terminal results and the typed failure taxonomy."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from automation.dsl.resolution import ActionabilityState


class ActionError(Exception):
    """Base class for every failure an action can end with."""

    code = "ACTION_ERROR"

    def __init__(
        self,
        message: str,
        *,
        state: Optional[ActionabilityState] = None,
        elapsed_ms: Optional[float] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.state = state
        self.elapsed_ms = elapsed_ms
        self.details = details or {}

    def diagnostic(self) -> str:
        parts = []
        if self.state is not None:
            described = self.state.describe()
            if described:
                parts.append(described)
        if self.elapsed_ms is not None:
            parts.append(f"after {self.elapsed_ms:.0f}ms")
        return " ".join(parts)

    def __str__(self) -> str:
        diagnostic = self.diagnostic()
        if diagnostic:
            return f"{self.message} ({diagnostic})"
        return self.message


class NotFound(ActionError):
    code = "NOT_FOUND"


class ActionTimeout(ActionError):
    code = "TIMEOUT"


class ElementDetached(ActionError):
    code = "DETACHED"


class InvalidOptionValue(ActionError):
    code = "INVALID_OPTION"


class UnsupportedForKind(ActionError):
    code = "UNSUPPORTED"


class Cancelled(ActionError):
    code = "CANCELLED"


@dataclass(slots=True)
class ActionOutcome:
    ok: bool
    kind: str
    target: str
    elapsed_ms: float
    state: Optional[ActionabilityState] = None
    polls: int = 0
    restarts: int = 0
    details: Dict[str, Any] = field(default_factory=dict)
    error: Optional[ActionError] = None

    @property
    def code(self) -> Optional[str]:
        return self.error.code if self.error is not None else None

    def raise_for_error(self) -> "ActionOutcome":
        if self.error is not None:
            raise self.error
        return self

    def as_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "ok": self.ok,
            "kind": self.kind,
            "target": self.target,
            "elapsed_ms": round(self.elapsed_ms, 3),
            "polls": self.polls,
            "details": self.details,
        }
        if self.restarts:
            payload["restarts"] = self.restarts
        if self.state is not None:
            payload["state"] = self.state.as_dict()
        if self.error is not None:
            payload["error"] = {"code": self.error.code, "message": str(self.error)}
        return payload
