"""Bounded polling until an element is actionable."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, FrozenSet, Optional

from automation.dsl.models import ElementRef, Position
from automation.dsl.resolution import ActionabilityState, Box, ResolvedElement

from .actionability import ActionabilityChecker
from .clock import Clock
from .locator import Locator
from .outcome import ActionTimeout, Cancelled, NotFound

log = logging.getLogger(__name__)

OutOfViewHandler = Callable[[ResolvedElement], Awaitable[None]]


@dataclass(slots=True)
class Readiness:
    element: ResolvedElement
    state: ActionabilityState
    polls: int


class RetryScheduler:
    """Polls the checker at a fixed interval until ready, cancelled or timed out."""

    def __init__(
        self,
        locator: Locator,
        checker: ActionabilityChecker,
        clock: Clock,
        *,
        poll_interval_ms: int,
    ) -> None:
        self.locator = locator
        self.checker = checker
        self.clock = clock
        self.poll_interval = poll_interval_ms / 1000

    async def wait_until_ready(
        self,
        ref: ElementRef,
        required: FrozenSet[str],
        *,
        timeout_ms: int,
        started_at: float,
        force: bool = False,
        position: Optional[Position] = None,
        cancel_event: Optional[asyncio.Event] = None,
        on_out_of_view: Optional[OutOfViewHandler] = None,
    ) -> Readiness:
        deadline = started_at + timeout_ms / 1000
        previous_box: Optional[Box] = None
        last_state: Optional[ActionabilityState] = None
        seen_attached = False
        polls = 0

        while True:
            if cancel_event is not None and cancel_event.is_set():
                raise Cancelled(
                    f"Action on {ref} was cancelled",
                    state=last_state,
                    elapsed_ms=self._elapsed_ms(started_at),
                )
            polls += 1
            resolved = await self.locator.resolve(ref)
            if resolved:
                element = resolved[0]
                state = await self.checker.check(
                    element,
                    required,
                    previous_box=previous_box,
                    position=position,
                    force=force,
                )
                last_state = state
                if state.attached:
                    seen_attached = True
                    previous_box = state.box
                else:
                    previous_box = None
                if state.is_ready(required):
                    log.debug("%s ready after %d poll(s)", ref, polls)
                    return Readiness(element=element, state=state, polls=polls)
                if on_out_of_view is not None and state.visible and state.in_viewport is False:
                    log.debug("Scrolling %s into view before hit testing", ref)
                    await on_out_of_view(element)
                    previous_box = None
            else:
                previous_box = None

            now = self.clock.now()
            if now >= deadline:
                elapsed_ms = (now - started_at) * 1000
                if not seen_attached:
                    raise NotFound(
                        f"No element matched {ref} within {timeout_ms}ms",
                        state=last_state,
                        elapsed_ms=elapsed_ms,
                        details={"polls": polls},
                    )
                missing = last_state.missing(required) if last_state is not None else []
                raise ActionTimeout(
                    f"Timeout {timeout_ms}ms exceeded waiting for {ref} (not {', '.join(missing) or 'attached'})",
                    state=last_state,
                    elapsed_ms=elapsed_ms,
                    details={"polls": polls, "missing": missing},
                )
            await self.clock.sleep(max(0.0, min(self.poll_interval, deadline - now)))

    def _elapsed_ms(self, started_at: float) -> float:
        return (self.clock.now() - started_at) * 1000
