"""Public facade composing locator, scheduler and executor per action."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Awaitable, Dict, List, Optional, Set, Union

from automation.dsl.models import ActionBase, ElementRef, TargetLike
from automation.dsl.registry import ActionRegistry, RunRequest, registry as default_registry
from automation.dsl.resolution import ResolvedElement

from .actionability import ActionabilityChecker
from .clock import Clock, MonotonicClock
from .config import EngineConfig, load_config
from .executor import ActionExecutor
from .hosts.base import PageHost
from .locator import Locator
from .outcome import ActionError, ActionOutcome, ElementDetached, NotFound, UnsupportedForKind
from .scheduler import RetryScheduler
from .structured_logging import StructuredLogger, prepare_log_paths

log = logging.getLogger(__name__)

CancelKey = Optional[ElementRef]


def _as_ref(target: TargetLike) -> ElementRef:
    if isinstance(target, ElementRef):
        return target
    return ElementRef.model_validate(target)


class ActionEngine:
    """Runs actions against one page host.

    Every action goes through the same pipeline: wait until the target
    satisfies the predicates its kind requires, then execute the primitive.
    Actions on the same :class:`ElementRef` are serialised; actions on
    different refs interleave freely.
    """

    def __init__(
        self,
        host: PageHost,
        *,
        config: Optional[EngineConfig] = None,
        clock: Optional[Clock] = None,
        logger: Optional[StructuredLogger] = None,
        registry: Optional[ActionRegistry] = None,
    ) -> None:
        self.host = host
        self.config = config or EngineConfig()
        self.clock = clock or MonotonicClock()
        self.logger = logger
        self.registry = registry or default_registry
        self.resolver = Locator(host)
        self.checker = ActionabilityChecker(host)
        self.scheduler = RetryScheduler(
            self.resolver,
            self.checker,
            self.clock,
            poll_interval_ms=self.config.poll_interval_ms,
        )
        self.executor = ActionExecutor(host, self.clock)
        self._locks: Dict[ElementRef, asyncio.Lock] = {}
        self._lock_users: Dict[ElementRef, int] = {}
        self._cancel_events: Dict[CancelKey, Set[asyncio.Event]] = {}

    @classmethod
    def from_config(
        cls,
        host: PageHost,
        config: Optional[EngineConfig] = None,
        *,
        run_id: Optional[str] = None,
        clock: Optional[Clock] = None,
    ) -> "ActionEngine":
        config = config or load_config()
        logger = None
        if config.log_events:
            run_id = run_id or f"session-{int(time.time())}"
            logger = StructuredLogger(run_id, prepare_log_paths(run_id, config.log_root))
        return cls(host, config=config, clock=clock, logger=logger)

    def close(self) -> None:
        if self.logger is not None:
            self.logger.close()

    # ------------------------------------------------------------------
    # Core pipeline
    # ------------------------------------------------------------------
    async def perform(self, action: Union[ActionBase, Dict[str, Any]]) -> ActionOutcome:
        """Run one action and return its terminal outcome; never raises ``ActionError``."""

        return await self._perform(self.registry.parse_action(action), self.logger, None)

    async def _perform(
        self,
        action: ActionBase,
        logger: Optional[StructuredLogger],
        default_timeout_ms: Optional[int],
    ) -> ActionOutcome:
        started = self.clock.now()
        ref: CancelKey = action.target
        cancel_event = asyncio.Event()
        self._cancel_events.setdefault(ref, set()).add(cancel_event)
        tracker = {"polls": 0, "restarts": 0, "state": None}
        try:
            if ref is None:
                details = await self._atomic(self.executor.execute(action, None))
            else:
                async with self._lock_for(ref):
                    details = await self._wait_and_execute(
                        action, ref, started, cancel_event, tracker, default_timeout_ms
                    )
        except ActionError as exc:
            elapsed_ms = (self.clock.now() - started) * 1000
            if exc.elapsed_ms is None:
                exc.elapsed_ms = elapsed_ms
            if exc.state is None:
                exc.state = tracker["state"]
            outcome = ActionOutcome(
                ok=False,
                kind=action.kind,
                target=self._describe_target(action),
                elapsed_ms=elapsed_ms,
                state=exc.state,
                polls=tracker["polls"] + int(exc.details.get("polls", 0)),
                restarts=tracker["restarts"],
                details=dict(exc.details),
                error=exc,
            )
            log.warning("%s on %s failed: %s", action.kind, outcome.target, exc)
        else:
            outcome = ActionOutcome(
                ok=True,
                kind=action.kind,
                target=self._describe_target(action),
                elapsed_ms=(self.clock.now() - started) * 1000,
                state=tracker["state"],
                polls=tracker["polls"],
                restarts=tracker["restarts"],
                details=details,
            )
            log.info("%s on %s done in %.0fms", action.kind, outcome.target, outcome.elapsed_ms)
        finally:
            if ref is not None:
                self._release_lock(ref)
            waiters = self._cancel_events.get(ref)
            if waiters is not None:
                waiters.discard(cancel_event)
                if not waiters:
                    self._cancel_events.pop(ref, None)

        if logger is not None:
            self._log_outcome(logger, action, outcome)
        return outcome

    def _lock_for(self, ref: ElementRef) -> asyncio.Lock:
        self._lock_users[ref] = self._lock_users.get(ref, 0) + 1
        return self._locks.setdefault(ref, asyncio.Lock())

    def _release_lock(self, ref: ElementRef) -> None:
        users = self._lock_users.get(ref, 0) - 1
        if users > 0:
            self._lock_users[ref] = users
            return
        self._lock_users.pop(ref, None)
        self._locks.pop(ref, None)

    async def _wait_and_execute(
        self,
        action: ActionBase,
        ref: ElementRef,
        started: float,
        cancel_event: asyncio.Event,
        tracker: Dict[str, Any],
        default_timeout_ms: Optional[int],
    ) -> Dict[str, Any]:
        spec = self.registry.spec_for(action)
        timeout_ms = action.timeout_ms
        if timeout_ms is None:
            timeout_ms = default_timeout_ms if default_timeout_ms is not None else self.config.action_timeout_ms
        position = getattr(action, "position", None)
        wait_started = started
        while True:
            readiness = await self.scheduler.wait_until_ready(
                ref,
                spec.requires,
                timeout_ms=timeout_ms,
                started_at=wait_started,
                force=action.force,
                position=position,
                cancel_event=cancel_event,
                on_out_of_view=self._scroll_into_view if spec.uses_pointer else None,
            )
            tracker["polls"] += readiness.polls
            tracker["state"] = readiness.state
            try:
                return await self._atomic(self.executor.execute(action, readiness.element))
            except ElementDetached:
                if tracker["restarts"] >= self.config.detach_restarts:
                    raise
                tracker["restarts"] += 1
                log.warning("%s detached before %s; restarting readiness wait", ref, action.kind)
                wait_started = self.clock.now()

    async def _scroll_into_view(self, element: ResolvedElement) -> None:
        await self.executor.scroll_into_view(element.handle)

    async def _atomic(self, operation: Awaitable[Dict[str, Any]]) -> Dict[str, Any]:
        """Run an event sequence to completion even if the caller is cancelled."""

        task = asyncio.ensure_future(operation)
        try:
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            if not task.done():
                await asyncio.wait({task})
            if not task.cancelled() and task.exception() is not None:
                log.warning("Event sequence failed after cancellation: %s", task.exception())
            raise

    @staticmethod
    def _describe_target(action: ActionBase) -> str:
        return action.target.describe() if action.target is not None else "window"

    def _log_outcome(self, logger: StructuredLogger, action: ActionBase, outcome: ActionOutcome) -> None:
        error = outcome.error
        step = logger.log_event(
            action=action.payload(),
            result=outcome.details if outcome.ok else None,
            error=error.code if error is not None else None,
            diagnostic=error.diagnostic() if error is not None else None,
            polls=outcome.polls,
            restarts=outcome.restarts,
            metadata={"elapsed_ms": round(outcome.elapsed_ms, 3)},
        )
        outcome.details.setdefault("step", step)

    # ------------------------------------------------------------------
    # Cancellation and batches
    # ------------------------------------------------------------------
    def cancel(self, target: Optional[TargetLike] = None) -> int:
        """Stop polling of in-flight actions, all of them or those on ``target``.

        Returns the number of actions signalled. Each one ends with a
        ``Cancelled`` outcome at its next poll; an event sequence already
        being dispatched still completes.
        """

        if target is None:
            events = [event for waiters in self._cancel_events.values() for event in waiters]
        else:
            events = list(self._cancel_events.get(_as_ref(target), ()))
        for event in events:
            event.set()
        if events:
            log.info("Cancelled %d in-flight action(s)", len(events))
        return len(events)

    async def run(self, request: Union[RunRequest, Dict[str, Any]], *, stop_on_error: bool = True) -> Dict[str, Any]:
        if not isinstance(request, RunRequest):
            request = RunRequest.model_validate(request)
        log_paths = prepare_log_paths(request.run_id, self.config.log_root)
        default_timeout = request.config.get("action_timeout_ms")
        results: List[Dict[str, Any]] = []
        with StructuredLogger(request.run_id, log_paths) as logger:
            for action in request.plan.actions:
                outcome = await self._perform(
                    action,
                    logger,
                    int(default_timeout) if default_timeout is not None else None,
                )
                results.append(outcome.as_dict())
                if not outcome.ok and stop_on_error:
                    log.warning("Run %s stopped at step %d", request.run_id, len(results))
                    break
        return {
            "success": len(results) == len(request.plan.actions) and all(r["ok"] for r in results),
            "results": results,
            "run_id": request.run_id,
            "log_path": str(log_paths.events),
            "metadata": request.metadata,
        }

    # ------------------------------------------------------------------
    # Action vocabulary
    # ------------------------------------------------------------------
    async def _act(self, kind: str, target: Optional[TargetLike], options: Dict[str, Any]) -> ActionOutcome:
        payload = {key: value for key, value in options.items() if value is not None}
        if target is not None:
            payload["target"] = _as_ref(target)
        action = self.registry.get(kind).model.model_validate(payload)
        outcome = await self._perform(action, self.logger, None)
        return outcome.raise_for_error()

    async def click(self, target: TargetLike, **options: Any) -> ActionOutcome:
        return await self._act("click", target, options)

    async def dblclick(self, target: TargetLike, **options: Any) -> ActionOutcome:
        return await self._act("dblclick", target, options)

    async def rightclick(self, target: TargetLike, **options: Any) -> ActionOutcome:
        return await self._act("rightclick", target, options)

    async def fill(self, target: TargetLike, value: str, **options: Any) -> ActionOutcome:
        return await self._act("fill", target, {"value": value, **options})

    async def type(self, target: TargetLike, value: str, *, delay_ms: int = 10, **options: Any) -> ActionOutcome:
        """Keystroke-by-keystroke fill."""

        return await self._act("fill", target, {"value": value, "delay_ms": delay_ms, **options})

    async def clear(self, target: TargetLike, **options: Any) -> ActionOutcome:
        return await self._act("clear", target, options)

    async def press(self, target: TargetLike, key: str, **options: Any) -> ActionOutcome:
        return await self._act("press", target, {"key": key, **options})

    async def check(self, target: TargetLike, **options: Any) -> ActionOutcome:
        return await self._act("check", target, options)

    async def uncheck(self, target: TargetLike, **options: Any) -> ActionOutcome:
        return await self._act("uncheck", target, options)

    async def select_option(self, target: TargetLike, values: Union[str, List[str]], **options: Any) -> ActionOutcome:
        return await self._act("select_option", target, {"values": values, **options})

    async def focus(self, target: TargetLike, **options: Any) -> ActionOutcome:
        return await self._act("focus", target, options)

    async def blur(self, target: TargetLike, **options: Any) -> ActionOutcome:
        return await self._act("blur", target, options)

    async def scroll_into_view(self, target: TargetLike, **options: Any) -> ActionOutcome:
        return await self._act("scroll_into_view", target, options)

    async def trigger_event(self, target: TargetLike, event: str, **options: Any) -> ActionOutcome:
        return await self._act("trigger_event", target, {"event": event, **options})

    async def scroll_to(self, target: Optional[TargetLike] = None, **options: Any) -> ActionOutcome:
        return await self._act("scroll_to", target, options)

    async def submit(self, target: TargetLike, **options: Any) -> ActionOutcome:
        return await self._act("submit", target, options)

    # ------------------------------------------------------------------
    # Readers
    # ------------------------------------------------------------------
    async def _first(self, target: TargetLike) -> ResolvedElement:
        ref = _as_ref(target)
        resolved = await self.resolver.resolve(ref)
        if not resolved:
            raise NotFound(f"No element matches {ref}")
        return resolved[0]

    async def count(self, target: TargetLike) -> int:
        return await self.resolver.count(_as_ref(target))

    async def is_visible(self, target: TargetLike) -> bool:
        resolved = await self.resolver.resolve(_as_ref(target))
        if not resolved:
            return False
        return (await self.host.describe(resolved[0].handle)).visible

    async def input_value(self, target: TargetLike) -> str:
        element = await self._first(target)
        info = await self.host.describe(element.handle)
        if info.value is None:
            raise UnsupportedForKind(f"<{info.tag}> has no value")
        return info.value

    async def is_checked(self, target: TargetLike) -> bool:
        element = await self._first(target)
        info = await self.host.describe(element.handle)
        if not info.is_checkable:
            raise UnsupportedForKind(f"<{info.tag}> is not a checkbox or radio")
        return bool(info.checked)

    async def selected_values(self, target: TargetLike) -> List[str]:
        element = await self._first(target)
        return [option.value for option in await self.host.options(element.handle) if option.selected]

    async def text_content(self, target: TargetLike) -> str:
        element = await self._first(target)
        return await self.host.text_content(element.handle)

    def locator(self, target: TargetLike) -> "BoundLocator":
        return BoundLocator(self, _as_ref(target))


class BoundLocator:
    """An :class:`ElementRef` bound to an engine, Playwright-locator style."""

    def __init__(self, engine: ActionEngine, ref: ElementRef) -> None:
        self.engine = engine
        self.ref = ref

    def __repr__(self) -> str:
        return f"BoundLocator({self.ref.describe()!r})"

    def nth(self, index: int) -> "BoundLocator":
        return BoundLocator(self.engine, self.ref.nth(index))

    def first(self) -> "BoundLocator":
        return self.nth(0)

    def last(self) -> "BoundLocator":
        return self.nth(-1)

    def filter(self, *, has: Optional[str] = None, has_text: Optional[str] = None) -> "BoundLocator":
        return BoundLocator(self.engine, self.ref.filter(has=has, has_text=has_text))

    async def click(self, **options: Any) -> ActionOutcome:
        return await self.engine.click(self.ref, **options)

    async def dblclick(self, **options: Any) -> ActionOutcome:
        return await self.engine.dblclick(self.ref, **options)

    async def rightclick(self, **options: Any) -> ActionOutcome:
        return await self.engine.rightclick(self.ref, **options)

    async def fill(self, value: str, **options: Any) -> ActionOutcome:
        return await self.engine.fill(self.ref, value, **options)

    async def type(self, value: str, **options: Any) -> ActionOutcome:
        return await self.engine.type(self.ref, value, **options)

    async def clear(self, **options: Any) -> ActionOutcome:
        return await self.engine.clear(self.ref, **options)

    async def press(self, key: str, **options: Any) -> ActionOutcome:
        return await self.engine.press(self.ref, key, **options)

    async def check(self, **options: Any) -> ActionOutcome:
        return await self.engine.check(self.ref, **options)

    async def uncheck(self, **options: Any) -> ActionOutcome:
        return await self.engine.uncheck(self.ref, **options)

    async def select_option(self, values: Union[str, List[str]], **options: Any) -> ActionOutcome:
        return await self.engine.select_option(self.ref, values, **options)

    async def focus(self, **options: Any) -> ActionOutcome:
        return await self.engine.focus(self.ref, **options)

    async def blur(self, **options: Any) -> ActionOutcome:
        return await self.engine.blur(self.ref, **options)

    async def scroll_into_view(self, **options: Any) -> ActionOutcome:
        return await self.engine.scroll_into_view(self.ref, **options)

    async def trigger_event(self, event: str, **options: Any) -> ActionOutcome:
        return await self.engine.trigger_event(self.ref, event, **options)

    async def scroll_to(self, **options: Any) -> ActionOutcome:
        return await self.engine.scroll_to(self.ref, **options)

    async def submit(self, **options: Any) -> ActionOutcome:
        return await self.engine.submit(self.ref, **options)

    async def count(self) -> int:
        return await self.engine.count(self.ref)

    async def is_visible(self) -> bool:
        return await self.engine.is_visible(self.ref)

    async def input_value(self) -> str:
        return await self.engine.input_value(self.ref)

    async def is_checked(self) -> bool:
        return await self.engine.is_checked(self.ref)

    async def selected_values(self) -> List[str]:
        return await self.engine.selected_values(self.ref)

    async def text_content(self) -> str:
        return await self.engine.text_content(self.ref)
