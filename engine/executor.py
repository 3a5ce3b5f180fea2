"""Primitive actions performed against an element that passed its readiness wait."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

from automation.dsl.models import (
    ActionBase,
    BlurAction,
    CheckAction,
    ClearAction,
    ClickAction,
    DblClickAction,
    ElementRef,
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
    resolve_scroll_coordinate,
)
from automation.dsl.resolution import ResolvedElement

from .clock import Clock
from .hosts.base import WINDOW, ElementInfo, HostDetachedError, PageHost
from .keyboard import KeyboardState, key_definition, keyboard_init, modifier_flags, parse_combo, produces_text
from .outcome import ElementDetached, InvalidOptionValue, UnsupportedForKind

log = logging.getLogger(__name__)

BUTTON_CODES = {"primary": 0, "secondary": 2}
BUTTON_MASKS = {"primary": 1, "secondary": 2}

EventList = List[Tuple[str, Dict[str, Any]]]


def _mouse_init(x: float, y: float, button: str, *, buttons: int, detail: int) -> Dict[str, Any]:
    return {
        "bubbles": True,
        "cancelable": True,
        "composed": True,
        "clientX": x,
        "clientY": y,
        "button": BUTTON_CODES[button],
        "buttons": buttons,
        "detail": detail,
    }


def _pointer_init(x: float, y: float, button: str, *, buttons: int, detail: int) -> Dict[str, Any]:
    init = _mouse_init(x, y, button, buttons=buttons, detail=detail)
    init.update({"pointerId": 1, "pointerType": "mouse", "isPrimary": True})
    return init


def press_events(x: float, y: float, button: str, detail: int) -> EventList:
    mask = BUTTON_MASKS[button]
    return [
        ("pointerdown", _pointer_init(x, y, button, buttons=mask, detail=detail)),
        ("mousedown", _mouse_init(x, y, button, buttons=mask, detail=detail)),
    ]


def release_events(x: float, y: float, button: str, detail: int) -> EventList:
    final = "click" if button == "primary" else "contextmenu"
    return [
        ("pointerup", _pointer_init(x, y, button, buttons=0, detail=detail)),
        ("mouseup", _mouse_init(x, y, button, buttons=0, detail=detail)),
        (final, _mouse_init(x, y, button, buttons=0, detail=detail)),
    ]


def nearest_delta(start: float, end: float, view_start: float, view_end: float) -> float:
    """Smallest offset change that brings ``[start, end]`` inside the view."""

    if start >= view_start and end <= view_end:
        return 0.0
    if end - start > view_end - view_start or start < view_start:
        return start - view_start
    return end - view_end


class ActionExecutor:
    """Performs one primitive per action kind and dispatches its events."""

    def __init__(self, host: PageHost, clock: Clock) -> None:
        self.host = host
        self.clock = clock
        self.keyboard = KeyboardState()

    async def execute(self, action: ActionBase, element: Optional[ResolvedElement]) -> Dict[str, Any]:
        if element is None:
            if not isinstance(action, ScrollToAction):
                raise UnsupportedForKind(f"{action.kind} needs a target element")
            return await self._scroll_to(action, None)

        info = await self.host.describe(element.handle)
        if not info.attached:
            raise ElementDetached(f"{element.ref} was detached before {action.kind}")
        if not isinstance(action, PressAction):
            self.keyboard.reset(element.ref)

        handler = getattr(self, f"_do_{action.kind}")
        try:
            return await handler(action, element, info)
        except HostDetachedError as exc:
            raise ElementDetached(f"{element.ref} was detached during {action.kind}: {exc}") from exc

    async def _dispatch_all(self, handle: Any, events: Sequence[Tuple[str, Dict[str, Any]]]) -> None:
        for event_type, init in events:
            await self.host.dispatch_event(handle, event_type, init)

    async def _pointer_sequence(
        self,
        handle: Any,
        info: ElementInfo,
        *,
        position: Any,
        button: str,
        clicks: int,
        delay_ms: Optional[int],
    ) -> Dict[str, Any]:
        x, y = info.box.point(position) if info.box is not None else (0.0, 0.0)
        for detail in range(1, clicks + 1):
            await self._dispatch_all(handle, press_events(x, y, button, detail))
            if delay_ms:
                await self.clock.sleep(delay_ms / 1000)
            await self._dispatch_all(handle, release_events(x, y, button, detail))
        if clicks == 2:
            await self.host.dispatch_event(handle, "dblclick", _mouse_init(x, y, button, buttons=0, detail=2))
        return {"x": x, "y": y, "button": button, "clicks": clicks}

    # ------------------------------------------------------------------
    # Pointer actions
    # ------------------------------------------------------------------
    async def _do_click(self, action: ClickAction, element: ResolvedElement, info: ElementInfo) -> Dict[str, Any]:
        return await self._pointer_sequence(
            element.handle,
            info,
            position=action.position,
            button=action.button,
            clicks=1,
            delay_ms=action.delay_ms,
        )

    async def _do_dblclick(self, action: DblClickAction, element: ResolvedElement, info: ElementInfo) -> Dict[str, Any]:
        return await self._pointer_sequence(
            element.handle,
            info,
            position=action.position,
            button=action.button,
            clicks=2,
            delay_ms=action.delay_ms,
        )

    async def _do_rightclick(
        self, action: RightClickAction, element: ResolvedElement, info: ElementInfo
    ) -> Dict[str, Any]:
        return await self._pointer_sequence(
            element.handle,
            info,
            position=action.position,
            button="secondary",
            clicks=1,
            delay_ms=action.delay_ms,
        )

    async def _do_check(self, action: CheckAction, element: ResolvedElement, info: ElementInfo) -> Dict[str, Any]:
        return await self._set_checked(action, element, info, True)

    async def _do_uncheck(self, action: UncheckAction, element: ResolvedElement, info: ElementInfo) -> Dict[str, Any]:
        return await self._set_checked(action, element, info, False)

    async def _set_checked(
        self,
        action: Any,
        element: ResolvedElement,
        info: ElementInfo,
        desired: bool,
    ) -> Dict[str, Any]:
        if not info.is_checkable:
            raise UnsupportedForKind(
                f"Cannot {action.kind} <{info.tag}{' type=' + info.input_type if info.input_type else ''}>: "
                "not a checkbox or radio"
            )
        if not desired and info.input_type == "radio":
            raise UnsupportedForKind("Cannot uncheck a radio button")
        if info.checked == desired:
            return {"checked": desired, "changed": False}

        handle = element.handle
        await self._pointer_sequence(
            handle,
            info,
            position=action.position,
            button="primary",
            clicks=1,
            delay_ms=action.delay_ms,
        )
        after = await self.host.describe(handle)
        method = "click"
        if after.checked != desired:
            log.debug("Click did not toggle %s; setting checked=%s directly", element.ref, desired)
            await self.host.set_checked(handle, desired)
            await self._dispatch_all(handle, [("input", {"bubbles": True}), ("change", {"bubbles": True})])
            method = "direct"
        return {"checked": desired, "changed": True, "method": method}

    # ------------------------------------------------------------------
    # Text entry
    # ------------------------------------------------------------------
    async def _focus(self, handle: Any) -> List[str]:
        if await self.host.has_focus(handle):
            return []
        change = await self.host.focus(handle)
        if change.native_events:
            return ["focus"]
        dispatched: List[str] = []
        previous = change.previous
        if previous is not None and (await self.host.describe(previous)).attached:
            await self.host.dispatch_event(previous, "blur", {"bubbles": False})
            await self.host.dispatch_event(previous, "focusout", {"bubbles": True})
            dispatched.extend(["blur", "focusout"])
        await self.host.dispatch_event(handle, "focus", {"bubbles": False})
        await self.host.dispatch_event(handle, "focusin", {"bubbles": True})
        dispatched.extend(["focus", "focusin"])
        return dispatched

    @staticmethod
    def _require_text_control(action: ActionBase, info: ElementInfo) -> None:
        if not info.is_text_control:
            described = info.tag + (f"[type={info.input_type}]" if info.input_type else "")
            raise UnsupportedForKind(f"Cannot {action.kind} <{described}>: not a text control")

    async def _do_fill(self, action: FillAction, element: ResolvedElement, info: ElementInfo) -> Dict[str, Any]:
        self._require_text_control(action, info)
        handle = element.handle
        await self._focus(handle)
        if action.delay_ms is None:
            await self.host.set_value(handle, action.value)
            await self.host.dispatch_event(
                handle,
                "input",
                {"bubbles": True, "inputType": "insertText", "data": action.value},
            )
            keystrokes = 0
        else:
            typed = ""
            no_modifiers = modifier_flags([])
            for index, char in enumerate(action.value):
                init = keyboard_init(key_definition(char), no_modifiers)
                typed += char
                await self.host.dispatch_event(handle, "keydown", init)
                await self.host.dispatch_event(handle, "keypress", init)
                await self.host.set_value(handle, typed)
                await self.host.dispatch_event(
                    handle,
                    "input",
                    {"bubbles": True, "inputType": "insertText", "data": char},
                )
                await self.host.dispatch_event(handle, "keyup", init)
                if index < len(action.value) - 1:
                    await self.clock.sleep(action.delay_ms / 1000)
            keystrokes = len(action.value)
        await self.host.dispatch_event(handle, "change", {"bubbles": True})
        return {"value": action.value, "keystrokes": keystrokes}

    async def _do_clear(self, action: ClearAction, element: ResolvedElement, info: ElementInfo) -> Dict[str, Any]:
        self._require_text_control(action, info)
        handle = element.handle
        await self._focus(handle)
        if not info.value:
            return {"value": "", "changed": False}
        await self._press_combo(action.target, handle, "Control+a", force=True)
        await self._press_combo(action.target, handle, "Delete", force=True)
        await self.host.dispatch_event(handle, "change", {"bubbles": True})
        value = (await self.host.describe(handle)).value or ""
        return {"value": value, "changed": value != info.value}

    async def _do_press(self, action: PressAction, element: ResolvedElement, info: ElementInfo) -> Dict[str, Any]:
        try:
            parse_combo(action.key)
        except ValueError as exc:
            raise InvalidOptionValue(str(exc), details={"key": action.key}) from exc
        handle = element.handle
        await self._focus(handle)
        changed = await self._press_combo(action.target, handle, action.key, delay_ms=action.delay_ms, force=action.force)
        return {"key": action.key, "value_changed": changed}

    async def _press_combo(
        self,
        ref: ElementRef,
        handle: Any,
        combo: str,
        *,
        delay_ms: Optional[int] = None,
        force: bool = False,
    ) -> bool:
        """Dispatch one key combination and apply its editing effect.

        Returns whether the control's value changed.
        """

        modifiers, key = parse_combo(combo)
        held: List[Any] = []
        for modifier in modifiers:
            held.append(modifier)
            await self.host.dispatch_event(handle, "keydown", keyboard_init(modifier, modifier_flags(held)))
        flags = modifier_flags(held)
        init = keyboard_init(key, flags)
        await self.host.dispatch_event(handle, "keydown", init)
        text = produces_text(key, modifiers)
        if text:
            await self.host.dispatch_event(handle, "keypress", init)

        changed = False
        info = await self.host.describe(handle)
        if info.is_text_control and (force or info.editable):
            edit = self._key_effect(ref, info.value or "", key.key, text, flags)
            if edit is not None:
                new_value, input_type = edit
                await self.host.set_value(handle, new_value)
                await self.host.dispatch_event(
                    handle,
                    "input",
                    {"bubbles": True, "inputType": input_type, "data": text or None},
                )
                changed = new_value != (info.value or "")

        if delay_ms:
            await self.clock.sleep(delay_ms / 1000)
        await self.host.dispatch_event(handle, "keyup", init)
        for modifier in reversed(modifiers):
            held.remove(modifier)
            await self.host.dispatch_event(handle, "keyup", keyboard_init(modifier, modifier_flags(held)))
        return changed

    def _key_effect(
        self,
        ref: ElementRef,
        value: str,
        key: str,
        text: str,
        flags: Dict[str, bool],
    ) -> Optional[Tuple[str, str]]:
        if (flags["ctrlKey"] or flags["metaKey"]) and key.lower() == "a":
            self.keyboard.arm(ref)
            return None
        if key in {"Shift", "Control", "Alt", "Meta"}:
            return None
        selected_all = self.keyboard.consume(ref)
        if key == "Backspace":
            if selected_all:
                return "", "deleteContentBackward"
            return (value[:-1], "deleteContentBackward") if value else None
        if key == "Delete":
            return ("", "deleteContentForward") if selected_all and value else None
        if text and key != "Enter":
            return (text if selected_all else value + text), "insertText"
        return None

    # ------------------------------------------------------------------
    # Selection, focus, scrolling and events
    # ------------------------------------------------------------------
    async def _do_select_option(
        self, action: SelectOptionAction, element: ResolvedElement, info: ElementInfo
    ) -> Dict[str, Any]:
        if info.tag != "select":
            raise UnsupportedForKind(f"Cannot select options on <{info.tag}>: not a <select> element")
        options = await self.host.options(element.handle)
        indices: List[int] = []
        for wanted in action.values:
            match = next((opt for opt in options if opt.value == wanted), None)
            if match is None:
                match = next((opt for opt in options if opt.label.strip() == wanted.strip()), None)
            if match is None:
                raise InvalidOptionValue(
                    f"No option of {element.ref} has value or label {wanted!r}",
                    details={"available": [opt.value for opt in options]},
                )
            if match.index not in indices:
                indices.append(match.index)
        if len(indices) > 1 and not info.multiple:
            raise UnsupportedForKind(f"{element.ref} is a single-choice <select>; got {len(indices)} values")

        handle = element.handle
        await self.host.select_indices(handle, indices)
        await self._dispatch_all(handle, [("input", {"bubbles": True}), ("change", {"bubbles": True})])
        chosen = set(indices)
        return {"values": [opt.value for opt in options if opt.index in chosen]}

    async def _do_focus(self, action: FocusAction, element: ResolvedElement, info: ElementInfo) -> Dict[str, Any]:
        return {"events": await self._focus(element.handle)}

    async def _do_blur(self, action: BlurAction, element: ResolvedElement, info: ElementInfo) -> Dict[str, Any]:
        handle = element.handle
        if not await self.host.has_focus(handle):
            return {"blurred": False}
        if not await self.host.blur(handle):
            await self.host.dispatch_event(handle, "blur", {"bubbles": False})
            await self.host.dispatch_event(handle, "focusout", {"bubbles": True})
        return {"blurred": True}

    async def _do_scroll_into_view(
        self, action: ScrollIntoViewAction, element: ResolvedElement, info: ElementInfo
    ) -> Dict[str, Any]:
        return {"scrolled": await self.scroll_into_view(element.handle)}

    async def scroll_into_view(self, handle: Any) -> List[Dict[str, Any]]:
        """Scroll each port from the innermost outward by the nearest-edge delta."""

        moves: List[Dict[str, Any]] = []
        ports = await self.host.scroll_chain(handle)
        for index in range(len(ports)):
            port = ports[index]
            box = (await self.host.describe(handle)).box
            if box is None:
                break
            dx = nearest_delta(box.x, box.right, port.box.x, port.box.right)
            dy = nearest_delta(box.y, box.bottom, port.box.y, port.box.bottom)
            left = min(max(0.0, port.scroll_left + dx), port.max_left)
            top = min(max(0.0, port.scroll_top + dy), port.max_top)
            if (left, top) == (port.scroll_left, port.scroll_top):
                continue
            await self.host.set_scroll(handle, port.depth, left, top)
            moves.append({"depth": port.depth, "left": left, "top": top})
            ports = await self.host.scroll_chain(handle)
        return moves

    async def _do_scroll_to(self, action: ScrollToAction, element: ResolvedElement, info: ElementInfo) -> Dict[str, Any]:
        return await self._scroll_to(action, element.handle)

    async def _scroll_to(self, action: ScrollToAction, handle: Any) -> Dict[str, Any]:
        port = await self.host.scroll_port(handle)
        left = resolve_scroll_coordinate(action.x, port.scroll_left, port.max_left)
        top = resolve_scroll_coordinate(action.y, port.scroll_top, port.max_top)
        left = min(max(0.0, left), port.max_left)
        top = min(max(0.0, top), port.max_top)
        depth = WINDOW if handle is None else 0
        await self.host.set_scroll(handle, depth, left, top)
        return {"left": left, "top": top}

    async def _do_trigger_event(
        self, action: TriggerEventAction, element: ResolvedElement, info: ElementInfo
    ) -> Dict[str, Any]:
        handle = element.handle
        if action.value is not None:
            await self.host.set_value(handle, action.value)
        init = {"bubbles": True, "cancelable": True}
        init.update(action.init)
        await self.host.dispatch_event(handle, action.event, init)
        return {"event": action.event}

    async def _do_submit(self, action: SubmitAction, element: ResolvedElement, info: ElementInfo) -> Dict[str, Any]:
        if info.tag != "form":
            raise UnsupportedForKind(f"Cannot submit <{info.tag}>: not a <form> element")
        native = await self.host.submit(element.handle)
        if not native:
            await self.host.dispatch_event(element.handle, "submit", {"bubbles": True, "cancelable": True})
        return {"submitted": True}
