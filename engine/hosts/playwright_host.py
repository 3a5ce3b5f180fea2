"""Page host driving a live browser page through Playwright."""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Dict, List, Sequence, TypeVar, Union

from playwright.async_api import ElementHandle, Error as PlaywrightError, Frame, Page

from automation.dsl.resolution import Box

from .base import WINDOW, ElementInfo, FocusChange, HostDetachedError, OptionInfo, ScrollPort

log = logging.getLogger(__name__)

T = TypeVar("T")

_DETACHED_MARKERS = ("not attached", "detached", "has been disposed", "execution context was destroyed")


DESCRIBE_SCRIPT = """
(el) => {
  if (!el.isConnected) return { attached: false };
  const rect = el.getBoundingClientRect();
  const style = window.getComputedStyle(el);
  const tag = el.tagName.toLowerCase();
  const visible = rect.width > 0 && rect.height > 0
    && style.visibility !== 'hidden' && style.visibility !== 'collapse';
  const disableable = ['input', 'button', 'select', 'textarea', 'option', 'optgroup', 'fieldset'];
  const checkable = tag === 'input' && (el.type === 'checkbox' || el.type === 'radio');
  let value = null;
  if (typeof el.value === 'string') value = el.value;
  else if (el.isContentEditable) value = el.innerText;
  return {
    attached: true,
    tag,
    inputType: tag === 'input' ? (el.type || 'text').toLowerCase() : '',
    box: { x: rect.x, y: rect.y, width: rect.width, height: rect.height },
    visible,
    disabled: disableable.includes(tag) && el.matches(':disabled'),
    readonly: (tag === 'input' || tag === 'textarea') && el.readOnly,
    contentEditable: el.isContentEditable,
    checked: checkable ? el.checked : null,
    value,
    multiple: tag === 'select' && el.multiple,
  };
}
"""

HIT_TEST_SCRIPT = """
(el, point) => {
  const hit = document.elementFromPoint(point[0], point[1]);
  return !!hit && (hit === el || el.contains(hit));
}
"""

SET_VALUE_SCRIPT = """
(el, value) => {
  if (el.isContentEditable && typeof el.value !== 'string') {
    el.textContent = value;
    return;
  }
  const proto = Object.getPrototypeOf(el);
  const descriptor = proto && Object.getOwnPropertyDescriptor(proto, 'value');
  if (descriptor && descriptor.set) {
    descriptor.set.call(el, value);
  } else {
    el.value = value;
  }
}
"""

SET_CHECKED_SCRIPT = "(el, checked) => { el.checked = checked; }"

OPTIONS_SCRIPT = """
(el) => Array.from(el.options).map((option, index) => ({
  index,
  value: option.value,
  label: option.label || option.text,
  selected: option.selected,
  disabled: option.disabled,
}))
"""

SELECT_INDICES_SCRIPT = """
(el, indices) => {
  const wanted = new Set(indices);
  if (!el.multiple && wanted.size === 0) {
    el.selectedIndex = -1;
    return;
  }
  Array.from(el.options).forEach((option, index) => { option.selected = wanted.has(index); });
}
"""

HAS_FOCUS_SCRIPT = "(el) => document.activeElement === el"

BLUR_SCRIPT = "(el) => el.blur()"

SUBMIT_SCRIPT = """
(form) => {
  if (typeof form.requestSubmit === 'function') form.requestSubmit();
  else form.submit();
}
"""

_PORT_HELPERS = """
  const elementPort = (node, depth) => {
    const rect = node.getBoundingClientRect();
    return {
      depth,
      box: { x: rect.left + node.clientLeft, y: rect.top + node.clientTop,
             width: node.clientWidth, height: node.clientHeight },
      scrollLeft: node.scrollLeft,
      scrollTop: node.scrollTop,
      maxLeft: Math.max(0, node.scrollWidth - node.clientWidth),
      maxTop: Math.max(0, node.scrollHeight - node.clientHeight),
    };
  };
  const windowPort = () => {
    const root = document.scrollingElement || document.documentElement;
    return {
      depth: -1,
      box: { x: 0, y: 0, width: window.innerWidth, height: window.innerHeight },
      scrollLeft: window.scrollX,
      scrollTop: window.scrollY,
      maxLeft: Math.max(0, root.scrollWidth - window.innerWidth),
      maxTop: Math.max(0, root.scrollHeight - window.innerHeight),
    };
  };
"""

SCROLL_CHAIN_SCRIPT = (
    "(el) => {"
    + _PORT_HELPERS
    + """
  const ports = [];
  let node = el.parentElement;
  let depth = 1;
  while (node && node !== document.body && node !== document.documentElement) {
    const style = window.getComputedStyle(node);
    if (/(auto|scroll)/.test(style.overflow + style.overflowX + style.overflowY)) {
      ports.push(elementPort(node, depth));
    }
    node = node.parentElement;
    depth += 1;
  }
  ports.push(windowPort());
  return ports;
}
"""
)

ELEMENT_PORT_SCRIPT = "(el) => {" + _PORT_HELPERS + "  return elementPort(el, 0);\n}"

WINDOW_PORT_SCRIPT = "() => {" + _PORT_HELPERS + "  return windowPort();\n}"

SET_SCROLL_SCRIPT = """
(el, args) => {
  let node = el;
  for (let i = 0; i < args[0]; i += 1) node = node.parentElement;
  node.scrollTo(args[1], args[2]);
}
"""

WINDOW_SCROLL_SCRIPT = "(args) => window.scrollTo(args[0], args[1])"

VIEWPORT_SCRIPT = "() => ({ width: window.innerWidth, height: window.innerHeight })"


def _port_from_payload(data: Dict[str, Any]) -> ScrollPort:
    return ScrollPort(
        depth=int(data["depth"]),
        box=Box.from_mapping(data["box"]) or Box(0, 0, 0, 0),
        scroll_left=float(data.get("scrollLeft", 0)),
        scroll_top=float(data.get("scrollTop", 0)),
        max_left=float(data.get("maxLeft", 0)),
        max_top=float(data.get("maxTop", 0)),
    )


class PlaywrightHost:
    """Adapter exposing a Playwright page or frame through the host contract."""

    def __init__(self, page: Union[Page, Frame]) -> None:
        self.page = page

    async def _guard(self, operation: Awaitable[T]) -> T:
        try:
            return await operation
        except PlaywrightError as exc:
            message = str(exc).lower()
            if any(marker in message for marker in _DETACHED_MARKERS):
                raise HostDetachedError(str(exc)) from exc
            raise

    async def query_all(self, selector: str, scope: Any = None) -> List[Any]:
        root = self.page if scope is None else scope
        return await self._guard(root.query_selector_all(selector))

    async def describe(self, handle: ElementHandle) -> ElementInfo:
        try:
            data = await self._guard(handle.evaluate(DESCRIBE_SCRIPT))
        except HostDetachedError:
            return ElementInfo(attached=False)
        if not data.get("attached"):
            return ElementInfo(attached=False)
        return ElementInfo(
            attached=True,
            tag=data.get("tag", ""),
            input_type=data.get("inputType", ""),
            box=Box.from_mapping(data.get("box")),
            visible=bool(data.get("visible")),
            disabled=bool(data.get("disabled")),
            readonly=bool(data.get("readonly")),
            content_editable=bool(data.get("contentEditable")),
            checked=data.get("checked"),
            value=data.get("value"),
            multiple=bool(data.get("multiple")),
        )

    async def text_content(self, handle: ElementHandle) -> str:
        return await self._guard(handle.text_content()) or ""

    async def viewport(self) -> Box:
        size = getattr(self.page, "viewport_size", None)
        if not size:
            size = await self._guard(self.page.evaluate(VIEWPORT_SCRIPT))
        return Box(0, 0, float(size["width"]), float(size["height"]))

    async def hit_test(self, handle: ElementHandle, x: float, y: float) -> bool:
        return bool(await self._guard(handle.evaluate(HIT_TEST_SCRIPT, [x, y])))

    async def dispatch_event(self, handle: ElementHandle, event_type: str, init: Dict[str, Any]) -> None:
        await self._guard(handle.dispatch_event(event_type, init))

    async def set_value(self, handle: ElementHandle, value: str) -> None:
        await self._guard(handle.evaluate(SET_VALUE_SCRIPT, value))

    async def set_checked(self, handle: ElementHandle, checked: bool) -> None:
        await self._guard(handle.evaluate(SET_CHECKED_SCRIPT, checked))

    async def options(self, handle: ElementHandle) -> List[OptionInfo]:
        data = await self._guard(handle.evaluate(OPTIONS_SCRIPT))
        return [
            OptionInfo(
                index=int(item["index"]),
                value=str(item["value"]),
                label=str(item["label"]),
                selected=bool(item["selected"]),
                disabled=bool(item["disabled"]),
            )
            for item in data
        ]

    async def select_indices(self, handle: ElementHandle, indices: Sequence[int]) -> None:
        await self._guard(handle.evaluate(SELECT_INDICES_SCRIPT, list(indices)))

    async def has_focus(self, handle: ElementHandle) -> bool:
        return bool(await self._guard(handle.evaluate(HAS_FOCUS_SCRIPT)))

    async def focus(self, handle: ElementHandle) -> FocusChange:
        await self._guard(handle.focus())
        return FocusChange(previous=None, native_events=True)

    async def blur(self, handle: ElementHandle) -> bool:
        await self._guard(handle.evaluate(BLUR_SCRIPT))
        return True

    async def submit(self, handle: ElementHandle) -> bool:
        await self._guard(handle.evaluate(SUBMIT_SCRIPT))
        return True

    async def scroll_chain(self, handle: ElementHandle) -> List[ScrollPort]:
        data = await self._guard(handle.evaluate(SCROLL_CHAIN_SCRIPT))
        return [_port_from_payload(item) for item in data]

    async def scroll_port(self, handle: Any) -> ScrollPort:
        if handle is None:
            data = await self._guard(self.page.evaluate(WINDOW_PORT_SCRIPT))
        else:
            data = await self._guard(handle.evaluate(ELEMENT_PORT_SCRIPT))
        return _port_from_payload(data)

    async def set_scroll(self, handle: Any, depth: int, left: float, top: float) -> None:
        if depth == WINDOW:
            await self._guard(self.page.evaluate(WINDOW_SCROLL_SCRIPT, [left, top]))
            return
        await self._guard(handle.evaluate(SET_SCROLL_SCRIPT, [depth, left, top]))
        log.debug("Scrolled port at depth %d to (%s, %s)", depth, left, top)
