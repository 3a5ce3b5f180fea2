"""In-memory page host backed by a BeautifulSoup document.

Layout, styles, focus, scroll offsets and form-control state are plain
Python fields, so a page can be scripted and inspected without a browser.
Elements without an explicit box are stacked in document order, one row per
displayed element; hiding or inserting an element shifts the rows after it
the way reflow does on a real page.
"""

from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from bs4 import BeautifulSoup, Tag

from automation.dsl.resolution import Box

from .base import WINDOW, ElementInfo, FocusChange, HostDetachedError, OptionInfo, ScrollPort

log = logging.getLogger(__name__)

NON_RENDERED = frozenset(
    {"head", "script", "style", "meta", "title", "link", "template", "option", "optgroup", "br", "noscript"}
)
DOCUMENT_TAGS = frozenset({"html", "body"})
DISABLEABLE = frozenset({"input", "button", "select", "textarea", "option", "optgroup", "fieldset"})
MOUSE_EVENTS = frozenset(
    {
        "pointerdown",
        "pointerup",
        "pointermove",
        "mousedown",
        "mouseup",
        "mousemove",
        "click",
        "dblclick",
        "contextmenu",
        "auxclick",
    }
)
NON_BUBBLING = frozenset({"focus", "blur", "mouseenter", "mouseleave", "pointerenter", "pointerleave", "scroll", "load"})
SCROLLABLE_OVERFLOW = frozenset({"auto", "scroll"})

TargetSpec = Union[str, Tag, None]
Listener = Callable[["VirtualEvent"], Any]


@dataclass(slots=True)
class RecordedEvent:
    type: str
    target: Tag = field(repr=False)
    init: Dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class VirtualEvent:
    type: str
    target: Tag
    init: Dict[str, Any]
    page: "VirtualPage" = field(repr=False)
    current_target: Any = field(default=None, repr=False)
    default_prevented: bool = False

    def prevent_default(self) -> None:
        if self.init.get("cancelable", False):
            self.default_prevented = True


@dataclass(slots=True)
class _NodeState:
    node: Tag = field(repr=False)
    box: Optional[Box] = None
    value: Optional[str] = None
    checked: Optional[bool] = None
    selected: Optional[List[int]] = None
    scroll: List[float] = field(default_factory=lambda: [0.0, 0.0])


def _parse_style(raw: Optional[str]) -> Dict[str, str]:
    styles: Dict[str, str] = {}
    if not raw:
        return styles
    for declaration in raw.split(";"):
        if ":" not in declaration:
            continue
        name, value = declaration.split(":", 1)
        styles[name.strip().lower()] = value.strip().lower()
    return styles


class VirtualPage:
    """Scriptable document implementing the page host contract."""

    def __init__(
        self,
        html: str,
        *,
        viewport: Tuple[int, int] = (1280, 720),
        row_height: int = 24,
        row_width: int = 240,
    ) -> None:
        self.document = BeautifulSoup(html, "html.parser")
        self.viewport_width, self.viewport_height = viewport
        self.row_height = row_height
        self.row_width = row_width
        self.window_scroll: List[float] = [0.0, 0.0]
        self.active_element: Optional[Tag] = None
        self.events: List[RecordedEvent] = []
        self._state: Dict[int, _NodeState] = {}
        self._listeners: Dict[int, Tuple[Any, Dict[str, List[Listener]]]] = {}

    # ------------------------------------------------------------------
    # Scripting helpers
    # ------------------------------------------------------------------
    def query(self, selector: str) -> Tag:
        found = self.document.select_one(selector)
        if found is None:
            raise LookupError(f"No element matches '{selector}'")
        return found

    def element(self, target: TargetSpec) -> Any:
        if target is None:
            return self.document
        if isinstance(target, Tag):
            return target
        return self.query(target)

    def _targets(self, target: TargetSpec) -> List[Any]:
        if target is None or isinstance(target, Tag):
            return [self.element(target)]
        return list(self.document.select(target))

    def on(self, target: TargetSpec, event_type: str, handler: Listener) -> None:
        for node in self._targets(target):
            _, by_type = self._listeners.setdefault(id(node), (node, {}))
            by_type.setdefault(event_type, []).append(handler)

    def place(self, target: TargetSpec, x: float, y: float, width: float, height: float) -> None:
        """Pin an element to a document-coordinate box."""

        for node in self._targets(target):
            self._state_for(node).box = Box(x, y, width, height)

    def unplace(self, target: TargetSpec) -> None:
        for node in self._targets(target):
            self._state_for(node).box = None

    def set_style(self, target: TargetSpec, **props: Optional[str]) -> None:
        for node in self._targets(target):
            styles = _parse_style(node.get("style"))
            for name, value in props.items():
                key = name.replace("_", "-")
                if value is None:
                    styles.pop(key, None)
                else:
                    styles[key] = str(value)
            if styles:
                node["style"] = "; ".join(f"{k}: {v}" for k, v in styles.items()) + ";"
            elif node.has_attr("style"):
                del node["style"]

    def set_attribute(self, target: TargetSpec, name: str, value: str = "") -> None:
        for node in self._targets(target):
            node[name] = value

    def remove_attribute(self, target: TargetSpec, name: str) -> None:
        for node in self._targets(target):
            if node.has_attr(name):
                del node[name]

    def add_class(self, target: TargetSpec, name: str) -> None:
        for node in self._targets(target):
            classes = list(node.get("class", []))
            if name not in classes:
                classes.append(name)
            node["class"] = classes

    def remove(self, target: TargetSpec) -> None:
        for node in self._targets(target):
            if node is self.active_element:
                self.active_element = None
            node.extract()

    def append_html(self, parent: TargetSpec, html: str) -> List[Tag]:
        container = self.element(parent)
        fragment = BeautifulSoup(html, "html.parser")
        added: List[Tag] = []
        for child in list(fragment.contents):
            container.append(child.extract())
            if isinstance(child, Tag):
                added.append(child)
        return added

    def value_of(self, target: TargetSpec) -> str:
        return self._value(self.element(target))

    def is_checked(self, target: TargetSpec) -> bool:
        return bool(self._checked(self.element(target)))

    def selected_values(self, target: TargetSpec) -> List[str]:
        node = self.element(target)
        return [opt.value for opt in self._options(node) if opt.selected]

    def scroll_offset(self, target: TargetSpec = None) -> Tuple[float, float]:
        if target is None:
            return self.window_scroll[0], self.window_scroll[1]
        scroll = self._state_for(self.element(target)).scroll
        return scroll[0], scroll[1]

    def events_for(self, target: TargetSpec, types: Optional[Iterable[str]] = None) -> List[str]:
        node = self.element(target)
        wanted = set(types) if types is not None else None
        return [
            event.type
            for event in self.events
            if event.target is node and (wanted is None or event.type in wanted)
        ]

    def clear_events(self) -> None:
        self.events.clear()

    # ------------------------------------------------------------------
    # Internal model
    # ------------------------------------------------------------------
    def _state_for(self, node: Tag) -> _NodeState:
        state = self._state.get(id(node))
        if state is None or state.node is not node:
            state = _NodeState(node=node)
            self._state[id(node)] = state
        return state

    def _is_attached(self, node: Any) -> bool:
        if node is self.document:
            return True
        return any(parent is self.document for parent in node.parents)

    def _require_attached(self, node: Any) -> None:
        if not isinstance(node, Tag) or not self._is_attached(node):
            raise HostDetachedError("Element is not attached to the document")

    @staticmethod
    def _style(node: Tag) -> Dict[str, str]:
        return _parse_style(node.get("style"))

    def _chain(self, node: Tag) -> List[Tag]:
        """``node`` followed by its element ancestors."""

        chain = [node]
        for parent in node.parents:
            if parent is self.document or not isinstance(parent, Tag):
                break
            chain.append(parent)
        return chain

    def _displayed(self, node: Tag) -> bool:
        for item in self._chain(node):
            if item.name in NON_RENDERED or item.has_attr("hidden"):
                return False
            if self._style(item).get("display") == "none":
                return False
        return True

    def _visibility_hidden(self, node: Tag) -> bool:
        for item in self._chain(node):
            visibility = self._style(item).get("visibility")
            if visibility:
                return visibility in {"hidden", "collapse"}
        return False

    def _pointer_events_none(self, node: Tag) -> bool:
        for item in self._chain(node):
            value = self._style(item).get("pointer-events")
            if value:
                return value == "none"
        return False

    def _is_scroll_container(self, node: Tag) -> bool:
        styles = self._style(node)
        return any(styles.get(key) in SCROLLABLE_OVERFLOW for key in ("overflow", "overflow-x", "overflow-y"))

    def _is_disabled(self, node: Tag) -> bool:
        if node.name in DISABLEABLE and node.has_attr("disabled"):
            return True
        for parent in node.parents:
            if isinstance(parent, Tag) and parent.name == "fieldset" and parent.has_attr("disabled"):
                return node.name in DISABLEABLE
        return False

    def _layout(self) -> Tuple[Dict[int, Box], Dict[int, int]]:
        """Document-coordinate boxes and paint order for displayed elements."""

        boxes: Dict[int, Box] = {}
        order: Dict[int, int] = {}
        document_nodes: List[Tag] = []
        row = 0
        for index, node in enumerate(self.document.find_all(True)):
            order[id(node)] = index
            if not self._displayed(node):
                continue
            if node.name in DOCUMENT_TAGS:
                document_nodes.append(node)
                continue
            explicit = self._state.get(id(node))
            if explicit is not None and explicit.node is node and explicit.box is not None:
                boxes[id(node)] = explicit.box
                continue
            boxes[id(node)] = Box(0, row * self.row_height, self.row_width, self.row_height)
            row += 1
        width, height = self._document_extent(boxes)
        for node in document_nodes:
            boxes[id(node)] = Box(0, 0, width, height)
        return boxes, order

    def _document_extent(self, boxes: Dict[int, Box]) -> Tuple[float, float]:
        width = max([self.viewport_width] + [box.right for box in boxes.values()])
        height = max([self.viewport_height] + [box.bottom for box in boxes.values()])
        return width, height

    def _client_box(self, node: Tag, boxes: Dict[int, Box]) -> Optional[Box]:
        box = boxes.get(id(node))
        if box is None:
            return None
        dx = -self.window_scroll[0]
        dy = -self.window_scroll[1]
        for ancestor in self._chain(node)[1:]:
            if self._is_scroll_container(ancestor):
                scroll = self._state_for(ancestor).scroll
                dx -= scroll[0]
                dy -= scroll[1]
        return box.translate(dx, dy)

    def _value(self, node: Tag) -> str:
        state = self._state_for(node)
        if state.value is not None:
            return state.value
        if node.name == "select":
            selected = [opt for opt in self._options(node) if opt.selected]
            return selected[0].value if selected else ""
        if node.name == "textarea" or node.get("contenteditable") in {"", "true"}:
            return node.get_text()
        return str(node.get("value", ""))

    def _checked(self, node: Tag) -> Optional[bool]:
        if node.name != "input" or str(node.get("type", "")).lower() not in {"checkbox", "radio"}:
            return None
        state = self._state_for(node)
        if state.checked is None:
            state.checked = node.has_attr("checked")
        return state.checked

    def _options(self, node: Tag) -> List[OptionInfo]:
        option_nodes = node.find_all("option")
        state = self._state_for(node)
        if state.selected is None:
            initial = [i for i, opt in enumerate(option_nodes) if opt.has_attr("selected")]
            if not initial and not node.has_attr("multiple"):
                initial = [i for i, opt in enumerate(option_nodes) if not opt.has_attr("disabled")][:1]
            state.selected = initial
        result = []
        for index, opt in enumerate(option_nodes):
            text = opt.get_text().strip()
            result.append(
                OptionInfo(
                    index=index,
                    value=str(opt.get("value", text)),
                    label=str(opt.get("label", text)),
                    selected=index in state.selected,
                    disabled=opt.has_attr("disabled"),
                )
            )
        return result

    def _port_for(self, node: Any, depth: int, boxes: Dict[int, Box]) -> ScrollPort:
        if node is None or node is self.document:
            width, height = self._document_extent(boxes)
            return ScrollPort(
                depth=WINDOW,
                box=Box(0, 0, self.viewport_width, self.viewport_height),
                scroll_left=self.window_scroll[0],
                scroll_top=self.window_scroll[1],
                max_left=max(0.0, width - self.viewport_width),
                max_top=max(0.0, height - self.viewport_height),
            )
        client = self._client_box(node, boxes) or Box(0, 0, 0, 0)
        own = boxes.get(id(node)) or Box(0, 0, 0, 0)
        right, bottom = own.right, own.bottom
        for child in node.find_all(True):
            child_box = boxes.get(id(child))
            if child_box is not None:
                right = max(right, child_box.right)
                bottom = max(bottom, child_box.bottom)
        scroll = self._state_for(node).scroll
        return ScrollPort(
            depth=depth,
            box=client,
            scroll_left=scroll[0],
            scroll_top=scroll[1],
            max_left=max(0.0, right - own.right),
            max_top=max(0.0, bottom - own.bottom),
        )

    async def _run_listeners(self, event: VirtualEvent, path: Sequence[Any]) -> None:
        for node in path:
            entry = self._listeners.get(id(node))
            if entry is None or entry[0] is not node:
                continue
            event.current_target = node
            for handler in list(entry[1].get(event.type, [])):
                result = handler(event)
                if inspect.isawaitable(result):
                    await result

    async def _activate(self, node: Tag) -> None:
        input_type = str(node.get("type", "")).lower()
        if node.name != "input" or input_type not in {"checkbox", "radio"}:
            return
        current = bool(self._checked(node))
        if input_type == "radio" and current:
            return
        await self.set_checked(node, not current)
        await self.dispatch_event(node, "input", {"bubbles": True})
        await self.dispatch_event(node, "change", {"bubbles": True})

    # ------------------------------------------------------------------
    # PageHost contract
    # ------------------------------------------------------------------
    async def query_all(self, selector: str, scope: Any = None) -> List[Any]:
        root = self.document if scope is None else scope
        return list(root.select(selector))

    async def describe(self, handle: Any) -> ElementInfo:
        if not isinstance(handle, Tag) or not self._is_attached(handle):
            return ElementInfo(attached=False)
        boxes, _ = self._layout()
        box = self._client_box(handle, boxes)
        input_type = str(handle.get("type", "text")).lower() if handle.name == "input" else ""
        return ElementInfo(
            attached=True,
            tag=handle.name,
            input_type=input_type,
            box=box,
            visible=box is not None and not box.is_empty and not self._visibility_hidden(handle),
            disabled=self._is_disabled(handle),
            readonly=handle.name in {"input", "textarea"} and handle.has_attr("readonly"),
            content_editable=handle.get("contenteditable") in {"", "true"},
            checked=self._checked(handle),
            value=self._value(handle),
            multiple=handle.name == "select" and handle.has_attr("multiple"),
        )

    async def text_content(self, handle: Any) -> str:
        self._require_attached(handle)
        return handle.get_text()

    async def viewport(self) -> Box:
        return Box(0, 0, self.viewport_width, self.viewport_height)

    async def hit_test(self, handle: Any, x: float, y: float) -> bool:
        if not (0 <= x < self.viewport_width and 0 <= y < self.viewport_height):
            return False
        boxes, order = self._layout()
        topmost: Optional[Tag] = None
        best: Tuple[int, int] = (-(10**9), -1)
        for node in self.document.find_all(True):
            if id(node) not in boxes:
                continue
            if self._visibility_hidden(node) or self._pointer_events_none(node):
                continue
            box = self._client_box(node, boxes)
            if box is None or not box.contains(x, y):
                continue
            clipped = False
            for ancestor in self._chain(node)[1:]:
                if self._is_scroll_container(ancestor):
                    port = self._client_box(ancestor, boxes)
                    if port is None or not port.contains(x, y):
                        clipped = True
                        break
            if clipped:
                continue
            try:
                z_index = int(self._style(node).get("z-index", "0"))
            except ValueError:
                z_index = 0
            rank = (z_index, order[id(node)])
            if rank > best:
                best = rank
                topmost = node
        if topmost is None:
            return False
        return topmost is handle or any(parent is handle for parent in topmost.parents)

    async def dispatch_event(self, handle: Any, event_type: str, init: Dict[str, Any]) -> None:
        self._require_attached(handle)
        if event_type in MOUSE_EVENTS and handle.name in DISABLEABLE and self._is_disabled(handle):
            log.debug("Swallowed %s on disabled <%s>", event_type, handle.name)
            return
        init = dict(init)
        bubbles = init.setdefault("bubbles", event_type not in NON_BUBBLING)
        self.events.append(RecordedEvent(type=event_type, target=handle, init=init))
        event = VirtualEvent(type=event_type, target=handle, init=init, page=self)
        path: List[Any] = [handle]
        if bubbles:
            path.extend(self._chain(handle)[1:])
            path.append(self.document)
        await self._run_listeners(event, path)
        if event_type == "click" and not event.default_prevented:
            await self._activate(handle)

    async def set_value(self, handle: Any, value: str) -> None:
        self._require_attached(handle)
        self._state_for(handle).value = value

    async def set_checked(self, handle: Any, checked: bool) -> None:
        self._require_attached(handle)
        if checked and str(handle.get("type", "")).lower() == "radio" and handle.get("name"):
            for other in self.document.select(f'input[type="radio"][name="{handle["name"]}"]'):
                if other is not handle:
                    self._state_for(other).checked = False
        self._state_for(handle).checked = checked

    async def options(self, handle: Any) -> List[OptionInfo]:
        self._require_attached(handle)
        return self._options(handle)

    async def select_indices(self, handle: Any, indices: Sequence[int]) -> None:
        self._require_attached(handle)
        state = self._state_for(handle)
        state.selected = sorted(set(indices))
        state.value = None

    async def has_focus(self, handle: Any) -> bool:
        return handle is not None and self.active_element is handle

    async def focus(self, handle: Any) -> FocusChange:
        self._require_attached(handle)
        previous = self.active_element
        self.active_element = handle
        return FocusChange(previous=previous if previous is not handle else None, native_events=False)

    async def blur(self, handle: Any) -> bool:
        if self.active_element is handle:
            self.active_element = None
        return False

    async def submit(self, handle: Any) -> bool:
        self._require_attached(handle)
        return False

    async def scroll_chain(self, handle: Any) -> List[ScrollPort]:
        self._require_attached(handle)
        boxes, _ = self._layout()
        ports = []
        for depth, ancestor in enumerate(self._chain(handle)[1:], start=1):
            if self._is_scroll_container(ancestor):
                ports.append(self._port_for(ancestor, depth, boxes))
        ports.append(self._port_for(None, WINDOW, boxes))
        return ports

    async def scroll_port(self, handle: Any) -> ScrollPort:
        boxes, _ = self._layout()
        if handle is None:
            return self._port_for(None, WINDOW, boxes)
        self._require_attached(handle)
        return self._port_for(handle, 0, boxes)

    async def set_scroll(self, handle: Any, depth: int, left: float, top: float) -> None:
        boxes, _ = self._layout()
        if depth == WINDOW:
            port = self._port_for(None, WINDOW, boxes)
            self.window_scroll[0] = min(max(0.0, left), port.max_left)
            self.window_scroll[1] = min(max(0.0, top), port.max_top)
            log.debug("Window scrolled to %s", self.window_scroll)
            return
        self._require_attached(handle)
        container = self._chain(handle)[depth]
        port = self._port_for(container, depth, boxes)
        scroll = self._state_for(container).scroll
        scroll[0] = min(max(0.0, left), port.max_left)
        scroll[1] = min(max(0.0, top), port.max_top)
        await self.dispatch_event(container, "scroll", {"bubbles": False})
