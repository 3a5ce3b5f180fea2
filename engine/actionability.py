"""Readiness predicates evaluated against one resolved element."""

from __future__ import annotations

import logging
from typing import FrozenSet, Optional

from automation.dsl.models import Position
from automation.dsl.resolution import (
    EDITABLE,
    ENABLED,
    RECEIVES_POINTER_EVENTS,
    STABLE,
    VISIBLE,
    ActionabilityState,
    Box,
    ResolvedElement,
)

from .hosts.base import ElementInfo, PageHost

log = logging.getLogger(__name__)


class ActionabilityChecker:
    """Samples :class:`ActionabilityState` for a single element and instant.

    Only predicates named in ``required`` are evaluated; hit testing costs an
    extra round trip to the page and is skipped for actions that do not use
    the pointer. ``previous_box`` is the box sampled on the preceding poll;
    the element is stable when the two samples are identical.
    """

    def __init__(self, host: PageHost) -> None:
        self.host = host

    async def check(
        self,
        element: ResolvedElement,
        required: FrozenSet[str],
        *,
        previous_box: Optional[Box] = None,
        position: Optional[Position] = None,
        force: bool = False,
    ) -> ActionabilityState:
        info = await self.host.describe(element.handle)
        if not info.attached:
            return ActionabilityState(attached=False)
        if force:
            return ActionabilityState(attached=True, box=info.box, forced=True)

        visible = info.visible if VISIBLE in required else None
        enabled = (not info.disabled) if ENABLED in required else None
        editable = self._editable(info) if EDITABLE in required else None
        stable = None
        if STABLE in required:
            stable = info.box is not None and previous_box is not None and info.box == previous_box

        receives = None
        in_viewport = None
        if RECEIVES_POINTER_EVENTS in required:
            receives = False
            if info.box is not None and info.visible:
                x, y = info.box.point(position)
                viewport = await self.host.viewport()
                in_viewport = viewport.contains(x, y)
                if in_viewport:
                    receives = await self.host.hit_test(element.handle, x, y)

        state = ActionabilityState(
            attached=True,
            visible=visible,
            stable=stable,
            enabled=enabled,
            editable=editable,
            receives_pointer_events=receives,
            box=info.box,
            in_viewport=in_viewport,
        )
        log.debug("Sampled %s: %s", element.ref, state.describe())
        return state

    @staticmethod
    def _editable(info: ElementInfo) -> bool:
        if info.readonly:
            return False
        if info.is_form_control and info.disabled:
            return False
        return True
