"""Fresh resolution of element references against the page."""

from __future__ import annotations

import logging
from typing import List

from automation.dsl.models import ElementRef
from automation.dsl.resolution import ResolvedElement

from .hosts.base import PageHost

log = logging.getLogger(__name__)


class Locator:
    """Turns an :class:`ElementRef` into the handles present right now.

    Nothing is memoised: every call queries the page again, so a node that
    was replaced or removed since the last poll is never acted on.
    """

    def __init__(self, host: PageHost) -> None:
        self.host = host

    async def _matches(self, ref: ElementRef) -> List[object]:
        handles = await self.host.query_all(ref.selector)
        if ref.has is not None:
            filtered = []
            for handle in handles:
                if await self.host.query_all(ref.has, handle):
                    filtered.append(handle)
            handles = filtered
        if ref.has_text is not None:
            filtered = []
            for handle in handles:
                if ref.has_text in await self.host.text_content(handle):
                    filtered.append(handle)
            handles = filtered
        return handles

    async def resolve(self, ref: ElementRef) -> List[ResolvedElement]:
        handles = await self._matches(ref)
        total = len(handles)
        if ref.index is None:
            return [ResolvedElement(ref=ref, handle=h, position=i, total=total) for i, h in enumerate(handles)]
        index = ref.index if ref.index >= 0 else total + ref.index
        if not 0 <= index < total:
            log.debug("Index %s out of range for %s (%d matches)", ref.index, ref.selector, total)
            return []
        return [ResolvedElement(ref=ref, handle=handles[index], position=index, total=total)]

    async def count(self, ref: ElementRef) -> int:
        return len(await self.resolve(ref))
