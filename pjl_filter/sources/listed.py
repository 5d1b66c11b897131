"""Batch page source: list the workspace once the rasterizer is done."""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from typing import Deque, Optional

from ..core.models import EndOfJob, PageRef
from ..core.protocols import PageItem
from ..workspace import Workspace

LOGGER = logging.getLogger(__name__)


class ListedPageSource:
    """Yields every page bitmap in ordinal order after ``finish()``."""

    def __init__(self, workspace: Workspace) -> None:
        self._workspace = workspace
        self._ready = asyncio.Event()
        self._cancelled = False
        self._pending: Optional[Deque[PageRef]] = None

    async def start(self) -> None:
        return None

    async def finish(self, *, cancelled: bool = False) -> None:
        self._cancelled = cancelled
        self._ready.set()

    async def next_page(self) -> PageItem:
        await self._ready.wait()
        if self._pending is None:
            pages = [] if self._cancelled else self._workspace.list_pages()
            LOGGER.debug("Listed %d page bitmap(s)", len(pages))
            self._pending = deque(pages)
        if self._pending:
            return self._pending.popleft()
        return EndOfJob(cancelled=self._cancelled)

    async def close(self) -> None:
        return None
