"""Event-driven page source backed by watchdog.

The observer thread reports write-completion (``closed``) events for files in
the workspace. Each event is handed to the event loop with
``call_soon_threadsafe`` and, if it names a page bitmap, queued as a
``PageRef``. The loop thread is the only one that touches the queue and the
bookkeeping below.
"""

from __future__ import annotations

import asyncio
import logging
import os
from pathlib import Path
from typing import Callable, Optional, Set

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer
from watchdog.observers.api import BaseObserver
from watchdog.utils import platform as watchdog_platform

from ..core.models import EndOfJob, PageRef
from ..core.protocols import PageItem
from ..workspace import Workspace

LOGGER = logging.getLogger(__name__)

ObserverFactory = Callable[[], BaseObserver]


def watch_supported() -> bool:
    """Whether the native observer reports file-close events on this host.

    Only the inotify backend emits them.
    """
    return watchdog_platform.is_linux()


class _ClosedFileHandler(FileSystemEventHandler):
    def __init__(
        self, loop: asyncio.AbstractEventLoop, callback: Callable[[Path], None]
    ) -> None:
        super().__init__()
        self._loop = loop
        self._callback = callback

    def on_closed(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return
        path = Path(os.fsdecode(event.src_path))
        try:
            self._loop.call_soon_threadsafe(self._callback, path)
        except RuntimeError:
            # Loop already closed; the job is over.
            pass


class WatchedPageSource:
    """Yields pages in the order their bitmaps finish being written.

    Not restartable: one watch session per job.
    """

    def __init__(
        self,
        workspace: Workspace,
        *,
        observer_factory: Optional[ObserverFactory] = None,
    ) -> None:
        self._workspace = workspace
        self._observer_factory: ObserverFactory = observer_factory or Observer
        self._observer: Optional[BaseObserver] = None
        self._queue: "asyncio.Queue[PageItem]" = asyncio.Queue()
        self._seen: Set[int] = set()
        self._last_ordinal = 0
        self._end: Optional[EndOfJob] = None
        self._started = False

    async def start(self) -> None:
        if self._started:
            raise RuntimeError("page watcher cannot be restarted")
        self._started = True
        loop = asyncio.get_running_loop()
        observer = self._observer_factory()
        observer.schedule(
            _ClosedFileHandler(loop, self._on_closed),
            str(self._workspace.path),
            recursive=False,
        )
        observer.start()
        self._observer = observer
        LOGGER.debug("Watching %s for page bitmaps", self._workspace.path)

    async def next_page(self) -> PageItem:
        if self._end is not None and self._queue.empty():
            return self._end
        return await self._queue.get()

    async def finish(self, *, cancelled: bool = False) -> None:
        """Stop watching and close the sequence.

        Bitmaps the observer never reported are picked up from the directory,
        in ordinal order, unless the job was cancelled.
        """
        await self._stop_observer()
        if self._end is not None:
            return
        if not cancelled:
            late = [ref for ref in self._workspace.list_pages() if ref.ordinal not in self._seen]
            if late:
                LOGGER.debug(
                    "Recovered %d page(s) not reported by the watcher", len(late)
                )
            for ref in late:
                self._accept(ref)
        self._close_sequence(EndOfJob(cancelled=cancelled))

    async def close(self) -> None:
        await self._stop_observer()

    async def _stop_observer(self) -> None:
        observer = self._observer
        if observer is None:
            return
        self._observer = None
        observer.stop()
        # Callbacks scheduled before join() returns run before we resume.
        await asyncio.to_thread(observer.join)

    def _on_closed(self, path: Path) -> None:
        if self._end is not None:
            return
        ref = self._workspace.page_ref(path)
        if ref is None:
            return
        if ref.is_sentinel:
            LOGGER.debug("Termination marker %s observed", path.name)
            self._close_sequence(EndOfJob())
            return
        if ref.ordinal in self._seen:
            return
        self._accept(ref)

    def _accept(self, ref: PageRef) -> None:
        if ref.ordinal < self._last_ordinal:
            LOGGER.warning(
                "Page %d completed after page %d; emitting in arrival order",
                ref.ordinal,
                self._last_ordinal,
            )
        self._seen.add(ref.ordinal)
        self._last_ordinal = max(self._last_ordinal, ref.ordinal)
        self._queue.put_nowait(ref)

    def _close_sequence(self, end: EndOfJob) -> None:
        self._end = end
        self._queue.put_nowait(end)
