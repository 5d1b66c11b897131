"""Job controller: runs one print job from rasterization to the job footer."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import signal
import sys
from enum import Enum
from typing import BinaryIO, Optional

from . import constants
from .adapters import (
    GhostscriptRasterizer,
    IdentifyInspector,
    JbigCompressor,
    PillowInspector,
)
from .config import FilterConfig
from .core.models import EndOfJob, Job
from .core.protocols import (
    BitmapCompressor,
    GeometryInspector,
    PageSource,
    Rasterizer,
)
from .errors import FilterError, FramingViolation, SetupError
from .framing import JobStream, StreamState
from .processor import PageProcessor
from .sources import ListedPageSource, WatchedPageSource, watch_supported
from .sources.watched import ObserverFactory
from .workspace import Workspace

LOGGER = logging.getLogger(__name__)


class Strategy(str, Enum):
    ASYNC = "async"
    SYNC = "sync"


class JobOutcome(str, Enum):
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"


def select_strategy(requested: str, watch_available: bool) -> Strategy:
    """Pick the page-discovery strategy once, at startup."""
    if requested == Strategy.SYNC.value:
        return Strategy.SYNC
    if watch_available:
        return Strategy.ASYNC
    if requested == Strategy.ASYNC.value:
        LOGGER.warning("File-close events unavailable on this host; using sync strategy")
    return Strategy.SYNC


def build_inspector(config: FilterConfig) -> GeometryInspector:
    if config.tools.inspector == "pillow":
        return PillowInspector()
    return IdentifyInspector(
        config.tools.identify, kill_timeout=config.job.kill_timeout_seconds
    )


class JobController:
    """Coordinates a single job.

    This class owns everything with process-level effect:
    - the workspace directory (creation, drain, removal)
    - SIGTERM/SIGINT handling and the cancellation token
    - the rasterizer task and its subprocess
    - the outcome reported to the caller

    Collaborators can be injected for testing; by default they are built from
    the configuration.
    """

    def __init__(
        self,
        job: Job,
        config: Optional[FilterConfig] = None,
        *,
        rasterizer: Optional[Rasterizer] = None,
        compressor: Optional[BitmapCompressor] = None,
        inspector: Optional[GeometryInspector] = None,
        output: Optional[BinaryIO] = None,
        watch_available: Optional[bool] = None,
        observer_factory: Optional[ObserverFactory] = None,
        handle_signals: bool = True,
    ) -> None:
        self._job = job
        self._config = config or FilterConfig()
        kill_timeout = self._config.job.kill_timeout_seconds
        self._rasterizer: Rasterizer = rasterizer or GhostscriptRasterizer(
            self._config.tools.ghostscript, kill_timeout=kill_timeout
        )
        self._compressor: BitmapCompressor = compressor or JbigCompressor(
            self._config.tools.compressor, kill_timeout=kill_timeout
        )
        self._inspector: GeometryInspector = inspector or build_inspector(self._config)
        self._output = output
        self._owned_output: Optional[BinaryIO] = None
        self._observer_factory = observer_factory
        self._handle_signals = handle_signals

        available = watch_supported() if watch_available is None else watch_available
        self._strategy = select_strategy(self._config.job.strategy, available)

        self._workspace = Workspace(job.job_id, root=self._config.job.workspace_root)
        self._cancel_event = asyncio.Event()
        self._rasterizer_task: Optional[asyncio.Task[None]] = None
        self._stream: Optional[JobStream] = None

    @property
    def strategy(self) -> Strategy:
        return self._strategy

    @property
    def workspace(self) -> Workspace:
        return self._workspace

    @property
    def stream(self) -> Optional[JobStream]:
        return self._stream

    @property
    def cancelled(self) -> bool:
        return self._cancel_event.is_set()

    @property
    def debug(self) -> bool:
        return self._config.debug.enabled

    def cancel(self, reason: str = "cancel requested") -> None:
        """Stop the job cooperatively; safe to call from a signal handler."""
        if self._cancel_event.is_set():
            return
        LOGGER.warning("Job %s cancelled: %s", self._job.job_id, reason)
        self._cancel_event.set()
        task = self._rasterizer_task
        if task is not None and not task.done():
            task.cancel()

    async def run(self) -> JobOutcome:
        loop = asyncio.get_running_loop()
        settings = self._job.settings
        LOGGER.info(
            "Job %s for %s: %s, %d copies, %s @ %d dpi from %s (%s strategy)",
            self._job.job_id,
            self._job.user,
            self._job.title,
            self._job.copies,
            settings.page_size,
            settings.resolution,
            settings.input_slot,
            self._strategy.value,
        )

        try:
            self._workspace.create()
        except SetupError as exc:
            LOGGER.error("Job %s aborted: %s", self._job.job_id, exc)
            return JobOutcome.FAILED

        self._install_signal_handlers(loop)
        try:
            outcome = await self._run_job()
            await self._drain()
        finally:
            self._close_owned_output()
            self._workspace.teardown(keep=self.debug)
            self._remove_signal_handlers(loop)

        LOGGER.info("Job %s %s", self._job.job_id, outcome.value)
        return outcome

    async def _run_job(self) -> JobOutcome:
        self._stream = JobStream(self._open_output(), self._job)
        processor = PageProcessor(
            self._job,
            self._stream,
            compressor=self._compressor,
            inspector=self._inspector,
        )

        source = await self._open_source()
        consumer = asyncio.create_task(self._consume(source, processor))
        rasterizer = asyncio.create_task(
            self._rasterizer.rasterize(
                self._workspace.page_pattern, self._job.settings, self._job.document
            )
        )
        self._rasterizer_task = rasterizer
        if self._cancel_event.is_set():
            rasterizer.cancel()

        try:
            done, _ = await asyncio.wait(
                {consumer, rasterizer}, return_when=asyncio.FIRST_COMPLETED
            )
            if consumer in done and not rasterizer.done():
                # The consumer only stops early on failure or a termination marker.
                rasterizer.cancel()
            await asyncio.wait({rasterizer})

            rasterizer_error = None
            if not rasterizer.cancelled():
                rasterizer_error = rasterizer.exception()
            rasterized = not rasterizer.cancelled() and rasterizer_error is None
            await source.finish(cancelled=not rasterized)
            await asyncio.wait({consumer})
        finally:
            for task in (consumer, rasterizer):
                if not task.done():
                    task.cancel()
                    with contextlib.suppress(asyncio.CancelledError):
                        await task
            await source.close()
            self._rasterizer_task = None

        consumer_error = None if consumer.cancelled() else consumer.exception()

        if isinstance(consumer_error, FramingViolation):
            LOGGER.critical("Framing invariant broken: %s", consumer_error)
            raise consumer_error
        for error in (consumer_error, rasterizer_error):
            if error is not None and not isinstance(error, FilterError):
                raise error
        if consumer_error is not None:
            LOGGER.error("Job %s aborted: %s", self._job.job_id, consumer_error)
            return JobOutcome.FAILED
        if rasterizer_error is not None:
            LOGGER.error("Job %s aborted: %s", self._job.job_id, rasterizer_error)
            return JobOutcome.FAILED
        if self.cancelled or not rasterized:
            return JobOutcome.CANCELLED
        if self._stream.pages_written == 0:
            LOGGER.warning("Job %s produced no pages", self._job.job_id)
        return JobOutcome.COMPLETED

    async def _consume(self, source: PageSource, processor: PageProcessor) -> None:
        """Process pages one at a time until the sequence ends.

        The job footer is written on every exit path.
        """
        stream = self._stream
        assert stream is not None
        try:
            while True:
                item = await source.next_page()
                if isinstance(item, EndOfJob):
                    break
                if self._cancel_event.is_set():
                    LOGGER.info("Skipping remaining pages after cancellation")
                    break
                if stream.state is StreamState.EMPTY:
                    LOGGER.debug("First page ready; opening job")
                    stream.open()
                await processor.process(item)
        finally:
            if not stream.finished:
                stream.close()
                LOGGER.debug("Job footer written after %d page(s)", stream.pages_written)

    async def _open_source(self) -> PageSource:
        if self._strategy is Strategy.ASYNC:
            watched = WatchedPageSource(
                self._workspace, observer_factory=self._observer_factory
            )
            try:
                await watched.start()
            except OSError as exc:
                LOGGER.warning("Cannot watch workspace (%s); using sync strategy", exc)
                await watched.close()
                self._strategy = Strategy.SYNC
            else:
                return watched
        listed = ListedPageSource(self._workspace)
        await listed.start()
        return listed

    async def _drain(self) -> None:
        """Hold the workspace so the spooler can finish reading our output."""
        delay = self._config.job.drain_seconds
        if delay <= 0 or self.debug or self.cancelled:
            return
        LOGGER.debug("Holding workspace for %.1fs", delay)
        with contextlib.suppress(asyncio.TimeoutError):
            await asyncio.wait_for(self._cancel_event.wait(), timeout=delay)

    def _open_output(self) -> BinaryIO:
        if self._output is not None:
            return self._output
        if self.debug:
            path = self._workspace.path / constants.DEBUG_OUTPUT_FILENAME
            LOGGER.info("Debug mode: writing job stream to %s", path)
            self._owned_output = path.open("wb")
            return self._owned_output
        return sys.stdout.buffer

    def _close_owned_output(self) -> None:
        if self._owned_output is not None:
            self._owned_output.close()
            self._owned_output = None

    def _install_signal_handlers(self, loop: asyncio.AbstractEventLoop) -> None:
        if not self._handle_signals:
            return
        for signum in (signal.SIGTERM, signal.SIGINT):
            with contextlib.suppress(NotImplementedError, RuntimeError):
                loop.add_signal_handler(signum, self.cancel, signal.Signals(signum).name)

    def _remove_signal_handlers(self, loop: asyncio.AbstractEventLoop) -> None:
        if not self._handle_signals:
            return
        for signum in (signal.SIGTERM, signal.SIGINT):
            with contextlib.suppress(NotImplementedError, RuntimeError):
                loop.remove_signal_handler(signum)
