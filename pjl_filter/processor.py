"""Per-page pipeline: compress, inspect, frame, emit."""

from __future__ import annotations

import logging

from .core.models import Job, Page, PageRef, dot_count
from .core.protocols import BitmapCompressor, GeometryInspector
from .errors import InspectionError
from .framing import JobStream

LOGGER = logging.getLogger(__name__)


class PageProcessor:
    """Turns one ready bitmap into a page frame on the job stream.

    Every step that can fail runs before anything is written, so a failing
    page leaves no partial frame behind.
    """

    def __init__(
        self,
        job: Job,
        stream: JobStream,
        *,
        compressor: BitmapCompressor,
        inspector: GeometryInspector,
    ) -> None:
        self._job = job
        self._stream = stream
        self._compressor = compressor
        self._inspector = inspector

    async def process(self, ref: PageRef) -> Page:
        data = await self._compressor.compress(ref.path)
        width, height = await self._inspector.dimensions(ref.path)
        mean = await self._inspector.mean_luminance(ref.path)
        try:
            dots = dot_count(width, height, mean)
        except ValueError as exc:
            raise InspectionError(f"{ref.path.name}: {exc}") from exc

        page = Page(
            ordinal=ref.ordinal,
            width=width,
            height=height,
            compressed_length=len(data),
            dot_count=dots,
        )
        frame = self._stream.framer.page_frame(self._job, page, data)
        self._stream.write_page(frame)

        LOGGER.info(
            "Page %d: %dx%d, %d bytes JBIG, dotcount %d",
            page.ordinal,
            page.width,
            page.height,
            page.compressed_length,
            page.dot_count,
        )
        return page
