"""Protocol definitions for external collaborators and page sources."""

from __future__ import annotations

from pathlib import Path
from typing import Optional, Protocol, Tuple, Union

from .models import EndOfJob, JobSettings, PageRef

PageItem = Union[PageRef, EndOfJob]


class Rasterizer(Protocol):
    """Renders a document into one bitmap per page inside a directory."""

    async def rasterize(
        self,
        output_pattern: Path,
        settings: JobSettings,
        document: Optional[Path] = None,
    ) -> None:
        """Render ``document`` (stdin when ``None``) into ``output_pattern``.

        Args:
            output_pattern: printf-style path, e.g. ``/tmp/ws/page-%03d.pbm``.
            settings: Resolved page size and resolution.
            document: Source document path.

        Raises:
            RasterizationError: If the renderer cannot run or fails.

        Cancelling the awaiting task must stop the renderer before returning.
        """
        ...


class BitmapCompressor(Protocol):
    """Turns one page bitmap into the device's compressed raster format."""

    async def compress(self, bitmap: Path) -> bytes:
        """Return the compressed raster.

        Raises:
            CompressionError: If the tool fails or produces no output.
        """
        ...


class GeometryInspector(Protocol):
    """Reports pixel dimensions and mean luminance of a bitmap."""

    async def dimensions(self, bitmap: Path) -> Tuple[int, int]:
        """Return ``(width, height)`` in pixels."""
        ...

    async def mean_luminance(self, bitmap: Path) -> float:
        """Return mean luminance normalized to ``[0, 1]``, 0 being black."""
        ...


class PageSource(Protocol):
    """Yields ready pages followed by a single ``EndOfJob``."""

    async def start(self) -> None:
        """Begin discovering pages. Called before the rasterizer starts."""
        ...

    async def next_page(self) -> PageItem:
        """Wait for the next ready page or the end of the job."""
        ...

    async def finish(self, *, cancelled: bool = False) -> None:
        """Signal that the rasterizer has stopped producing pages."""
        ...

    async def close(self) -> None:
        """Release any watch resources."""
        ...
