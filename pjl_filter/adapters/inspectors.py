"""Geometry inspectors for page bitmaps.

Two implementations report the same facts, pixel dimensions and mean
luminance in ``[0, 1]`` (0 being black):

- ``IdentifyInspector`` shells out to ImageMagick's ``identify``.
- ``PillowInspector`` reads the bitmap in-process with Pillow, which avoids
  two process launches per page on hosts without ImageMagick.
"""

from __future__ import annotations

import asyncio
import logging
import math
from pathlib import Path
from typing import Tuple

from PIL import Image, ImageStat, UnidentifiedImageError

from .. import constants
from ..errors import InspectionError
from .tools import run_tool, split_command

LOGGER = logging.getLogger(__name__)

_READ_ERRORS = (OSError, UnidentifiedImageError, Image.DecompressionBombError)


def parse_dimensions(text: str) -> Tuple[int, int]:
    parts = text.split()
    if len(parts) < 2:
        raise InspectionError(f"expected 'width height', got {text!r}")
    try:
        width, height = int(parts[0]), int(parts[1])
    except ValueError as exc:
        raise InspectionError(f"non-numeric dimensions {text!r}") from exc
    if width <= 0 or height <= 0:
        raise InspectionError(f"invalid dimensions {width}x{height}")
    return width, height


def parse_luminance(text: str) -> float:
    value_text = text.strip()
    if not value_text:
        raise InspectionError("empty luminance output")
    try:
        value = float(value_text)
    except ValueError as exc:
        raise InspectionError(f"non-numeric luminance {value_text!r}") from exc
    if math.isnan(value) or not 0.0 <= value <= 1.0:
        raise InspectionError(f"luminance out of range: {value_text}")
    return value


class IdentifyInspector:
    """Reads geometry with ImageMagick ``identify -format``."""

    def __init__(
        self,
        command: str = "identify",
        *,
        kill_timeout: float = constants.DEFAULT_KILL_TIMEOUT_SECONDS,
    ) -> None:
        self._command = split_command(command)
        self._kill_timeout = kill_timeout

    async def _format(self, bitmap: Path, fmt: str) -> str:
        result = await run_tool(
            [*self._command, "-format", fmt, str(bitmap)],
            error_cls=InspectionError,
            kill_timeout=self._kill_timeout,
        )
        return result.stdout.decode("ascii", errors="replace")

    async def dimensions(self, bitmap: Path) -> Tuple[int, int]:
        return parse_dimensions(await self._format(bitmap, "%w %h"))

    async def mean_luminance(self, bitmap: Path) -> float:
        return parse_luminance(await self._format(bitmap, "%[fx:mean]"))


class PillowInspector:
    """Reads geometry in-process with Pillow.

    Pillow's decompression-bomb limit is process-wide; constructing an
    inspector raises it to ``max_pixels`` (never lowers it) so full-bleed
    pages at high resolution can be read.
    """

    def __init__(self, *, max_pixels: int = constants.MAX_BITMAP_PIXELS) -> None:
        if Image.MAX_IMAGE_PIXELS is not None and Image.MAX_IMAGE_PIXELS < max_pixels:
            Image.MAX_IMAGE_PIXELS = max_pixels

    async def dimensions(self, bitmap: Path) -> Tuple[int, int]:
        return await asyncio.to_thread(self._read_dimensions, bitmap)

    async def mean_luminance(self, bitmap: Path) -> float:
        return await asyncio.to_thread(self._read_luminance, bitmap)

    @staticmethod
    def _read_dimensions(bitmap: Path) -> Tuple[int, int]:
        try:
            with Image.open(bitmap) as img:
                width, height = img.size
        except _READ_ERRORS as exc:
            raise InspectionError(f"{bitmap.name}: {exc}") from exc
        if width <= 0 or height <= 0:
            raise InspectionError(f"{bitmap.name}: invalid dimensions {width}x{height}")
        return width, height

    @staticmethod
    def _read_luminance(bitmap: Path) -> float:
        try:
            with Image.open(bitmap) as img:
                # Bilevel pages become 0/255 greyscale.
                stat = ImageStat.Stat(img.convert("L"))
        except _READ_ERRORS as exc:
            raise InspectionError(f"{bitmap.name}: {exc}") from exc
        mean = stat.mean[0] / 255.0
        LOGGER.debug("%s mean luminance %.4f", bitmap.name, mean)
        return min(1.0, max(0.0, mean))
