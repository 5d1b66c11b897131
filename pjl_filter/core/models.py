"""Job and page data structures."""

from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Optional, Tuple

from .. import constants

_LEADING_DIGITS = re.compile(r"^\s*(\d+)")


@dataclass(frozen=True)
class JobSettings:
    """Page setup resolved from the job's option tokens."""

    page_size: str = constants.DEFAULT_PAGE_SIZE
    resolution: int = constants.DEFAULT_RESOLUTION
    input_slot: str = constants.DEFAULT_INPUT_SLOT


def resolve_settings(options: Tuple[str, ...]) -> JobSettings:
    """Resolve page size, resolution and tray from ``Key=Value`` tokens.

    Unknown keys and malformed tokens are ignored. Later tokens win.
    """
    page_size = constants.DEFAULT_PAGE_SIZE
    resolution = constants.DEFAULT_RESOLUTION
    input_slot = constants.DEFAULT_INPUT_SLOT

    for token in options:
        key, sep, value = token.partition("=")
        if not sep or not value:
            continue
        if key == "PageSize":
            page_size = value.upper()
        elif key == "Resolution":
            # "300dpi", "600x600dpi" -> leading number
            match = _LEADING_DIGITS.match(value)
            if match and int(match.group(1)) > 0:
                resolution = int(match.group(1))
        elif key == "InputSlot":
            input_slot = value

    return JobSettings(page_size=page_size, resolution=resolution, input_slot=input_slot)


def split_options(raw: str) -> Tuple[str, ...]:
    return tuple(token for token in raw.split() if token)


@dataclass(frozen=True)
class Job:
    """One print request, immutable for the invocation."""

    job_id: str
    user: str
    title: str
    copies: int = 1
    options: Tuple[str, ...] = ()
    document: Optional[Path] = None
    created_at: datetime = field(default_factory=datetime.now)

    @property
    def settings(self) -> JobSettings:
        return resolve_settings(self.options)


@dataclass(frozen=True, order=True)
class PageRef:
    """A page bitmap that is ready in the workspace."""

    ordinal: int
    path: Path = field(compare=False)

    @property
    def is_sentinel(self) -> bool:
        return self.ordinal >= constants.SENTINEL_ORDINAL


@dataclass(frozen=True)
class EndOfJob:
    """Marks the end of the page sequence."""

    cancelled: bool = False


@dataclass(frozen=True)
class Page:
    """Attributes derived once per page."""

    ordinal: int
    width: int
    height: int
    compressed_length: int
    dot_count: int


def dot_count(width: int, height: int, mean_gray: float) -> int:
    """Toner usage hint: ``floor(floor(w * h * (1 - mean)) / 100)``.

    ``mean_gray`` is the normalized mean luminance, 0 is black and 1 is white.
    """
    if width < 0 or height < 0:
        raise ValueError("dimensions must be non-negative")
    if not 0.0 <= mean_gray <= 1.0:
        raise ValueError(f"mean luminance out of range: {mean_gray!r}")
    covered = math.floor(width * height * (1.0 - mean_gray))
    return max(0, covered // 100)
