"""Constants used across the pjl-filter package."""

from __future__ import annotations

from pathlib import Path

APP_NAME = "pjl-filter"
DEFAULT_CONFIG_FILENAME = f"{APP_NAME}.cfg"
DEFAULT_CONFIG_PATH = Path("/etc/cups") / DEFAULT_CONFIG_FILENAME

CONFIG_ENV_VAR = "PJL_FILTER_CONFIG"
DEBUG_ENV_VAR = "PJL_FILTER_DEBUG"

DEFAULT_PAGE_SIZE = "A4"
DEFAULT_RESOLUTION = 600
DEFAULT_INPUT_SLOT = "TRAY1"

# Page bitmaps are named page-001.pbm, page-002.pbm, ...
PAGE_PREFIX = "page-"
PAGE_SUFFIX = ".pbm"
PAGE_ORDINAL_WIDTH = 3

# Reserved ordinal; the rasterizer is capped one below it.
SENTINEL_ORDINAL = 999
MAX_PAGE_ORDINAL = SENTINEL_ORDINAL - 1

# Largest page bitmap read in-process (A3 at 2400 dpi is about 1.1e9).
MAX_BITMAP_PIXELS = 1_200_000_000

DEBUG_OUTPUT_FILENAME = "job.pjl"

DEFAULT_DRAIN_SECONDS = 30.0
DEFAULT_KILL_TIMEOUT_SECONDS = 5.0
