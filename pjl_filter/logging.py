"""Logging configuration helpers."""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Optional

# CUPS reads "LEVEL: message" lines from a filter's stderr.
CONSOLE_FORMAT = "%(levelname)s: %(name)s | %(message)s"
FILE_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


def configure_logging(
    level: str = "INFO", *, log_path: Optional[Path] = None, debug: bool = False
) -> None:
    """Configure root logging handlers.

    Parameters
    ----------
    level:
        Log level name, e.g. "INFO".
    log_path:
        Optional filesystem path for an additional file handler. When absent,
        only stderr logging is configured.
    debug:
        When true, force DEBUG regardless of ``level``.
    """

    logging.captureWarnings(True)

    for handler in list(logging.getLogger().handlers):
        logging.getLogger().removeHandler(handler)

    resolved = logging.DEBUG if debug else getattr(logging, level.upper(), logging.INFO)

    # stdout carries the print stream; never log there.
    logging.basicConfig(level=resolved, format=CONSOLE_FORMAT, stream=sys.stderr)

    if log_path:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path)
        file_handler.setFormatter(logging.Formatter(FILE_FORMAT))
        logging.getLogger().addHandler(file_handler)

    if not debug:
        logging.getLogger("watchdog").setLevel(logging.WARNING)
