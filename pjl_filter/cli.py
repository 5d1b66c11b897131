"""Command-line interface for pjl-filter.

Invoked by the print spooler with the standard filter arguments::

    pjl-filter JOB-ID USER TITLE COPIES OPTIONS [FILE]

The document is read from FILE, or from stdin when FILE is omitted. The
device stream goes to stdout; diagnostics go to stderr.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Optional

from . import constants
from .config import load_config
from .controller import JobController, JobOutcome
from .core.models import Job, split_options
from .logging import configure_logging
from .version import __version__

LOGGER = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILED = 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog=constants.APP_NAME,
        description="Convert a PostScript/PDF print job into a JBIG PJL stream",
    )
    parser.add_argument(
        "-c",
        "--config",
        type=Path,
        default=None,
        help=(
            f"Path to configuration file (default: ${constants.CONFIG_ENV_VAR} "
            f"or {constants.DEFAULT_CONFIG_PATH})"
        ),
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("job_id", help="Job identifier")
    parser.add_argument("user", help="Requesting user")
    parser.add_argument("title", help="Job title / source filename")
    parser.add_argument("copies", type=int, help="Number of copies")
    parser.add_argument("options", help="Space-separated Key=Value job options")
    parser.add_argument(
        "file", nargs="?", type=Path, default=None, help="Document to print (default: stdin)"
    )
    return parser


def job_from_args(args: argparse.Namespace) -> Job:
    return Job(
        job_id=args.job_id,
        user=args.user,
        title=args.title,
        copies=max(1, args.copies),
        options=split_options(args.options),
        document=args.file,
    )


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    config = load_config(args.config)
    configure_logging(
        config.logging.level,
        log_path=config.logging.path,
        debug=config.debug.enabled,
    )
    LOGGER.debug("Configuration loaded from %s", config.path)

    controller = JobController(job_from_args(args), config)
    try:
        outcome = asyncio.run(controller.run())
    except KeyboardInterrupt:
        LOGGER.info("%s interrupted before the job started", constants.APP_NAME)
        return EXIT_FAILED

    if outcome is JobOutcome.FAILED:
        return EXIT_FAILED
    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
