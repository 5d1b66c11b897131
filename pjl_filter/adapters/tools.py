"""Subprocess adapters for the rasterizer and the bitmap compressor.

Each external tool runs as an asyncio subprocess. Cancelling the awaiting
task terminates the child (escalating to SIGKILL after a grace period) before
the cancellation propagates, so no tool outlives its job.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import shlex
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence, Tuple, Type

from .. import constants
from ..core.models import JobSettings
from ..errors import CompressionError, FilterError, RasterizationError

LOGGER = logging.getLogger(__name__)

_STDERR_TAIL = 400


@dataclass(slots=True)
class ToolResult:
    """Outcome of a finished tool invocation."""

    argv: Tuple[str, ...]
    returncode: int
    stdout: bytes
    stderr: bytes


def split_command(command: str) -> List[str]:
    argv = shlex.split(command)
    if not argv:
        raise ValueError("empty tool command")
    return argv


def _stderr_tail(stderr: bytes) -> str:
    text = stderr.decode("utf-8", errors="replace").strip()
    if len(text) > _STDERR_TAIL:
        text = "..." + text[-_STDERR_TAIL:]
    return text


async def stop_process(
    process: asyncio.subprocess.Process,
    *,
    timeout: float = constants.DEFAULT_KILL_TIMEOUT_SECONDS,
) -> None:
    """Terminate a child process, killing it if it ignores SIGTERM."""
    if process.returncode is not None:
        return
    with contextlib.suppress(ProcessLookupError):
        process.terminate()
    try:
        await asyncio.wait_for(process.wait(), timeout=timeout)
    except asyncio.TimeoutError:
        LOGGER.warning("Process %s ignored SIGTERM; killing", process.pid)
        with contextlib.suppress(ProcessLookupError):
            process.kill()
        await process.wait()


async def run_tool(
    argv: Sequence[str],
    *,
    error_cls: Type[FilterError],
    inherit_stdin: bool = False,
    kill_timeout: float = constants.DEFAULT_KILL_TIMEOUT_SECONDS,
) -> ToolResult:
    """Run ``argv`` to completion and collect its output.

    Only a tool started with ``inherit_stdin`` reads the filter's stdin.
    Raises ``error_cls`` if the tool cannot be started or exits with a
    non-zero status.
    """
    name = Path(argv[0]).name
    LOGGER.debug("Running %s", shlex.join(argv))
    try:
        process = await asyncio.create_subprocess_exec(
            *argv,
            stdin=None if inherit_stdin else asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as exc:
        raise error_cls(f"cannot run {name}: {exc}") from exc

    try:
        stdout, stderr = await process.communicate()
    except asyncio.CancelledError:
        LOGGER.info("Stopping %s (pid %s)", name, process.pid)
        await stop_process(process, timeout=kill_timeout)
        raise

    returncode = process.returncode if process.returncode is not None else -1
    if returncode != 0:
        detail = _stderr_tail(stderr)
        raise error_cls(
            f"{name} exited with status {returncode}" + (f": {detail}" if detail else "")
        )

    return ToolResult(
        argv=tuple(argv), returncode=returncode, stdout=stdout, stderr=stderr
    )


def build_ghostscript_argv(
    command: Sequence[str],
    output_pattern: Path,
    settings: JobSettings,
    document: Optional[Path] = None,
) -> List[str]:
    return [
        *command,
        "-q",
        "-dSAFER",
        "-dBATCH",
        "-dNOPAUSE",
        "-sDEVICE=pbmraw",
        f"-r{settings.resolution}",
        f"-sPAPERSIZE={settings.page_size.lower()}",
        f"-dLastPage={constants.MAX_PAGE_ORDINAL}",
        f"-sOutputFile={output_pattern}",
        str(document) if document is not None else "-",
    ]


class GhostscriptRasterizer:
    """Renders PostScript/PDF into one PBM per page with Ghostscript."""

    def __init__(
        self,
        command: str = "gs",
        *,
        kill_timeout: float = constants.DEFAULT_KILL_TIMEOUT_SECONDS,
    ) -> None:
        self._command = split_command(command)
        self._kill_timeout = kill_timeout

    async def rasterize(
        self,
        output_pattern: Path,
        settings: JobSettings,
        document: Optional[Path] = None,
    ) -> None:
        argv = build_ghostscript_argv(self._command, output_pattern, settings, document)
        result = await run_tool(
            argv,
            error_cls=RasterizationError,
            inherit_stdin=document is None,
            kill_timeout=self._kill_timeout,
        )
        if result.stderr:
            LOGGER.debug("ghostscript: %s", _stderr_tail(result.stderr))


class JbigCompressor:
    """Compresses a PBM page with ``pbmtojbg``; JBIG is written to stdout."""

    def __init__(
        self,
        command: str = "pbmtojbg -p 72 -o 3 -m 0 -q",
        *,
        kill_timeout: float = constants.DEFAULT_KILL_TIMEOUT_SECONDS,
    ) -> None:
        self._command = split_command(command)
        self._kill_timeout = kill_timeout

    async def compress(self, bitmap: Path) -> bytes:
        result = await run_tool(
            [*self._command, str(bitmap)],
            error_cls=CompressionError,
            kill_timeout=self._kill_timeout,
        )
        if not result.stdout:
            raise CompressionError(f"{bitmap.name}: compressor produced no output")
        return result.stdout
