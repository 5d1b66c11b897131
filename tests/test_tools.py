"""Tests for the subprocess tool adapters."""

from __future__ import annotations

import asyncio
import os
import shlex
import sys
from pathlib import Path

import pytest

from pjl_filter.adapters.tools import (
    GhostscriptRasterizer,
    JbigCompressor,
    build_ghostscript_argv,
    run_tool,
    split_command,
)
from pjl_filter.core.models import JobSettings
from pjl_filter.errors import CompressionError, RasterizationError


def _python_command(script: str) -> str:
    return shlex.join([sys.executable, "-c", script])


def test_split_command_rejects_empty() -> None:
    assert split_command("pbmtojbg -q") == ["pbmtojbg", "-q"]
    with pytest.raises(ValueError):
        split_command("   ")


def test_ghostscript_argv() -> None:
    argv = build_ghostscript_argv(
        ["gs"],
        Path("/tmp/ws/page-%03d.pbm"),
        JobSettings(page_size="LETTER", resolution=300),
        Path("/tmp/in.ps"),
    )

    assert argv[0] == "gs"
    assert "-sDEVICE=pbmraw" in argv
    assert "-r300" in argv
    assert "-sPAPERSIZE=letter" in argv
    assert "-dLastPage=998" in argv
    assert "-sOutputFile=/tmp/ws/page-%03d.pbm" in argv
    assert argv[-1] == "/tmp/in.ps"


def test_ghostscript_argv_reads_stdin_without_document() -> None:
    argv = build_ghostscript_argv(["gs"], Path("out-%03d.pbm"), JobSettings())
    assert argv[-1] == "-"


@pytest.mark.asyncio
async def test_run_tool_collects_stdout() -> None:
    result = await run_tool(
        [sys.executable, "-c", "import sys; sys.stdout.buffer.write(b'\\x00\\x01ok')"],
        error_cls=CompressionError,
    )

    assert result.returncode == 0
    assert result.stdout == b"\x00\x01ok"


@pytest.mark.asyncio
async def test_run_tool_nonzero_exit_raises_with_stderr() -> None:
    with pytest.raises(RasterizationError, match="status 3.*broken input"):
        await run_tool(
            [sys.executable, "-c", "import sys; sys.stderr.write('broken input'); sys.exit(3)"],
            error_cls=RasterizationError,
        )


@pytest.mark.asyncio
async def test_run_tool_missing_binary_raises() -> None:
    with pytest.raises(CompressionError, match="cannot run"):
        await run_tool(["/nonexistent/pbmtojbg"], error_cls=CompressionError)


@pytest.mark.asyncio
async def test_cancelling_run_tool_stops_the_process(tmp_path: Path) -> None:
    pid_file = tmp_path / "pid"
    script = (
        "import os, pathlib, time; "
        f"pathlib.Path({str(pid_file)!r}).write_text(str(os.getpid())); "
        "time.sleep(60)"
    )
    task = asyncio.create_task(
        run_tool([sys.executable, "-c", script], error_cls=RasterizationError, kill_timeout=2.0)
    )
    for _ in range(200):
        if pid_file.exists() and pid_file.read_text():
            break
        await asyncio.sleep(0.05)
    pid = int(pid_file.read_text())

    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    with pytest.raises(ProcessLookupError):
        os.kill(pid, 0)


@pytest.mark.asyncio
async def test_jbig_compressor_returns_stdout(tmp_path: Path) -> None:
    bitmap = tmp_path / "page-001.pbm"
    bitmap.write_bytes(b"P4\n8 1\n\xff")
    compressor = JbigCompressor(
        _python_command(
            "import sys; data = open(sys.argv[-1], 'rb').read(); "
            "sys.stdout.buffer.write(b'JBG' + bytes([len(data)]))"
        )
    )

    assert await compressor.compress(bitmap) == b"JBG" + bytes([8])


@pytest.mark.asyncio
async def test_jbig_compressor_empty_output_is_an_error(tmp_path: Path) -> None:
    bitmap = tmp_path / "page-001.pbm"
    bitmap.write_bytes(b"P4\n8 1\n\xff")
    compressor = JbigCompressor(_python_command("pass"))

    with pytest.raises(CompressionError, match="no output"):
        await compressor.compress(bitmap)


@pytest.mark.asyncio
async def test_ghostscript_rasterizer_writes_into_pattern(tmp_path: Path) -> None:
    document = tmp_path / "in.ps"
    document.write_text("%!PS\nshowpage\nshowpage\n")
    # Stand-in renderer: one page per "showpage" in the document.
    script = (
        "import sys\n"
        "args = sys.argv[1:]\n"
        "pattern = next(a for a in args if a.startswith('-sOutputFile='))[len('-sOutputFile='):]\n"
        "assert '-r150' in args\n"
        "pages = open(args[-1]).read().count('showpage')\n"
        "for n in range(1, pages + 1):\n"
        "    open(pattern % n, 'wb').write(b'P4\\n8 1\\n\\x00')\n"
    )
    rasterizer = GhostscriptRasterizer(_python_command(script))

    await rasterizer.rasterize(tmp_path / "page-%03d.pbm", JobSettings(resolution=150), document)

    assert sorted(p.name for p in tmp_path.glob("page-*.pbm")) == ["page-001.pbm", "page-002.pbm"]


@pytest.mark.asyncio
async def test_ghostscript_rasterizer_failure(tmp_path: Path) -> None:
    rasterizer = GhostscriptRasterizer(_python_command("import sys; sys.exit(1)"))

    with pytest.raises(RasterizationError):
        await rasterizer.rasterize(tmp_path / "page-%03d.pbm", JobSettings(), tmp_path / "x.ps")
