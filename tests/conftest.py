from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Optional

import pytest
from PIL import Image

UEL = b"\x1b%-12345X"
CRLF = b"\r\n"


@dataclass
class ParsedPage:
    settings: Dict[str, str]
    body: bytes
    footer: Dict[str, str]


@dataclass
class ParsedJob:
    """A PJL job stream split back into its frames."""

    header: Dict[str, str]
    pages: List[ParsedPage] = field(default_factory=list)
    directives: List[str] = field(default_factory=list)
    closed: bool = False


def _parse_job(data: bytes) -> ParsedJob:
    prologue = UEL + b"@PJL" + CRLF
    assert data.startswith(prologue), data[:40]
    pos = len(prologue)
    job = ParsedJob(header={})
    page: Optional[ParsedPage] = None
    in_footer = False

    while pos < len(data):
        if data.startswith(UEL, pos):
            assert pos + len(UEL) == len(data), "bytes after closing UEL"
            assert job.directives and job.directives[-1] == "@PJL EOJ"
            job.closed = True
            break
        end = data.index(CRLF, pos)
        line = data[pos:end].decode("utf-8")
        assert "\n" not in line and "\r" not in line
        pos = end + len(CRLF)
        job.directives.append(line)

        if line == "@PJL EOJ":
            assert page is None, "job footer inside a page frame"
            continue
        assert line.startswith("@PJL SET "), line
        key, _, value = line[len("@PJL SET "):].partition("=")

        if key == "PAGESTATUS" and value == "START":
            assert page is None, "nested page frame"
            page = ParsedPage(settings={}, body=b"", footer={})
            in_footer = False
        elif page is None:
            job.header[key] = value
        elif key == "IMAGELEN":
            page.settings[key] = value
            length = int(value)
            page.body = data[pos:pos + length]
            assert len(page.body) == length, "truncated page body"
            pos += length
            in_footer = True
        elif key == "PAGESTATUS" and value == "END":
            job.pages.append(page)
            page = None
        elif in_footer:
            page.footer[key] = value
        else:
            page.settings[key] = value

    assert page is None, "unterminated page frame"
    return job


@pytest.fixture
def parse_job() -> Callable[[bytes], ParsedJob]:
    return _parse_job


def _write_pbm(path: Path, width: int = 64, height: int = 32, *, black: bool = False) -> Path:
    Image.new("1", (width, height), 0 if black else 1).save(path, format="PPM")
    return path


@pytest.fixture
def write_pbm() -> Callable[..., Path]:
    """Write a bilevel PBM page; white unless ``black`` is set."""
    return _write_pbm
