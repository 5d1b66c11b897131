"""PJL framing for JBIG page streams.

The device reads a job as::

    UEL @PJL                      job header (once)
      @PJL SET PAGESTATUS=START   page header
      <IMAGELEN bytes of JBIG>    page body
      @PJL SET PAGESTATUS=END     page footer
      ...
    @PJL EOJ UEL                  job footer (once)

``IMAGELEN`` tells the device where the page body ends. A wrong value
desynchronizes the rest of the job, so it is checked before anything is
written. Every directive ends with CRLF regardless of the host platform.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import BinaryIO

from .core.models import Job, JobSettings, Page
from .errors import FramingViolation, OutputError

LOGGER = logging.getLogger(__name__)

CRLF = b"\r\n"
UEL = b"\x1b%-12345X"
TIMESTAMP_FORMAT = "%Y/%m/%d %H:%M:%S"

_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")


def _clean(value: object) -> str:
    return _CONTROL_CHARS.sub("", str(value))


def _directive(key: str, value: object) -> bytes:
    return f"@PJL SET {key}={_clean(value)}".encode("utf-8", errors="replace") + CRLF


@dataclass(frozen=True)
class PageFrame:
    """Header, payload and footer of one page."""

    header: bytes
    body: bytes
    footer: bytes

    def to_bytes(self) -> bytes:
        return self.header + self.body + self.footer


class ProtocolFramer:
    """Builds PJL directive sequences. Stateless."""

    def header(self, job: Job) -> bytes:
        return b"".join(
            [
                UEL + b"@PJL" + CRLF,
                _directive("TIMESTAMP", job.created_at.strftime(TIMESTAMP_FORMAT)),
                _directive("FILENAME", job.title),
                _directive("COMPRESS", "JBIG"),
                _directive("USERNAME", job.user),
                _directive("COVER", "OFF"),
                _directive("HOLD", "OFF"),
            ]
        )

    def page_header(self, job: Job, page: Page, settings: JobSettings) -> bytes:
        return b"".join(
            [
                _directive("PAGESTATUS", "START"),
                _directive("COPIES", job.copies),
                _directive("MEDIASOURCE", settings.input_slot),
                _directive("PAPER", settings.page_size),
                _directive("PAPERWIDTH", page.width),
                _directive("PAPERLENGTH", page.height),
                _directive("RESOLUTION", settings.resolution),
                _directive("IMAGELEN", page.compressed_length),
            ]
        )

    def page_body(self, data: bytes) -> bytes:
        return bytes(data)

    def page_footer(self, dot_count: int) -> bytes:
        return _directive("DOTCOUNT", dot_count) + _directive("PAGESTATUS", "END")

    def footer(self) -> bytes:
        return b"@PJL EOJ" + CRLF + UEL

    def page_frame(self, job: Job, page: Page, data: bytes) -> PageFrame:
        """Assemble a complete page frame.

        Raises:
            FramingViolation: If the page's declared length does not match ``data``.
        """
        body = self.page_body(data)
        if page.compressed_length != len(body):
            raise FramingViolation(
                f"page {page.ordinal}: IMAGELEN={page.compressed_length} "
                f"but payload is {len(body)} bytes"
            )
        return PageFrame(
            header=self.page_header(job, page, job.settings),
            body=body,
            footer=self.page_footer(page.dot_count),
        )


class StreamState(str, Enum):
    EMPTY = "empty"
    PRINTING = "printing"
    CLOSED = "closed"
    BROKEN = "broken"


class JobStream:
    """The single writer of a job's output stream.

    Guarantees one header before the first page and exactly one footer after
    the last one. Each frame is written with one call, so a page is either
    emitted complete or not at all. A failed write is terminal: the stream
    becomes BROKEN and nothing more, footer included, is attempted.
    """

    def __init__(
        self, output: BinaryIO, job: Job, *, framer: ProtocolFramer | None = None
    ) -> None:
        self._output = output
        self._job = job
        self._framer = framer or ProtocolFramer()
        self._state = StreamState.EMPTY
        self._pages_written = 0

    @property
    def state(self) -> StreamState:
        return self._state

    @property
    def finished(self) -> bool:
        """Whether the stream accepts no further writes."""
        return self._state in (StreamState.CLOSED, StreamState.BROKEN)

    @property
    def pages_written(self) -> int:
        return self._pages_written

    @property
    def framer(self) -> ProtocolFramer:
        return self._framer

    def open(self) -> None:
        """Emit the job header if it has not been sent yet."""
        self._check_writable("job header")
        if self._state is StreamState.EMPTY:
            self._write(self._framer.header(self._job))
            self._transition(StreamState.PRINTING)

    def write_page(self, frame: PageFrame) -> None:
        self._check_writable("page frame")
        self.open()
        self._write(frame.to_bytes())
        self._pages_written += 1

    def close(self) -> None:
        """Emit the job footer, preceded by the header for an empty job."""
        self._check_writable("job footer")
        self.open()
        self._write(self._framer.footer())
        self._transition(StreamState.CLOSED)

    def _check_writable(self, what: str) -> None:
        if self._state is StreamState.BROKEN:
            raise OutputError(f"{what} not written: output stream is broken")
        if self._state is StreamState.CLOSED:
            raise FramingViolation(f"{what} written after job footer")

    def _write(self, data: bytes) -> None:
        try:
            self._output.write(data)
            self._output.flush()
        except OSError as exc:
            self._transition(StreamState.BROKEN)
            raise OutputError(f"cannot write job stream: {exc}") from exc

    def _transition(self, state: StreamState) -> None:
        LOGGER.debug(
            "Job %s stream %s -> %s (pages=%d)",
            self._job.job_id,
            self._state.value,
            state.value,
            self._pages_written,
        )
        self._state = state
