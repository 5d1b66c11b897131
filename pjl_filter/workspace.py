"""Per-job temporary directory."""

from __future__ import annotations

import logging
import re
import shutil
import tempfile
from pathlib import Path
from typing import List, Optional

from . import constants
from .core.models import PageRef
from .errors import SetupError

LOGGER = logging.getLogger(__name__)

_PAGE_NAME = re.compile(
    rf"^{re.escape(constants.PAGE_PREFIX)}(\d{{{constants.PAGE_ORDINAL_WIDTH},}})"
    rf"{re.escape(constants.PAGE_SUFFIX)}$"
)


def parse_ordinal(name: str) -> Optional[int]:
    """Return the page ordinal encoded in a bitmap filename, if any."""
    match = _PAGE_NAME.match(name)
    if match is None:
        return None
    return int(match.group(1))


def page_filename(ordinal: int) -> str:
    return (
        f"{constants.PAGE_PREFIX}{ordinal:0{constants.PAGE_ORDINAL_WIDTH}d}"
        f"{constants.PAGE_SUFFIX}"
    )


class Workspace:
    """Owns the directory a job rasterizes into.

    Only the job controller creates and removes it; every other component
    reads or writes inside it.
    """

    def __init__(self, job_id: str, *, root: Optional[Path] = None) -> None:
        self._job_id = job_id
        self._root = root
        self._path: Optional[Path] = None

    @property
    def path(self) -> Path:
        if self._path is None:
            raise RuntimeError("workspace has not been created")
        return self._path

    @property
    def exists(self) -> bool:
        return self._path is not None and self._path.is_dir()

    @property
    def page_pattern(self) -> Path:
        """printf-style output pattern handed to the rasterizer."""
        return self.path / (
            f"{constants.PAGE_PREFIX}%0{constants.PAGE_ORDINAL_WIDTH}d{constants.PAGE_SUFFIX}"
        )

    def create(self) -> Path:
        safe_id = re.sub(r"[^A-Za-z0-9_.-]", "_", self._job_id) or "job"
        try:
            if self._root is not None:
                self._root.mkdir(parents=True, exist_ok=True)
            self._path = Path(
                tempfile.mkdtemp(prefix=f"{constants.APP_NAME}-{safe_id}-", dir=self._root)
            )
        except OSError as exc:
            raise SetupError(f"cannot create workspace: {exc}") from exc
        LOGGER.debug("Created workspace %s", self._path)
        return self._path

    def page_path(self, ordinal: int) -> Path:
        return self.path / page_filename(ordinal)

    def page_ref(self, path: Path) -> Optional[PageRef]:
        """Map a file inside the workspace to a page reference."""
        if path.parent != self.path:
            return None
        ordinal = parse_ordinal(path.name)
        if ordinal is None:
            return None
        return PageRef(ordinal=ordinal, path=path)

    def list_pages(self) -> List[PageRef]:
        """Page bitmaps currently present, sorted by ordinal, sentinel excluded."""
        pages: List[PageRef] = []
        for entry in self.path.iterdir():
            if not entry.is_file():
                continue
            ref = self.page_ref(entry)
            if ref is not None and not ref.is_sentinel:
                pages.append(ref)
        pages.sort()
        return pages

    def remove(self) -> None:
        if self._path is None:
            return
        shutil.rmtree(self._path, ignore_errors=True)
        LOGGER.debug("Removed workspace %s", self._path)

    def teardown(self, *, keep: bool = False) -> None:
        """Remove the directory, or leave it in place for inspection."""
        if self._path is None:
            return
        if keep:
            LOGGER.info("Debug mode: keeping workspace %s", self._path)
            return
        self.remove()
