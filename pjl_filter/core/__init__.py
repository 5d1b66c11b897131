"""Core primitives for pjl-filter."""

from .models import (
    EndOfJob,
    Job,
    JobSettings,
    Page,
    PageRef,
    dot_count,
    resolve_settings,
    split_options,
)
from .protocols import (
    BitmapCompressor,
    GeometryInspector,
    PageItem,
    PageSource,
    Rasterizer,
)

__all__ = [
    "BitmapCompressor",
    "EndOfJob",
    "GeometryInspector",
    "Job",
    "JobSettings",
    "Page",
    "PageItem",
    "PageRef",
    "PageSource",
    "Rasterizer",
    "dot_count",
    "resolve_settings",
    "split_options",
]
