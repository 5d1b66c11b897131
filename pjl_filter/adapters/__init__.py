"""Adapter modules for external tools."""

from .inspectors import IdentifyInspector, PillowInspector
from .tools import (
    GhostscriptRasterizer,
    JbigCompressor,
    ToolResult,
    run_tool,
    stop_process,
)

__all__ = [
    "GhostscriptRasterizer",
    "IdentifyInspector",
    "JbigCompressor",
    "PillowInspector",
    "ToolResult",
    "run_tool",
    "stop_process",
]
