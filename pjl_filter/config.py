"""Configuration loader for pjl-filter."""

from __future__ import annotations

import os
from configparser import ConfigParser
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional

from . import constants

STRATEGIES = ("auto", "async", "sync")
INSPECTORS = ("identify", "pillow")

_TRUTHY = {"1", "yes", "true", "on"}


@dataclass(slots=True)
class ToolsConfig:
    ghostscript: str = "gs"
    compressor: str = "pbmtojbg -p 72 -o 3 -m 0 -q"
    inspector: str = "identify"
    identify: str = "identify"


@dataclass(slots=True)
class JobConfig:
    strategy: str = "auto"
    drain_seconds: float = constants.DEFAULT_DRAIN_SECONDS
    workspace_root: Optional[Path] = None
    kill_timeout_seconds: float = constants.DEFAULT_KILL_TIMEOUT_SECONDS


@dataclass(slots=True)
class LoggingConfig:
    level: str = "INFO"
    path: Optional[Path] = None


@dataclass(slots=True)
class DebugConfig:
    enabled: bool = False


@dataclass(slots=True)
class FilterConfig:
    tools: ToolsConfig = field(default_factory=ToolsConfig)
    job: JobConfig = field(default_factory=JobConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    debug: DebugConfig = field(default_factory=DebugConfig)
    path: Path = constants.DEFAULT_CONFIG_PATH


def _optional_path(value: str) -> Optional[Path]:
    value = value.strip()
    if not value:
        return None
    return Path(value).expanduser()


def _choice(value: str, choices: tuple[str, ...], default: str) -> str:
    normalized = value.strip().lower()
    return normalized if normalized in choices else default


def resolve_config_path(
    path: Optional[Path] = None, environ: Optional[Mapping[str, str]] = None
) -> Path:
    if path is not None:
        return path
    env = os.environ if environ is None else environ
    override = env.get(constants.CONFIG_ENV_VAR, "").strip()
    if override:
        return Path(override).expanduser()
    return constants.DEFAULT_CONFIG_PATH


def debug_requested(environ: Optional[Mapping[str, str]] = None) -> bool:
    env = os.environ if environ is None else environ
    return env.get(constants.DEBUG_ENV_VAR, "").strip().lower() in _TRUTHY


def load_config(
    path: Optional[Path] = None, *, environ: Optional[Mapping[str, str]] = None
) -> FilterConfig:
    """Load configuration from disk, applying defaults where necessary.

    A missing file is not an error. The debug toggle from the environment
    always wins over the file.
    """

    config_path = resolve_config_path(path, environ)
    parser = ConfigParser()
    parser.read_dict(
        {
            "tools": {
                "ghostscript": "gs",
                "compressor": "pbmtojbg -p 72 -o 3 -m 0 -q",
                "inspector": "identify",
                "identify": "identify",
            },
            "job": {
                "strategy": "auto",
                "drain_seconds": str(constants.DEFAULT_DRAIN_SECONDS),
                "workspace_root": "",
                "kill_timeout_seconds": str(constants.DEFAULT_KILL_TIMEOUT_SECONDS),
            },
            "logging": {
                "level": "INFO",
                "path": "",
            },
            "debug": {
                "enabled": "false",
            },
        }
    )

    if config_path.exists():
        parser.read(config_path)

    tool_defaults = ToolsConfig()
    tools = ToolsConfig(
        ghostscript=parser.get("tools", "ghostscript").strip() or tool_defaults.ghostscript,
        compressor=parser.get("tools", "compressor").strip() or tool_defaults.compressor,
        inspector=_choice(
            parser.get("tools", "inspector"), INSPECTORS, tool_defaults.inspector
        ),
        identify=parser.get("tools", "identify").strip() or tool_defaults.identify,
    )

    try:
        drain_seconds = parser.getfloat(
            "job", "drain_seconds", fallback=constants.DEFAULT_DRAIN_SECONDS
        )
    except ValueError:
        drain_seconds = constants.DEFAULT_DRAIN_SECONDS

    try:
        kill_timeout = parser.getfloat(
            "job",
            "kill_timeout_seconds",
            fallback=constants.DEFAULT_KILL_TIMEOUT_SECONDS,
        )
    except ValueError:
        kill_timeout = constants.DEFAULT_KILL_TIMEOUT_SECONDS

    job = JobConfig(
        strategy=_choice(parser.get("job", "strategy"), STRATEGIES, "auto"),
        drain_seconds=max(0.0, drain_seconds),
        workspace_root=_optional_path(parser.get("job", "workspace_root", fallback="")),
        kill_timeout_seconds=max(0.1, kill_timeout),
    )

    logging_config = LoggingConfig(
        level=parser.get("logging", "level", fallback="INFO"),
        path=_optional_path(parser.get("logging", "path", fallback="")),
    )

    try:
        debug_enabled = parser.getboolean("debug", "enabled", fallback=False)
    except ValueError:
        debug_enabled = False
    if debug_requested(environ):
        debug_enabled = True

    return FilterConfig(
        tools=tools,
        job=job,
        logging=logging_config,
        debug=DebugConfig(enabled=debug_enabled),
        path=config_path,
    )
