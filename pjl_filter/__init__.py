"""JBIG/PJL print filter for host-based laser printers."""

from .version import __version__

__all__ = ["__version__"]
