"""HTTP/WebSocket boundary for lmhost."""

from lmhost import __version__

__all__ = ["__version__"]
