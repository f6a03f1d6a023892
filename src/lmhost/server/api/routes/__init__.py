"""API routes."""

from . import health, providers, streams, ws

__all__ = ["health", "providers", "streams", "ws"]
