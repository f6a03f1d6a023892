"""Lifecycle and streaming layer for locally running model providers."""

__version__ = "0.3.0"
