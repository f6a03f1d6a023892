"""HTTP and WebSocket clients for an lmhost server."""

from lmhost.client.api_client import APIClient
from lmhost.client.ws_client import AsyncWSClient, StreamMessage, WSClient

__all__ = [
    "APIClient",
    "AsyncWSClient",
    "StreamMessage",
    "WSClient",
]
