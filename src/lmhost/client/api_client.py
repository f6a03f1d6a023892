"""REST API client for the lmhost server."""

from dataclasses import dataclass
from typing import Any

import httpx


@dataclass
class Provider:
    """Provider descriptor from API."""

    id: str
    name: str
    description: str
    default_endpoint: str
    endpoint: str
    supports_install: bool


@dataclass
class Installation:
    """Installation state from API."""

    provider_id: str
    installed: bool
    path: str | None
    version: str | None


@dataclass
class InstallOutcome:
    """Install or update result."""

    success: bool
    output: str
    error: str | None
    error_kind: str | None


@dataclass
class ActiveSession:
    """Active streaming session from API."""

    session_id: str
    conversation_id: str
    provider_id: str
    model_id: str
    status: str
    elapsed_seconds: float
    usage: dict[str, int]


class APIClient:
    """Client for the lmhost REST API."""

    def __init__(
        self,
        base_url: str = "http://localhost:8000",
        timeout: float = 30.0,
        transport: httpx.BaseTransport | None = None,
    ):
        """Initialize the API client.

        Args:
            base_url: Base URL of the lmhost server
            timeout: Request timeout in seconds. Installs can take minutes,
                so raise this when calling install/update.
            transport: Optional httpx transport (e.g. a mock in tests)
        """
        self.base_url = base_url.rstrip("/")
        self._client = httpx.Client(timeout=timeout, transport=transport)

    def close(self):
        """Close the HTTP client."""
        self._client.close()

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()

    def _url(self, path: str) -> str:
        return f"{self.base_url}/api/v1{path}"

    def health_check(self) -> dict[str, Any]:
        """Check server health."""
        resp = self._client.get(f"{self.base_url}/health")
        resp.raise_for_status()
        return resp.json()

    # Providers
    def list_providers(self) -> list[Provider]:
        resp = self._client.get(self._url("/providers"))
        resp.raise_for_status()
        return [Provider(**p) for p in resp.json()["providers"]]

    def detect(self, provider_id: str) -> Installation:
        """Detect whether a provider is installed."""
        resp = self._client.get(self._url(f"/providers/{provider_id}/installation"))
        resp.raise_for_status()
        return Installation(**resp.json())

    def is_running(self, provider_id: str) -> bool:
        resp = self._client.get(self._url(f"/providers/{provider_id}/status"))
        resp.raise_for_status()
        return resp.json()["running"]

    def get_capabilities(self, provider_id: str) -> dict[str, list[str]] | None:
        """Capability groups, or None when the provider is not installed."""
        resp = self._client.get(self._url(f"/providers/{provider_id}/capabilities"))
        resp.raise_for_status()
        return resp.json()

    def get_models(self, provider_id: str) -> list[str]:
        resp = self._client.get(self._url(f"/providers/{provider_id}/models"))
        resp.raise_for_status()
        return resp.json()["models"]

    def install(self, provider_id: str, elevate: bool | None = None) -> InstallOutcome:
        """Install a provider.

        Args:
            provider_id: Provider to install
            elevate: Override the stored elevation preference
        """
        body = {} if elevate is None else {"elevate": elevate}
        resp = self._client.post(self._url(f"/providers/{provider_id}/install"), json=body)
        resp.raise_for_status()
        return InstallOutcome(**resp.json())

    def update(self, provider_id: str) -> InstallOutcome:
        resp = self._client.post(self._url(f"/providers/{provider_id}/update"))
        resp.raise_for_status()
        return InstallOutcome(**resp.json())

    def get_settings(self, provider_id: str) -> dict[str, Any]:
        resp = self._client.get(self._url(f"/providers/{provider_id}/settings"))
        resp.raise_for_status()
        return resp.json()

    def update_settings(self, provider_id: str, **changes: Any) -> dict[str, Any]:
        """Update manual_path, elevate or endpoint for a provider."""
        resp = self._client.put(self._url(f"/providers/{provider_id}/settings"), json=changes)
        resp.raise_for_status()
        return resp.json()

    # Streams
    def start_stream(
        self,
        conversation_id: str,
        provider_id: str,
        model_id: str,
        messages: list[dict[str, str]],
        context_window: int | None = None,
        **options: Any,
    ) -> str:
        """Start a streaming completion.

        Returns:
            The new session id. Events arrive on the conversation's WebSocket.
        """
        body: dict[str, Any] = {
            "conversation_id": conversation_id,
            "provider_id": provider_id,
            "model_id": model_id,
            "messages": messages,
            **options,
        }
        if context_window is not None:
            body["context_window"] = context_window
        resp = self._client.post(self._url("/streams"), json=body)
        resp.raise_for_status()
        return resp.json()["session_id"]

    def list_streams(self) -> list[ActiveSession]:
        resp = self._client.get(self._url("/streams"))
        resp.raise_for_status()
        return [ActiveSession(**s) for s in resp.json()["sessions"]]

    def get_stream(self, session_id: str) -> ActiveSession | None:
        resp = self._client.get(self._url(f"/streams/{session_id}"))
        if resp.status_code == 404:
            return None
        resp.raise_for_status()
        return ActiveSession(**resp.json())

    def abort_stream(self, session_id: str) -> bool:
        """Abort a stream. Returns False if it was unknown or already finished."""
        resp = self._client.delete(self._url(f"/streams/{session_id}"))
        resp.raise_for_status()
        return resp.json()["aborted"]
