"""API schemas."""

from .health import HealthResponse, StatusResponse
from .provider import (
    CapabilitiesResponse,
    InstallationInfo,
    InstallRequest,
    InstallResponse,
    ProviderInfo,
    ProviderListResponse,
    ProviderModelsResponse,
    ProviderSettingsSchema,
    ProviderSettingsUpdate,
    ProviderStatusResponse,
)
from .streaming import (
    AbortCommand,
    ActiveSessionListResponse,
    ActiveSessionResponse,
    StartCommand,
    StreamAbortResponse,
    StreamEventMessage,
    StreamStartRequest,
    StreamStartResponse,
    TokenUsageSchema,
)

__all__ = [
    "HealthResponse",
    "StatusResponse",
    "CapabilitiesResponse",
    "InstallationInfo",
    "InstallRequest",
    "InstallResponse",
    "ProviderInfo",
    "ProviderListResponse",
    "ProviderModelsResponse",
    "ProviderSettingsSchema",
    "ProviderSettingsUpdate",
    "ProviderStatusResponse",
    "AbortCommand",
    "ActiveSessionListResponse",
    "ActiveSessionResponse",
    "StartCommand",
    "StreamAbortResponse",
    "StreamEventMessage",
    "StreamStartRequest",
    "StreamStartResponse",
    "TokenUsageSchema",
]
