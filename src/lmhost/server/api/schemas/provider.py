"""Provider lifecycle Pydantic schemas."""

from typing import Literal

from pydantic import BaseModel, Field


InstallErrorKindName = Literal[
    "permission_denied",
    "command_not_found",
    "not_installed",
    "timeout",
    "unsupported",
    "generic",
]


class ProviderInfo(BaseModel):
    """Information about a known local provider."""

    id: str = Field(description="Provider identifier")
    name: str = Field(description="Human-readable provider name")
    description: str = Field(description="Provider description")
    default_endpoint: str = Field(description="Default local endpoint")
    endpoint: str = Field(description="Endpoint currently in effect")
    supports_install: bool = Field(default=False, description="Whether a scripted installer exists")


class ProviderListResponse(BaseModel):
    """Response model for listing known providers."""

    providers: list[ProviderInfo] = Field(default_factory=list)


class InstallationInfo(BaseModel):
    """Detection result for a provider."""

    provider_id: str
    installed: bool
    path: str | None = None
    version: str | None = None


class ProviderStatusResponse(BaseModel):
    """Runtime reachability, kept separate from installation."""

    provider_id: str
    running: bool


class CapabilitiesResponse(BaseModel):
    """Capability groups discovered on disk."""

    mcpServers: list[str] = Field(default_factory=list)
    skills: list[str] = Field(default_factory=list)
    plugins: list[str] = Field(default_factory=list)
    agents: list[str] = Field(default_factory=list)
    subAgents: list[str] = Field(default_factory=list)
    models: list[str] = Field(default_factory=list)


class ProviderModelsResponse(BaseModel):
    provider_id: str
    models: list[str] = Field(default_factory=list)


class InstallRequest(BaseModel):
    """Request model for installing a provider."""

    elevate: bool | None = Field(default=None, description="Run elevated; defaults to the stored preference")


class InstallResponse(BaseModel):
    """Structured install/update outcome."""

    success: bool
    output: str = ""
    error: str | None = None
    error_kind: InstallErrorKindName | None = None


class ProviderSettingsSchema(BaseModel):
    """Settings surface values for a provider."""

    manual_path: str | None = Field(default=None, description="Manually selected executable path")
    elevate: bool = Field(default=False, description="Elevation preference for installs")
    endpoint: str | None = Field(default=None, description="Network endpoint override")


class ProviderSettingsUpdate(BaseModel):
    """Partial settings update; omitted fields are left unchanged, null clears."""

    manual_path: str | None = None
    elevate: bool | None = None
    endpoint: str | None = None
