"""Provider lifecycle endpoints: detection, capabilities, install/update, settings."""

import asyncio

from fastapi import APIRouter, HTTPException

from lmhost.server.api.schemas import (
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
from lmhost.server.state import get_config_manager, get_installer, get_model_catalog
from lmhost.util.capabilities import introspect
from lmhost.util.errors import NotInstalled, UnknownProvider
from lmhost.util.installer import InstallResult
from lmhost.util.providers import (
    ProviderDescriptor,
    ProviderSettings,
    describe,
    detect,
    is_running,
    list_providers,
    resolve_base_url,
)

router = APIRouter()


def _descriptor_or_404(provider_id: str) -> ProviderDescriptor:
    try:
        return describe(provider_id)
    except UnknownProvider as e:
        raise HTTPException(status_code=404, detail=e.message) from None


def _settings(provider_id: str) -> ProviderSettings:
    return get_config_manager().get_provider_settings(provider_id)


def _provider_info(descriptor: ProviderDescriptor) -> ProviderInfo:
    return ProviderInfo(
        id=descriptor.id,
        name=descriptor.display_name,
        description=descriptor.description,
        default_endpoint=descriptor.default_endpoint,
        endpoint=resolve_base_url(descriptor.id, _settings(descriptor.id)),
        supports_install=descriptor.install_command is not None,
    )


def _install_response(result: InstallResult) -> InstallResponse:
    return InstallResponse(
        success=result.success,
        output=result.output,
        error=result.error,
        error_kind=result.error_kind.value if result.error_kind else None,
    )


@router.get("/providers", response_model=ProviderListResponse)
async def get_providers() -> ProviderListResponse:
    """List all known local providers."""
    return ProviderListResponse(providers=[_provider_info(d) for d in list_providers()])


@router.get("/providers/{provider_id}", response_model=ProviderInfo)
async def get_provider(provider_id: str) -> ProviderInfo:
    """Describe one provider."""
    return _provider_info(_descriptor_or_404(provider_id))


@router.get("/providers/{provider_id}/installation", response_model=InstallationInfo)
async def detect_provider(provider_id: str) -> InstallationInfo:
    """Detect whether a provider is installed (never fails for absence)."""
    _descriptor_or_404(provider_id)
    state = await asyncio.to_thread(detect, provider_id, _settings(provider_id))
    return InstallationInfo(
        provider_id=provider_id,
        installed=state.installed,
        path=state.path,
        version=state.version,
    )


@router.get("/providers/{provider_id}/status", response_model=ProviderStatusResponse)
async def get_provider_status(provider_id: str) -> ProviderStatusResponse:
    """Report whether the provider's process is running."""
    _descriptor_or_404(provider_id)
    running = await asyncio.to_thread(is_running, provider_id)
    return ProviderStatusResponse(provider_id=provider_id, running=running)


@router.get("/providers/{provider_id}/capabilities", response_model=CapabilitiesResponse | None)
async def get_capabilities(provider_id: str) -> CapabilitiesResponse | None:
    """Capability groups, or null when the provider is not installed."""
    _descriptor_or_404(provider_id)
    summary = await asyncio.to_thread(introspect, provider_id, _settings(provider_id))
    if summary is None:
        return None
    return CapabilitiesResponse(**summary.to_dict())


@router.get("/providers/{provider_id}/models", response_model=ProviderModelsResponse)
async def get_models(provider_id: str) -> ProviderModelsResponse:
    """Models available for a provider."""
    _descriptor_or_404(provider_id)
    try:
        models = await asyncio.to_thread(get_model_catalog().get_models, provider_id, _settings(provider_id))
    except NotInstalled as e:
        raise HTTPException(status_code=409, detail=e.message) from None
    return ProviderModelsResponse(provider_id=provider_id, models=models)


@router.post("/providers/{provider_id}/install", response_model=InstallResponse)
async def install_provider(provider_id: str, request: InstallRequest | None = None) -> InstallResponse:
    """Install a provider. Failures are reported in the body, not as HTTP errors."""
    _descriptor_or_404(provider_id)
    settings = _settings(provider_id)
    if request is not None and request.elevate is not None:
        settings = ProviderSettings(
            manual_path=settings.manual_path,
            elevate=request.elevate,
            endpoint=settings.endpoint,
        )
    result = await asyncio.to_thread(get_installer().install, provider_id, settings)
    if result.success:
        get_model_catalog().invalidate(provider_id)
    return _install_response(result)


@router.post("/providers/{provider_id}/update", response_model=InstallResponse)
async def update_provider(provider_id: str) -> InstallResponse:
    """Update an installed provider."""
    _descriptor_or_404(provider_id)
    result = await asyncio.to_thread(get_installer().update, provider_id, _settings(provider_id))
    if result.success:
        get_model_catalog().invalidate(provider_id)
    return _install_response(result)


@router.get("/providers/{provider_id}/settings", response_model=ProviderSettingsSchema)
async def get_provider_settings(provider_id: str) -> ProviderSettingsSchema:
    """Stored settings for a provider."""
    _descriptor_or_404(provider_id)
    settings = _settings(provider_id)
    return ProviderSettingsSchema(
        manual_path=settings.manual_path,
        elevate=settings.elevate,
        endpoint=settings.endpoint,
    )


@router.put("/providers/{provider_id}/settings", response_model=ProviderSettingsSchema)
async def update_provider_settings(provider_id: str, request: ProviderSettingsUpdate) -> ProviderSettingsSchema:
    """Update the manual path, elevation preference or endpoint override."""
    _descriptor_or_404(provider_id)
    changes = request.model_dump(exclude_unset=True)
    if changes.get("elevate") is None:
        changes.pop("elevate", None)
    settings = get_config_manager().set_provider_settings(provider_id, **changes)
    get_model_catalog().invalidate(provider_id)
    return ProviderSettingsSchema(
        manual_path=settings.manual_path,
        elevate=settings.elevate,
        endpoint=settings.endpoint,
    )
