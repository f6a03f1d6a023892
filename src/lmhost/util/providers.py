"""Registry of known local providers and their detection strategies."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from types import MappingProxyType
from typing import Mapping

from .errors import UnknownProvider
from .utils import (
    expand_path,
    get_platform,
    is_executable,
    is_process_running,
    locate_executable,
    run_probe_command,
    run_version_query,
)

logger = logging.getLogger(__name__)


class ProviderKind(str, Enum):
    CLAUDE_CODE = "claudecode"
    OLLAMA = "ollama"
    LM_STUDIO = "lmstudio"


# Capability sources are a closed set, one per provider kind. Each carries
# only the paths its scanner reads.


@dataclass(frozen=True)
class ClaudeCodeSource:
    """~/.claude style layout: directory groups plus a settings.json."""

    root: str = "~/.claude"
    settings_file: str = "settings.json"
    directory_groups: tuple[tuple[str, str], ...] = (
        ("agents", "agents"),
        ("plugins", "plugins"),
        ("skills", "skills"),
        ("sub_agents", "subagents"),
    )


@dataclass(frozen=True)
class OllamaSource:
    """Ollama manifest tree: <root>/<model>/<tag>."""

    root: str = "~/.ollama/models/manifests/registry.ollama.ai/library"


@dataclass(frozen=True)
class LMStudioSource:
    """LM Studio model tree: <root>/<publisher>/<model>."""

    roots: tuple[str, ...] = ("~/.lmstudio/models", "~/.cache/lm-studio/models")


CapabilitySource = ClaudeCodeSource | OllamaSource | LMStudioSource


@dataclass(frozen=True)
class ProviderDescriptor:
    """Static metadata describing one local provider."""

    id: str
    kind: ProviderKind
    display_name: str
    description: str
    default_endpoint: str
    endpoint_env: str | None
    platform_paths: Mapping[str, tuple[str, ...]]
    detection_command: tuple[str, ...] | None
    capability_source: CapabilitySource
    process_pattern: str | None = None
    # Match the process name exactly rather than anywhere in its command line
    process_exact: bool = True
    install_command: tuple[str, ...] | None = None
    update_command: tuple[str, ...] | None = None
    default_context_window: int = 8192
    builtin_models: tuple[str, ...] = field(default_factory=tuple)

    def candidate_paths(self, platform: str | None = None) -> tuple[str, ...]:
        return self.platform_paths.get(platform or get_platform(), ())


@dataclass(frozen=True)
class ProviderSettings:
    """User-supplied overrides from the settings surface."""

    manual_path: str | None = None
    elevate: bool = False
    endpoint: str | None = None


@dataclass(frozen=True)
class InstallationState:
    """Result of a detection pass. Recomputed on every call."""

    installed: bool
    path: str | None = None
    version: str | None = None


NOT_INSTALLED = InstallationState(installed=False)

_UNIX_CLAUDE_PATHS = (
    "~/.claude/claude",
    "~/.claude/bin/claude",
    "/usr/local/bin/claude",
    "~/.local/bin/claude",
    "~/bin/claude",
)

_PROVIDERS: dict[str, ProviderDescriptor] = {
    "claudecode": ProviderDescriptor(
        id="claudecode",
        kind=ProviderKind.CLAUDE_CODE,
        display_name="Claude Code",
        description="Claude models via the Claude Code CLI local server",
        default_endpoint="http://localhost:3000",
        endpoint_env="CLAUDE_CODE_PORT",
        platform_paths=MappingProxyType({
            "darwin": _UNIX_CLAUDE_PATHS,
            "linux": _UNIX_CLAUDE_PATHS,
            # Only reachable through WSL on Windows
            "win32": (),
        }),
        detection_command=("which", "claude"),
        capability_source=ClaudeCodeSource(),
        process_pattern="claude",
        install_command=("npm", "install", "-g", "@anthropic-ai/claude-code"),
        update_command=("{path}", "update"),
        default_context_window=200_000,
        builtin_models=(
            "claude-sonnet-4.5",
            "claude-sonnet-4",
            "claude-opus-4",
            "claude-haiku-4",
        ),
    ),
    "ollama": ProviderDescriptor(
        id="ollama",
        kind=ProviderKind.OLLAMA,
        display_name="Ollama",
        description="Local models served by Ollama",
        default_endpoint="http://localhost:11434",
        endpoint_env="OLLAMA_HOST",
        platform_paths=MappingProxyType({
            "darwin": (
                "/usr/local/bin/ollama",
                "/opt/homebrew/bin/ollama",
                "/Applications/Ollama.app/Contents/Resources/ollama",
            ),
            "linux": ("/usr/local/bin/ollama", "/usr/bin/ollama", "~/.local/bin/ollama"),
            "win32": ("%LOCALAPPDATA%/Programs/Ollama/ollama.exe",),
        }),
        detection_command=("which", "ollama"),
        capability_source=OllamaSource(),
        process_pattern="ollama",
        install_command=("sh", "-c", "curl -fsSL https://ollama.com/install.sh | sh"),
        update_command=("sh", "-c", "curl -fsSL https://ollama.com/install.sh | sh"),
        default_context_window=4096,
    ),
    "lmstudio": ProviderDescriptor(
        id="lmstudio",
        kind=ProviderKind.LM_STUDIO,
        display_name="LM Studio",
        description="Local models served by LM Studio",
        default_endpoint="http://localhost:1234",
        endpoint_env="LM_STUDIO_BASE_URL",
        platform_paths=MappingProxyType({
            "darwin": ("~/.lmstudio/bin/lms", "/Applications/LM Studio.app/Contents/MacOS/LM Studio"),
            "linux": ("~/.lmstudio/bin/lms", "~/.cache/lm-studio/bin/lms"),
            "win32": ("~/.lmstudio/bin/lms.exe",),
        }),
        detection_command=("which", "lms"),
        capability_source=LMStudioSource(),
        process_pattern="lm-studio",
        process_exact=False,
        default_context_window=4096,
    ),
}

# Windows has no `which`; the candidate path walk is the only strategy there.
_WINDOWS_PROBE = ("where",)


def list_providers() -> list[ProviderDescriptor]:
    return list(_PROVIDERS.values())


def describe(provider_id: str) -> ProviderDescriptor:
    """Look up a provider descriptor, raising UnknownProvider if absent."""
    try:
        return _PROVIDERS[provider_id]
    except KeyError:
        raise UnknownProvider(provider_id) from None


def _fallback_probe(descriptor: ProviderDescriptor) -> Path | None:
    if not descriptor.detection_command:
        return None
    cmd = list(descriptor.detection_command)
    if get_platform() == "win32" and cmd[0] == "which":
        cmd = [*_WINDOWS_PROBE, *cmd[1:]]
    found = run_probe_command(cmd)
    if not found:
        return None
    path = expand_path(found)
    return path if path.exists() else None


def find_executable(provider_id: str, settings: ProviderSettings | None = None) -> Path | None:
    """Resolve the provider executable.

    Priority: 1. manual path, 2. platform candidate paths, 3. fallback probe.
    """
    descriptor = describe(provider_id)

    if settings and settings.manual_path:
        manual = expand_path(settings.manual_path)
        if manual.exists():
            logger.info("Using manual %s path: %s", descriptor.display_name, manual)
            return manual
        logger.warning(
            "Manual %s path %s does not exist, falling back to detection",
            descriptor.display_name,
            manual,
        )

    found = locate_executable(descriptor.candidate_paths())
    if found:
        logger.info("Found %s at: %s", descriptor.display_name, found)
        return found

    found = _fallback_probe(descriptor)
    if found:
        logger.info("Found %s using fallback probe: %s", descriptor.display_name, found)
        return found

    logger.debug("%s not found in any standard location", descriptor.display_name)
    return None


def detect(provider_id: str, settings: ProviderSettings | None = None) -> InstallationState:
    """Detect whether a provider is installed.

    Absence is reported as ``installed=False``; only an unknown provider
    id raises.
    """
    path = find_executable(provider_id, settings)
    if path is None:
        return NOT_INSTALLED

    version = run_version_query(path) if is_executable(path) else None
    return InstallationState(installed=True, path=str(path), version=version)


def is_running(provider_id: str) -> bool:
    """Report whether the provider's process is currently running.

    Reachability is a runtime fact kept separate from installation.
    """
    descriptor = describe(provider_id)
    if not descriptor.process_pattern:
        return False
    return is_process_running(descriptor.process_pattern, exact=descriptor.process_exact)


def resolve_base_url(provider_id: str, settings: ProviderSettings | None = None) -> str:
    """Endpoint override, else the provider's environment variable, else default."""
    descriptor = describe(provider_id)
    if settings and settings.endpoint:
        return settings.endpoint

    env_value = os.environ.get(descriptor.endpoint_env) if descriptor.endpoint_env else None
    if env_value:
        env_value = env_value.strip()
        if env_value.isdigit():
            # CLAUDE_CODE_PORT carries only a port number
            return f"http://localhost:{env_value}"
        if "://" not in env_value:
            # OLLAMA_HOST is commonly host:port without a scheme
            return f"http://{env_value}"
        return env_value

    return descriptor.default_endpoint
