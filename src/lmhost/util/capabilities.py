"""Normalize provider-specific local state into a common capability summary."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path

from .providers import (
    ClaudeCodeSource,
    LMStudioSource,
    OllamaSource,
    ProviderSettings,
    describe,
    detect,
)
from .utils import expand_path

logger = logging.getLogger(__name__)

GROUPS = ("mcp_servers", "skills", "plugins", "agents", "sub_agents", "models")

# Wire names used by the UI
_WIRE_NAMES = {
    "mcp_servers": "mcpServers",
    "sub_agents": "subAgents",
}


@dataclass
class CapabilitySummary:
    """Snapshot of named capability groups found by one scan."""

    mcp_servers: set[str] = field(default_factory=set)
    skills: set[str] = field(default_factory=set)
    plugins: set[str] = field(default_factory=set)
    agents: set[str] = field(default_factory=set)
    sub_agents: set[str] = field(default_factory=set)
    models: set[str] = field(default_factory=set)

    def to_dict(self) -> dict[str, list[str]]:
        return {_WIRE_NAMES.get(name, name): sorted(getattr(self, name)) for name in GROUPS}

    def counts(self) -> dict[str, int]:
        return {name: len(getattr(self, name)) for name in GROUPS}


def list_directories(dir_path: Path) -> set[str]:
    """Names of immediate subdirectories.

    Raises OSError when the directory exists but cannot be read, so the
    caller can degrade just that group.
    """
    if not dir_path.is_dir():
        return set()
    names = set()
    for entry in dir_path.iterdir():
        try:
            if entry.is_dir():
                names.add(entry.name)
        except OSError:
            continue
    return names


def _scan_group(summary: CapabilitySummary, group: str, dir_path: Path) -> None:
    try:
        getattr(summary, group).update(list_directories(dir_path))
    except OSError as e:
        logger.warning("Could not read %s from %s: %s", group, dir_path, e)


def _read_settings(path: Path) -> dict | None:
    if not path.is_file():
        return None
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
        logger.warning("Failed to read settings from %s: %s", path, e)
        return None
    return data if isinstance(data, dict) else None


def _names(value) -> set[str]:
    """Accept a list of names or a mapping keyed by name; ignore anything else."""
    if isinstance(value, dict):
        return {str(k) for k in value}
    if isinstance(value, list):
        return {item for item in value if isinstance(item, str)}
    return set()


def _scan_claude_code(source: ClaudeCodeSource) -> CapabilitySummary:
    summary = CapabilitySummary()
    root = expand_path(source.root)
    if not root.is_dir():
        logger.warning("%s directory not found", root)
        return summary

    for group, dirname in source.directory_groups:
        _scan_group(summary, group, root / dirname)

    settings = _read_settings(root / source.settings_file)
    if settings:
        summary.models.update(_names(settings.get("models")))
        summary.mcp_servers.update(_names(settings.get("mcpServers")))
    return summary


def _scan_ollama(source: OllamaSource) -> CapabilitySummary:
    summary = CapabilitySummary()
    root = expand_path(source.root)
    try:
        models = list_directories(root)
    except OSError as e:
        logger.warning("Could not read Ollama manifests from %s: %s", root, e)
        return summary

    for model in models:
        try:
            tags = {entry.name for entry in (root / model).iterdir() if entry.is_file()}
        except OSError as e:
            logger.warning("Could not read tags for %s: %s", model, e)
            continue
        if not tags:
            summary.models.add(model)
        summary.models.update(f"{model}:{tag}" for tag in tags)
    return summary


def _scan_lm_studio(source: LMStudioSource) -> CapabilitySummary:
    summary = CapabilitySummary()
    for root_str in source.roots:
        root = expand_path(root_str)
        try:
            publishers = list_directories(root)
        except OSError as e:
            logger.warning("Could not read LM Studio models from %s: %s", root, e)
            continue
        for publisher in publishers:
            try:
                summary.models.update(
                    f"{publisher}/{name}" for name in list_directories(root / publisher)
                )
            except OSError as e:
                logger.warning("Could not read models for publisher %s: %s", publisher, e)
    return summary


def scan_source(source) -> CapabilitySummary:
    """Dispatch on the capability source variant."""
    if isinstance(source, ClaudeCodeSource):
        return _scan_claude_code(source)
    if isinstance(source, OllamaSource):
        return _scan_ollama(source)
    if isinstance(source, LMStudioSource):
        return _scan_lm_studio(source)
    raise TypeError(f"Unsupported capability source: {type(source).__name__}")


def introspect(provider_id: str, settings: ProviderSettings | None = None) -> CapabilitySummary | None:
    """Scan a provider's local state. Returns None when it is not installed."""
    descriptor = describe(provider_id)
    if not detect(provider_id, settings).installed:
        return None

    logger.info("Detecting %s capabilities...", descriptor.display_name)
    summary = scan_source(descriptor.capability_source)
    logger.info("Detected %s capabilities: %s", descriptor.display_name, summary.counts())
    return summary
