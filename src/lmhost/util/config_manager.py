"""Persisted settings for local providers (manual paths, elevation, endpoints)."""

import json
import logging
import os
import tempfile
import threading
from dataclasses import asdict
from pathlib import Path
from typing import Any

from .providers import ProviderSettings, describe
from .utils import safe_home

logger = logging.getLogger(__name__)

_SETTINGS_FIELDS = ("manual_path", "elevate", "endpoint")


class ConfigManager:
    """Manages the JSON settings file shared with the settings surface.

    Top-level keys:
        providers: provider_id -> {manual_path, elevate, endpoint}
        stream_timeout: seconds of provider silence before a stream fails
    """

    def __init__(self, config_path: Path | None = None):
        # Allow override via environment variable (for testing)
        env_config = os.environ.get("LMHOST_CONFIG")
        if env_config:
            self.config_path = Path(env_config)
        else:
            self.config_path = config_path or safe_home() / ".lmhost.conf"
        self.config_path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    def load_config(self) -> dict[str, Any]:
        """Load configuration from file.

        Returns:
            Configuration dictionary, or empty dict if file doesn't exist
        """
        if not self.config_path.exists():
            return {}

        try:
            with open(self.config_path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, IOError) as e:
            logger.warning("Could not load config file %s: %s", self.config_path, e)
            return {}
        return data if isinstance(data, dict) else {}

    def save_config(self, config: dict[str, Any]) -> None:
        """Save configuration to file atomically.

        Uses write-to-temp-then-rename so concurrent readers never see a
        truncated file.
        """
        fd, tmp_path = tempfile.mkstemp(dir=self.config_path.parent, prefix=".lmhost_config_", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(config, f, indent=2)
            os.chmod(tmp_path, 0o600)
            os.replace(tmp_path, self.config_path)
        except Exception:
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            raise

    def get_provider_settings(self, provider_id: str) -> ProviderSettings:
        """Return stored settings for a provider (defaults when none stored)."""
        describe(provider_id)
        stored = self.load_config().get("providers", {}).get(provider_id, {})
        if not isinstance(stored, dict):
            return ProviderSettings()
        return ProviderSettings(
            manual_path=stored.get("manual_path") or None,
            elevate=bool(stored.get("elevate", False)),
            endpoint=stored.get("endpoint") or None,
        )

    def set_provider_settings(self, provider_id: str, **changes: Any) -> ProviderSettings:
        """Update selected fields of a provider's settings.

        Passing ``None`` for ``manual_path`` or ``endpoint`` clears it.
        """
        describe(provider_id)
        unknown = set(changes) - set(_SETTINGS_FIELDS)
        if unknown:
            raise ValueError(f"Unknown provider setting(s): {', '.join(sorted(unknown))}")

        with self._lock:
            config = self.load_config()
            providers = config.setdefault("providers", {})
            current = asdict(self.get_provider_settings(provider_id))
            current.update(changes)
            providers[provider_id] = current
            self.save_config(config)

        if "manual_path" in changes:
            if changes["manual_path"]:
                logger.info("Manual %s path set to: %s", provider_id, changes["manual_path"])
            else:
                logger.info("Manual %s path cleared", provider_id)
        return self.get_provider_settings(provider_id)

    def get_stream_timeout(self) -> float | None:
        value = self.load_config().get("stream_timeout")
        try:
            return float(value) if value is not None else None
        except (TypeError, ValueError):
            return None
