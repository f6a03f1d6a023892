"""Process-wide server state: start time and the shared lifecycle services."""

import time
from dataclasses import dataclass, field

from lmhost.util.config_manager import ConfigManager
from lmhost.util.installer import ProviderInstaller
from lmhost.util.model_catalog import ModelCatalog


@dataclass
class ServerState:
    """Services shared by request handlers. Replaced wholesale by reset_state()."""

    config: ConfigManager = field(default_factory=ConfigManager)
    catalog: ModelCatalog = field(default_factory=ModelCatalog)
    installer: ProviderInstaller = field(default_factory=ProviderInstaller)
    started_at: float | None = None

    def uptime(self) -> float:
        if self.started_at is None:
            return 0.0
        return time.monotonic() - self.started_at


_state: ServerState | None = None


def get_state() -> ServerState:
    global _state
    if _state is None:
        _state = ServerState()
    return _state


def init_start_time() -> None:
    get_state().started_at = time.monotonic()


def get_uptime() -> float:
    return get_state().uptime()


def get_config_manager() -> ConfigManager:
    return get_state().config


def get_model_catalog() -> ModelCatalog:
    return get_state().catalog


def get_installer() -> ProviderInstaller:
    return get_state().installer


def reset_state() -> None:
    """Drop all shared state (tests, or after LMHOST_CONFIG changes)."""
    global _state
    _state = None
