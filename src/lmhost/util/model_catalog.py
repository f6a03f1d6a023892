"""Model discovery for provider dropdowns."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field

from .capabilities import introspect
from .errors import NotInstalled
from .providers import ProviderSettings, describe

logger = logging.getLogger(__name__)


@dataclass
class ModelCatalog:
    """Discover and cache available models per provider."""

    cache_ttl: float = 300.0

    _cache: dict[str, tuple[float, list[str]]] = field(default_factory=dict, init=False)

    def get_models(self, provider_id: str, settings: ProviderSettings | None = None) -> list[str]:
        """Return models for a provider, cached with TTL.

        Raises NotInstalled when the provider cannot be found locally.
        """
        descriptor = describe(provider_id)
        now = time.time()
        cached = self._cache.get(provider_id)
        if cached and now - cached[0] < self.cache_ttl:
            return cached[1]

        capabilities = introspect(provider_id, settings)
        if capabilities is None:
            raise NotInstalled(provider_id, descriptor.display_name)

        models = set(descriptor.builtin_models) | capabilities.models
        resolved = sorted(m.strip() for m in models if m and m.strip())
        logger.info("Returning %d %s models", len(resolved), descriptor.display_name)
        self._cache[provider_id] = (now, resolved)
        return resolved

    def invalidate(self, provider_id: str | None = None) -> None:
        if provider_id is None:
            self._cache.clear()
        else:
            self._cache.pop(provider_id, None)
