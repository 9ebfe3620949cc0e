"""
Provider registry: priority order, cached instances and per-backend cooldowns.

One registry is built at process start and shared by every orchestration.
The cooldown table and instance cache are the only state shared between
concurrent requests, so both are guarded by a lock.
"""
import logging
import threading
import time
from typing import Callable, Iterable, Optional

from .config import load_provider_descriptors
from .errors import ConfigurationError
from .models import ProviderDescriptor
from .providers import Provider, create_provider, get_provider_type

logger = logging.getLogger(__name__)

ProviderFactory = Callable[[ProviderDescriptor], Provider]


class ProviderRegistry:
    """
    Ordered, cooldown-aware view of the configured backends.

    Args:
        descriptors: Backend descriptors; those without credentials are dropped
        factory: Builds a Provider from a descriptor (defaults to create_provider)
        clock: Monotonic time source in seconds
    """

    def __init__(
        self,
        descriptors: Iterable[ProviderDescriptor],
        factory: Optional[ProviderFactory] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        configured = [d for d in descriptors if d.has_credentials]
        if not configured:
            raise ConfigurationError("No generation backends configured: set at least one API key")

        seen = set()
        for descriptor in configured:
            if descriptor.backend_id in seen:
                raise ConfigurationError(f"Duplicate backend id: {descriptor.backend_id}")
            seen.add(descriptor.backend_id)
            if factory is None:
                # Fail at startup, not at call time
                get_provider_type(descriptor.provider_type)

        # stable sort keeps declaration order for equal priorities
        self._descriptors = sorted(configured, key=lambda d: d.priority)
        self._by_id = {d.backend_id: d for d in self._descriptors}
        self._factory = factory or create_provider
        self._clock = clock
        self._lock = threading.Lock()
        self._instances: dict[str, Provider] = {}
        self._cooldowns: dict[str, float] = {}

        logger.info(f"Provider priority: {[d.backend_id for d in self._descriptors]}")

    @classmethod
    def from_environment(cls, environ=None, **kwargs) -> "ProviderRegistry":
        """Build a registry from environment variables."""
        return cls(load_provider_descriptors(environ), **kwargs)

    def available_providers(self) -> list[ProviderDescriptor]:
        """Configured descriptors in priority order."""
        return list(self._descriptors)

    def descriptor(self, backend_id: str) -> ProviderDescriptor:
        try:
            return self._by_id[backend_id]
        except KeyError:
            raise ConfigurationError(f"Unknown backend: {backend_id}") from None

    def get_provider(self, backend_id: str) -> Provider:
        """Return the cached Provider for a backend, building it on first use."""
        descriptor = self.descriptor(backend_id)
        with self._lock:
            provider = self._instances.get(backend_id)
            if provider is None:
                provider = self._factory(descriptor)
                self._instances[backend_id] = provider
            return provider

    def is_in_cooldown(self, backend_id: str) -> bool:
        with self._lock:
            until = self._cooldowns.get(backend_id)
        return until is not None and until > self._clock()

    def cooldown_remaining(self, backend_id: str) -> float:
        """Seconds until the backend leaves cooldown (0 if not in cooldown)."""
        with self._lock:
            until = self._cooldowns.get(backend_id)
        if until is None:
            return 0.0
        return max(0.0, until - self._clock())

    def select_provider(self) -> Provider:
        """
        First backend in priority order that is not cooling down.

        Cooldown is a preference, not a block: if every backend is cooling
        down, the highest-priority one is returned anyway.
        """
        for descriptor in self._descriptors:
            if not self.is_in_cooldown(descriptor.backend_id):
                return self.get_provider(descriptor.backend_id)

        first = self._descriptors[0]
        logger.warning(f"All backends in cooldown, falling back to {first.backend_id}")
        return self.get_provider(first.backend_id)

    def next_provider(self, after_backend_id: str) -> Optional[Provider]:
        """
        First backend after after_backend_id in priority order that is not
        cooling down, or None when the list is exhausted.
        """
        ids = [d.backend_id for d in self._descriptors]
        if after_backend_id not in ids:
            raise ConfigurationError(f"Unknown backend: {after_backend_id}")

        for backend_id in ids[ids.index(after_backend_id) + 1:]:
            if not self.is_in_cooldown(backend_id):
                return self.get_provider(backend_id)
        return None

    def mark_failed(self, backend_id: str, cooldown_seconds: float) -> None:
        """Exclude a backend until now + cooldown_seconds. Never shortens an existing cooldown."""
        until = self._clock() + cooldown_seconds
        with self._lock:
            current = self._cooldowns.get(backend_id)
            if current is None or until > current:
                self._cooldowns[backend_id] = until
        logger.info(f"Backend {backend_id} in cooldown for {cooldown_seconds:.0f}s")

    def prune_cooldowns(self) -> int:
        """Drop expired cooldown entries. Returns the number removed."""
        now = self._clock()
        with self._lock:
            expired = [k for k, until in self._cooldowns.items() if until <= now]
            for backend_id in expired:
                del self._cooldowns[backend_id]
        return len(expired)

    def clear_cache(self) -> None:
        """Forget cached provider instances."""
        with self._lock:
            self._instances.clear()
