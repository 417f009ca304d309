# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Shorty contributors

"""Thread-safe registry of runtime OIDC providers keyed by provider ID."""

import itertools
import threading
from typing import Callable, Dict, Iterable, List, Optional

from shorty_logging import Logger, create_logger

from .exceptions import ProviderError
from .models import ProviderSettings
from .oidc_provider import OIDCProvider

ProviderFactory = Callable[[ProviderSettings], OIDCProvider]


class ProviderRegistry:
    """Holds the runtime provider for every enabled, initialized configuration.

    Providers are built (including network discovery) without holding the
    lock; the lock only guards lookups and the final swap into the map.
    Every upsert takes a fresh generation number for its provider, and a
    removal forgets it, so a slow build that was started before a newer
    change is discarded instead of installed.
    """

    def __init__(
        self,
        redirect_uri: str,
        discovery_timeout: float = 10.0,
        http_timeout: float = 10.0,
        leeway: int = 60,
        provider_factory: Optional[ProviderFactory] = None,
        logger: Optional[Logger] = None,
    ):
        self.redirect_uri = redirect_uri
        self.discovery_timeout = discovery_timeout
        self.http_timeout = http_timeout
        self.leeway = leeway
        self.logger = logger or create_logger(name="shorty.oidc.registry")
        self._factory = provider_factory or self._build_provider

        self._lock = threading.Lock()
        self._providers: Dict[int, OIDCProvider] = {}
        self._generations: Dict[int, int] = {}
        # Shared by all providers so a number is never reused after an entry is dropped
        self._generation_counter = itertools.count(1)

    def _build_provider(self, settings: ProviderSettings) -> OIDCProvider:
        provider = OIDCProvider(
            provider_id=settings.id,
            issuer=settings.issuer,
            client_id=settings.client_id,
            client_secret=settings.client_secret,
            redirect_uri=self.redirect_uri,
            scopes=settings.scope_list,
            timeout=self.http_timeout,
            discovery_timeout=self.discovery_timeout,
            leeway=self.leeway,
        )
        provider.discover()
        return provider

    def load(self, configs: Iterable[ProviderSettings]) -> Dict[int, str]:
        """Initialize every enabled configuration.

        A provider that fails to initialize, for any reason, is logged and
        skipped; the remaining providers still load.

        Returns:
            Mapping of provider ID to failure message for skipped providers
        """
        failures: Dict[int, str] = {}
        for settings in configs:
            if not settings.enabled:
                continue
            try:
                self.upsert(settings)
            except ProviderError as e:
                failures[settings.id] = str(e)
                self.logger.warning(
                    "Skipping OIDC provider that failed to initialize",
                    provider_id=settings.id,
                    slug=settings.slug,
                    error=str(e),
                )
            except Exception as e:
                failures[settings.id] = f"Unexpected error: {type(e).__name__}"
                self.logger.exception(
                    "Skipping OIDC provider that failed to initialize",
                    provider_id=settings.id,
                    slug=settings.slug,
                    error_type=type(e).__name__,
                )
        return failures

    def get(self, provider_id: int) -> Optional[OIDCProvider]:
        with self._lock:
            return self._providers.get(provider_id)

    def upsert(self, settings: ProviderSettings) -> Optional[OIDCProvider]:
        """Rebuild the runtime provider for a changed configuration.

        The current entry is dropped first, so a changed configuration never
        keeps serving logins with the old client. Disabled configurations are
        only removed.

        Returns:
            The installed provider, or None if the config is disabled or a
            newer change superseded this one while it was being built

        Raises:
            ProviderError: If the provider could not be initialized; the
                entry stays absent
        """
        with self._lock:
            self._providers.pop(settings.id, None)
            if not settings.enabled:
                self._generations.pop(settings.id, None)
            else:
                generation = next(self._generation_counter)
                self._generations[settings.id] = generation

        if not settings.enabled:
            self.logger.info("OIDC provider disabled", provider_id=settings.id, slug=settings.slug)
            return None

        try:
            provider = self._factory(settings)
        except Exception:
            self._forget_generation(settings.id, generation)
            raise

        with self._lock:
            if self._generations.get(settings.id) != generation:
                self.logger.info(
                    "Discarding superseded OIDC provider build",
                    provider_id=settings.id,
                    slug=settings.slug,
                )
                return None
            self._providers[settings.id] = provider

        self.logger.info("OIDC provider initialized", provider_id=settings.id, slug=settings.slug)
        return provider

    def _forget_generation(self, provider_id: int, generation: int) -> None:
        with self._lock:
            if self._generations.get(provider_id) == generation:
                del self._generations[provider_id]

    def remove(self, provider_id: int) -> None:
        with self._lock:
            # Any build still in flight no longer matches and is discarded
            self._generations.pop(provider_id, None)
            removed = self._providers.pop(provider_id, None)
        if removed is not None:
            self.logger.info("OIDC provider removed", provider_id=provider_id)

    def provider_ids(self) -> List[int]:
        with self._lock:
            return sorted(self._providers)

    def __contains__(self, provider_id: object) -> bool:
        with self._lock:
            return provider_id in self._providers

    def __len__(self) -> int:
        with self._lock:
            return len(self._providers)
