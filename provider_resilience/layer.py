"""
Facade wiring the credential manager, the catalog cache, the model info
helpers and the transcript deduplicator together.

The CLI holds ONE ResilienceLayer for the whole process and passes it to
whatever needs a token, a catalog or a context window. All state lives on
this object; nothing is stored at module level.

Typical startup:

    ```python
    layer = create_layer({"support_timeout": 2.0})
    layer.prefetch_models(provider)            # background, not awaited
    ...
    if not await layer.is_supported(provider, model):
        print(f"Model {model} is not available for {provider}")
    ```
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Iterable
from typing import Any

import httpx

from ._constants import (
    DEFAULT_HTTP_TIMEOUT,
    FALLBACK_TOKEN_TTL_SECONDS,
    MODEL_SUPPORT_TIMEOUT_SECONDS,
    TOKEN_REFRESH_BUFFER_SECONDS,
)
from .catalog import (
    ModelCatalogCache,
    ModelCatalogEntry,
    ProviderCatalogFetcher,
    build_request_headers,
)
from .credentials import AccessToken, Clock, CredentialManager, CredentialSource
from .dedupe import dedupe
from .exceptions import NoCredentialError, ProviderConfigError
from .model_info import ModelInfo, context_percent_remaining, context_window, model_info
from .providers import ProviderRegistry, ProviderSpec, normalize_provider_id

logger = logging.getLogger(__name__)

_CONFIG_KEYS = frozenset(
    {"support_timeout", "refresh_buffer", "fallback_token_ttl", "http_timeout", "providers"}
)


def _read_float(config: dict[str, Any], key: str, default: float) -> float:
    raw = config.get(key, default)
    try:
        return float(raw)
    except (TypeError, ValueError) as e:
        raise ProviderConfigError(f"{key} must be a number, got {raw!r}") from e


class ResilienceLayer:
    """
    Public surface of the resilience layer.

    Args:
        config: Configuration dict with optional keys:
            - support_timeout: Seconds is_supported() waits (default: 2.0)
            - refresh_buffer: Seconds before expiry a token is refreshed (default: 300)
            - fallback_token_ttl: Lifetime of fallback / API-key tokens (default: 3600)
            - http_timeout: Timeout of a single HTTP call (default: 10)
            - providers: Provider table overrides, see providers.py
        clock: Epoch-seconds time source (default: time.time)
        http_client: Shared httpx client; owned by the caller

    Raises:
        ProviderConfigError: On unknown keys or invalid values
    """

    def __init__(
        self,
        config: dict[str, Any] | None = None,
        *,
        clock: Clock | None = None,
        http_client: httpx.AsyncClient | None = None,
    ):
        config = config or {}
        unknown = set(config) - _CONFIG_KEYS
        if unknown:
            raise ProviderConfigError(f"Unknown config keys: {sorted(unknown)}")

        support_timeout = _read_float(config, "support_timeout", MODEL_SUPPORT_TIMEOUT_SECONDS)
        refresh_buffer = _read_float(config, "refresh_buffer", TOKEN_REFRESH_BUFFER_SECONDS)
        fallback_ttl = _read_float(config, "fallback_token_ttl", FALLBACK_TOKEN_TTL_SECONDS)
        http_timeout = _read_float(config, "http_timeout", DEFAULT_HTTP_TIMEOUT)

        self._clock: Clock = clock or time.time
        self._registry = ProviderRegistry(config.get("providers"))
        self.credentials = CredentialManager(
            self._registry,
            source=CredentialSource(self._registry),
            clock=self._clock,
            http_client=http_client,
            refresh_buffer=refresh_buffer,
            fallback_token_ttl=fallback_ttl,
            http_timeout=http_timeout,
        )
        self.catalog = ModelCatalogCache(
            self.credentials,
            self._registry,
            fetcher=ProviderCatalogFetcher(http_client, http_timeout),
            clock=self._clock,
            support_timeout=support_timeout,
        )

        logger.debug(
            f"[LAYER] ResilienceLayer initialized: support_timeout={support_timeout}s, "
            f"refresh_buffer={refresh_buffer}s, fallback_token_ttl={fallback_ttl}s, "
            f"http_timeout={http_timeout}s"
        )

    @property
    def registry(self) -> ProviderRegistry:
        return self._registry

    def provider(self, provider_id: str) -> ProviderSpec:
        return self._registry.get(provider_id)

    # ═══════════════════════════════════════════════════════════════════════════
    # Credentials
    # ═══════════════════════════════════════════════════════════════════════════

    async def get_or_refresh(self, provider_id: str) -> AccessToken | None:
        return await self.credentials.get_or_refresh(provider_id)

    def resolve_api_key(self, provider_id: str) -> str | None:
        """
        Return an API key without any network I/O.

        Prefers a valid cached access token, then the provider's source
        credential for plain API-key providers. Token-exchange providers
        return None until get_or_refresh() has run.
        """
        token = self.credentials.cached_token(provider_id)
        if token is not None:
            return token.value
        spec = self._registry.get(provider_id)
        if spec.exchanges_tokens:
            return None
        return self.credentials.discover_source_credential(provider_id)

    async def request_headers(self, provider_id: str) -> dict[str, str]:
        """
        Authorization headers for a call to the provider.

        Returns an empty dict when the provider is unauthenticated.
        """
        token = await self.credentials.get_or_refresh(provider_id)
        if token is None:
            return {}
        return build_request_headers(self._registry.get(provider_id), token)

    # ═══════════════════════════════════════════════════════════════════════════
    # Model catalog
    # ═══════════════════════════════════════════════════════════════════════════

    def prefetch_models(self, provider_id: str) -> asyncio.Task[ModelCatalogEntry]:
        logger.debug(f"[LAYER] Prefetching catalog for '{normalize_provider_id(provider_id)}'")
        return self.catalog.prefetch(provider_id)

    async def list_models(self, provider_id: str) -> list[str]:
        """
        Return the provider's model ids.

        Raises:
            NoCredentialError: The provider needs a token and none is available
        """
        return await self.catalog.list_models(provider_id)

    async def available_models(self, provider_id: str) -> list[str]:
        """Like list_models() but returns an empty list for unauthenticated providers."""
        try:
            return await self.catalog.list_models(provider_id)
        except NoCredentialError:
            logger.info(f"[LAYER] Provider '{provider_id}' is not authenticated; no models listed")
            return []

    async def refresh_models(self, provider_id: str) -> list[str]:
        return await self.catalog.refresh(provider_id)

    async def is_supported(self, provider_id: str, model_id: str | None) -> bool:
        return await self.catalog.is_supported(provider_id, model_id)

    # ═══════════════════════════════════════════════════════════════════════════
    # Model info and transcript helpers
    # ═══════════════════════════════════════════════════════════════════════════

    @staticmethod
    def context_window(model_id: str) -> int:
        return context_window(model_id)

    @staticmethod
    def model_info(model_id: str) -> ModelInfo:
        return model_info(model_id)

    @staticmethod
    def context_percent_remaining(items: Iterable[Any], model_id: str) -> float:
        return context_percent_remaining(items, model_id)

    @staticmethod
    def dedupe(items: Iterable[Any]) -> list[Any]:
        return dedupe(items)

    async def close(self) -> None:
        """Cancel background catalog fetches. Cached state is kept."""
        await self.catalog.close()
        logger.debug("[LAYER] ResilienceLayer closed")
