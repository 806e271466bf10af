"""
Provider Resilience: keeps an interactive LLM CLI usable when providers are
slow, unauthenticated or partially unavailable.

This package provides three stateful components and a facade over them:

- CredentialManager: discovers a long-lived source credential (env var or
  the GitHub Copilot hosts.json store), exchanges it for a short-lived access
  token, caches it and refreshes it 5 minutes before expiry
- ModelCatalogCache: lists each provider's models once per process, serves
  support checks within 2 seconds and falls back to a fixed catalog
- dedupe(): removes duplicate transcript items (same id, or the same user
  message submitted twice in a row)

Nothing in this package is fatal to the host process. Every failure resolves
to a documented default and a WARNING log line:

✅ No credential        → provider treated as unauthenticated
✅ Exchange rejected    → source credential reused as a fallback token
✅ Listing failed       → recommended models served instead
✅ Catalog too slow     → model assumed supported

Usage:
    ```python
    from provider_resilience import create_layer

    layer = create_layer({"support_timeout": 2.0})
    layer.prefetch_models("openai")
    ok = await layer.is_supported("openai", "gpt-4.1")
    window = layer.context_window("gpt-4.1")
    transcript = layer.dedupe(transcript)
    ```
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from .catalog import (
    CatalogOrigin,
    ModelCatalogCache,
    ModelCatalogEntry,
    ProviderCatalogFetcher,
    normalize_model_ids,
)
from .credentials import (
    AccessToken,
    Clock,
    CredentialManager,
    CredentialSource,
    TokenSource,
    get_credential_store_path,
    read_credential_store,
)
from .dedupe import ConversationItem, dedupe
from .exceptions import (
    CatalogFetchError,
    CredentialMissingError,
    NoCredentialError,
    ProviderConfigError,
    ProviderResilienceError,
    TokenExchangeError,
)
from .layer import ResilienceLayer
from .model_info import (
    MODEL_REGISTRY,
    ModelInfo,
    approximate_tokens_used,
    context_percent_remaining,
    context_window,
    model_info,
)
from .providers import (
    DEFAULT_PROVIDERS,
    ExchangeEndpoint,
    ProviderRegistry,
    ProviderSpec,
    normalize_provider_id,
)

# Module exports
__all__ = [
    # Main exports
    "create_layer",
    "ResilienceLayer",
    # Credentials
    "AccessToken",
    "Clock",
    "CredentialManager",
    "CredentialSource",
    "TokenSource",
    "get_credential_store_path",
    "read_credential_store",
    # Catalog
    "CatalogOrigin",
    "ModelCatalogCache",
    "ModelCatalogEntry",
    "ProviderCatalogFetcher",
    "normalize_model_ids",
    # Model info
    "MODEL_REGISTRY",
    "ModelInfo",
    "approximate_tokens_used",
    "context_percent_remaining",
    "context_window",
    "model_info",
    # Transcript
    "ConversationItem",
    "dedupe",
    # Providers
    "DEFAULT_PROVIDERS",
    "ExchangeEndpoint",
    "ProviderRegistry",
    "ProviderSpec",
    "normalize_provider_id",
    # Exceptions
    "ProviderResilienceError",
    "CredentialMissingError",
    "NoCredentialError",
    "TokenExchangeError",
    "CatalogFetchError",
    "ProviderConfigError",
]

logger = logging.getLogger(__name__)


def create_layer(
    config: dict[str, Any] | None = None,
    *,
    clock: Clock | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> ResilienceLayer:
    """
    Create the process-wide ResilienceLayer.

    This is the entry point the CLI calls once at startup. The returned
    object owns every cache; pass it to whatever needs tokens or catalogs.

    Args:
        config: Configuration dict, see ResilienceLayer for keys
        clock: Epoch-seconds time source (default: time.time)
        http_client: Shared httpx client; owned by the caller

    Returns:
        ResilienceLayer instance

    Raises:
        ProviderConfigError: On unknown keys or invalid values

    Example config:
        ```python
        {
            "support_timeout": 2.0,
            "providers": {"ollama": {"base_url": "http://gpu-box:11434/v1"}},
        }
        ```
    """
    layer = ResilienceLayer(config, clock=clock, http_client=http_client)
    logger.info(
        f"[INIT] Resilience layer ready for {len(layer.registry.ids())} known provider(s)"
    )
    return layer


# For direct usage (testing)
def get_layer_class() -> type[ResilienceLayer]:
    """Get the layer class for direct instantiation."""
    return ResilienceLayer
