"""
Custom exceptions for the provider resilience layer.

This module defines a hierarchy of domain-specific exceptions. Most of them
never leave the package: the credential manager and the catalog cache catch
them at their boundary and degrade to a documented default instead.

Exception Hierarchy:
    ProviderResilienceError (base)
    ├── CredentialMissingError - No source credential for a provider
    │   └── NoCredentialError - Raised by list_models() when a token is required
    ├── TokenExchangeError - One exchange endpoint rejected the credential
    ├── CatalogFetchError - A model listing call failed
    └── ProviderConfigError - Invalid configuration value (also a ValueError)

SFI Compliance:
    - Exceptions carry provider ids, URLs and status codes, never secrets
    - Errors are designed for safe logging
"""

from __future__ import annotations


class ProviderResilienceError(Exception):
    """
    Base exception for all provider resilience errors.

    Example:
        try:
            models = await cache.list_models("openai")
        except ProviderResilienceError as e:
            logger.warning(f"Catalog unavailable: {e}")
    """

    pass


class CredentialMissingError(ProviderResilienceError):
    """
    Raised when no source credential can be found for a provider.

    Attributes:
        provider_id: Normalized provider identifier.
    """

    def __init__(self, provider_id: str, message: str | None = None):
        self.provider_id = provider_id
        super().__init__(message or f"No credential configured for provider: {provider_id}")


class NoCredentialError(CredentialMissingError):
    """
    Raised by ModelCatalogCache.list_models() when the provider needs a token
    and none is available.

    Non-fatal: the outcome is not memoised, and is_supported() treats it as
    "supported" so startup is never blocked.
    """

    pass


class TokenExchangeError(ProviderResilienceError):
    """
    Raised when a single token-exchange endpoint fails.

    The credential manager tries the next endpoint, and synthesizes a
    fallback token when every endpoint has failed.

    Attributes:
        url: Endpoint that failed.
        status_code: HTTP status, None for transport errors and bad payloads.
    """

    def __init__(self, url: str, status_code: int | None = None, message: str | None = None):
        self.url = url
        self.status_code = status_code
        if message:
            super().__init__(message)
        elif status_code is not None:
            super().__init__(f"Token exchange at {url} failed with status {status_code}")
        else:
            super().__init__(f"Token exchange at {url} failed")


class CatalogFetchError(ProviderResilienceError):
    """
    Raised when a provider's model listing call fails.

    Attributes:
        provider_id: Provider whose catalog could not be listed.
        status_code: HTTP status, None for transport errors and bad payloads.
    """

    def __init__(
        self,
        provider_id: str,
        message: str | None = None,
        status_code: int | None = None,
    ):
        self.provider_id = provider_id
        self.status_code = status_code
        super().__init__(message or f"Failed to list models for provider: {provider_id}")


class ProviderConfigError(ProviderResilienceError, ValueError):
    """
    Raised when a configuration value is invalid.

    Example:
        raise ProviderConfigError("support_timeout must be positive, got 0")
    """

    pass
