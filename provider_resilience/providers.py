"""
Provider table used by the credential manager and the catalog fetcher.

Each entry says where a provider's API lives, which environment variables
hold its credentials, and whether its credential must be exchanged for a
short-lived token first. Only GitHub Copilot exchanges tokens; every other
built-in provider authenticates with a plain API key.

The table is deliberately small. Callers extend or override it through the
``providers`` config key:

    ```python
    {
        "providers": {
            "mistral": {"base_url": "https://api.mistral.ai/v1"},
            "openai": {"base_url": "http://localhost:8080/v1"},
        }
    }
    ```
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from typing import Any

from ._constants import (
    COPILOT_INTEGRATION_ID,
    COPILOT_OAUTH_ENV_VAR,
    COPILOT_TOKEN_URL,
    GITHUB_COPILOT_PROVIDER,
    GITHUB_TOKEN_URL,
)
from .exceptions import ProviderConfigError

logger = logging.getLogger(__name__)

_ENV_UNSAFE = re.compile(r"[^A-Z0-9]+")


@dataclass(frozen=True)
class ExchangeEndpoint:
    """
    One token-exchange endpoint.

    Attributes:
        url: Endpoint URL (HTTP GET)
        auth_scheme: Authorization scheme, "Bearer" or legacy "token"
        extra_headers: Headers sent only to this endpoint
    """

    url: str
    auth_scheme: str
    extra_headers: tuple[tuple[str, str], ...] = ()

    def authorization(self, credential: str) -> str:
        return f"{self.auth_scheme} {credential}"


@dataclass(frozen=True)
class ProviderSpec:
    """
    Static description of a provider.

    Attributes:
        id: Normalized provider id (e.g. "openai")
        name: Display name
        base_url: API base URL, None when unknown (listing will fall back)
        env_key: Env var holding a plain API key
        oauth_env_var: Env var overriding source-credential discovery
        uses_credential_store: Whether the Copilot hosts.json store applies
        exchange_endpoints: Ranked token-exchange endpoints (empty = API key)
    """

    id: str
    name: str
    base_url: str | None = None
    env_key: str | None = None
    oauth_env_var: str | None = None
    uses_credential_store: bool = False
    exchange_endpoints: tuple[ExchangeEndpoint, ...] = field(default_factory=tuple)

    @property
    def exchanges_tokens(self) -> bool:
        return bool(self.exchange_endpoints)


COPILOT_EXCHANGE_ENDPOINTS: tuple[ExchangeEndpoint, ...] = (
    ExchangeEndpoint(
        url=COPILOT_TOKEN_URL,
        auth_scheme="Bearer",
        extra_headers=(("Copilot-Integration-Id", COPILOT_INTEGRATION_ID),),
    ),
    ExchangeEndpoint(url=GITHUB_TOKEN_URL, auth_scheme="token"),
)

DEFAULT_PROVIDERS: dict[str, ProviderSpec] = {
    "openai": ProviderSpec(
        id="openai",
        name="OpenAI",
        base_url="https://api.openai.com/v1",
        env_key="OPENAI_API_KEY",
    ),
    "gemini": ProviderSpec(
        id="gemini",
        name="Gemini",
        base_url="https://generativelanguage.googleapis.com/v1beta/openai",
        env_key="GEMINI_API_KEY",
    ),
    "openrouter": ProviderSpec(
        id="openrouter",
        name="OpenRouter",
        base_url="https://openrouter.ai/api/v1",
        env_key="OPENROUTER_API_KEY",
    ),
    "ollama": ProviderSpec(
        id="ollama",
        name="Ollama",
        base_url="http://localhost:11434/v1",
        env_key="OLLAMA_API_KEY",
    ),
    "mistral": ProviderSpec(
        id="mistral",
        name="Mistral",
        base_url="https://api.mistral.ai/v1",
        env_key="MISTRAL_API_KEY",
    ),
    "deepseek": ProviderSpec(
        id="deepseek",
        name="DeepSeek",
        base_url="https://api.deepseek.com",
        env_key="DEEPSEEK_API_KEY",
    ),
    "xai": ProviderSpec(
        id="xai",
        name="xAI",
        base_url="https://api.x.ai/v1",
        env_key="XAI_API_KEY",
    ),
    "groq": ProviderSpec(
        id="groq",
        name="Groq",
        base_url="https://api.groq.com/openai/v1",
        env_key="GROQ_API_KEY",
    ),
    GITHUB_COPILOT_PROVIDER: ProviderSpec(
        id=GITHUB_COPILOT_PROVIDER,
        name="GitHub Copilot",
        base_url="https://api.githubcopilot.com",
        oauth_env_var=COPILOT_OAUTH_ENV_VAR,
        uses_credential_store=True,
        exchange_endpoints=COPILOT_EXCHANGE_ENDPOINTS,
    ),
}


def normalize_provider_id(provider_id: str) -> str:
    """
    Normalize a provider id for cache lookups.

    Examples:
        >>> normalize_provider_id("  OpenAI ")
        'openai'
        >>> normalize_provider_id("GitHubCopilot")
        'githubcopilot'
    """
    return provider_id.strip().lower()


def env_prefix(provider_id: str) -> str:
    """Upper-case env var prefix for a provider id ("open-router" -> "OPEN_ROUTER")."""
    return _ENV_UNSAFE.sub("_", provider_id.upper()).strip("_")


class ProviderRegistry:
    """
    Lookup table of ProviderSpec entries keyed by normalized id.

    Unknown providers are not an error: they resolve to a synthesized spec
    with ``<PROVIDER>_API_KEY`` / ``<PROVIDER>_OAUTH_TOKEN`` env vars and no
    base URL.
    """

    def __init__(self, overrides: Mapping[str, Any] | None = None):
        self._providers: dict[str, ProviderSpec] = dict(DEFAULT_PROVIDERS)
        for raw_id, raw_spec in (overrides or {}).items():
            self._apply_override(raw_id, raw_spec)

    def _apply_override(self, raw_id: str, raw_spec: Any) -> None:
        provider_id = normalize_provider_id(raw_id)
        if isinstance(raw_spec, ProviderSpec):
            self._providers[provider_id] = replace(raw_spec, id=provider_id)
            return
        if not isinstance(raw_spec, Mapping):
            raise ProviderConfigError(
                f"Provider override for '{raw_id}' must be a mapping, "
                f"got {type(raw_spec).__name__}"
            )

        base = self._providers.get(provider_id) or self._synthesize(provider_id)
        allowed = {"name", "base_url", "env_key", "oauth_env_var"}
        unknown = set(raw_spec) - allowed
        if unknown:
            raise ProviderConfigError(
                f"Unknown keys in provider override for '{raw_id}': {sorted(unknown)}"
            )
        self._providers[provider_id] = replace(base, **dict(raw_spec))
        logger.debug(f"[PROVIDERS] Applied override for '{provider_id}'")

    @staticmethod
    def _synthesize(provider_id: str) -> ProviderSpec:
        prefix = env_prefix(provider_id)
        return ProviderSpec(
            id=provider_id,
            name=provider_id,
            env_key=f"{prefix}_API_KEY",
            oauth_env_var=f"{prefix}_OAUTH_TOKEN",
        )

    def get(self, provider_id: str) -> ProviderSpec:
        provider_id = normalize_provider_id(provider_id)
        spec = self._providers.get(provider_id)
        if spec is None:
            spec = self._synthesize(provider_id)
        return spec

    def __contains__(self, provider_id: object) -> bool:
        if not isinstance(provider_id, str):
            return False
        return normalize_provider_id(provider_id) in self._providers

    def ids(self) -> list[str]:
        return sorted(self._providers)
