"""
Credential discovery and access-token lifecycle.

Two layers live here:

- ``CredentialSource`` finds the long-lived *source credential* for a
  provider. It is a pure lookup with no caching: environment override first,
  then the GitHub Copilot ``hosts.json`` store, then the provider's API key.

- ``CredentialManager`` owns the short-lived *access tokens*. It exchanges a
  source credential at a ranked list of endpoints, caches the result per
  provider and refreshes it 5 minutes before expiry.

State machine (per provider):

    Empty ──► Refreshing ──► Cached(valid) ──► Cached(expiring) ──► Refreshing ...

Single-flight: refreshes for one provider are serialized by a per-provider
``asyncio.Lock``. Callers that queued behind an in-flight refresh receive that
refresh's result instead of starting another exchange. Different providers
refresh independently.

Degradation:
- No source credential → ``get_or_refresh()`` returns None, nothing cached
- Every exchange endpoint fails → the source credential itself is returned as
  a FALLBACK token valid for ``fallback_token_ttl`` seconds, with a WARNING
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import sys
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

import httpx

from ._constants import (
    COPILOT_CLIENT_HEADERS,
    COPILOT_CONFIG_DIR_NAME,
    COPILOT_HOSTS_FILE_NAME,
    COPILOT_HOSTS_KEY_PREFIX,
    DEFAULT_HTTP_TIMEOUT,
    FALLBACK_TOKEN_TTL_SECONDS,
    GITHUB_COPILOT_PROVIDER,
    TOKEN_REFRESH_BUFFER_SECONDS,
)
from ._http import http_client_context, mask_secret
from .exceptions import ProviderConfigError, TokenExchangeError
from .providers import ExchangeEndpoint, ProviderRegistry, normalize_provider_id

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


class TokenSource(Enum):
    """Where an AccessToken's value came from."""

    EXCHANGED = "exchanged"  # Returned by an exchange endpoint
    FALLBACK = "fallback"  # Source credential reused after every endpoint failed
    API_KEY = "api_key"  # Plain API key, provider has no exchange step


@dataclass(frozen=True, slots=True)
class AccessToken:
    """
    Short-lived token used to authorize API calls.

    Attributes:
        value: The secret itself (excluded from repr)
        issued_at: Epoch seconds when this process obtained it
        expires_at: Epoch seconds when the issuer stops honouring it
        source: How the token was obtained
    """

    value: str = field(repr=False)
    issued_at: float
    expires_at: float
    source: TokenSource = TokenSource.EXCHANGED

    def is_valid(self, now: float, buffer: float = TOKEN_REFRESH_BUFFER_SECONDS) -> bool:
        """True while ``now + buffer < expires_at``."""
        return now + buffer < self.expires_at

    def expires_in(self, now: float) -> float:
        return self.expires_at - now


# ═══════════════════════════════════════════════════════════════════════════════
# Source credential discovery
# ═══════════════════════════════════════════════════════════════════════════════


def get_credential_store_path() -> Path:
    """
    Return the path of the GitHub Copilot ``hosts.json`` file.

    - Linux/macOS: ~/.config/github-copilot/hosts.json
    - Windows: ~/AppData/Local/github-copilot/hosts.json
    """
    home = Path.home()
    if sys.platform == "win32":
        return home / "AppData" / "Local" / COPILOT_CONFIG_DIR_NAME / COPILOT_HOSTS_FILE_NAME
    return home / ".config" / COPILOT_CONFIG_DIR_NAME / COPILOT_HOSTS_FILE_NAME


def read_credential_store(
    path: Path | None = None,
    host_prefix: str = COPILOT_HOSTS_KEY_PREFIX,
) -> str | None:
    """
    Read the OAuth token from the Copilot credential store.

    The first key starting with ``host_prefix`` whose value carries a
    non-empty string ``oauth_token`` wins. Both the modern
    ``{"github.com:AppId": {...}}`` and the older ``{"github.com": {...}}``
    layouts match.

    Error Handling:
        - Missing file: Returns None, logs debug
        - Corrupted JSON / unreadable file: Returns None, logs warning
        - Home directory unavailable: Returns None, logs warning
    """
    try:
        hosts_path = path or get_credential_store_path()
    except (OSError, RuntimeError) as e:
        logger.warning(f"[CREDENTIALS] Could not determine credential store path: {e}")
        return None

    if not hosts_path.exists():
        logger.debug(f"[CREDENTIALS] No credential store at {hosts_path}")
        return None

    try:
        data = json.loads(hosts_path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        logger.warning(f"[CREDENTIALS] Credential store {hosts_path} is not valid JSON: {e}")
        return None
    except OSError as e:
        logger.warning(f"[CREDENTIALS] Failed to read credential store {hosts_path}: {e}")
        return None

    if not isinstance(data, dict):
        logger.warning(f"[CREDENTIALS] Credential store {hosts_path} is not a JSON object")
        return None

    for key, value in data.items():
        if not key.startswith(host_prefix) or not isinstance(value, dict):
            continue
        token = value.get("oauth_token")
        if isinstance(token, str) and token:
            logger.debug(f"[CREDENTIALS] Found OAuth token for '{key}' in {hosts_path}")
            return token

    logger.debug(f"[CREDENTIALS] No OAuth token in {hosts_path}")
    return None


class CredentialSource:
    """
    Pure lookup of long-lived source credentials.

    Precedence per provider:
        1. ``oauth_env_var`` (e.g. GITHUB_COPILOT_OAUTH_TOKEN)
        2. Copilot credential store, for providers that use it
        3. ``env_key`` (e.g. OPENAI_API_KEY)

    Nothing is cached; every call re-reads the environment and the store.
    """

    def __init__(
        self,
        registry: ProviderRegistry | None = None,
        environ: Mapping[str, str] | None = None,
        store_path: Path | None = None,
    ):
        self._registry = registry or ProviderRegistry()
        self._environ = environ
        self._store_path = store_path

    def _env(self, name: str | None) -> str | None:
        if not name:
            return None
        environ = self._environ if self._environ is not None else os.environ
        value = environ.get(name)
        return value or None

    def discover(self, provider_id: str) -> str | None:
        spec = self._registry.get(provider_id)

        token = self._env(spec.oauth_env_var)
        if token:
            logger.debug(f"[CREDENTIALS] Using {spec.oauth_env_var} for '{spec.id}'")
            return token

        if spec.uses_credential_store:
            token = read_credential_store(self._store_path)
            if token:
                return token

        token = self._env(spec.env_key)
        if token:
            logger.debug(f"[CREDENTIALS] Using {spec.env_key} for '{spec.id}'")
            return token

        logger.debug(f"[CREDENTIALS] No source credential for '{spec.id}'")
        return None


# ═══════════════════════════════════════════════════════════════════════════════
# Access token lifecycle
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass
class _ProviderTokenState:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    token: AccessToken | None = None
    # Bumped after every completed refresh so queued callers can share it
    generation: int = 0


class CredentialManager:
    """
    Owns the per-provider access-token cache.

    Example:
        >>> manager = CredentialManager()
        >>> token = await manager.get_or_refresh("githubcopilot")
        >>> if token is None:
        ...     print("not logged in")
    """

    def __init__(
        self,
        registry: ProviderRegistry | None = None,
        *,
        source: CredentialSource | None = None,
        clock: Clock | None = None,
        http_client: httpx.AsyncClient | None = None,
        refresh_buffer: float = TOKEN_REFRESH_BUFFER_SECONDS,
        fallback_token_ttl: float = FALLBACK_TOKEN_TTL_SECONDS,
        http_timeout: float = DEFAULT_HTTP_TIMEOUT,
    ):
        if refresh_buffer < 0:
            raise ProviderConfigError(f"refresh_buffer must be >= 0, got {refresh_buffer}")
        if fallback_token_ttl <= 0:
            raise ProviderConfigError(
                f"fallback_token_ttl must be positive, got {fallback_token_ttl}"
            )
        if http_timeout <= 0:
            raise ProviderConfigError(f"http_timeout must be positive, got {http_timeout}")

        self._registry = registry or ProviderRegistry()
        self._source = source or CredentialSource(self._registry)
        self._clock: Clock = clock or time.time
        self._http_client = http_client
        self._refresh_buffer = refresh_buffer
        self._fallback_ttl = fallback_token_ttl
        self._http_timeout = http_timeout
        self._states: dict[str, _ProviderTokenState] = {}

    @property
    def refresh_buffer(self) -> float:
        return self._refresh_buffer

    def _state(self, provider_id: str) -> _ProviderTokenState:
        state = self._states.get(provider_id)
        if state is None:
            state = _ProviderTokenState()
            self._states[provider_id] = state
        return state

    def discover_source_credential(self, provider_id: str) -> str | None:
        """Look up the long-lived credential for a provider. No caching."""
        return self._source.discover(normalize_provider_id(provider_id))

    def cached_token(self, provider_id: str) -> AccessToken | None:
        """
        Return the cached token if it is still outside the refresh buffer.

        Never performs I/O. Returns None for an empty cache and for a token
        that is about to expire.
        """
        state = self._states.get(normalize_provider_id(provider_id))
        if state is None or state.token is None:
            return None
        if not state.token.is_valid(self._clock(), self._refresh_buffer):
            return None
        return state.token

    def invalidate(self, provider_id: str | None = None) -> None:
        """Drop the cached token for one provider, or for all providers."""
        if provider_id is None:
            for state in self._states.values():
                state.token = None
            logger.debug("[CREDENTIALS] All cached tokens invalidated")
            return
        state = self._states.get(normalize_provider_id(provider_id))
        if state is not None:
            state.token = None
            logger.debug(f"[CREDENTIALS] Cached token invalidated for '{provider_id}'")

    async def get_or_refresh(self, provider_id: str) -> AccessToken | None:
        """
        Return a valid access token, refreshing it if needed.

        Returns:
            AccessToken, or None if the provider has no source credential.
        """
        provider_id = normalize_provider_id(provider_id)

        # Fast path: valid cached token, no lock
        token = self.cached_token(provider_id)
        if token is not None:
            return token

        state = self._state(provider_id)
        seen_generation = state.generation

        async with state.lock:
            if state.generation != seen_generation:
                # A refresh finished while we were queued; share its result
                logger.debug(f"[CREDENTIALS] Sharing in-flight refresh result for '{provider_id}'")
                return state.token

            token = self.cached_token(provider_id)
            if token is not None:
                return token

            logger.debug(f"[CREDENTIALS] Refreshing token for '{provider_id}'")
            # A cancelled refresh leaves the generation alone so waiters retry
            token = await self._refresh(provider_id)
            state.token = token
            state.generation += 1
            return token

    async def _refresh(self, provider_id: str) -> AccessToken | None:
        source = self.discover_source_credential(provider_id)
        if source is None:
            logger.debug(
                f"[CREDENTIALS] No source credential for '{provider_id}', "
                "treating provider as unauthenticated"
            )
            return None
        return await self.exchange(source, provider_id)

    async def exchange(
        self,
        source: str,
        provider_id: str = GITHUB_COPILOT_PROVIDER,
    ) -> AccessToken:
        """
        Exchange a source credential for an access token.

        Endpoints are tried in rank order; the first well-formed response
        wins. Never raises for endpoint failures: when all endpoints fail
        the source credential is returned as a FALLBACK token.

        Args:
            source: Long-lived source credential
            provider_id: Provider whose exchange endpoints to use

        Returns:
            AccessToken (EXCHANGED, FALLBACK or API_KEY)
        """
        spec = self._registry.get(provider_id)

        if not spec.exchanges_tokens:
            now = self._clock()
            logger.debug(f"[CREDENTIALS] '{spec.id}' uses a plain API key, no exchange needed")
            return AccessToken(
                value=source,
                issued_at=now,
                expires_at=now + self._fallback_ttl,
                source=TokenSource.API_KEY,
            )

        failures: list[TokenExchangeError] = []
        async with http_client_context(self._http_client, self._http_timeout) as client:
            for rank, endpoint in enumerate(spec.exchange_endpoints, start=1):
                try:
                    token = await self._exchange_at(client, endpoint, source)
                except TokenExchangeError as e:
                    failures.append(e)
                    logger.info(
                        f"[CREDENTIALS] Exchange attempt {rank}/{len(spec.exchange_endpoints)} "
                        f"failed: {e}"
                    )
                    continue
                logger.info(
                    f"[CREDENTIALS] Token for '{spec.id}' refreshed via {endpoint.url}, "
                    f"expires in {token.expires_in(self._clock()):.0f}s"
                )
                return token

        now = self._clock()
        logger.warning(
            f"[CREDENTIALS] All {len(failures)} exchange endpoint(s) rejected the credential "
            f"for '{spec.id}' ({mask_secret(source)}). Using the source credential as the "
            f"access token for {self._fallback_ttl:.0f}s; its scope may not match the API."
        )
        return AccessToken(
            value=source,
            issued_at=now,
            expires_at=now + self._fallback_ttl,
            source=TokenSource.FALLBACK,
        )

    async def _exchange_at(
        self,
        client: httpx.AsyncClient,
        endpoint: ExchangeEndpoint,
        source: str,
    ) -> AccessToken:
        headers = dict(COPILOT_CLIENT_HEADERS)
        headers.update(endpoint.extra_headers)
        headers["Authorization"] = endpoint.authorization(source)

        # httpx also raises outside HTTPError while encoding headers or connecting
        try:
            response = await client.get(endpoint.url, headers=headers)
        except Exception as e:
            raise TokenExchangeError(
                endpoint.url,
                message=f"Token exchange at {endpoint.url} failed: {type(e).__name__}: {e}",
            ) from e

        if not response.is_success:
            raise TokenExchangeError(endpoint.url, status_code=response.status_code)

        try:
            payload: Any = response.json()
        except ValueError as e:
            raise TokenExchangeError(
                endpoint.url, message=f"Token exchange at {endpoint.url} returned non-JSON body"
            ) from e

        return self._parse_exchange_payload(endpoint.url, payload)

    def _parse_exchange_payload(self, url: str, payload: Any) -> AccessToken:
        if not isinstance(payload, dict):
            raise TokenExchangeError(url, message=f"Token exchange at {url} returned non-object body")

        value = payload.get("token")
        expires_at = payload.get("expires_at")
        if not isinstance(value, str) or not value:
            raise TokenExchangeError(url, message=f"Token exchange at {url} returned no token")
        # bool is an int subclass; reject it explicitly
        if isinstance(expires_at, bool) or not isinstance(expires_at, (int, float)):
            raise TokenExchangeError(url, message=f"Token exchange at {url} returned no expires_at")

        return AccessToken(
            value=value,
            issued_at=self._clock(),
            expires_at=float(expires_at),
            source=TokenSource.EXCHANGED,
        )
