"""
Model catalog fetching and caching.

``ProviderCatalogFetcher`` performs the raw listing call
(``GET {base_url}/models``). ``ModelCatalogCache`` memoizes one fetch per
provider for the lifetime of the process and answers support checks under a
fixed time budget.

Memoization:
- The first caller for a provider starts a fetch task
- Concurrent callers await the SAME task (single-flight)
- Later callers reuse the finished task's entry, no new network call
- ``refresh()`` is the only way to fetch again; the entry is replaced
  wholesale, never merged
- A missing credential is NOT memoized, so logging in later works

Degradation (never raised to the caller):
- Listing call fails or returns nothing → RECOMMENDED_MODELS fallback, WARNING
- A refresh that degrades to the fallback keeps the previous remote catalog
- ``is_supported()`` fails open on timeout, empty catalog or missing credential

Timeout race:
``is_supported()`` waits on the fetch task with ``asyncio.wait(timeout=...)``,
which never cancels it. A slow fetch keeps running in the background and
fills the cache for later callers.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from enum import Enum
from functools import partial
from typing import Any

import httpx

from ._constants import (
    COPILOT_REQUEST_HEADERS,
    DEFAULT_HTTP_TIMEOUT,
    MODEL_ID_PREFIXES,
    MODEL_SUPPORT_TIMEOUT_SECONDS,
    RECOMMENDED_MODELS,
    STATIC_CATALOGS,
)
from ._http import http_client_context
from .credentials import AccessToken, Clock, CredentialManager
from .exceptions import CatalogFetchError, NoCredentialError, ProviderConfigError
from .providers import ProviderRegistry, ProviderSpec, normalize_provider_id

logger = logging.getLogger(__name__)


class CatalogOrigin(Enum):
    """Where a catalog entry's model list came from."""

    REMOTE = "remote"
    STATIC = "static"
    FALLBACK = "fallback"


@dataclass(frozen=True, slots=True)
class ModelCatalogEntry:
    """
    Cached model catalog for one provider.

    Attributes:
        provider_id: Normalized provider id
        models: Unique model ids, sorted lexicographically
        fetched_at: Epoch seconds when the entry was built
        origin: REMOTE, STATIC or FALLBACK
    """

    provider_id: str
    models: tuple[str, ...]
    fetched_at: float
    origin: CatalogOrigin


def normalize_model_ids(
    raw_ids: Iterable[str],
    prefixes: tuple[str, ...] = MODEL_ID_PREFIXES,
) -> tuple[str, ...]:
    """
    Strip namespace prefixes, drop blanks and duplicates, sort.

    Example:
        >>> normalize_model_ids(["models/gemini-2.5-pro", "gemini-2.5-pro", "a"])
        ('a', 'gemini-2.5-pro')
    """
    normalized: set[str] = set()
    for model_id in raw_ids:
        for prefix in prefixes:
            if model_id.startswith(prefix):
                model_id = model_id[len(prefix) :]
                break
        model_id = model_id.strip()
        if model_id:
            normalized.add(model_id)
    return tuple(sorted(normalized))


def build_request_headers(spec: ProviderSpec, token: AccessToken) -> dict[str, str]:
    """Headers for an authorized API call to ``spec`` using ``token``."""
    headers = {"Authorization": f"Bearer {token.value}"}
    if spec.exchanges_tokens:
        # Copilot rejects calls without its integration headers
        headers.update(COPILOT_REQUEST_HEADERS)
    return headers


class ProviderCatalogFetcher:
    """Raw model listing against an OpenAI-compatible ``/models`` endpoint."""

    def __init__(
        self,
        http_client: httpx.AsyncClient | None = None,
        http_timeout: float = DEFAULT_HTTP_TIMEOUT,
    ):
        self._http_client = http_client
        self._http_timeout = http_timeout

    async def fetch(self, spec: ProviderSpec, token: AccessToken) -> list[str]:
        """
        List the raw model ids a provider exposes.

        Raises:
            CatalogFetchError: No base URL, transport error, non-2xx status or
                a body that is not a list of ``{"id": str}`` objects
        """
        if not spec.base_url:
            raise CatalogFetchError(spec.id, f"No base URL configured for provider: {spec.id}")

        url = f"{spec.base_url.rstrip('/')}/models"
        headers = build_request_headers(spec, token)
        headers["Accept"] = "application/json"
        logger.debug(f"[CATALOG] Listing models for '{spec.id}' from {url}")

        async with http_client_context(self._http_client, self._http_timeout) as client:
            # httpx also raises outside HTTPError while encoding headers or connecting
            try:
                response = await client.get(url, headers=headers)
            except Exception as e:
                raise CatalogFetchError(
                    spec.id, f"Listing models for '{spec.id}' failed: {type(e).__name__}: {e}"
                ) from e

        if not response.is_success:
            raise CatalogFetchError(
                spec.id,
                f"Listing models for '{spec.id}' returned status {response.status_code}",
                status_code=response.status_code,
            )

        try:
            payload: Any = response.json()
        except ValueError as e:
            raise CatalogFetchError(
                spec.id, f"Listing models for '{spec.id}' returned non-JSON body"
            ) from e

        return self._extract_ids(spec.id, payload)

    @staticmethod
    def _extract_ids(provider_id: str, payload: Any) -> list[str]:
        if isinstance(payload, Mapping):
            payload = payload.get("data")
        if not isinstance(payload, list):
            raise CatalogFetchError(
                provider_id, f"Listing models for '{provider_id}' returned an unexpected body"
            )
        return [
            entry["id"]
            for entry in payload
            if isinstance(entry, Mapping) and isinstance(entry.get("id"), str)
        ]


class ModelCatalogCache:
    """
    Per-provider memoized model catalogs with bounded-time support checks.

    Example:
        >>> cache = ModelCatalogCache(CredentialManager())
        >>> cache.prefetch("openai")  # at CLI startup
        >>> await cache.is_supported("openai", "gpt-4.1")
        True
    """

    def __init__(
        self,
        credentials: CredentialManager,
        registry: ProviderRegistry | None = None,
        *,
        fetcher: ProviderCatalogFetcher | None = None,
        clock: Clock | None = None,
        support_timeout: float = MODEL_SUPPORT_TIMEOUT_SECONDS,
        recommended_models: tuple[str, ...] = RECOMMENDED_MODELS,
        static_catalogs: Mapping[str, tuple[str, ...]] | None = None,
    ):
        if support_timeout <= 0:
            raise ProviderConfigError(f"support_timeout must be positive, got {support_timeout}")
        if not recommended_models:
            raise ProviderConfigError("recommended_models must not be empty")

        self._credentials = credentials
        self._registry = registry or ProviderRegistry()
        self._fetcher = fetcher or ProviderCatalogFetcher()
        self._clock: Clock = clock or time.time
        self._support_timeout = support_timeout
        self._recommended = frozenset(recommended_models)
        self._fallback_models = normalize_model_ids(recommended_models)
        if static_catalogs is None:
            static_catalogs = STATIC_CATALOGS
        self._static_catalogs = {
            normalize_provider_id(key): value for key, value in static_catalogs.items()
        }
        self._entries: dict[str, ModelCatalogEntry] = {}
        self._tasks: dict[str, asyncio.Task[ModelCatalogEntry]] = {}

    @property
    def support_timeout(self) -> float:
        return self._support_timeout

    def get_entry(self, provider_id: str) -> ModelCatalogEntry | None:
        """Return the cached entry without fetching."""
        return self._entries.get(normalize_provider_id(provider_id))

    # ═══════════════════════════════════════════════════════════════════════════
    # Fetch task management (single-flight)
    # ═══════════════════════════════════════════════════════════════════════════

    def _fetch_task(self, provider_id: str) -> asyncio.Task[ModelCatalogEntry]:
        task = self._tasks.get(provider_id)
        if task is not None:
            return task
        return self._start_fetch(provider_id)

    def _start_fetch(self, provider_id: str) -> asyncio.Task[ModelCatalogEntry]:
        task = asyncio.create_task(self._fetch(provider_id), name=f"catalog-fetch:{provider_id}")
        self._tasks[provider_id] = task
        task.add_done_callback(partial(self._on_fetch_done, provider_id))
        return task

    def _on_fetch_done(self, provider_id: str, task: asyncio.Task[ModelCatalogEntry]) -> None:
        """
        Retrieve the outcome of a finished fetch so no exception goes unobserved.

        Failed and cancelled fetches are forgotten so the next caller retries.
        """
        if task.cancelled():
            error: BaseException | None = None
        else:
            error = task.exception()
            if error is None:
                return

        if self._tasks.get(provider_id) is task:
            del self._tasks[provider_id]

        if error is None:
            logger.debug(f"[CATALOG] Fetch for '{provider_id}' was cancelled")
        elif isinstance(error, NoCredentialError):
            logger.debug(f"[CATALOG] No credential for '{provider_id}', catalog not cached")
        else:
            logger.error(
                f"[CATALOG] Unexpected error fetching catalog for '{provider_id}': "
                f"{type(error).__name__}: {error}"
            )

    async def _fetch(self, provider_id: str) -> ModelCatalogEntry:
        static = self._static_catalogs.get(provider_id)
        if static is not None:
            logger.debug(f"[CATALOG] Using compiled-in catalog for '{provider_id}'")
            return self._store(
                ModelCatalogEntry(
                    provider_id=provider_id,
                    models=normalize_model_ids(static),
                    fetched_at=self._clock(),
                    origin=CatalogOrigin.STATIC,
                )
            )

        token = await self._credentials.get_or_refresh(provider_id)
        if token is None:
            raise NoCredentialError(provider_id)

        spec = self._registry.get(provider_id)
        models: tuple[str, ...] = ()
        try:
            models = normalize_model_ids(await self._fetcher.fetch(spec, token))
        except CatalogFetchError as e:
            logger.warning(f"[CATALOG] {e}. Using recommended models.")
        else:
            if not models:
                logger.warning(
                    f"[CATALOG] Provider '{provider_id}' returned an empty model list. "
                    "Using recommended models."
                )

        if models:
            logger.info(f"[CATALOG] Fetched {len(models)} model(s) for '{provider_id}'")
            origin = CatalogOrigin.REMOTE
        else:
            models = self._fallback_models
            origin = CatalogOrigin.FALLBACK

        return self._store(
            ModelCatalogEntry(
                provider_id=provider_id,
                models=models,
                fetched_at=self._clock(),
                origin=origin,
            )
        )

    def _store(self, entry: ModelCatalogEntry) -> ModelCatalogEntry:
        previous = self._entries.get(entry.provider_id)
        if (
            entry.origin is CatalogOrigin.FALLBACK
            and previous is not None
            and previous.origin is not CatalogOrigin.FALLBACK
            and previous.models
        ):
            logger.warning(
                f"[CATALOG] Refresh for '{entry.provider_id}' degraded to the fallback catalog; "
                f"keeping the previous {len(previous.models)} model(s) "
                f"fetched at {previous.fetched_at:.0f}"
            )
            return previous
        self._entries[entry.provider_id] = entry
        return entry

    # ═══════════════════════════════════════════════════════════════════════════
    # Public API
    # ═══════════════════════════════════════════════════════════════════════════

    def prefetch(self, provider_id: str) -> asyncio.Task[ModelCatalogEntry]:
        """
        Start the background catalog fetch without waiting for it.

        Must be called from a running event loop. Returns the shared fetch
        task; awaiting it is optional.
        """
        return self._fetch_task(normalize_provider_id(provider_id))

    async def list_models(self, provider_id: str) -> list[str]:
        """
        Return the provider's model ids, sorted and unique.

        Raises:
            NoCredentialError: The provider needs a token and none is available
        """
        task = self._fetch_task(normalize_provider_id(provider_id))
        # shield: a cancelled caller must not cancel the shared fetch
        entry = await asyncio.shield(task)
        return list(entry.models)

    async def refresh(self, provider_id: str) -> list[str]:
        """
        Fetch the catalog again and replace the cached entry.

        Joins an in-flight fetch instead of starting a second one.

        Raises:
            NoCredentialError: The provider needs a token and none is available
        """
        provider_id = normalize_provider_id(provider_id)
        task = self._tasks.get(provider_id)
        if task is None or task.done():
            logger.debug(f"[CATALOG] Refreshing catalog for '{provider_id}'")
            previous = task
            task = self._start_fetch(provider_id)
            if previous is not None and not previous.cancelled() and previous.exception() is None:
                task.add_done_callback(partial(self._restore_on_failure, provider_id, previous))
        entry = await asyncio.shield(task)
        return list(entry.models)

    def _restore_on_failure(
        self,
        provider_id: str,
        previous: asyncio.Task[ModelCatalogEntry],
        task: asyncio.Task[ModelCatalogEntry],
    ) -> None:
        """Serve the previous catalog again when a refresh fails or is cancelled."""
        if not task.cancelled() and task.exception() is None:
            return
        if provider_id in self._tasks:
            return
        self._tasks[provider_id] = previous
        logger.warning(
            f"[CATALOG] Refresh for '{provider_id}' failed; keeping the catalog "
            f"fetched at {previous.result().fetched_at:.0f}"
        )

    async def is_supported(self, provider_id: str, model_id: str | None) -> bool:
        """
        Check whether ``model_id`` is offered by the provider, failing open.

        Returns True without any I/O for blank ids and recommended models.
        Otherwise waits at most ``support_timeout`` seconds for the catalog;
        a timeout, an empty catalog or a missing credential also return True.
        """
        if model_id is None or not model_id.strip():
            return True
        model_id = model_id.strip()
        if model_id in self._recommended:
            return True
        provider_id = normalize_provider_id(provider_id)

        task = self._fetch_task(provider_id)
        done, _ = await asyncio.wait({task}, timeout=self._support_timeout)
        if not done:
            logger.info(
                f"[CATALOG] Catalog for '{provider_id}' not ready after "
                f"{self._support_timeout}s; assuming '{model_id}' is supported"
            )
            return True

        if task.cancelled() or task.exception() is not None:
            logger.debug(
                f"[CATALOG] Catalog for '{provider_id}' unavailable; "
                f"assuming '{model_id}' is supported"
            )
            return True

        models = task.result().models
        if not models:
            return True
        return model_id in models

    async def close(self) -> None:
        """Cancel fetches that are still running."""
        pending = [task for task in self._tasks.values() if not task.done()]
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
            logger.debug(f"[CATALOG] Cancelled {len(pending)} pending fetch(es)")
