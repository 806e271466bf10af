"""Shared httpx client handling for exchange and listing calls."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import httpx


@asynccontextmanager
async def http_client_context(
    client: httpx.AsyncClient | None,
    timeout: float,
) -> AsyncIterator[httpx.AsyncClient]:
    """
    Yield the injected client, or a short-lived one closed on exit.

    An injected client is owned by the caller and is never closed here.
    """
    if client is not None:
        yield client
        return
    async with httpx.AsyncClient(timeout=timeout) as owned:
        yield owned


def mask_secret(secret: str) -> str:
    """Return a log-safe form of a credential ("ghu_abcdef123" -> "ghu_...")."""
    if len(secret) <= 8:
        return "***"
    return f"{secret[:4]}..."
