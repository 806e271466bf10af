"""
Shared test fixtures for the provider resilience tests.

This module provides a controllable clock, an isolated home directory for the
credential store, a clean environment, and a fake HTTP API served through
``httpx.MockTransport`` so no test touches the network.

NOTE: Windows + pytest-asyncio can cause KeyboardInterrupt on cleanup.
The event_loop_policy fixture below addresses this by using
WindowsSelectorEventLoopPolicy when available.
"""

from __future__ import annotations

import asyncio
import json
import sys
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import Any

import httpx
import pytest

from provider_resilience._constants import COPILOT_TOKEN_URL, GITHUB_TOKEN_URL
from provider_resilience.credentials import get_credential_store_path
from provider_resilience.providers import DEFAULT_PROVIDERS

START_TIME = 1_700_000_000.0


class FakeClock:
    """Epoch-seconds clock that only moves when told to."""

    def __init__(self, now: float = START_TIME):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


Handler = Callable[[httpx.Request], httpx.Response | Awaitable[httpx.Response]]


class FakeApi:
    """
    Routes requests by URL and records every call.

    Unrouted URLs answer 404. A route may be a Response or a (sync or async)
    callable taking the request.
    """

    def __init__(self) -> None:
        self.routes: dict[str, httpx.Response | Handler] = {}
        self.calls: list[httpx.Request] = []

    def route(self, url: str, response: httpx.Response | Handler) -> None:
        self.routes[url] = response

    def count(self, url: str) -> int:
        return sum(1 for request in self.calls if str(request.url) == url)

    def requests_to(self, url: str) -> list[httpx.Request]:
        return [request for request in self.calls if str(request.url) == url]

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        self.calls.append(request)
        route = self.routes.get(str(request.url))
        if route is None:
            return httpx.Response(404, json={"message": "Not Found"})
        if isinstance(route, httpx.Response):
            return route
        result = route(request)
        if asyncio.iscoroutine(result):
            result = await result
        return result


def token_response(expires_at: float, token: str = "tid=exchanged-token") -> httpx.Response:
    return httpx.Response(200, json={"token": token, "expires_at": int(expires_at)})


def models_response(*model_ids: str) -> httpx.Response:
    return httpx.Response(
        200, json={"object": "list", "data": [{"id": model_id} for model_id in model_ids]}
    )


def write_hosts_file(data: Any) -> Path:
    """Write ``data`` (JSON-serialized unless already a str) as the Copilot hosts.json."""
    path = get_credential_store_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(data if isinstance(data, str) else json.dumps(data), encoding="utf-8")
    return path


@pytest.fixture(autouse=True)
def mock_home(tmp_path, monkeypatch):
    """
    Auto-use fixture that isolates ALL tests from the real credential store.

    Each test gets a fresh temp directory as its "home", so hosts.json
    resolves under tmp_path and the user's real Copilot login is never read.
    """
    monkeypatch.setattr(
        "provider_resilience.credentials.Path.home",
        lambda: tmp_path,
    )
    return tmp_path


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Remove every credential env var the built-in providers read."""
    for spec in DEFAULT_PROVIDERS.values():
        for name in (spec.env_key, spec.oauth_env_var):
            if name:
                monkeypatch.delenv(name, raising=False)
    monkeypatch.delenv("ACME_API_KEY", raising=False)
    monkeypatch.delenv("ACME_OAUTH_TOKEN", raising=False)


# Fix for Windows asyncio cleanup issues causing KeyboardInterrupt
# See: https://github.com/pytest-dev/pytest-asyncio/issues/671
if sys.platform == "win32":

    @pytest.fixture(scope="session")
    def event_loop_policy():
        """Use WindowsSelectorEventLoopPolicy to avoid ProactorEventLoop cleanup issues."""
        return asyncio.WindowsSelectorEventLoopPolicy()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fake_api() -> FakeApi:
    return FakeApi()


@pytest.fixture
def http_client(fake_api: FakeApi) -> httpx.AsyncClient:
    """AsyncClient whose every request is answered by ``fake_api``."""
    return httpx.AsyncClient(transport=httpx.MockTransport(fake_api))


@pytest.fixture
def copilot_token_ok(fake_api: FakeApi, clock: FakeClock) -> float:
    """Make the primary Copilot endpoint succeed; returns the expires_at it serves."""
    expires_at = clock.now + 3600
    fake_api.route(COPILOT_TOKEN_URL, token_response(expires_at))
    return expires_at


@pytest.fixture
def copilot_endpoints_down(fake_api: FakeApi) -> None:
    """Both Copilot exchange endpoints reject the credential."""
    fake_api.route(COPILOT_TOKEN_URL, httpx.Response(401, json={"message": "Bad credentials"}))
    fake_api.route(GITHUB_TOKEN_URL, httpx.Response(403, json={"message": "Forbidden"}))
