"""Shared pytest fixtures for Fluxdrop tests."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Generator
from pathlib import Path

import httpx
import pytest
from fastapi.testclient import TestClient

from fluxdrop.api.main import app, get_config, get_http_client, get_store_provider
from fluxdrop.core.config import FluxdropConfig
from fluxdrop.core.records import RecordStore

GENERATION_HOST = "api.together.xyz"
HOSTING_HOST = "api.imgbb.com"
HOSTED_URL = "https://i.ibb.co/xyz.png"


class FakeUpstreams:
    """Stand-in for the generation and hosting APIs behind ``httpx.MockTransport``.

    Each upstream answers with a configurable response and records every
    request it receives, so tests can assert call counts.
    """

    def __init__(self) -> None:
        self.requests: dict[str, list[httpx.Request]] = {"generation": [], "hosting": []}
        self._responders: dict[str, Callable[[httpx.Request], httpx.Response | Awaitable[httpx.Response]]] = {}
        self.respond("generation", 200, json={"data": [{"b64_json": "AAAA"}]})
        self.respond("hosting", 200, json={"data": {"url": HOSTED_URL}})

    def respond(self, service: str, status_code: int, **kwargs) -> None:
        """Answer *service* with a fresh ``httpx.Response(status_code, **kwargs)``."""
        self._responders[service] = lambda request: httpx.Response(status_code, **kwargs)

    def fail(self, service: str, exc_type: type[httpx.TransportError], message: str = "boom") -> None:
        """Make *service* raise a transport error instead of answering."""

        def raise_error(request: httpx.Request) -> httpx.Response:
            raise exc_type(message, request=request)

        self._responders[service] = raise_error

    def stall(self, service: str, seconds: float) -> None:
        """Make *service* accept the request but answer only after *seconds*."""

        async def answer_late(request: httpx.Request) -> httpx.Response:
            await asyncio.sleep(seconds)
            return httpx.Response(200, json={})

        self._responders[service] = answer_late

    def calls(self, service: str) -> int:
        return len(self.requests[service])

    def handler(self, request: httpx.Request) -> httpx.Response | Awaitable[httpx.Response]:
        if request.url.host == GENERATION_HOST:
            service = "generation"
        elif request.url.host == HOSTING_HOST:
            service = "hosting"
        else:
            return httpx.Response(404, text=f"unexpected host {request.url.host}")
        self.requests[service].append(request)
        return self._responders[service](request)


@pytest.fixture
def upstreams() -> FakeUpstreams:
    return FakeUpstreams()


@pytest.fixture
def http_client(upstreams: FakeUpstreams) -> Generator[httpx.AsyncClient, None, None]:
    """Async HTTP client routed to :class:`FakeUpstreams`, closed on teardown."""
    client = httpx.AsyncClient(transport=httpx.MockTransport(upstreams.handler))
    try:
        yield client
    finally:
        asyncio.run(client.aclose())


@pytest.fixture
def test_config() -> FluxdropConfig:
    """Configuration with both API keys and persistence disabled.

    Returns:
        FluxdropConfig isolated from the real environment and ``.env`` file
    """
    return FluxdropConfig(
        together_api_key="test-together-key",
        imgbb_api_key="test-imgbb-key",
        persistence_enabled=False,
        request_timeout_seconds=5.0,
        _env_file=None,
    )


@pytest.fixture
def sqlite_url(tmp_path: Path) -> str:
    return f"sqlite:///{tmp_path / 'generations.db'}"


@pytest.fixture
def record_store(sqlite_url: str) -> Generator[RecordStore, None, None]:
    """Record store backed by a temporary SQLite file."""
    store = RecordStore(sqlite_url)
    try:
        yield store
    finally:
        store.dispose()


@pytest.fixture
def persistent_config(test_config: FluxdropConfig, sqlite_url: str) -> FluxdropConfig:
    """Configuration with persistence enabled against the temporary database."""
    return test_config.model_copy(update={"persistence_enabled": True, "database_url": sqlite_url})


@pytest.fixture
def app_config(test_config: FluxdropConfig) -> FluxdropConfig:
    """Configuration served to the app by :func:`test_client`."""
    return test_config


@pytest.fixture
def test_client(
    app_config: FluxdropConfig,
    http_client: httpx.AsyncClient,
    record_store: RecordStore,
) -> Generator[TestClient, None, None]:
    """TestClient with config, HTTP client, and record store overridden.

    No real network or database server is touched.
    """
    app.dependency_overrides[get_config] = lambda: app_config
    app.dependency_overrides[get_http_client] = lambda: http_client
    app.dependency_overrides[get_store_provider] = lambda: (lambda url: record_store)
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
