"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import asyncio
import os
from collections.abc import Callable, Iterator, Mapping
from pathlib import Path
from typing import Any

import pytest
from starlette.applications import Starlette
from starlette.testclient import TestClient

from github_mcp_http import config as config_module
from github_mcp_http.app import create_app
from github_mcp_http.config import ENV_PREFIX, ServerConfig
from github_mcp_http.protocol.errors import InvalidParamsError
from github_mcp_http.protocol.provider import (
    CapabilityProvider,
    InitializeResult,
    MethodHandler,
    ServerInfo,
)
from github_mcp_http.session import SessionContext
from github_mcp_http.sse.frames import Event


@pytest.fixture(scope="module")
def anyio_backend():
    """Configure anyio to use asyncio backend."""
    return "asyncio"


@pytest.fixture(autouse=True)
def isolated_config(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep the host's GITHUB_MCP_* variables and ~/.github-mcp-http.yaml out of the tests."""
    monkeypatch.setattr(config_module, "DEFAULT_CONFIG_FILE", tmp_path / "absent.yaml")
    for var in list(os.environ):
        if var.startswith(ENV_PREFIX) or var == "PORT":
            monkeypatch.delenv(var)


class FakeProvider(CapabilityProvider):
    """In-memory provider with one method per dispatcher outcome."""

    def __init__(self, read_only: bool = False, fail_initialize: bool = False) -> None:
        self.read_only = read_only
        self.fail_initialize = fail_initialize
        self.closed = False
        self.slow_started = asyncio.Event()
        self._methods: dict[str, MethodHandler] = {
            "echo": self._echo,
            "invalid": self._invalid,
            "boom": self._boom,
            "slow": self._slow,
            "notify": self._notify,
        }

    async def initialize(self, client_name: str, client_version: str) -> InitializeResult:
        if self.fail_initialize:
            raise RuntimeError("backend unavailable")
        return InitializeResult(
            server_info=ServerInfo(name="fake-server", version="0.0.1"),
            capabilities={"tools": {"listChanged": True}, "experimental": {"readOnly": self.read_only}},
        )

    def methods(self) -> Mapping[str, MethodHandler]:
        return self._methods

    async def aclose(self) -> None:
        self.closed = True

    async def _echo(self, context: SessionContext, params: Any) -> dict[str, Any]:
        return {"params": params, "session": context.session_id}

    async def _invalid(self, context: SessionContext, params: Any) -> None:
        raise InvalidParamsError("value is required")

    async def _boom(self, context: SessionContext, params: Any) -> None:
        raise RuntimeError("backend exploded")

    async def _slow(self, context: SessionContext, params: Any) -> None:
        self.slow_started.set()
        await asyncio.sleep(3600)

    async def _notify(self, context: SessionContext, params: Any) -> dict[str, Any]:
        context.publish(Event(type="notice", data=params))
        return {"published": True}


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def failing_provider() -> FakeProvider:
    """Provider whose initialization handshake fails."""
    return FakeProvider(fail_initialize=True)


@pytest.fixture
def config() -> ServerConfig:
    return ServerConfig(github_token="test-token", log_json=False)


@pytest.fixture
def app(config: ServerConfig, provider: FakeProvider) -> Starlette:
    return create_app(config, provider)


@pytest.fixture
def client(app: Starlette) -> Iterator[TestClient]:
    """Test client with the application lifespan running."""
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def wait_until() -> Callable[..., Any]:
    """Poll a predicate on the running loop until it holds or times out."""

    async def _wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
        async with asyncio.timeout(timeout):
            while not predicate():
                await asyncio.sleep(0.01)

    return _wait_until


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
