"""SDK Client - talks to a running github-mcp-http server.

Wraps the session lifecycle (connect, rpc, events, disconnect) so callers
never handle the X-Session-ID header themselves.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import Any

import httpx

from ..protocol.envelope import RPCResponse
from ..routes.common import API_PREFIX, SESSION_HEADER
from ..sse.frames import Event, FrameParser


class GatewayError(Exception):
    """The server answered with an HTTP error status."""

    def __init__(self, message: str, status_code: int) -> None:
        super().__init__(f"{status_code}: {message}")
        self.message = message
        self.status_code = status_code


@dataclass
class ConnectResult:
    """Result of establishing a session."""

    session_id: str
    server_info: dict[str, Any]
    capabilities: dict[str, Any]


@dataclass
class GatewayClient:
    """Client for one session on a github-mcp-http server.

    Usage:
        async with GatewayClient("http://localhost:8080") as client:
            await client.connect("my-client", "1.0.0")
            response = await client.call("tools/list")
            print(response.result)
    """

    base_url: str
    http_client: httpx.AsyncClient | None = field(default=None, repr=False)
    session_id: str | None = field(default=None, init=False)
    _next_id: int = field(default=1, init=False, repr=False)
    _owns_client: bool = field(default=False, init=False, repr=False)

    async def __aenter__(self) -> GatewayClient:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        if self.session_id is not None:
            await self.disconnect()
        await self.aclose()

    @property
    def http(self) -> httpx.AsyncClient:
        if self.http_client is None:
            self.http_client = httpx.AsyncClient(base_url=self.base_url, timeout=30.0)
            self._owns_client = True
        return self.http_client

    def _headers(self) -> dict[str, str]:
        if self.session_id is None:
            raise RuntimeError("Not connected; call connect() first")
        return {SESSION_HEADER: self.session_id}

    async def _fetch(
        self,
        method: str,
        path: str,
        json: Any = None,
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        response = await self.http.request(
            method, f"{API_PREFIX}{path}", json=json, headers=headers
        )
        if response.is_error:
            raise GatewayError(_error_message(response), response.status_code)
        return response

    async def health(self) -> dict[str, Any]:
        """Check server health. No session needed."""
        response = await self._fetch("GET", "/health")
        return response.json()

    async def connect(self, name: str = "github-mcp-http-sdk", version: str = "") -> ConnectResult:
        """Establish a session; later calls are bound to it."""
        body = {"clientInfo": {"name": name, "version": version}}
        data = (await self._fetch("POST", "/connect", json=body)).json()
        self.session_id = data["sessionId"]
        return ConnectResult(
            session_id=data["sessionId"],
            server_info=data.get("serverInfo", {}),
            capabilities=data.get("capabilities", {}),
        )

    async def call(
        self,
        method: str,
        params: dict[str, Any] | list[Any] | None = None,
        request_id: Any = None,
    ) -> RPCResponse:
        """Submit one call in the current session.

        Protocol errors come back in ``response.error``; transport errors
        raise GatewayError.
        """
        if request_id is None:
            request_id = self._next_id
            self._next_id += 1

        envelope: dict[str, Any] = {"jsonrpc": "2.0", "method": method, "id": request_id}
        if params is not None:
            envelope["params"] = params

        response = await self._fetch("POST", "/rpc", json=envelope, headers=self._headers())
        return RPCResponse.model_validate(response.json())

    async def events(self) -> AsyncIterator[Event]:
        """Open the session's push stream and yield events as they arrive.

        The first event is ``connected``. The iterator ends when the server
        closes the stream.
        """
        parser = FrameParser()
        async with self.http.stream(
            "GET",
            f"{API_PREFIX}/events",
            headers=self._headers(),
            timeout=httpx.Timeout(30.0, read=None),
        ) as response:
            if response.is_error:
                await response.aread()
                raise GatewayError(_error_message(response), response.status_code)

            async for line in response.aiter_lines():
                event = parser.feed(line)
                if event is not None:
                    yield event

    async def disconnect(self) -> None:
        """Tear down the current session. Safe to call when not connected."""
        if self.session_id is None:
            return
        headers = self._headers()
        self.session_id = None
        await self._fetch("POST", "/disconnect", headers=headers)

    async def aclose(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self.http_client is not None and self._owns_client:
            await self.http_client.aclose()
            self.http_client = None
            self._owns_client = False


def _error_message(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    if isinstance(data, dict) and "error" in data:
        return str(data["error"])
    return response.text or response.reason_phrase


def create_client(base_url: str = "http://localhost:8080") -> GatewayClient:
    """Create an SDK client for a remote server.

    Args:
        base_url: Server URL (default: http://localhost:8080)
    """
    return GatewayClient(base_url=base_url)
