"""ASGI middleware: request logging and the authentication hook."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

from starlette.datastructures import Headers
from starlette.responses import JSONResponse
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from .routes.common import API_PREFIX, SESSION_HEADER

logger = logging.getLogger(__name__)

PUBLIC_PATHS = frozenset({f"{API_PREFIX}/health"})


class RequestLoggingMiddleware:
    """Log one line per HTTP request with status, duration and session id.

    For event streams the line is written when the stream ends, so the
    duration is the lifetime of the stream.
    """

    def __init__(self, app: ASGIApp) -> None:
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        start = time.perf_counter()
        status_code = 500

        async def send_wrapper(message: Message) -> None:
            nonlocal status_code
            if message["type"] == "http.response.start":
                status_code = message["status"]
            await send(message)

        try:
            await self.app(scope, receive, send_wrapper)
        finally:
            duration_ms = (time.perf_counter() - start) * 1000
            client = scope.get("client")
            session_id = Headers(scope=scope).get(SESSION_HEADER)
            logger.info(
                f"{scope['method']} {scope['path']} {status_code} ({duration_ms:.1f}ms)",
                extra={
                    "method": scope["method"],
                    "path": scope["path"],
                    "status": status_code,
                    "duration_ms": round(duration_ms, 3),
                    "remote_addr": f"{client[0]}:{client[1]}" if client else None,
                    "session_id": session_id,
                },
            )


class AuthMiddleware:
    """Authentication hook.

    Health checks are always public. Other requests are passed to the
    ``authenticate`` callable, if one is configured; a False result is
    answered with 401. Without a callable every request passes through and
    authentication is left to the reverse proxy in front of the server.
    """

    def __init__(
        self,
        app: ASGIApp,
        authenticate: Callable[[Headers], bool] | None = None,
        public_paths: frozenset[str] = PUBLIC_PATHS,
    ) -> None:
        self.app = app
        self.authenticate = authenticate
        self.public_paths = public_paths

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if (
            scope["type"] != "http"
            or scope["path"] in self.public_paths
            or self.authenticate is None
        ):
            await self.app(scope, receive, send)
            return

        if not self.authenticate(Headers(scope=scope)):
            logger.warning(f"Rejected unauthenticated request to {scope['path']}")
            response = JSONResponse({"error": "Unauthorized"}, status_code=401)
            await response(scope, receive, send)
            return

        await self.app(scope, receive, send)
