"""Shared helpers for route handlers."""

from __future__ import annotations

from typing import TYPE_CHECKING

from starlette.requests import Request
from starlette.responses import JSONResponse

from ..session import Session, SessionNotFoundError

if TYPE_CHECKING:
    from ..gateway import Gateway

API_PREFIX = "/api/v1"
SESSION_HEADER = "X-Session-ID"


class TransportError(Exception):
    """A transport-level failure answered with an HTTP error status.

    Only ``message`` reaches the caller; details belong in the logs.
    """

    def __init__(self, status_code: int, message: str) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.message = message


async def transport_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Render TransportError as ``{"error": message}``."""
    assert isinstance(exc, TransportError)
    return JSONResponse({"error": exc.message}, status_code=exc.status_code)


def get_gateway(request: Request) -> Gateway:
    return request.app.state.gateway


def require_session_id(request: Request) -> str:
    """Read the session id header.

    Raises:
        TransportError: 400 if the header is missing
    """
    session_id = request.headers.get(SESSION_HEADER, "").strip()
    if not session_id:
        raise TransportError(400, "Missing session ID")
    return session_id


async def require_session(request: Request, touch: bool = False) -> Session:
    """Resolve the caller's live session, optionally refreshing its activity.

    Raises:
        TransportError: 400 if the header is missing, 401 if the session is unknown
    """
    session_id = require_session_id(request)
    registry = get_gateway(request).sessions
    try:
        if touch:
            return await registry.touch(session_id)
        return await registry.get(session_id)
    except SessionNotFoundError as e:
        raise TransportError(401, "Invalid session") from e
