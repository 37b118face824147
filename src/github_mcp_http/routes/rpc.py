"""RPC call submission endpoint."""

from __future__ import annotations

import logging

from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route

from ..session import SessionCancelledError
from .common import TransportError, get_gateway, require_session

logger = logging.getLogger(__name__)


async def submit_call(request: Request) -> JSONResponse:
    """Dispatch one request envelope within the caller's session.

    Protocol-level failures (unknown method, invalid params) come back as a
    200 response carrying an error envelope. Transport-level failures use
    HTTP error statuses.
    """
    gateway = get_gateway(request)
    session = await require_session(request, touch=True)

    try:
        payload = await request.json()
    except ValueError as e:
        raise TransportError(400, "Invalid RPC request") from e

    try:
        response = await gateway.dispatcher.handle(payload, session.context)
    except SessionCancelledError as e:
        raise TransportError(401, "Invalid session") from e
    except Exception as e:
        logger.exception("RPC processing failed", extra={"session_id": session.id})
        raise TransportError(500, "RPC processing failed") from e

    return JSONResponse(response.to_dict())


rpc_routes = [
    Route("/rpc", submit_call, methods=["POST"]),
]
