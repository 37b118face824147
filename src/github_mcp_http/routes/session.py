"""Session establishment and teardown endpoints."""

from __future__ import annotations

import logging

from pydantic import BaseModel, ConfigDict, Field
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.routing import Route

from .common import TransportError, get_gateway, require_session_id

logger = logging.getLogger(__name__)


class ClientInfo(BaseModel):
    """Name and version reported by the connecting client."""

    name: str = ""
    version: str = ""


class ConnectRequest(BaseModel):
    """Request to establish a session.

    Example:
        {"clientInfo": {"name": "my-client", "version": "1.0.0"}}
    """

    model_config = ConfigDict(populate_by_name=True)

    client_info: ClientInfo = Field(default_factory=ClientInfo, alias="clientInfo")


async def connect(request: Request) -> JSONResponse:
    """Create a session and run the initialization handshake.

    Returns the session id, which must be sent as X-Session-ID on every
    subsequent request, plus server identity and capabilities.
    """
    gateway = get_gateway(request)

    try:
        req = ConnectRequest.model_validate(await request.json())
    except ValueError as e:
        raise TransportError(400, "Invalid request body") from e

    info = req.client_info
    session = await gateway.sessions.create(info.name, info.version)

    try:
        result = await session.context.run(gateway.provider.initialize(info.name, info.version))
    except Exception as e:
        logger.exception(
            f"Initialization failed for session {session.id}", extra={"session_id": session.id}
        )
        await gateway.sessions.delete(session.id, reason="initialize failed")
        raise TransportError(500, "Failed to initialize MCP connection") from e

    return JSONResponse({"sessionId": session.id, **result.to_dict()})


async def disconnect(request: Request) -> Response:
    """Tear down a session. Unknown ids are accepted (idempotent)."""
    session_id = require_session_id(request)
    await get_gateway(request).sessions.delete(session_id)
    return Response(status_code=204)


session_routes = [
    Route("/connect", connect, methods=["POST"]),
    Route("/disconnect", disconnect, methods=["POST"]),
]
