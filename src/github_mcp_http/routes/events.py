"""SSE push-stream endpoint."""

from starlette.requests import Request
from starlette.routing import Route

from ..sse.response import EventStreamResponse
from .common import get_gateway, require_session


async def event_stream(request: Request) -> EventStreamResponse:
    """Open the session's push stream.

    Replaces any stream already attached to the session. The stream starts
    with a ``connected`` event and emits ``ping`` events while idle.
    """
    gateway = get_gateway(request)
    session = await require_session(request, touch=True)

    return EventStreamResponse(
        gateway.sessions,
        session,
        ping_interval=gateway.config.ping_interval,
        queue_size=gateway.config.client_queue_size,
    )


event_routes = [
    Route("/events", event_stream, methods=["GET"]),
]
