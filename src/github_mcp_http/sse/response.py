"""Push-stream response.

A raw ASGI response that owns one session's event stream for its whole
lifetime: it attaches an EventClient to the session, writes the initial
``connected`` frame, then drains the client's queue and emits ``ping``
frames until the session is cancelled, the peer disconnects, or the hub
drops the client. Every frame is sent as its own body chunk so it is
flushed immediately.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from starlette.responses import Response
from starlette.types import Receive, Scope, Send

from .frames import Event
from .hub import DEFAULT_QUEUE_SIZE, ClientClosedError, EventClient

if TYPE_CHECKING:
    from ..session import Session, SessionRegistry

logger = logging.getLogger(__name__)

DEFAULT_PING_INTERVAL = 30.0

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",  # Disable nginx buffering
}


class EventStreamResponse(Response):
    """Server-Sent Events response bound to a single session."""

    media_type = "text/event-stream"

    def __init__(
        self,
        registry: SessionRegistry,
        session: Session,
        ping_interval: float = DEFAULT_PING_INTERVAL,
        queue_size: int = DEFAULT_QUEUE_SIZE,
    ) -> None:
        self._registry = registry
        self._session = session
        self._ping_interval = ping_interval
        self._queue_size = queue_size
        self.status_code = 200
        self.background = None
        self.init_headers(SSE_HEADERS)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        await send(
            {
                "type": "http.response.start",
                "status": self.status_code,
                "headers": self.raw_headers,
            }
        )

        async def write(frame: str) -> None:
            await send(
                {"type": "http.response.body", "body": frame.encode("utf-8"), "more_body": True}
            )

        session = self._session
        client = EventClient(session.id, write, maxsize=self._queue_size)
        self._registry.attach(session, client)
        logger.info(f"Event stream opened for session {session.id}", extra={"session_id": session.id})

        reason = "closed"
        try:
            await client.send(Event.connected(session.id))
            reason = await self._pump(client, receive)
        finally:
            self._registry.detach(session, client)
            logger.info(
                f"Event stream for session {session.id} ended ({reason})",
                extra={"session_id": session.id},
            )

        if reason != "disconnected":
            await send({"type": "http.response.body", "body": b"", "more_body": False})

    async def _pump(self, client: EventClient, receive: Receive) -> str:
        """Run the stream until the first terminating condition.

        Returns:
            Why the stream ended: "cancelled", "disconnected" or "closed"
        """
        drain = asyncio.create_task(self._drain(client))
        ping = asyncio.create_task(self._ping(client))
        peer = asyncio.create_task(self._wait_disconnect(receive))
        cancelled = asyncio.create_task(self._session.context.wait())
        tasks = [drain, ping, peer, cancelled]

        try:
            done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in tasks:
                task.cancel()
            results = await asyncio.gather(*tasks, return_exceptions=True)
            for result in results:
                if isinstance(result, Exception):
                    logger.error(
                        f"Event stream task failed for session {client.id}: {result!r}",
                        extra={"session_id": client.id},
                    )

        if cancelled in done:
            return "cancelled"
        if peer in done:
            return "disconnected"
        return "closed"

    async def _drain(self, client: EventClient) -> None:
        """Write queued events in order; returns when the client closes."""
        async for event in client.events():
            try:
                await client.send(event)
            except (ClientClosedError, OSError):
                return

    async def _ping(self, client: EventClient) -> None:
        """Emit a liveness frame every ping interval."""
        while True:
            await asyncio.sleep(self._ping_interval)
            try:
                await client.send(Event.ping())
            except (ClientClosedError, OSError):
                return

    async def _wait_disconnect(self, receive: Receive) -> None:
        while True:
            message = await receive()
            if message["type"] == "http.disconnect":
                return
