"""Event Hub - serialized owner of all live push-stream clients.

The hub is a small asyncio actor: register, unregister, broadcast and
publish are enqueued on a single inbox and applied one at a time by the
hub's own task. Only that task reads or writes the client map, so the map
needs no lock. Each client owns a bounded outbound queue that the hub fills
without blocking and the client's stream task drains.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass
from enum import Enum

from .frames import Event, encode_frame

logger = logging.getLogger(__name__)

DEFAULT_QUEUE_SIZE = 256

# Writes one encoded frame to the underlying connection and flushes it.
FrameWriter = Callable[[str], Awaitable[None]]


class ClientClosedError(Exception):
    """Raised when sending on an event client that was already closed."""

    def __init__(self, client_id: str) -> None:
        super().__init__(f"Event client {client_id} is closed")
        self.client_id = client_id


class EventClient:
    """Per-session push-stream handle.

    Wraps a bounded outbound queue and the writer for one live connection.
    The hub offers events into the queue; the stream task drains them with
    ``events()`` and writes each one with ``send()``.
    """

    def __init__(
        self,
        client_id: str,
        writer: FrameWriter,
        maxsize: int = DEFAULT_QUEUE_SIZE,
    ) -> None:
        self.id = client_id
        self._writer = writer
        self._queue: asyncio.Queue[Event | None] = asyncio.Queue(maxsize=maxsize)
        self._send_lock = asyncio.Lock()
        self._closed = False
        self._closed_event = asyncio.Event()

    @property
    def closed(self) -> bool:
        """True once close() has been called."""
        return self._closed

    @property
    def pending(self) -> int:
        """Number of queued, not yet written events."""
        return self._queue.qsize()

    def offer(self, event: Event) -> bool:
        """Enqueue an event without blocking.

        Returns:
            False if the client is closed or its queue is full
        """
        if self._closed:
            return False
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            return False
        return True

    async def send(self, event: Event) -> None:
        """Write one frame to the connection.

        Raises:
            ClientClosedError: If the client was already closed
        """
        async with self._send_lock:
            if self._closed:
                raise ClientClosedError(self.id)
            await self._writer(encode_frame(event))

    async def events(self) -> AsyncIterator[Event]:
        """Drain the outbound queue in FIFO order until the client closes."""
        while not self._closed:
            event = await self._queue.get()
            if event is None:
                break
            yield event

    def close(self) -> None:
        """Close the client. Idempotent."""
        if self._closed:
            return
        self._closed = True

        # Release anything still queued, then wake a waiting drainer.
        while not self._queue.empty():
            self._queue.get_nowait()
        self._queue.put_nowait(None)
        self._closed_event.set()

    async def wait_closed(self) -> None:
        """Wait until the client is closed."""
        await self._closed_event.wait()


class HubOp(str, Enum):
    """Message kinds processed by the hub."""

    REGISTER = "register"
    UNREGISTER = "unregister"
    BROADCAST = "broadcast"
    PUBLISH = "publish"


@dataclass
class _Message:
    op: HubOp
    client: EventClient | None = None
    event: Event | None = None
    client_id: str | None = None


class EventHub:
    """Single authority over the set of registered event clients.

    Usage:
        hub = EventHub()
        hub.start()
        hub.register(client)
        hub.broadcast(Event(type="notice", data={"text": "hi"}))
        await hub.join()  # wait until the inbox is processed
        await hub.stop()

    All public mutators return immediately; ordering between them is the
    order in which they were called.
    """

    def __init__(self) -> None:
        self._clients: dict[str, EventClient] = {}
        self._inbox: asyncio.Queue[_Message] = asyncio.Queue()
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        """True while the processing task is alive."""
        return self._task is not None and not self._task.done()

    @property
    def client_count(self) -> int:
        """Number of currently registered clients."""
        return len(self._clients)

    def is_registered(self, client: EventClient) -> bool:
        """Check whether this exact client is currently registered."""
        return self._clients.get(client.id) is client

    # =========================================================================
    # Public operations (enqueue only)
    # =========================================================================

    def register(self, client: EventClient) -> None:
        """Make a client eligible for future broadcasts."""
        self._inbox.put_nowait(_Message(HubOp.REGISTER, client=client))

    def unregister(self, client: EventClient) -> None:
        """Remove and close a client. Unknown or repeated calls are no-ops."""
        self._inbox.put_nowait(_Message(HubOp.UNREGISTER, client=client))

    def broadcast(self, event: Event) -> None:
        """Offer an event to every registered client."""
        self._inbox.put_nowait(_Message(HubOp.BROADCAST, event=event))

    def publish(self, client_id: str, event: Event) -> None:
        """Offer an event to the client registered under ``client_id``."""
        self._inbox.put_nowait(_Message(HubOp.PUBLISH, event=event, client_id=client_id))

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def start(self) -> None:
        """Start the processing task on the running loop."""
        if not self.running:
            self._task = asyncio.create_task(self.run(), name="event-hub")

    async def stop(self) -> None:
        """Stop processing and close every registered client."""
        if self._task is not None:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None

        for client in self._clients.values():
            client.close()
        self._clients.clear()

    async def join(self) -> None:
        """Wait until every message enqueued so far has been processed."""
        await self._inbox.join()

    async def run(self) -> None:
        """Process inbox messages one at a time, forever."""
        while True:
            message = await self._inbox.get()
            try:
                self._process(message)
            except Exception:
                logger.exception(f"Event hub failed to process {message.op.value}")
            finally:
                self._inbox.task_done()

    # =========================================================================
    # Message handling (runs only inside run())
    # =========================================================================

    def _process(self, message: _Message) -> None:
        match message.op:
            case HubOp.REGISTER:
                assert message.client is not None
                self._register(message.client)

            case HubOp.UNREGISTER:
                assert message.client is not None
                self._unregister(message.client)

            case HubOp.BROADCAST:
                assert message.event is not None
                for client in list(self._clients.values()):
                    self._deliver(client, message.event)

            case HubOp.PUBLISH:
                assert message.event is not None
                client = self._clients.get(message.client_id or "")
                if client is not None:
                    self._deliver(client, message.event)

    def _register(self, client: EventClient) -> None:
        if client.closed:
            logger.debug(f"Ignoring register of closed client {client.id}")
            return

        displaced = self._clients.get(client.id)
        self._clients[client.id] = client
        if displaced is not None and displaced is not client:
            displaced.close()
        logger.debug(f"Registered event client {client.id} ({len(self._clients)} active)")

    def _unregister(self, client: EventClient) -> None:
        # A stale client must not evict the replacement registered under its id.
        if self._clients.get(client.id) is client:
            del self._clients[client.id]
            logger.debug(f"Unregistered event client {client.id}")
        client.close()

    def _deliver(self, client: EventClient, event: Event) -> None:
        if not client.offer(event):
            if client.closed:
                logger.debug(f"Dropping closed event client {client.id}")
            else:
                logger.warning(
                    f"Dropping unresponsive event client {client.id} (queue full)",
                    extra={"session_id": client.id, "event_type": event.type},
                )
            self.unregister(client)
