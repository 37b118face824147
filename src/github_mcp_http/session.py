"""Session management.

Sessions correlate a sequence of RPC calls and at most one push stream to
a single logical client. The registry is the sole owner of session
existence: sessions are created on connect and destroyed either by an
explicit disconnect or by the idle-expiry sweep.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import math
import time
import uuid
from collections.abc import Callable, Coroutine
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, TypeVar

from .sse.frames import Event
from .sse.hub import EventClient, EventHub

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_IDLE_TIMEOUT = 30 * 60.0
DEFAULT_SWEEP_INTERVAL = 5 * 60.0


class SessionNotFoundError(LookupError):
    """Raised when a session id is unknown, expired or deleted."""

    def __init__(self, session_id: str) -> None:
        super().__init__(f"Session '{session_id}' not found")
        self.session_id = session_id


class SessionCancelledError(Exception):
    """Raised when work scoped to a session is stopped by its cancellation."""

    def __init__(self, session_id: str) -> None:
        super().__init__(f"Session '{session_id}' was cancelled")
        self.session_id = session_id


class SessionContext:
    """Cancellation token owned by a session.

    Every task scoped to the session (call handling, the push stream) holds
    the same context. ``cancel()`` is observable by all holders through
    ``wait()`` and cancels any work started with ``run()``.
    """

    def __init__(
        self,
        session_id: str,
        publish: Callable[[str, Event], None] | None = None,
    ) -> None:
        self.session_id = session_id
        self._publish = publish
        self._cancelled = asyncio.Event()
        self._tasks: set[asyncio.Task[Any]] = set()

    @property
    def cancelled(self) -> bool:
        """True once the session has been cancelled."""
        return self._cancelled.is_set()

    @property
    def in_flight(self) -> int:
        """Number of tasks currently running under this context."""
        return len(self._tasks)

    def cancel(self) -> None:
        """Cancel the session and all of its in-flight work. Idempotent."""
        if self._cancelled.is_set():
            return
        self._cancelled.set()
        for task in list(self._tasks):
            task.cancel()

    async def wait(self) -> None:
        """Wait until the session is cancelled."""
        await self._cancelled.wait()

    async def run(self, coro: Coroutine[Any, Any, T]) -> T:
        """Run a coroutine as work scoped to this session.

        Raises:
            SessionCancelledError: If the session is (or becomes) cancelled
        """
        if self.cancelled:
            coro.close()
            raise SessionCancelledError(self.session_id)

        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

        try:
            return await task
        except asyncio.CancelledError:
            current = asyncio.current_task()
            # Only translate cancellations that came from the session itself.
            if self.cancelled and (current is None or not current.cancelling()):
                raise SessionCancelledError(self.session_id) from None
            raise

    def publish(self, event: Event) -> None:
        """Push an event to this session's own event stream, if attached."""
        if self._publish is not None and not self.cancelled:
            self._publish(self.session_id, event)


@dataclass
class Session:
    """Server-side state for one connected client."""

    id: str
    context: SessionContext
    last_active: float
    client_name: str = ""
    client_version: str = ""
    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    event_client: EventClient | None = None

    def touch(self, now: float) -> float:
        """Record activity; last_active strictly increases on every call."""
        if now > self.last_active:
            self.last_active = now
        else:
            self.last_active = math.nextafter(self.last_active, math.inf)
        return self.last_active

    def idle_for(self, now: float) -> float:
        """Seconds since the last recorded activity."""
        return now - self.last_active

    def to_dict(self) -> dict[str, Any]:
        """Summary used in logs and diagnostics."""
        return {
            "session_id": self.id,
            "client_name": self.client_name,
            "client_version": self.client_version,
            "created_at": self.created_at.isoformat(),
            "stream_attached": self.event_client is not None,
        }


class SessionRegistry:
    """Concurrent store of live sessions with idle expiry.

    Provides:
    - create / get / touch / delete
    - attaching and detaching a session's push-stream client
    - a periodic sweep that tears down idle sessions

    Map mutations are serialized by an asyncio.Lock that is never held
    across an await on anything other than the lock itself.
    """

    def __init__(
        self,
        hub: EventHub,
        idle_timeout: float = DEFAULT_IDLE_TIMEOUT,
        sweep_interval: float = DEFAULT_SWEEP_INTERVAL,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the registry.

        Args:
            hub: Event hub that owns the sessions' push clients
            idle_timeout: Seconds without activity before a session expires
            sweep_interval: Seconds between expiry sweeps
            clock: Monotonic time source (injectable for tests)
        """
        self._hub = hub
        self.idle_timeout = idle_timeout
        self.sweep_interval = sweep_interval
        self._clock = clock
        self._sessions: dict[str, Session] = {}
        self._lock = asyncio.Lock()
        self._sweep_task: asyncio.Task | None = None

    @property
    def count(self) -> int:
        """Number of live sessions."""
        return len(self._sessions)

    # =========================================================================
    # CRUD
    # =========================================================================

    async def create(self, client_name: str = "", client_version: str = "") -> Session:
        """Create a session with a fresh id and cancellation context."""
        session_id = f"sess_{uuid.uuid4().hex}"
        session = Session(
            id=session_id,
            context=SessionContext(session_id, publish=self._hub.publish),
            last_active=self._clock(),
            client_name=client_name,
            client_version=client_version,
        )

        async with self._lock:
            self._sessions[session_id] = session

        logger.info(
            f"Created session {session_id} for {client_name or 'unknown'} {client_version}".rstrip(),
            extra={"session_id": session_id},
        )
        return session

    async def get(self, session_id: str) -> Session:
        """Look up a live session.

        Raises:
            SessionNotFoundError: If the id is unknown or was deleted
        """
        session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    async def touch(self, session_id: str) -> Session:
        """Refresh a session's last-activity time.

        Raises:
            SessionNotFoundError: If the id is unknown or was deleted
        """
        session = await self.get(session_id)
        session.touch(self._clock())
        return session

    async def delete(self, session_id: str, reason: str = "disconnect") -> bool:
        """Tear down a session. Idempotent.

        Cancels the session's context (stopping its push stream and in-flight
        calls) and unregisters its event client from the hub.

        Returns:
            True if the session existed, False otherwise
        """
        async with self._lock:
            session = self._sessions.pop(session_id, None)

        if session is None:
            return False

        session.context.cancel()
        if session.event_client is not None:
            self._hub.unregister(session.event_client)

        logger.info(f"Deleted session {session_id} ({reason})", extra={"session_id": session_id})
        return True

    # =========================================================================
    # Push-stream client attachment
    # =========================================================================

    def attach(self, session: Session, client: EventClient) -> None:
        """Make ``client`` the session's push-stream client.

        A previously attached client is unregistered (and closed) before the
        new one is registered, so at most one stream per session is live.
        """
        previous = session.event_client
        session.event_client = client
        if previous is not None and previous is not client:
            logger.info(
                f"Replacing event stream for session {session.id}",
                extra={"session_id": session.id},
            )
            self._hub.unregister(previous)
        self._hub.register(client)

    def detach(self, session: Session, client: EventClient) -> None:
        """Unregister ``client`` and clear the reference if it is still current."""
        if session.event_client is client:
            session.event_client = None
        self._hub.unregister(client)

    # =========================================================================
    # Idle expiry
    # =========================================================================

    async def sweep(self) -> int:
        """Delete every session idle longer than the idle timeout.

        Returns:
            Number of sessions removed by this sweep
        """
        now = self._clock()
        expired = [
            session.id
            for session in list(self._sessions.values())
            if session.idle_for(now) > self.idle_timeout
        ]

        removed = 0
        for session_id in expired:
            try:
                if await self.delete(session_id, reason="expired"):
                    removed += 1
            except Exception:
                logger.exception(
                    f"Failed to expire session {session_id}", extra={"session_id": session_id}
                )
        return removed

    def start(self) -> None:
        """Start the periodic sweep task on the running loop."""
        if self._sweep_task is None or self._sweep_task.done():
            self._sweep_task = asyncio.create_task(self._sweep_loop(), name="session-sweep")

    async def stop(self) -> None:
        """Stop sweeping and tear down every remaining session."""
        if self._sweep_task is not None:
            self._sweep_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._sweep_task
            self._sweep_task = None

        for session_id in list(self._sessions):
            await self.delete(session_id, reason="shutdown")

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self.sweep_interval)
            try:
                removed = await self.sweep()
            except Exception:
                logger.exception("Session sweep failed")
                continue
            if removed:
                logger.info(f"Expired {removed} inactive session(s); {self.count} remaining")
