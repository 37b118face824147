"""Tests for session module - SessionContext, Session, SessionRegistry."""

from __future__ import annotations

import asyncio

import pytest

from github_mcp_http.session import (
    Session,
    SessionCancelledError,
    SessionContext,
    SessionNotFoundError,
    SessionRegistry,
)
from github_mcp_http.sse.frames import Event
from github_mcp_http.sse.hub import EventClient, EventHub


async def _noop_writer(frame: str) -> None:
    return None


# =============================================================================
# SessionContext Tests
# =============================================================================


class TestSessionContext:
    """Tests for the per-session cancellation token."""

    @pytest.mark.asyncio
    async def test_run_returns_result(self) -> None:
        context = SessionContext("sess_1")

        async def work() -> int:
            return 42

        assert await context.run(work()) == 42
        assert context.in_flight == 0

    @pytest.mark.asyncio
    async def test_cancel_stops_in_flight_work(self) -> None:
        context = SessionContext("sess_1")
        started = asyncio.Event()

        async def work() -> None:
            started.set()
            await asyncio.sleep(3600)

        task = asyncio.create_task(context.run(work()))
        await started.wait()
        assert context.in_flight == 1

        context.cancel()

        with pytest.raises(SessionCancelledError):
            await task
        assert context.in_flight == 0

    @pytest.mark.asyncio
    async def test_run_after_cancel_refuses_work(self) -> None:
        context = SessionContext("sess_1")
        context.cancel()

        async def work() -> None:
            raise AssertionError("should not run")

        with pytest.raises(SessionCancelledError):
            await context.run(work())

    @pytest.mark.asyncio
    async def test_outer_cancellation_propagates(self) -> None:
        """Cancelling the caller is not reported as a session cancellation."""
        context = SessionContext("sess_1")
        started = asyncio.Event()

        async def work() -> None:
            started.set()
            await asyncio.sleep(3600)

        task = asyncio.create_task(context.run(work()))
        await started.wait()
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task
        assert not context.cancelled

    @pytest.mark.asyncio
    async def test_wait_observes_cancel(self) -> None:
        context = SessionContext("sess_1")
        waiter = asyncio.create_task(context.wait())
        await asyncio.sleep(0)
        assert not waiter.done()

        context.cancel()
        context.cancel()
        await asyncio.wait_for(waiter, timeout=1)
        assert context.cancelled

    def test_publish_uses_session_id(self) -> None:
        published: list[tuple[str, Event]] = []
        context = SessionContext("sess_1", publish=lambda sid, ev: published.append((sid, ev)))

        context.publish(Event(type="notice"))

        assert [(sid, ev.type) for sid, ev in published] == [("sess_1", "notice")]

    def test_publish_after_cancel_is_dropped(self) -> None:
        published: list[tuple[str, Event]] = []
        context = SessionContext("sess_1", publish=lambda sid, ev: published.append((sid, ev)))
        context.cancel()

        context.publish(Event(type="notice"))

        assert published == []


# =============================================================================
# Session Tests
# =============================================================================


class TestSession:
    """Tests for the Session record."""

    def test_touch_strictly_increases(self) -> None:
        """Touches at an unchanged (or earlier) clock reading still advance."""
        session = Session(id="sess_1", context=SessionContext("sess_1"), last_active=100.0)

        readings = [session.touch(100.0) for _ in range(5)]
        readings.append(session.touch(50.0))

        assert all(b > a for a, b in zip(readings, readings[1:], strict=False))
        assert readings[0] > 100.0

    def test_touch_follows_clock(self) -> None:
        session = Session(id="sess_1", context=SessionContext("sess_1"), last_active=100.0)
        assert session.touch(150.0) == 150.0
        assert session.idle_for(160.0) == 10.0

    def test_to_dict(self) -> None:
        session = Session(
            id="sess_1",
            context=SessionContext("sess_1"),
            last_active=0.0,
            client_name="cli",
            client_version="1.0",
        )
        data = session.to_dict()
        assert data["session_id"] == "sess_1"
        assert data["client_name"] == "cli"
        assert data["stream_attached"] is False


# =============================================================================
# SessionRegistry Tests
# =============================================================================


class TestSessionRegistry:
    """Tests for session CRUD, stream attachment and expiry."""

    @pytest.mark.asyncio
    async def test_create_and_get(self, clock) -> None:
        registry = SessionRegistry(EventHub(), clock=clock)

        session = await registry.create("cli", "1.0")

        assert session.id.startswith("sess_")
        assert session.last_active == clock.now
        assert await registry.get(session.id) is session
        assert registry.count == 1

    @pytest.mark.asyncio
    async def test_ids_are_unique(self, clock) -> None:
        registry = SessionRegistry(EventHub(), clock=clock)
        ids = {(await registry.create()).id for _ in range(50)}
        assert len(ids) == 50

    @pytest.mark.asyncio
    async def test_get_unknown_raises(self, clock) -> None:
        registry = SessionRegistry(EventHub(), clock=clock)
        with pytest.raises(SessionNotFoundError):
            await registry.get("sess_missing")
        with pytest.raises(SessionNotFoundError):
            await registry.touch("sess_missing")

    @pytest.mark.asyncio
    async def test_touch_is_monotonic_with_frozen_clock(self, clock) -> None:
        registry = SessionRegistry(EventHub(), clock=clock)
        session = await registry.create()
        before = session.last_active

        await registry.touch(session.id)
        middle = session.last_active
        await registry.touch(session.id)

        assert before < middle < session.last_active

    @pytest.mark.asyncio
    async def test_delete_cancels_and_is_idempotent(self, clock) -> None:
        registry = SessionRegistry(EventHub(), clock=clock)
        session = await registry.create()

        assert await registry.delete(session.id) is True
        assert await registry.delete(session.id) is False

        assert session.context.cancelled
        assert registry.count == 0
        with pytest.raises(SessionNotFoundError):
            await registry.get(session.id)

    @pytest.mark.asyncio
    async def test_delete_unregisters_stream_client(self, clock) -> None:
        hub = EventHub()
        hub.start()
        registry = SessionRegistry(hub, clock=clock)
        try:
            session = await registry.create()
            client = EventClient(session.id, _noop_writer)
            registry.attach(session, client)
            await hub.join()
            assert hub.is_registered(client)

            await registry.delete(session.id)
            await hub.join()

            assert client.closed
            assert hub.client_count == 0
        finally:
            await hub.stop()

    @pytest.mark.asyncio
    async def test_attach_replaces_previous_client(self, clock) -> None:
        hub = EventHub()
        hub.start()
        registry = SessionRegistry(hub, clock=clock)
        try:
            session = await registry.create()
            first = EventClient(session.id, _noop_writer)
            second = EventClient(session.id, _noop_writer)

            registry.attach(session, first)
            registry.attach(session, second)
            await hub.join()

            assert first.closed
            assert session.event_client is second
            assert hub.is_registered(second)
            assert hub.client_count == 1
        finally:
            await hub.stop()

    @pytest.mark.asyncio
    async def test_detach_of_stale_client_keeps_current(self, clock) -> None:
        hub = EventHub()
        hub.start()
        registry = SessionRegistry(hub, clock=clock)
        try:
            session = await registry.create()
            first = EventClient(session.id, _noop_writer)
            second = EventClient(session.id, _noop_writer)
            registry.attach(session, first)
            registry.attach(session, second)

            registry.detach(session, first)
            await hub.join()

            assert session.event_client is second
            assert hub.is_registered(second)

            registry.detach(session, second)
            await hub.join()
            assert session.event_client is None
            assert hub.client_count == 0
        finally:
            await hub.stop()

    @pytest.mark.asyncio
    async def test_sweep_expires_idle_sessions(self, clock) -> None:
        registry = SessionRegistry(EventHub(), idle_timeout=60.0, clock=clock)
        idle = await registry.create("idle")
        clock.advance(30.0)
        active = await registry.create("active")

        clock.advance(31.0)
        removed = await registry.sweep()

        assert removed == 1
        assert idle.context.cancelled
        assert not active.context.cancelled
        assert await registry.get(active.id) is active

    @pytest.mark.asyncio
    async def test_touch_defers_expiry(self, clock) -> None:
        registry = SessionRegistry(EventHub(), idle_timeout=60.0, clock=clock)
        session = await registry.create()

        clock.advance(50.0)
        await registry.touch(session.id)
        clock.advance(50.0)

        assert await registry.sweep() == 0
        assert registry.count == 1

    @pytest.mark.asyncio
    async def test_sweep_continues_after_failure(self, clock, monkeypatch) -> None:
        registry = SessionRegistry(EventHub(), idle_timeout=1.0, clock=clock)
        first = await registry.create()
        second = await registry.create()
        clock.advance(10.0)

        original_delete = registry.delete

        async def flaky_delete(session_id: str, reason: str = "disconnect") -> bool:
            if session_id == first.id:
                raise RuntimeError("boom")
            return await original_delete(session_id, reason)

        monkeypatch.setattr(registry, "delete", flaky_delete)

        assert await registry.sweep() == 1
        assert second.context.cancelled

    @pytest.mark.asyncio
    async def test_periodic_sweep_runs(self) -> None:
        registry = SessionRegistry(EventHub(), idle_timeout=0.01, sweep_interval=0.02)
        session = await registry.create()
        registry.start()
        try:
            await asyncio.wait_for(session.context.wait(), timeout=2)
            assert registry.count == 0
        finally:
            await registry.stop()

    @pytest.mark.asyncio
    async def test_stop_tears_down_all_sessions(self, clock) -> None:
        registry = SessionRegistry(EventHub(), clock=clock)
        sessions = [await registry.create() for _ in range(3)]
        registry.start()

        await registry.stop()

        assert registry.count == 0
        assert all(s.context.cancelled for s in sessions)
