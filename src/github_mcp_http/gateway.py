"""Gateway - owns the transport core and its lifecycle.

One instance per application: the event hub actor, the session registry
with its expiry sweep, and the dispatcher over a capability provider.
"""

from __future__ import annotations

import contextlib
import logging
import time
from collections.abc import AsyncIterator, Callable
from typing import Any

from .config import ServerConfig
from .protocol.dispatcher import Dispatcher
from .protocol.provider import CapabilityProvider
from .session import SessionRegistry
from .sse.hub import EventHub

logger = logging.getLogger(__name__)


class Gateway:
    """Wires hub, registry and dispatcher together."""

    def __init__(
        self,
        provider: CapabilityProvider,
        config: ServerConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.config = config or ServerConfig()
        self.provider = provider
        self.hub = EventHub()
        self.sessions = SessionRegistry(
            self.hub,
            idle_timeout=self.config.session_idle_timeout,
            sweep_interval=self.config.session_sweep_interval,
            clock=clock,
        )
        self.dispatcher = Dispatcher(provider)

    async def start(self) -> None:
        """Start the hub actor and the session sweep."""
        self.hub.start()
        self.sessions.start()
        logger.info(
            f"Gateway started (read_only={self.provider.read_only}, "
            f"idle_timeout={self.sessions.idle_timeout}s)"
        )

    async def stop(self) -> None:
        """Tear down all sessions, then stop the hub and release the provider."""
        await self.sessions.stop()
        if self.hub.running:
            await self.hub.join()
        await self.hub.stop()
        await self.provider.aclose()
        logger.info("Gateway stopped")

    @contextlib.asynccontextmanager
    async def lifespan(self, app: Any) -> AsyncIterator[None]:
        """Starlette lifespan hook."""
        await self.start()
        try:
            yield
        finally:
            await self.stop()
