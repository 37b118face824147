"""HTTP routes, mounted under /api/v1."""

from .common import API_PREFIX, SESSION_HEADER, TransportError, transport_error_handler
from .events import event_routes
from .health import health_routes
from .rpc import rpc_routes
from .session import session_routes

__all__ = [
    "API_PREFIX",
    "SESSION_HEADER",
    "TransportError",
    "event_routes",
    "health_routes",
    "rpc_routes",
    "session_routes",
    "transport_error_handler",
]
