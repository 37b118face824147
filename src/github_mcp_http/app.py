"""GitHub MCP HTTP Application.

Creates the Starlette ASGI application with all routes.

Route organization (all under /api/v1):
- POST /connect     - Establish a session (returns sessionId)
- POST /disconnect  - Tear down a session
- POST /rpc         - Submit a call bound to a session
- GET  /events      - Session push stream (Server-Sent Events)
- GET  /health      - Health check (no session)

Session-bound endpoints read the session id from the X-Session-ID header.
"""

from __future__ import annotations

from collections.abc import Callable

from starlette.applications import Starlette
from starlette.datastructures import Headers
from starlette.middleware import Middleware
from starlette.middleware.cors import CORSMiddleware
from starlette.routing import Mount, Route

from .config import ServerConfig, load_config
from .gateway import Gateway
from .github.provider import GitHubProvider
from .middleware import AuthMiddleware, RequestLoggingMiddleware
from .protocol.provider import CapabilityProvider
from .routes import (
    API_PREFIX,
    TransportError,
    event_routes,
    health_routes,
    rpc_routes,
    session_routes,
    transport_error_handler,
)


def create_app(
    config: ServerConfig | None = None,
    provider: CapabilityProvider | None = None,
    authenticate: Callable[[Headers], bool] | None = None,
) -> Starlette:
    """Create the application.

    Args:
        config: Server configuration (defaults to ServerConfig())
        provider: Capability provider; defaults to a GitHubProvider built
                  from the config's token and read-only flag
        authenticate: Optional request check for non-public routes

    Returns:
        Configured Starlette application. ``app.state.gateway`` holds the
        transport core; it starts and stops with the app lifespan.
    """
    config = config or ServerConfig()
    if provider is None:
        provider = GitHubProvider(token=config.github_token, read_only=config.read_only)

    gateway = Gateway(provider, config)

    # Combine all API routes
    api_routes: list[Route] = []
    api_routes.extend(health_routes)
    api_routes.extend(session_routes)
    api_routes.extend(rpc_routes)
    api_routes.extend(event_routes)

    middleware = [
        Middleware(RequestLoggingMiddleware),
        Middleware(
            CORSMiddleware,
            allow_origins=config.cors_origins,
            allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
            allow_headers=["*"],
            allow_credentials=True,
        ),
        Middleware(AuthMiddleware, authenticate=authenticate),
    ]

    app = Starlette(
        routes=[Mount(API_PREFIX, routes=api_routes)],
        middleware=middleware,
        exception_handlers={TransportError: transport_error_handler},
        lifespan=gateway.lifespan,
    )
    app.state.gateway = gateway
    return app


def app_from_env() -> Starlette:
    """Application factory for uvicorn (``--factory``); config from file + env."""
    return create_app(load_config())
