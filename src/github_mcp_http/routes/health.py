"""Health check endpoint."""

from datetime import UTC, datetime

from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route

from .. import __version__


async def health_check(request: Request) -> JSONResponse:
    """Health check endpoint. No session required."""
    return JSONResponse(
        {
            "status": "healthy",
            "time": datetime.now(UTC).isoformat(),
            "version": __version__,
        }
    )


health_routes = [
    Route("/health", health_check, methods=["GET"]),
]
