"""github-mcp-http CLI.

Usage:
    github-mcp-http serve                          # Serve on 0.0.0.0:8080
    github-mcp-http serve --port 9000 --read-only  # Read-only, custom port
    github-mcp-http serve --config server.yaml     # Explicit config file
    github-mcp-http health                         # Check server health
    github-mcp-http smoke                          # Smoke-test a running server

The GitHub token is read from --github-token, GITHUB_MCP_GITHUB_TOKEN or
the config file (github_token).
"""

from __future__ import annotations

import asyncio
import json
import os
import sys

import click
import httpx

from . import __version__
from .config import CONFIG_ENV_VAR, ENV_PREFIX, ConfigError, ServerConfig, load_config
from .logs import configure_logging
from .routes.common import API_PREFIX
from .sdk.client import GatewayClient, GatewayError

DEFAULT_URL = "http://localhost:8080"


@click.group()
@click.version_option(__version__, prog_name="github-mcp-http")
def main() -> None:
    """GitHub MCP server over HTTP with Server-Sent Events."""


# =============================================================================
# serve
# =============================================================================


@main.command()
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False),
    help="Path to YAML config file",
)
@click.option("--host", default=None, help="Host to bind to [default: 0.0.0.0]")
@click.option("--port", type=int, default=None, help="Port to bind to [default: 8080]")
@click.option("--github-token", default=None, help="GitHub personal access token")
@click.option("--read-only", is_flag=True, default=None, help="Disable mutating tools")
@click.option("--tls-cert", type=click.Path(exists=True, dir_okay=False), help="TLS certificate")
@click.option("--tls-key", type=click.Path(exists=True, dir_okay=False), help="TLS private key")
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default=None,
    help="Log level [default: INFO]",
)
@click.option("--reload", is_flag=True, help="Enable auto-reload for development")
def serve(
    config_path: str | None,
    host: str | None,
    port: int | None,
    github_token: str | None,
    read_only: bool | None,
    tls_cert: str | None,
    tls_key: str | None,
    log_level: str | None,
    reload: bool,
) -> None:
    """Run the HTTP server."""
    overrides = {
        "host": host,
        "port": port,
        "github_token": github_token,
        "read_only": read_only,
        "tls_cert": tls_cert,
        "tls_key": tls_key,
        "log_level": log_level,
    }

    try:
        config = load_config(config_path, **overrides)
    except ConfigError as e:
        raise click.UsageError(str(e)) from e

    if not config.github_token:
        raise click.UsageError(
            "A GitHub token is required. "
            "Pass --github-token or set GITHUB_MCP_GITHUB_TOKEN."
        )

    configure_logging(config.log_level, config.log_json)
    _run_http_server(config, config_path, overrides, reload)


def _run_http_server(
    config: ServerConfig,
    config_path: str | None,
    overrides: dict[str, object],
    reload: bool,
) -> None:
    """Run the server under uvicorn."""
    import uvicorn

    scheme = "https" if config.tls_enabled else "http"
    click.echo(f"Starting github-mcp-http on {scheme}://{config.host}:{config.port}", err=True)
    if config.read_only:
        click.echo("  Read-only mode: mutating tools disabled", err=True)
    click.echo("Press Ctrl+C to stop", err=True)

    options = {
        "host": config.host,
        "port": config.port,
        "ssl_certfile": config.tls_cert,
        "ssl_keyfile": config.tls_key,
        "access_log": False,
        "log_config": None,
    }

    if reload:
        # The reloader re-imports the app in a subprocess; hand it the
        # command-line settings through the environment.
        if config_path:
            os.environ[CONFIG_ENV_VAR] = config_path
        for name, value in overrides.items():
            if value is not None:
                text = str(value).lower() if isinstance(value, bool) else str(value)
                os.environ[ENV_PREFIX + name.upper()] = text

        uvicorn.run("github_mcp_http.app:app_from_env", factory=True, reload=True, **options)
        return

    from .app import create_app

    uvicorn.run(create_app(config), **options)


# =============================================================================
# health / smoke
# =============================================================================


@main.command()
@click.option("--url", default=DEFAULT_URL, help="Server URL")
def health(url: str) -> None:
    """Check server health and exit non-zero if unhealthy."""
    _do_health_check(url)


def _do_health_check(url: str) -> None:
    """Check server health."""

    async def check() -> None:
        try:
            async with httpx.AsyncClient() as client:
                response = await client.get(f"{url.rstrip('/')}{API_PREFIX}/health")
                if response.status_code == 200:
                    data = response.json()
                    click.echo(f"Server is healthy: {data}")
                else:
                    click.echo(f"Server returned {response.status_code}", err=True)
                    sys.exit(1)
        except httpx.ConnectError:
            click.echo(f"Cannot connect to server at {url}", err=True)
            sys.exit(1)

    asyncio.run(check())


@main.command()
@click.option("--url", default=DEFAULT_URL, help="Server URL")
@click.option("--json", "as_json", is_flag=True, help="Print raw results as JSON")
def smoke(url: str, as_json: bool) -> None:
    """Smoke-test a running server.

    Connects a session, lists tools and resources, then disconnects.
    """
    try:
        results = asyncio.run(_smoke_test(url))
    except httpx.ConnectError:
        click.echo(f"Cannot connect to server at {url}", err=True)
        sys.exit(1)
    except GatewayError as e:
        click.echo(f"Smoke test failed: {e}", err=True)
        sys.exit(1)

    if as_json:
        click.echo(json.dumps(results, indent=2, default=str))
        return

    server = results["server"]
    click.echo(f"Server: {server.get('name')} {server.get('version')}")
    click.echo(f"Session: {results['session_id']}")
    click.echo(f"Tools ({len(results['tools'])}):")
    for tool in results["tools"]:
        click.echo(f"  {tool['name']:<20} {tool.get('description', '')}")
    click.echo(f"Resources ({len(results['resources'])}):")
    for resource in results["resources"]:
        click.echo(f"  {resource['uri']:<25} {resource.get('description', '')}")


async def _smoke_test(url: str) -> dict[str, object]:
    async with GatewayClient(url) as client:
        await client.health()
        connected = await client.connect("github-mcp-http-smoke", __version__)

        tools = await client.call("tools/list")
        resources = await client.call("resources/list")
        for response in (tools, resources):
            if response.error is not None:
                raise GatewayError(response.error.message, 200)

        return {
            "session_id": connected.session_id,
            "server": connected.server_info,
            "tools": tools.result.get("tools", []),
            "resources": resources.result.get("resources", []),
        }
