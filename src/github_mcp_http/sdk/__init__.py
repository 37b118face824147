"""Python client for github-mcp-http servers."""

from .client import ConnectResult, GatewayClient, GatewayError, create_client

__all__ = ["ConnectResult", "GatewayClient", "GatewayError", "create_client"]
