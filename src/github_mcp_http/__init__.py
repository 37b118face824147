"""GitHub MCP server with an HTTP + Server-Sent Events transport.

Clients establish a session, submit JSON-RPC style calls bound to that
session, and receive server-pushed events over a long-lived event stream.
"""

__version__ = "1.0.0"

__all__ = ["__version__"]
