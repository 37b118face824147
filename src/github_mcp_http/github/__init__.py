"""GitHub backend: REST client and the capability provider built on it."""

from .client import GitHubAPIError, GitHubClient
from .provider import GitHubProvider

__all__ = ["GitHubAPIError", "GitHubClient", "GitHubProvider"]
