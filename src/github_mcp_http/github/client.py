"""Minimal async GitHub REST client.

Only the endpoints the provider needs. All failures surface as
GitHubAPIError so the transport can answer with a generic 500.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

logger = logging.getLogger(__name__)

GITHUB_API_URL = "https://api.github.com"
DEFAULT_PER_PAGE = 50


class GitHubAPIError(Exception):
    """A GitHub API request failed (network error or non-2xx status)."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class GitHubClient:
    """Thin wrapper over httpx.AsyncClient for the GitHub REST API."""

    def __init__(
        self,
        token: str,
        base_url: str = GITHUB_API_URL,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            token: Personal access token
            base_url: API root (override for GitHub Enterprise)
            timeout: Per-request timeout in seconds
            transport: Optional httpx transport (tests use MockTransport)
        """
        if not token:
            raise ValueError("GitHub token is required")

        self._client = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            transport=transport,
            headers={
                "Authorization": f"Bearer {token}",
                "Accept": "application/vnd.github+json",
                "X-GitHub-Api-Version": "2022-11-28",
                "User-Agent": "github-mcp-http",
            },
        )

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        try:
            response = await self._client.request(method, path, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            logger.warning(f"GitHub API {method} {path} returned {status}")
            raise GitHubAPIError(f"GitHub API {method} {path} failed", status) from e
        except httpx.RequestError as e:
            logger.warning(f"GitHub API {method} {path} request error: {e}")
            raise GitHubAPIError(f"GitHub API {method} {path} failed") from e
        return response.json()

    async def list_repositories(
        self,
        repo_type: str = "all",
        sort: str = "updated",
        per_page: int = DEFAULT_PER_PAGE,
    ) -> list[dict[str, Any]]:
        """List repositories of the authenticated user."""
        return await self._request(
            "GET",
            "/user/repos",
            params={"type": repo_type, "sort": sort, "per_page": per_page},
        )

    async def get_repository(self, owner: str, repo: str) -> dict[str, Any]:
        return await self._request("GET", f"/repos/{owner}/{repo}")

    async def get_user(self) -> dict[str, Any]:
        """Get the authenticated user."""
        return await self._request("GET", "/user")

    async def create_issue(
        self,
        owner: str,
        repo: str,
        title: str,
        body: str = "",
    ) -> dict[str, Any]:
        return await self._request(
            "POST",
            f"/repos/{owner}/{repo}/issues",
            json={"title": title, "body": body},
        )

    async def aclose(self) -> None:
        await self._client.aclose()
