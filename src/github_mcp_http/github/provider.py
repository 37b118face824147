"""GitHub capability provider.

Exposes GitHub repositories, user data and issue creation through the
MCP method set: resources/*, tools/*, prompts/* and ping.

Read-only mode uses capability-aware discovery: mutating tools are left
out of ``tools/list`` and calling one anyway returns INVALID_PARAMS.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, Field

from .. import __version__
from ..protocol.errors import InvalidParamsError
from ..protocol.provider import (
    CapabilityProvider,
    InitializeResult,
    MethodHandler,
    ServerInfo,
    parse_params,
    require_str,
)
from ..sse.frames import Event
from .client import GitHubClient

if TYPE_CHECKING:
    from ..session import SessionContext

logger = logging.getLogger(__name__)

SERVER_NAME = "github-mcp-http"

REPOSITORIES_URI = "github://repositories"
USER_URI = "github://user"

RESOURCES = [
    {
        "uri": REPOSITORIES_URI,
        "name": "repositories",
        "description": "List of user repositories",
        "mimeType": "application/json",
    },
    {
        "uri": USER_URI,
        "name": "user",
        "description": "Current user information",
        "mimeType": "application/json",
    },
]

_OWNER = {"type": "string", "description": "Repository owner"}
_REPO = {"type": "string", "description": "Repository name"}

TOOLS: dict[str, dict[str, Any]] = {
    "list_repositories": {
        "name": "list_repositories",
        "description": "List user repositories",
        "inputSchema": {
            "type": "object",
            "properties": {
                "type": {
                    "type": "string",
                    "description": "Repository type (all, owner, member)",
                    "default": "all",
                },
                "sort": {
                    "type": "string",
                    "description": "Sort order (created, updated, pushed, full_name)",
                    "default": "updated",
                },
            },
        },
    },
    "get_repository": {
        "name": "get_repository",
        "description": "Get repository information",
        "inputSchema": {
            "type": "object",
            "properties": {"owner": _OWNER, "repo": _REPO},
            "required": ["owner", "repo"],
        },
    },
    "create_issue": {
        "name": "create_issue",
        "description": "Create a new issue",
        "inputSchema": {
            "type": "object",
            "properties": {
                "owner": _OWNER,
                "repo": _REPO,
                "title": {"type": "string", "description": "Issue title"},
                "body": {"type": "string", "description": "Issue body"},
            },
            "required": ["owner", "repo", "title"],
        },
    },
}

# Tools disabled in read-only mode
MUTATING_TOOLS = frozenset({"create_issue"})

PROMPTS = [
    {
        "name": "analyze_repository",
        "description": "Analyze a GitHub repository for insights",
        "arguments": [
            {"name": "owner", "description": "Repository owner", "required": True},
            {"name": "repo", "description": "Repository name", "required": True},
        ],
    }
]

ANALYZE_REPOSITORY_TEMPLATE = """Analyze the GitHub repository {owner}/{repo} and provide insights on:

1. Repository overview and purpose
2. Code structure and organization
3. Development activity and health
4. Key technologies and dependencies
5. Documentation quality
6. Community engagement

Please focus on actionable insights and recommendations."""


class ReadResourceParams(BaseModel):
    uri: str


class CallToolParams(BaseModel):
    name: str
    arguments: dict[str, Any] = Field(default_factory=dict)


class GetPromptParams(BaseModel):
    name: str
    arguments: dict[str, Any] = Field(default_factory=dict)


def _text_content(data: Any) -> dict[str, Any]:
    return {"content": [{"type": "text", "text": json.dumps(data)}]}


class GitHubProvider(CapabilityProvider):
    """Capability provider backed by the GitHub REST API."""

    def __init__(
        self,
        token: str | None = None,
        read_only: bool = False,
        client: GitHubClient | None = None,
    ) -> None:
        """Initialize the provider.

        Args:
            token: GitHub personal access token (ignored when client is given)
            read_only: Disable mutating tools
            client: Pre-built GitHub client
        """
        self._client = client or GitHubClient(token or "")
        self.read_only = read_only
        self._methods: dict[str, MethodHandler] = {
            "ping": self._ping,
            "resources/list": self._list_resources,
            "resources/read": self._read_resource,
            "tools/list": self._list_tools,
            "tools/call": self._call_tool,
            "prompts/list": self._list_prompts,
            "prompts/get": self._get_prompt,
        }

    async def initialize(self, client_name: str, client_version: str) -> InitializeResult:
        logger.debug(f"Initializing for client {client_name} {client_version}")
        return InitializeResult(
            server_info=ServerInfo(name=SERVER_NAME, version=__version__),
            capabilities={
                "resources": {"subscribe": True, "listChanged": True},
                "tools": {"listChanged": True},
                "prompts": {"listChanged": True},
                "experimental": {"readOnly": self.read_only},
            },
        )

    def methods(self) -> Mapping[str, MethodHandler]:
        return self._methods

    async def aclose(self) -> None:
        await self._client.aclose()

    # =========================================================================
    # Method handlers
    # =========================================================================

    async def _ping(self, context: SessionContext, params: Any) -> dict[str, Any]:
        return {}

    async def _list_resources(self, context: SessionContext, params: Any) -> dict[str, Any]:
        return {"resources": RESOURCES}

    async def _read_resource(self, context: SessionContext, params: Any) -> dict[str, Any]:
        req = parse_params(ReadResourceParams, params)

        if req.uri == REPOSITORIES_URI:
            data: Any = await self._client.list_repositories()
        elif req.uri == USER_URI:
            data = await self._client.get_user()
        else:
            raise InvalidParamsError(f"Unknown resource URI: {req.uri}")

        return {
            "contents": [
                {"uri": req.uri, "mimeType": "application/json", "text": json.dumps(data)}
            ]
        }

    async def _list_tools(self, context: SessionContext, params: Any) -> dict[str, Any]:
        tools = [
            tool
            for name, tool in TOOLS.items()
            if not (self.read_only and name in MUTATING_TOOLS)
        ]
        return {"tools": tools}

    async def _call_tool(self, context: SessionContext, params: Any) -> dict[str, Any]:
        req = parse_params(CallToolParams, params)
        args = req.arguments

        match req.name:
            case "list_repositories":
                repo_type = args.get("type")
                sort = args.get("sort")
                repos = await self._client.list_repositories(
                    repo_type=repo_type if isinstance(repo_type, str) else "all",
                    sort=sort if isinstance(sort, str) else "updated",
                )
                return _text_content(repos)

            case "get_repository":
                owner = require_str(args, "owner")
                repo = require_str(args, "repo")
                return _text_content(await self._client.get_repository(owner, repo))

            case "create_issue":
                if self.read_only:
                    raise InvalidParamsError("Tool not available in read-only mode")
                owner = require_str(args, "owner")
                repo = require_str(args, "repo")
                title = require_str(args, "title")
                body = args.get("body")
                issue = await self._client.create_issue(
                    owner, repo, title, body if isinstance(body, str) else ""
                )
                context.publish(
                    Event(
                        type="issue.created",
                        data={
                            "owner": owner,
                            "repo": repo,
                            "number": issue.get("number"),
                            "url": issue.get("html_url"),
                        },
                    )
                )
                return _text_content(issue)

            case _:
                raise InvalidParamsError(f"Unknown tool: {req.name}")

    async def _list_prompts(self, context: SessionContext, params: Any) -> dict[str, Any]:
        return {"prompts": PROMPTS}

    async def _get_prompt(self, context: SessionContext, params: Any) -> dict[str, Any]:
        req = parse_params(GetPromptParams, params)

        if req.name != "analyze_repository":
            raise InvalidParamsError(f"Unknown prompt: {req.name}")

        owner = require_str(req.arguments, "owner")
        repo = require_str(req.arguments, "repo")
        return {
            "description": "Repository analysis prompt",
            "messages": [
                {
                    "role": "user",
                    "content": {
                        "type": "text",
                        "text": ANALYZE_REPOSITORY_TEMPLATE.format(owner=owner, repo=repo),
                    },
                }
            ],
        }
