"""Request/response envelope for RPC calls.

The envelope follows JSON-RPC 2.0 naming: ``jsonrpc`` carries the version
and ``id`` is the caller's correlation id, echoed verbatim in the response
(``null`` when the request had none).

Example request:
    {"jsonrpc": "2.0", "method": "tools/list", "params": {}, "id": 7}

Example responses:
    {"jsonrpc": "2.0", "result": {"tools": [...]}, "id": 7}
    {"jsonrpc": "2.0", "error": {"code": -32601, "message": "Method not found"}, "id": 7}
"""

from __future__ import annotations

from enum import IntEnum
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, Field

if TYPE_CHECKING:
    from .errors import ProtocolError

JSONRPC_VERSION = "2.0"


class ErrorCode(IntEnum):
    """Structured (protocol-level) error codes."""

    PARSE_ERROR = -32700
    INVALID_REQUEST = -32600
    METHOD_NOT_FOUND = -32601
    INVALID_PARAMS = -32602
    INTERNAL_ERROR = -32603


class RPCRequest(BaseModel):
    """A decoded request envelope."""

    model_config = ConfigDict(extra="ignore")

    jsonrpc: str = JSONRPC_VERSION
    method: str = Field(min_length=1)
    params: dict[str, Any] | list[Any] | None = None
    id: Any = None


class RPCError(BaseModel):
    """Error object carried by a failed response."""

    code: int
    message: str
    data: Any = None


class RPCResponse(BaseModel):
    """Exactly one of ``result`` / ``error`` is meaningful."""

    jsonrpc: str = JSONRPC_VERSION
    result: Any = None
    error: RPCError | None = None
    id: Any = None

    @property
    def is_error(self) -> bool:
        return self.error is not None

    @classmethod
    def success(cls, result: Any, request_id: Any = None) -> RPCResponse:
        return cls(result=result, id=request_id)

    @classmethod
    def failure(
        cls,
        code: int,
        message: str,
        request_id: Any = None,
        data: Any = None,
    ) -> RPCResponse:
        return cls(error=RPCError(code=int(code), message=message, data=data), id=request_id)

    @classmethod
    def from_error(cls, error: ProtocolError, request_id: Any = None) -> RPCResponse:
        return cls.failure(error.code, error.message, request_id, error.data)

    def to_dict(self) -> dict[str, Any]:
        """Wire form: ``id`` is always present, ``result`` only on success."""
        payload: dict[str, Any] = {"jsonrpc": self.jsonrpc}
        if self.error is not None:
            payload["error"] = self.error.model_dump(exclude_none=True)
        else:
            payload["result"] = self.result
        payload["id"] = self.id
        return payload
