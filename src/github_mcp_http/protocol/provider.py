"""Capability provider contract.

A provider owns everything backend-specific: server identity, capability
flags (including read-only mode) and the handlers behind each method name.
The transport core only calls ``initialize`` and ``dispatch``.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable, Mapping
from typing import TYPE_CHECKING, Any, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .errors import InvalidParamsError, MethodNotFoundError

if TYPE_CHECKING:
    from ..session import SessionContext

M = TypeVar("M", bound=BaseModel)

# Handler signature: (session context, raw params) -> JSON-serializable result
MethodHandler = Callable[["SessionContext", Any], Awaitable[Any]]


class ServerInfo(BaseModel):
    """Server identity returned by the initialization handshake."""

    name: str
    version: str


class InitializeResult(BaseModel):
    """Result of the initialization handshake."""

    model_config = ConfigDict(populate_by_name=True)

    server_info: ServerInfo = Field(alias="serverInfo")
    capabilities: dict[str, Any] = Field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)


class CapabilityProvider(ABC):
    """Base class for method providers.

    Subclasses implement ``initialize`` and ``methods``; ``dispatch`` resolves
    a method name through ``methods`` and invokes the handler.
    """

    read_only: bool = False

    @abstractmethod
    async def initialize(self, client_name: str, client_version: str) -> InitializeResult:
        """Run the initialization handshake for a new session."""

    @abstractmethod
    def methods(self) -> Mapping[str, MethodHandler]:
        """Map of method name to handler."""

    async def dispatch(self, method: str, params: Any, context: SessionContext) -> Any:
        """Invoke the handler registered for ``method``.

        Raises:
            MethodNotFoundError: If no handler is registered
            ProtocolError: For caller-side faults raised by the handler
        """
        handler = self.methods().get(method)
        if handler is None:
            raise MethodNotFoundError(method)
        return await handler(context, params)

    async def aclose(self) -> None:
        """Release backend resources."""


def parse_params(model: type[M], params: Any) -> M:
    """Validate raw params against a model.

    Raises:
        InvalidParamsError: If params are not an object or fail validation
    """
    if params is None:
        params = {}
    if not isinstance(params, dict):
        raise InvalidParamsError("params must be an object")
    try:
        return model.model_validate(params)
    except ValidationError as e:
        first = e.errors()[0]
        location = ".".join(str(part) for part in first["loc"]) or "params"
        raise InvalidParamsError(f"Invalid {location}: {first['msg']}") from e


def require_str(arguments: Mapping[str, Any], key: str) -> str:
    """Get a required string argument.

    Raises:
        InvalidParamsError: ``"<key> is required"`` when missing or not a string
    """
    value = arguments.get(key)
    if not isinstance(value, str) or not value:
        raise InvalidParamsError(f"{key} is required")
    return value
