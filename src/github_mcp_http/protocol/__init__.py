"""Protocol layer: envelopes, structured errors, provider contract, dispatcher."""

from .dispatcher import Dispatcher
from .envelope import ErrorCode, RPCError, RPCRequest, RPCResponse
from .errors import InvalidParamsError, InvalidRequestError, MethodNotFoundError, ProtocolError
from .provider import CapabilityProvider, InitializeResult, MethodHandler, ServerInfo

__all__ = [
    "CapabilityProvider",
    "Dispatcher",
    "ErrorCode",
    "InitializeResult",
    "InvalidParamsError",
    "InvalidRequestError",
    "MethodHandler",
    "MethodNotFoundError",
    "ProtocolError",
    "RPCError",
    "RPCRequest",
    "RPCResponse",
    "ServerInfo",
]
