"""Protocol-level errors.

These are raised by the dispatcher and by method handlers when the caller's
input is at fault. They never become transport failures: the dispatcher
turns them into a normal error envelope.
"""

from __future__ import annotations

from typing import Any

from .envelope import ErrorCode


class ProtocolError(Exception):
    """Base class for errors delivered inside a response envelope."""

    code: ErrorCode = ErrorCode.INTERNAL_ERROR

    def __init__(self, message: str, data: Any = None) -> None:
        super().__init__(message)
        self.message = message
        self.data = data


class InvalidRequestError(ProtocolError):
    """The payload is not a valid request envelope."""

    code = ErrorCode.INVALID_REQUEST


class MethodNotFoundError(ProtocolError):
    """No handler is registered for the requested method."""

    code = ErrorCode.METHOD_NOT_FOUND

    def __init__(self, method: str) -> None:
        super().__init__("Method not found", data={"method": method})
        self.method = method


class InvalidParamsError(ProtocolError):
    """Missing/invalid arguments, or an operation disabled by capability flags."""

    code = ErrorCode.INVALID_PARAMS
