"""Tests for envelopes, protocol errors, provider helpers and the dispatcher."""

from __future__ import annotations

import asyncio

import pytest
from pydantic import BaseModel

from github_mcp_http.protocol import (
    Dispatcher,
    ErrorCode,
    InvalidParamsError,
    MethodNotFoundError,
    RPCResponse,
)
from github_mcp_http.protocol.provider import parse_params, require_str
from github_mcp_http.session import SessionCancelledError, SessionContext

# =============================================================================
# Envelope Tests
# =============================================================================


class TestRPCResponse:
    """Tests for response envelope serialization."""

    def test_success_wire_form(self) -> None:
        response = RPCResponse.success({"ok": True}, 7)
        assert response.to_dict() == {"jsonrpc": "2.0", "result": {"ok": True}, "id": 7}
        assert not response.is_error

    def test_success_with_null_result_keeps_result_key(self) -> None:
        assert RPCResponse.success(None, "a").to_dict() == {
            "jsonrpc": "2.0",
            "result": None,
            "id": "a",
        }

    def test_error_wire_form(self) -> None:
        response = RPCResponse.failure(ErrorCode.METHOD_NOT_FOUND, "Method not found", 3)
        assert response.to_dict() == {
            "jsonrpc": "2.0",
            "error": {"code": -32601, "message": "Method not found"},
            "id": 3,
        }
        assert response.is_error

    def test_error_from_protocol_error_keeps_data(self) -> None:
        response = RPCResponse.from_error(MethodNotFoundError("nope"), None)
        payload = response.to_dict()
        assert payload["error"]["data"] == {"method": "nope"}
        assert payload["id"] is None
        assert "result" not in payload

    def test_error_codes(self) -> None:
        assert ErrorCode.PARSE_ERROR == -32700
        assert ErrorCode.INVALID_REQUEST == -32600
        assert ErrorCode.METHOD_NOT_FOUND == -32601
        assert ErrorCode.INVALID_PARAMS == -32602
        assert ErrorCode.INTERNAL_ERROR == -32603


# =============================================================================
# Provider helper Tests
# =============================================================================


class _Params(BaseModel):
    uri: str


class TestProviderHelpers:
    """Tests for parameter validation helpers."""

    def test_parse_params_valid(self) -> None:
        assert parse_params(_Params, {"uri": "x"}).uri == "x"

    def test_parse_params_missing_field(self) -> None:
        with pytest.raises(InvalidParamsError) as exc_info:
            parse_params(_Params, {})
        assert "uri" in exc_info.value.message

    def test_parse_params_non_object(self) -> None:
        with pytest.raises(InvalidParamsError):
            parse_params(_Params, ["x"])

    def test_require_str(self) -> None:
        assert require_str({"owner": "octo"}, "owner") == "octo"
        for args in ({}, {"owner": ""}, {"owner": 5}):
            with pytest.raises(InvalidParamsError, match="owner is required"):
                require_str(args, "owner")


# =============================================================================
# Dispatcher Tests
# =============================================================================


class TestDispatcher:
    """Tests for request routing and error normalization."""

    @pytest.mark.asyncio
    async def test_success_echoes_id(self, provider) -> None:
        dispatcher = Dispatcher(provider)
        context = SessionContext("sess_1")

        response = await dispatcher.handle(
            {"jsonrpc": "2.0", "method": "echo", "params": {"a": 1}, "id": 9}, context
        )

        assert response.to_dict() == {
            "jsonrpc": "2.0",
            "result": {"params": {"a": 1}, "session": "sess_1"},
            "id": 9,
        }

    @pytest.mark.asyncio
    async def test_unknown_method(self, provider) -> None:
        dispatcher = Dispatcher(provider)

        response = await dispatcher.handle({"method": "nope", "id": "x"}, SessionContext("s"))

        assert response.error is not None
        assert response.error.code == ErrorCode.METHOD_NOT_FOUND
        assert response.error.message == "Method not found"
        assert response.id == "x"

    @pytest.mark.asyncio
    async def test_missing_id_yields_null_id(self, provider) -> None:
        dispatcher = Dispatcher(provider)

        response = await dispatcher.handle({"method": "nope"}, SessionContext("s"))

        assert response.to_dict()["id"] is None

    @pytest.mark.asyncio
    async def test_missing_method_is_invalid_request(self, provider) -> None:
        dispatcher = Dispatcher(provider)

        response = await dispatcher.handle({"id": 5, "params": {}}, SessionContext("s"))

        assert response.error is not None
        assert response.error.code == ErrorCode.INVALID_REQUEST
        assert response.id == 5

    @pytest.mark.asyncio
    async def test_non_object_payload_is_invalid_request(self, provider) -> None:
        dispatcher = Dispatcher(provider)

        response = await dispatcher.handle([1, 2, 3], SessionContext("s"))

        assert response.error is not None
        assert response.error.code == ErrorCode.INVALID_REQUEST
        assert response.id is None

    @pytest.mark.asyncio
    async def test_invalid_params(self, provider) -> None:
        dispatcher = Dispatcher(provider)

        response = await dispatcher.handle({"method": "invalid", "id": 1}, SessionContext("s"))

        assert response.error is not None
        assert response.error.code == ErrorCode.INVALID_PARAMS
        assert response.error.message == "value is required"

    @pytest.mark.asyncio
    async def test_backend_failure_propagates(self, provider) -> None:
        dispatcher = Dispatcher(provider)

        with pytest.raises(RuntimeError, match="backend exploded"):
            await dispatcher.handle({"method": "boom", "id": 1}, SessionContext("s"))

    @pytest.mark.asyncio
    async def test_cancelled_session_mid_call(self, provider) -> None:
        dispatcher = Dispatcher(provider)
        context = SessionContext("s")

        task = asyncio.create_task(dispatcher.handle({"method": "slow", "id": 1}, context))
        await asyncio.wait_for(provider.slow_started.wait(), timeout=1)
        context.cancel()

        with pytest.raises(SessionCancelledError):
            await task

    def test_decode_ignores_unknown_fields(self, provider) -> None:
        request = Dispatcher(provider).decode({"method": "echo", "extra": True})
        assert request.method == "echo"
        assert request.params is None
