"""Protocol Dispatcher - routes request envelopes to provider methods.

Stateless per call. Caller-side faults (bad envelope, unknown method,
invalid params) come back as error envelopes; any other failure raised by
a handler propagates to the transport, which decides the HTTP status.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from .envelope import RPCRequest, RPCResponse
from .errors import InvalidRequestError, ProtocolError
from .provider import CapabilityProvider

if TYPE_CHECKING:
    from ..session import SessionContext

logger = logging.getLogger(__name__)


class Dispatcher:
    """Decodes envelopes, resolves methods and normalizes errors.

    Usage:
        dispatcher = Dispatcher(provider)
        response = await dispatcher.handle(payload, session.context)
        return JSONResponse(response.to_dict())
    """

    def __init__(self, provider: CapabilityProvider) -> None:
        self._provider = provider

    @property
    def provider(self) -> CapabilityProvider:
        return self._provider

    def decode(self, payload: Any) -> RPCRequest:
        """Decode a raw JSON payload into a request envelope.

        Raises:
            InvalidRequestError: If the payload is not a valid envelope
        """
        if not isinstance(payload, dict):
            raise InvalidRequestError("Invalid Request", data={"reason": "expected an object"})
        try:
            return RPCRequest.model_validate(payload)
        except ValidationError as e:
            fields = sorted({str(err["loc"][0]) for err in e.errors() if err["loc"]})
            raise InvalidRequestError("Invalid Request", data={"fields": fields}) from e

    async def handle(self, payload: Any, context: SessionContext) -> RPCResponse:
        """Process one request and produce exactly one response.

        Raises:
            SessionCancelledError: If the session is cancelled mid-call
            Exception: Backend faults raised by the handler
        """
        # Recover the correlation id even from envelopes that fail validation.
        request_id = payload.get("id") if isinstance(payload, dict) else None

        try:
            request = self.decode(payload)
        except InvalidRequestError as e:
            logger.debug(f"Rejected malformed request in session {context.session_id}")
            return RPCResponse.from_error(e, request_id)

        logger.debug(f"Dispatching {request.method} (id={request.id!r}) for {context.session_id}")

        try:
            result = await context.run(
                self._provider.dispatch(request.method, request.params, context)
            )
        except ProtocolError as e:
            logger.debug(f"{request.method} failed with protocol error {e.code}: {e.message}")
            return RPCResponse.from_error(e, request.id)

        return RPCResponse.success(result, request.id)
