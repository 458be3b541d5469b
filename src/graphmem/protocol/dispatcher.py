"""Dispatcher: routes validated JSON-RPC requests to their handlers.

Every request that reaches :meth:`Dispatcher.handle_request` yields exactly
one :class:`JsonRpcResponse`; protocol errors and unexpected exceptions are
both folded into error responses.  Requests are independent units of work:
nothing is keyed by request id, so duplicate ids are simply two requests.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any

from opentelemetry import trace
from pydantic import ValidationError

from graphmem.protocol.elicitation import Elicitation, Failure, call_tool
from graphmem.protocol.errors import (
    InternalError,
    InvalidParamsError,
    InvalidRequestError,
    MethodNotFoundError,
    ParseError,
    ProtocolError,
    ToolExecutionError,
)
from graphmem.protocol.framing import recover_id
from graphmem.protocol.models import CallToolParams, JsonRpcRequest, JsonRpcResponse
from graphmem.protocol.validation import classify
from graphmem.utils.telemetry import (
    ATTR_BATCH_SIZE,
    ATTR_RPC_ERROR_CODE,
    ATTR_RPC_ID,
    ATTR_RPC_METHOD,
    ATTR_TOOL_ELICITATION,
    ATTR_TOOL_NAME,
    get_tracer,
)

if TYPE_CHECKING:
    from graphmem.protocol.framing import Frame
    from graphmem.protocol.negotiation import ProtocolNegotiator
    from graphmem.protocol.registry import ToolRegistry

logger = logging.getLogger(__name__)
_tracer = get_tracer(__name__)

MethodHandler = Callable[[dict[str, Any]], Awaitable[dict[str, Any]]]
WireMessage = dict[str, Any] | list[dict[str, Any]]


class Dispatcher:
    """Routes ``initialize``, ``ping``, ``tools/list`` and ``tools/call``.

    Usage::

        dispatcher = Dispatcher(registry, ProtocolNegotiator(settings))
        reply = await dispatcher.handle_frame(frame)   # dict, list, or None
    """

    def __init__(self, registry: ToolRegistry, negotiator: ProtocolNegotiator) -> None:
        self._registry = registry
        self._negotiator = negotiator
        self._methods: dict[str, MethodHandler] = {
            "initialize": self._initialize,
            "ping": self._ping,
            "tools/list": self._list_tools,
            "tools/call": self._call_tool,
        }
        self._notifications: dict[str, Callable[[dict[str, Any]], None]] = {
            "notifications/initialized": self._on_initialized,
            "notifications/cancelled": self._on_cancelled,
        }

    @property
    def methods(self) -> list[str]:
        return list(self._methods)

    async def handle_frame(self, frame: Frame) -> WireMessage | None:
        """Handle one framed line; return what to write back, if anything."""
        if not frame.ok:
            error = ParseError(frame.error or "")
            return JsonRpcResponse.failure(recover_id(frame.raw), error.to_error()).to_wire()

        if isinstance(frame.payload, list):
            return await self.handle_batch(frame.payload)

        response = await self.handle_payload(frame.payload)
        return response.to_wire() if response is not None else None

    async def handle_batch(self, items: list[Any]) -> WireMessage | None:
        """Dispatch batch elements concurrently; reassemble in input order.

        An empty batch is itself an invalid request.  Notifications produce
        no entry, and a batch of only notifications produces nothing.
        """
        if not items:
            error = InvalidRequestError("batch must not be empty")
            return JsonRpcResponse.failure(None, error.to_error()).to_wire()

        with _tracer.start_as_current_span("graphmem.batch") as span:
            span.set_attribute(ATTR_BATCH_SIZE, len(items))
            responses = await asyncio.gather(*(self.handle_payload(item) for item in items))

        wire = [response.to_wire() for response in responses if response is not None]
        return wire or None

    async def handle_payload(self, payload: Any) -> JsonRpcResponse | None:
        """Validate and route one decoded JSON value."""
        try:
            request = classify(payload)
        except InvalidRequestError as exc:
            logger.warning("Invalid request (id=%r): %s", exc.request_id, exc.reason)
            return JsonRpcResponse.failure(exc.request_id, exc.to_error())

        if request.is_notification:
            await self._handle_notification(request)
            return None
        return await self.handle_request(request)

    async def handle_request(self, request: JsonRpcRequest) -> JsonRpcResponse:
        """Run *request* to a terminal response.  Never raises."""
        with _tracer.start_as_current_span("graphmem.rpc") as span:
            span.set_attribute(ATTR_RPC_METHOD, request.method)
            if request.id is not None:
                span.set_attribute(ATTR_RPC_ID, str(request.id))

            try:
                self._negotiator.check_ready(request.method)
                handler = self._methods.get(request.method)
                if handler is None:
                    raise MethodNotFoundError(request.method)
                result = await handler(request.params)
            except ProtocolError as exc:
                span.set_attribute(ATTR_RPC_ERROR_CODE, exc.code)
                logger.debug("%s (id=%r) failed: %s", request.method, request.id, exc.message)
                return JsonRpcResponse.failure(request.id, exc.to_error())
            except Exception as exc:
                logger.exception("Unhandled error in %s (id=%r)", request.method, request.id)
                error = InternalError(str(exc))
                span.set_attribute(ATTR_RPC_ERROR_CODE, error.code)
                return JsonRpcResponse.failure(request.id, error.to_error())

            return JsonRpcResponse.success(request.id, result)

    async def _handle_notification(self, request: JsonRpcRequest) -> None:
        """Process a notification; the client expects no reply."""
        on_notify = self._notifications.get(request.method)
        if on_notify is not None:
            on_notify(request.params)
        elif request.method in self._methods:
            # A request sent without an id still runs; its reply is discarded.
            await self.handle_request(request)
        else:
            logger.debug("Ignoring unknown notification %s", request.method)

    # ------------------------------------------------------------------
    # Methods
    # ------------------------------------------------------------------

    async def _initialize(self, params: dict[str, Any]) -> dict[str, Any]:
        return self._negotiator.initialize(params).to_wire()

    async def _ping(self, params: dict[str, Any]) -> dict[str, Any]:
        return {}

    async def _list_tools(self, params: dict[str, Any]) -> dict[str, Any]:
        return {"tools": [descriptor.to_wire() for descriptor in self._registry.list()]}

    async def _call_tool(self, params: dict[str, Any]) -> dict[str, Any]:
        try:
            call = CallToolParams.model_validate(params)
        except ValidationError as exc:
            raise InvalidParamsError(
                "tools/call requires a string 'name' and an object 'arguments'",
                data={"errors": exc.errors(include_url=False, include_context=False)},
            ) from exc

        tool = self._registry.resolve(call.name)
        span = trace.get_current_span()
        span.set_attribute(ATTR_TOOL_NAME, call.name)

        outcome = await call_tool(tool, call.arguments)
        if isinstance(outcome, Failure):
            raise outcome.error
        if isinstance(outcome, Elicitation):
            span.set_attribute(ATTR_TOOL_ELICITATION, True)
            return outcome.to_result().to_wire()
        try:
            return outcome.result.to_wire()
        except (TypeError, ValueError) as exc:
            logger.error("Tool %s returned a result that cannot be serialized: %s", call.name, exc)
            raise ToolExecutionError(
                call.name, "malformed result", error_type=type(exc).__name__
            ) from exc

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------

    def _on_initialized(self, params: dict[str, Any]) -> None:
        self._negotiator.mark_initialized()

    def _on_cancelled(self, params: dict[str, Any]) -> None:
        # In-flight work always runs to completion; the reply is still sent.
        logger.debug("Client cancelled request %r", params.get("requestId"))
