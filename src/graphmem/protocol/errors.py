"""Shared error types for the protocol layer.

Every :class:`ProtocolError` maps onto a JSON-RPC error object, so the
dispatcher can turn any failure into a response without interpreting it.
"""

from __future__ import annotations

from typing import Any

from graphmem.protocol.models import (
    INTERNAL_ERROR,
    INVALID_PARAMS,
    INVALID_REQUEST,
    METHOD_NOT_FOUND,
    PARSE_ERROR,
    SERVER_NOT_INITIALIZED,
    JsonRpcError,
    RequestId,
)


class ProtocolError(Exception):
    """Base error for all protocol-layer failures."""

    code: int = INTERNAL_ERROR

    def __init__(self, message: str, *, data: Any = None) -> None:
        self.message = message
        self.data = data
        super().__init__(message)

    def to_error(self) -> JsonRpcError:
        return JsonRpcError(code=self.code, message=self.message, data=self.data)


class ParseError(ProtocolError):
    """The input line is not valid JSON."""

    code = PARSE_ERROR

    def __init__(self, detail: str = "") -> None:
        super().__init__("Parse error", data={"detail": detail} if detail else None)


class InvalidRequestError(ProtocolError):
    """The payload decodes but is not a valid JSON-RPC 2.0 request.

    Carries the request id when one could be recovered from the payload.
    """

    code = INVALID_REQUEST

    def __init__(self, reason: str = "", *, request_id: RequestId = None) -> None:
        self.reason = reason
        self.request_id = request_id
        super().__init__("Invalid Request", data={"reason": reason} if reason else None)


class MethodNotFoundError(ProtocolError):
    """The top-level method is not served."""

    code = METHOD_NOT_FOUND

    def __init__(self, method: str) -> None:
        self.method = method
        super().__init__(f"Method not found: {method}")


class UnknownToolError(ProtocolError):
    """``tools/call`` names a tool absent from the registry."""

    code = METHOD_NOT_FOUND

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Unknown tool: {name}")


class InvalidParamsError(ProtocolError):
    """The method's params are structurally unusable."""

    code = INVALID_PARAMS


class ProtocolVersionMismatchError(ProtocolError):
    """``initialize`` requested a protocol version the server does not speak."""

    code = INVALID_PARAMS

    def __init__(self, requested: str, supported: list[str]) -> None:
        self.requested = requested
        self.supported = supported
        super().__init__(
            f"Unsupported protocol version: {requested!r}",
            data={"requested": requested, "supported": supported},
        )


class ServerNotInitializedError(ProtocolError):
    """A method arrived before ``initialize`` while strict gating is on."""

    code = SERVER_NOT_INITIALIZED

    def __init__(self, method: str) -> None:
        self.method = method
        super().__init__(f"Server not initialized: call 'initialize' before '{method}'")


class ToolExecutionError(ProtocolError):
    """A tool handler failed; its message is relayed verbatim."""

    code = INTERNAL_ERROR

    def __init__(self, name: str, detail: str = "", *, error_type: str | None = None) -> None:
        self.name = name
        self.detail = detail
        data = {"tool": name, "type": error_type} if error_type else {"tool": name}
        super().__init__(f"Error executing {name}" + (f": {detail}" if detail else ""), data=data)


class InternalError(ProtocolError):
    """Unexpected server-side failure."""

    code = INTERNAL_ERROR

    def __init__(self, detail: str = "") -> None:
        super().__init__("Internal error" + (f": {detail}" if detail else ""))


# ---------------------------------------------------------------------------
# Registry errors (raised at startup, never on the wire)
# ---------------------------------------------------------------------------


class RegistryError(Exception):
    """Base error for tool registration failures."""


class RegistrySealedError(RegistryError):
    """Registration attempted after the registry was sealed."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Cannot register tool '{name}': registry is sealed")
