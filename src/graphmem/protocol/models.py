"""MCP models: JSON-RPC 2.0 messages, tool descriptors, and tool results.

Implements the message format used by the Model Context Protocol for
version negotiation (``initialize``), tool discovery (``tools/list``) and
execution (``tools/call``).
"""

from __future__ import annotations

from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

JSONRPC_VERSION = "2.0"

# Standard JSON-RPC 2.0 error codes, plus the MCP "not initialized" code.
PARSE_ERROR = -32700
INVALID_REQUEST = -32600
METHOD_NOT_FOUND = -32601
INVALID_PARAMS = -32602
INTERNAL_ERROR = -32603
SERVER_NOT_INITIALIZED = -32002

RequestId = int | str | None

# ---------------------------------------------------------------------------
# JSON-RPC 2.0 envelope
# ---------------------------------------------------------------------------


class JsonRpcRequest(BaseModel):
    """A validated JSON-RPC 2.0 request or notification."""

    jsonrpc: Literal["2.0"] = JSONRPC_VERSION
    method: str
    id: RequestId = None
    params: dict[str, Any] = Field(default_factory=dict)
    is_notification: bool = Field(default=False, exclude=True)


class JsonRpcError(BaseModel):
    """A JSON-RPC 2.0 error object."""

    code: int
    message: str
    data: Any = None

    def to_wire(self) -> dict[str, Any]:
        wire: dict[str, Any] = {"code": self.code, "message": self.message}
        if self.data is not None:
            wire["data"] = self.data
        return wire


class JsonRpcResponse(BaseModel):
    """A JSON-RPC 2.0 response message.

    Exactly one of ``result`` / ``error`` is set.  ``id`` always echoes the
    request's id, or is ``None`` when it could not be recovered.
    """

    jsonrpc: Literal["2.0"] = JSONRPC_VERSION
    id: RequestId = None
    result: dict[str, Any] | None = None
    error: JsonRpcError | None = None

    @model_validator(mode="after")
    def _exactly_one_outcome(self) -> JsonRpcResponse:
        if (self.result is None) == (self.error is None):
            msg = "a response carries exactly one of 'result' or 'error'"
            raise ValueError(msg)
        return self

    @classmethod
    def success(cls, id: RequestId, result: dict[str, Any]) -> JsonRpcResponse:
        return cls(id=id, result=result)

    @classmethod
    def failure(cls, id: RequestId, error: JsonRpcError) -> JsonRpcResponse:
        return cls(id=id, error=error)

    def to_wire(self) -> dict[str, Any]:
        """Return the plain dict written to the output stream."""
        wire: dict[str, Any] = {"jsonrpc": self.jsonrpc, "id": self.id}
        if self.error is not None:
            wire["error"] = self.error.to_wire()
        else:
            wire["result"] = self.result
        return wire


# ---------------------------------------------------------------------------
# Content blocks
# ---------------------------------------------------------------------------


class TextContent(BaseModel):
    """Plain text content block."""

    type: Literal["text"] = "text"
    text: str


class ImageContent(BaseModel):
    """Inline base64 image."""

    model_config = ConfigDict(populate_by_name=True)

    type: Literal["image"] = "image"
    data: str
    mime_type: str = Field(alias="mimeType")


class AudioContent(BaseModel):
    """Inline base64 audio."""

    model_config = ConfigDict(populate_by_name=True)

    type: Literal["audio"] = "audio"
    data: str
    mime_type: str = Field(alias="mimeType")


class ResourceLink(BaseModel):
    """A link to a resource the client may fetch separately."""

    model_config = ConfigDict(populate_by_name=True)

    type: Literal["resource_link"] = "resource_link"
    uri: str
    name: str
    title: str | None = None
    description: str | None = None
    mime_type: str | None = Field(default=None, alias="mimeType")


class EmbeddedResource(BaseModel):
    """A resource embedded directly in the result."""

    type: Literal["resource"] = "resource"
    resource: dict[str, Any]


ContentBlock = Annotated[
    TextContent | ImageContent | AudioContent | ResourceLink | EmbeddedResource,
    Field(discriminator="type"),
]


# ---------------------------------------------------------------------------
# MCP-specific payloads
# ---------------------------------------------------------------------------


class ToolDescriptor(BaseModel):
    """A tool definition as returned by ``tools/list``.

    Descriptors are immutable once built.  ``title`` is what LLM clients
    display, so it must be present and differ from the raw ``name``.
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    name: str = Field(min_length=1)
    title: str
    description: str
    input_schema: dict[str, Any] = Field(
        default_factory=lambda: {"type": "object", "properties": {}},
        alias="inputSchema",
    )

    @field_validator("title", "description")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            msg = "must not be blank"
            raise ValueError(msg)
        return value

    @field_validator("input_schema")
    @classmethod
    def _object_schema(cls, value: dict[str, Any]) -> dict[str, Any]:
        if value.get("type") != "object":
            msg = "inputSchema must describe an object"
            raise ValueError(msg)
        return value

    @model_validator(mode="after")
    def _title_differs_from_name(self) -> ToolDescriptor:
        if self.title == self.name:
            msg = f"tool '{self.name}' needs a display title distinct from its name"
            raise ValueError(msg)
        return self

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)


class ToolResult(BaseModel):
    """The result of a ``tools/call``: LLM-readable content plus structured data."""

    model_config = ConfigDict(populate_by_name=True)

    content: list[ContentBlock] = Field(default_factory=list)
    structured_content: dict[str, Any] = Field(default_factory=dict, alias="structuredContent")
    is_error: bool | None = Field(default=None, alias="isError")

    @classmethod
    def from_structured(
        cls,
        data: dict[str, Any],
        text: str,
        *,
        extra_content: list[Any] | None = None,
    ) -> ToolResult:
        """Build a result whose first content block is *text*."""
        blocks: list[Any] = [TextContent(text=text), *(extra_content or [])]
        return cls(content=blocks, structured_content=data)

    def to_wire(self) -> dict[str, Any]:
        """JSON-mode dump: dates become strings, non-finite floats become null."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class ClientInfo(BaseModel):
    name: str = "unknown"
    version: str = "unknown"


class InitializeParams(BaseModel):
    """Params of the ``initialize`` request."""

    model_config = ConfigDict(populate_by_name=True)

    protocol_version: str = Field(alias="protocolVersion")
    capabilities: dict[str, Any] = Field(default_factory=dict)
    client_info: ClientInfo = Field(default_factory=ClientInfo, alias="clientInfo")


class ServerInfo(BaseModel):
    name: str
    version: str


class InitializeResult(BaseModel):
    """Result of a successful ``initialize``."""

    model_config = ConfigDict(populate_by_name=True)

    protocol_version: str = Field(alias="protocolVersion")
    capabilities: dict[str, Any] = Field(default_factory=dict)
    server_info: ServerInfo = Field(alias="serverInfo")
    instructions: str | None = None

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class CallToolParams(BaseModel):
    """Params of the ``tools/call`` request."""

    name: str = Field(min_length=1)
    arguments: dict[str, Any] = Field(default_factory=dict)

    @field_validator("arguments", mode="before")
    @classmethod
    def _default_arguments(cls, value: Any) -> Any:
        return {} if value is None else value
