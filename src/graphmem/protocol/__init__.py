"""Protocol layer: MCP over newline-delimited JSON-RPC 2.0."""

from graphmem.protocol.dispatcher import Dispatcher
from graphmem.protocol.elicitation import (
    Elicitation,
    ElicitationRequired,
    Failure,
    Success,
    ToolOutcome,
    call_tool,
)
from graphmem.protocol.errors import (
    InvalidRequestError,
    MethodNotFoundError,
    ProtocolError,
    ProtocolVersionMismatchError,
    ToolExecutionError,
    UnknownToolError,
)
from graphmem.protocol.models import (
    JsonRpcError,
    JsonRpcRequest,
    JsonRpcResponse,
    ToolDescriptor,
    ToolResult,
)
from graphmem.protocol.negotiation import ProtocolNegotiator
from graphmem.protocol.registry import RegisteredTool, ToolRegistry
from graphmem.protocol.server import READY_SIGNAL, StdioServer, run_stdio

__all__ = [
    "READY_SIGNAL",
    "Dispatcher",
    "Elicitation",
    "ElicitationRequired",
    "Failure",
    "InvalidRequestError",
    "JsonRpcError",
    "JsonRpcRequest",
    "JsonRpcResponse",
    "MethodNotFoundError",
    "ProtocolError",
    "ProtocolNegotiator",
    "ProtocolVersionMismatchError",
    "RegisteredTool",
    "StdioServer",
    "Success",
    "ToolDescriptor",
    "ToolExecutionError",
    "ToolOutcome",
    "ToolRegistry",
    "ToolResult",
    "UnknownToolError",
    "call_tool",
    "run_stdio",
]
