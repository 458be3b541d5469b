"""Stdio server: the read / dispatch / write loop.

Each input line becomes its own task, so a slow ``tools/call`` never holds
up ingestion of the lines behind it.  Responses are written as their tasks
finish, in whatever order that is; clients correlate by id.
"""

from __future__ import annotations

import asyncio
import logging
import sys
from collections.abc import Callable
from typing import TYPE_CHECKING

from graphmem.protocol.dispatcher import Dispatcher, WireMessage
from graphmem.protocol.errors import InternalError
from graphmem.protocol.framing import Frame, read_frames
from graphmem.protocol.models import JsonRpcResponse
from graphmem.protocol.negotiation import ProtocolNegotiator
from graphmem.protocol.writer import LineSink, ResponseWriter

if TYPE_CHECKING:
    from graphmem.config import ServerSettings
    from graphmem.protocol.registry import ToolRegistry

logger = logging.getLogger(__name__)

READY_SIGNAL = "SERVER READY"


class StdioServer:
    """Serve newline-delimited JSON-RPC from a reader to a sink."""

    def __init__(
        self,
        dispatcher: Dispatcher,
        *,
        on_ready: Callable[[], None] | None = None,
    ) -> None:
        self._dispatcher = dispatcher
        self._on_ready = on_ready
        self._tasks: set[asyncio.Task[None]] = set()
        self.frames_received = 0

    @property
    def in_flight(self) -> int:
        return len(self._tasks)

    async def serve(self, reader: asyncio.StreamReader, sink: LineSink) -> ResponseWriter:
        """Process frames until EOF, then wait for every in-flight request."""
        writer = ResponseWriter(sink)
        if self._on_ready is not None:
            self._on_ready()

        async for frame in read_frames(reader):
            self.frames_received += 1
            task = asyncio.create_task(self._process(frame, writer))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

        if self._tasks:
            logger.debug("Input closed; waiting for %d in-flight request(s)", len(self._tasks))
            await asyncio.gather(*self._tasks)
        logger.info(
            "Input closed after %d frame(s); %d response(s) written",
            self.frames_received,
            writer.messages_written,
        )
        return writer

    async def _process(self, frame: Frame, writer: ResponseWriter) -> None:
        try:
            reply = await self._dispatcher.handle_frame(frame)
        except Exception:
            # The dispatcher folds errors into responses; reaching here is a bug.
            logger.exception("Dispatcher failed on frame %.200s", frame.raw)
            return
        if reply is None:
            return
        try:
            await writer.write(reply)
        except (TypeError, ValueError):
            logger.exception("Reply to frame %.200s could not be serialized", frame.raw)
            await writer.write(_unserializable(reply))


def _unserializable(reply: WireMessage) -> WireMessage:
    """Replace each response in *reply* with an Internal error carrying the same id."""
    error = InternalError("response could not be serialized").to_error()
    if isinstance(reply, list):
        return [JsonRpcResponse.failure(item.get("id"), error).to_wire() for item in reply]
    return JsonRpcResponse.failure(reply.get("id"), error).to_wire()


async def open_stdio_streams(limit: int) -> tuple[asyncio.StreamReader, asyncio.StreamWriter]:
    """Wrap the process's stdin/stdout in asyncio streams.

    *limit* bounds the length of a single input line.
    """
    loop = asyncio.get_running_loop()
    reader = asyncio.StreamReader(limit=limit)
    await loop.connect_read_pipe(lambda: asyncio.StreamReaderProtocol(reader), sys.stdin)
    transport, protocol = await loop.connect_write_pipe(
        asyncio.streams.FlowControlMixin, sys.stdout
    )
    writer = asyncio.StreamWriter(transport, protocol, reader, loop)
    return reader, writer


def announce_ready(settings: ServerSettings) -> None:
    """Write the readiness line supervisors wait for to stderr."""
    sys.stderr.write(f"{READY_SIGNAL}: {settings.name} {settings.version} on stdio\n")
    sys.stderr.flush()


async def run_stdio(
    settings: ServerSettings,
    registry: ToolRegistry,
    *,
    on_ready: Callable[[], None] | None = None,
) -> None:
    """Seal *registry*, then serve stdin/stdout until the client hangs up."""
    registry.seal()
    dispatcher = Dispatcher(registry, ProtocolNegotiator(settings))
    reader, writer = await open_stdio_streams(settings.max_line_bytes)
    server = StdioServer(
        dispatcher,
        on_ready=on_ready if on_ready is not None else (lambda: announce_ready(settings)),
    )
    logger.info("Serving %d tool(s) on stdio", len(registry))
    try:
        await server.serve(reader, writer)
    finally:
        writer.close()
