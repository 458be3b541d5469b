"""ResponseWriter: serializes responses onto the output stream, one line each."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Protocol

from graphmem.protocol.framing import encode_message

logger = logging.getLogger(__name__)


class LineSink(Protocol):
    """The subset of :class:`asyncio.StreamWriter` the writer needs."""

    def write(self, data: bytes) -> None: ...
    async def drain(self) -> None: ...


class ResponseWriter:
    """Write whole JSON lines to *sink*.

    Concurrent request tasks complete in any order; the lock makes each
    ``write`` + ``drain`` atomic so lines never interleave.
    """

    def __init__(self, sink: LineSink) -> None:
        self._sink = sink
        self._lock = asyncio.Lock()
        self.messages_written = 0
        self.closed = False

    async def write(self, message: dict[str, Any] | list[dict[str, Any]]) -> None:
        """Write one response object, or one batch array, as a single line."""
        data = encode_message(message)
        async with self._lock:
            if self.closed:
                logger.debug("Output closed; dropping a %d-byte response", len(data))
                return
            try:
                self._sink.write(data)
                await self._sink.drain()
            except (ConnectionError, RuntimeError) as exc:
                # The peer went away; later responses have nowhere to go either.
                self.closed = True
                logger.warning("Output stream closed: %s", exc)
                return
            self.messages_written += 1
