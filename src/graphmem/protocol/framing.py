"""Message framing: newline-delimited JSON over an asyncio byte stream.

:func:`read_frames` turns a stream into a lazy sequence of :class:`Frame`
objects, one per line.  A line that is not valid JSON (or is too long)
becomes a parse-failure frame; it never ends the stream.
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import Any

from graphmem.protocol.models import RequestId

logger = logging.getLogger(__name__)

_SEPARATOR = b"\n"
_ID_PATTERN = re.compile(r'"id"\s*:\s*(-?\d+(?![\d.eE])|"(?:[^"\\]|\\.)*")')


@dataclass(frozen=True)
class Frame:
    """One line read from the stream.

    Exactly one of ``payload`` (decoded JSON) and ``error`` is meaningful:
    a frame with ``error`` set is a parse failure and ``raw`` holds the
    original text so the caller can still try to recover an id.
    """

    raw: str
    payload: Any = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def is_batch(self) -> bool:
        return self.ok and isinstance(self.payload, list)


def _reject_constant(name: str) -> Any:
    msg = f"{name} is not valid JSON"
    raise ValueError(msg)


def decode_line(line: bytes) -> Frame | None:
    """Decode one raw line into a :class:`Frame` (``None`` for blank lines).

    ``NaN`` and ``Infinity`` are rejected: they are not JSON.
    """
    text = line.decode("utf-8", errors="replace").strip()
    if not text:
        return None
    try:
        payload = json.loads(text, parse_constant=_reject_constant)
    except (ValueError, RecursionError) as exc:
        return Frame(raw=text, error=str(exc) or type(exc).__name__)
    return Frame(raw=text, payload=payload)


async def read_frames(reader: asyncio.StreamReader) -> AsyncIterator[Frame]:
    """Yield frames from *reader* until EOF.

    Lines longer than the reader's buffer limit are skipped in full and
    reported as a parse failure; reading resumes at the next line.
    """
    while True:
        try:
            line = await reader.readuntil(_SEPARATOR)
        except asyncio.IncompleteReadError as exc:
            # EOF: a final line without a trailing newline still counts.
            line = exc.partial
            if not line:
                return
        except asyncio.LimitOverrunError as exc:
            await _skip_line(reader, exc.consumed)
            logger.warning("Dropped an input line longer than the stream limit")
            yield Frame(raw="", error="line exceeds the maximum message size")
            continue

        frame = decode_line(line)
        if frame is not None:
            if not frame.ok:
                logger.warning("Unparseable input line: %s", frame.error)
            yield frame


async def _skip_line(reader: asyncio.StreamReader, consumed: int) -> None:
    """Discard buffered bytes up to and including the next separator."""
    while True:
        await reader.readexactly(consumed)
        try:
            await reader.readuntil(_SEPARATOR)
            return
        except asyncio.LimitOverrunError as exc:
            consumed = exc.consumed
        except asyncio.IncompleteReadError:
            return


def _depths(raw: str) -> list[int]:
    """Nesting depth before each character of *raw*; -1 inside string literals."""
    depths: list[int] = []
    depth = 0
    in_string = escaped = False
    for ch in raw:
        if in_string:
            depths.append(-1)
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        depths.append(depth)
        if ch == '"':
            in_string = True
        elif ch in "{[":
            depth += 1
        elif ch in "}]":
            depth -= 1
    return depths


def recover_id(raw: str) -> RequestId:
    """Best-effort extraction of the top-level ``"id"`` from unparseable text.

    Keys named ``id`` inside nested objects (``params`` and the like) are
    ignored.
    """
    depths = _depths(raw)
    match = next((m for m in _ID_PATTERN.finditer(raw) if depths[m.start()] == 1), None)
    if match is None:
        return None
    token = match.group(1)
    try:
        value = json.loads(token)
    except ValueError:
        return None
    return value if isinstance(value, (int, str)) else None


def encode_message(message: Any) -> bytes:
    """Serialize *message* as one compact UTF-8 JSON line.

    JSON string escaping guarantees the body holds no raw newline, so the
    only newline is the trailing separator.

    Raises:
        TypeError: *message* holds a value JSON cannot represent.
        ValueError: *message* holds a non-finite float.
    """
    body = json.dumps(message, ensure_ascii=False, allow_nan=False, separators=(",", ":"))
    try:
        encoded = body.encode("utf-8")
    except UnicodeEncodeError:
        # Lone surrogates (from escaped input) cannot be UTF-8 encoded.
        encoded = json.dumps(message, allow_nan=False, separators=(",", ":")).encode("ascii")
    return encoded + _SEPARATOR
