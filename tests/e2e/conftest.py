"""Shared helpers for E2E tests: a real ``graphmem serve`` subprocess."""

from __future__ import annotations

import asyncio
import json
import os
import sys
from collections.abc import AsyncIterator
from pathlib import Path
from typing import Any

import pytest

_LIMIT = 32 * 1024 * 1024
_TIMEOUT = 30.0


class StdioClient:
    """Minimal line-oriented JSON-RPC client for a server subprocess.

    Responses are matched by id; anything read while waiting for another
    id is parked in ``inbox`` until asked for.
    """

    def __init__(self, process: asyncio.subprocess.Process) -> None:
        self.process = process
        self.stderr_lines: list[str] = []
        self.inbox: list[Any] = []
        self._next_id = 0

    def next_id(self) -> int:
        self._next_id += 1
        return self._next_id

    async def send_raw(self, data: bytes) -> None:
        assert self.process.stdin is not None
        self.process.stdin.write(data)
        await self.process.stdin.drain()

    async def send(self, message: Any) -> None:
        await self.send_raw(json.dumps(message, ensure_ascii=False).encode() + b"\n")

    async def receive(self) -> Any:
        assert self.process.stdout is not None
        line = await asyncio.wait_for(self.process.stdout.readline(), _TIMEOUT)
        if not line:
            msg = "server closed stdout"
            raise RuntimeError(msg)
        return json.loads(line)

    async def receive_for(self, request_id: Any) -> dict[str, Any]:
        for index, message in enumerate(self.inbox):
            if isinstance(message, dict) and message.get("id") == request_id:
                return self.inbox.pop(index)
        while True:
            message = await self.receive()
            if isinstance(message, dict) and message.get("id") == request_id:
                return message
            self.inbox.append(message)

    async def request(self, method: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        request_id = self.next_id()
        message: dict[str, Any] = {"jsonrpc": "2.0", "id": request_id, "method": method}
        if params is not None:
            message["params"] = params
        await self.send(message)
        return await self.receive_for(request_id)

    async def call_tool(self, name: str, arguments: dict[str, Any]) -> dict[str, Any]:
        return await self.request("tools/call", {"name": name, "arguments": arguments})


async def _wait_ready(process: asyncio.subprocess.Process, client: StdioClient) -> None:
    assert process.stderr is not None
    while True:
        line = await process.stderr.readline()
        if not line:
            msg = "server exited before becoming ready:\n" + "".join(client.stderr_lines)
            raise RuntimeError(msg)
        text = line.decode(errors="replace")
        client.stderr_lines.append(text)
        if text.startswith("SERVER READY"):
            return


async def _drain_stderr(process: asyncio.subprocess.Process, client: StdioClient) -> None:
    assert process.stderr is not None
    while line := await process.stderr.readline():
        client.stderr_lines.append(line.decode(errors="replace"))


@pytest.fixture()
async def server(tmp_path: Path) -> AsyncIterator[StdioClient]:
    """Spawn ``python -m graphmem.cli serve`` and wait for its readiness line."""
    env = {
        **os.environ,
        "GRAPHMEM_FILES_ROOT": str(tmp_path),
        "GRAPHMEM_LOG_LEVEL": "WARNING",
    }
    env.pop("GRAPHMEM_CONFIG", None)
    process = await asyncio.create_subprocess_exec(
        sys.executable,
        "-m",
        "graphmem.cli",
        "serve",
        stdin=asyncio.subprocess.PIPE,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
        cwd=tmp_path,
        env=env,
        limit=_LIMIT,
    )
    client = StdioClient(process)
    await asyncio.wait_for(_wait_ready(process, client), _TIMEOUT)
    drain = asyncio.create_task(_drain_stderr(process, client))
    try:
        yield client
    finally:
        if process.stdin is not None and not process.stdin.is_closing():
            process.stdin.close()
        try:
            await asyncio.wait_for(process.wait(), _TIMEOUT)
        except TimeoutError:
            process.kill()
            await process.wait()
        await drain
