from __future__ import annotations

import asyncio
import logging
import sys

from nu_mcp.protocol import encode_frame
from nu_mcp.transport.base import BaseTransport

logger = logging.getLogger(__name__)

MAX_FRAME_BYTES = 16 * 1024 * 1024


class StdioTransport(BaseTransport):
    """Newline-delimited JSON over stdin/stdout.

    ``reader`` and ``writer`` default to asyncio streams over the process's
    own standard streams; tests pass in-memory stand-ins instead. Each
    ``send`` returns only once its frame has been handed to the OS.
    """

    def __init__(
        self,
        reader: asyncio.StreamReader | None = None,
        writer: asyncio.StreamWriter | None = None,
    ) -> None:
        self._reader = reader
        self._writer = writer
        self._read_pipe: asyncio.BaseTransport | None = None
        self._write_pipe: asyncio.WriteTransport | None = None

    async def start(self) -> None:
        loop = asyncio.get_running_loop()
        if self._reader is None:
            reader = asyncio.StreamReader(limit=MAX_FRAME_BYTES)
            protocol = asyncio.StreamReaderProtocol(reader)
            self._read_pipe, _ = await loop.connect_read_pipe(lambda: protocol, sys.stdin)
            self._reader = reader
        if self._writer is None:
            sys.stdout.flush()
            pipe, flow = await loop.connect_write_pipe(asyncio.streams.FlowControlMixin, sys.stdout)
            # drain() then waits for the OS to accept every buffered byte
            pipe.set_write_buffer_limits(high=0)
            self._write_pipe = pipe
            self._writer = asyncio.StreamWriter(pipe, flow, None, loop)
        self._running = True

    async def send(self, message: dict) -> None:
        if self._writer is None:
            raise ConnectionError("Transport not started")
        try:
            self._writer.write(encode_frame(message))
            await self._writer.drain()
        except (OSError, ValueError) as exc:
            raise ConnectionError(f"Failed to write to stdout: {exc}") from exc

    async def read_line(self) -> str | None:
        if self._reader is None:
            raise ConnectionError("Transport not started")
        while True:
            raw = await self._reader.readline()
            if not raw:
                logger.debug("stdin reached end of stream")
                return None
            line = raw.decode("utf-8", errors="replace").strip()
            if line:
                return line

    async def stop(self) -> None:
        self._running = False
        if self._read_pipe is not None:
            self._read_pipe.close()
            self._read_pipe = None
        if self._write_pipe is not None:
            self._write_pipe.close()
            self._write_pipe = None
