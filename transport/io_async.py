# MIT License © 2025 Motohiro Suzuki
"""
transport/io_async.py

Byte-stream transport for one connection.

- read_chunk(limit): one raw read, at most `limit` bytes (login / hash frames)
- read_exactly(n): accumulate until n bytes or fail (binary frames)
- write_all(data): write + drain
Every operation is bounded by `timeout` seconds; any EOF, reset or timeout
surfaces as TransportError.
"""

from __future__ import annotations

import asyncio
import socket

from protocol.errors import TransportError


DEFAULT_IO_TIMEOUT = 10.0


class AsyncStreamIO:
    def __init__(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        *,
        timeout: float = DEFAULT_IO_TIMEOUT,
    ) -> None:
        self._r = reader
        self._w = writer
        self.timeout = float(timeout)

    @property
    def peer(self) -> str:
        info = self._w.get_extra_info("peername")
        if isinstance(info, tuple) and info:
            return str(info[0])
        return "unknown"

    async def read_chunk(self, limit: int) -> bytes:
        if limit <= 0:
            raise ValueError("limit must be positive")
        try:
            data = await asyncio.wait_for(self._r.read(limit), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            raise TransportError(f"receive timeout after {self.timeout:.1f}s") from e
        except (ConnectionError, OSError) as e:
            raise TransportError(f"receive failed: {e}") from e
        if not data:
            raise TransportError("peer disconnected")
        return data

    async def read_exactly(self, n: int) -> bytes:
        if n < 0:
            raise ValueError("n must be >= 0")
        if n == 0:
            return b""
        try:
            return await asyncio.wait_for(self._r.readexactly(n), timeout=self.timeout)
        except asyncio.IncompleteReadError as e:
            raise TransportError(f"peer disconnected after {len(e.partial)}/{n} bytes") from e
        except asyncio.TimeoutError as e:
            raise TransportError(f"receive timeout after {self.timeout:.1f}s") from e
        except (ConnectionError, OSError) as e:
            raise TransportError(f"receive failed: {e}") from e

    async def write_all(self, data: bytes) -> None:
        try:
            self._w.write(bytes(data))
            await asyncio.wait_for(self._w.drain(), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            raise TransportError(f"send timeout after {self.timeout:.1f}s") from e
        except (ConnectionError, OSError) as e:
            raise TransportError(f"send failed: {e}") from e

    async def close(self) -> None:
        try:
            self._w.close()
            await self._w.wait_closed()
        except (ConnectionError, OSError):
            pass


async def wrap_socket(sock: socket.socket, *, timeout: float = DEFAULT_IO_TIMEOUT) -> AsyncStreamIO:
    reader, writer = await asyncio.open_connection(sock=sock)
    return AsyncStreamIO(reader, writer, timeout=timeout)


async def open_connection(host: str, port: int, *, timeout: float = DEFAULT_IO_TIMEOUT) -> AsyncStreamIO:
    try:
        reader, writer = await asyncio.wait_for(asyncio.open_connection(host, port), timeout=timeout)
    except asyncio.TimeoutError as e:
        raise TransportError(f"connect timeout to {host}:{port}") from e
    except OSError as e:
        raise TransportError(f"connect failed to {host}:{port}: {e}") from e
    return AsyncStreamIO(reader, writer, timeout=timeout)
