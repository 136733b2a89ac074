# MIT License © 2025 Motohiro Suzuki
"""
api/vcalc_client_async.py

Client side of the vector protocol.
- owns network I/O
- handshake, then one result read back after each vector sent
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Sequence

from protocol.errors import AuthError
from protocol.handshake import client_handshake
from transport.io_async import DEFAULT_IO_TIMEOUT, AsyncStreamIO, open_connection
from transport.vector_frame import encode_batch_count, encode_vector, read_result


log = logging.getLogger(__name__)


@dataclass
class ClientConfig:
    host: str = "127.0.0.1"
    port: int = 33333
    login: str = "user"
    secret: str = "P@ssW0rd"
    timeout: float = DEFAULT_IO_TIMEOUT


class VcalcClient:
    def __init__(self, io: AsyncStreamIO) -> None:
        self.io = io
        self.authenticated = False

    @classmethod
    async def connect(cls, cfg: ClientConfig) -> "VcalcClient":
        io = await open_connection(cfg.host, cfg.port, timeout=cfg.timeout)
        return cls(io)

    async def login(self, login: str, secret: str) -> None:
        if self.authenticated:
            raise AuthError("already authenticated")
        if not await client_handshake(self.io, login, secret):
            raise AuthError(f"server rejected credentials for {login!r}")
        self.authenticated = True

    async def compute(self, vectors: Sequence[Sequence[float]]) -> List[float]:
        if not self.authenticated:
            raise AuthError("login() must succeed before sending vectors")

        await self.io.write_all(encode_batch_count(len(vectors)))
        results: List[float] = []
        for vec in vectors:
            await self.io.write_all(encode_vector(vec))
            results.append(await read_result(self.io))
            log.debug("result %d: %r", len(results), results[-1])
        return results

    async def close(self) -> None:
        await self.io.close()


async def run_client(client_cfg: ClientConfig, vectors: Sequence[Sequence[float]]) -> List[float]:
    client = await VcalcClient.connect(client_cfg)
    try:
        await client.login(client_cfg.login, client_cfg.secret)
        return await client.compute(vectors)
    finally:
        await client.close()
