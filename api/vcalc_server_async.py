# MIT License © 2025 Motohiro Suzuki
"""
api/vcalc_server_async.py

Single-client vector server.

- bind(): socket / SO_REUSEADDR / bind / listen; failures are fatal (NetworkError)
- serve(): wait for readiness with a bounded poll interval, accept, then run the connection
  handler inline; no second connection is accepted while one is handled
- idle shutdown: no connection for `idle_timeout` seconds -> stop
- stop_event: checked at poll boundaries only, never mid-session

Per connection:
  handshake -> batch_count -> (vector_length, elements) -> result, repeated
Errors inside a session end that session only and come back as a SessionReport.
"""

from __future__ import annotations

import asyncio
import logging
import socket
import time
from enum import Enum
from typing import Callable, Optional, Tuple

from protocol.errors import NetworkError, ProtocolError, SessionOutcome, TransportError
from protocol.handshake import server_handshake
from protocol.session import Session, SessionReport
from transport.io_async import AsyncStreamIO, wrap_socket
from transport.vector_frame import read_batch_count, read_vector, write_result
from vcalc_core.config import ServerConfig
from vcalc_core.credentials import CredentialStore
from vcalc_core.reducer import reduce_product


log = logging.getLogger(__name__)


class ServiceState(Enum):
    STOPPED = "stopped"
    INITIALIZING = "initializing"
    LISTENING = "listening"


class ShutdownReason(Enum):
    IDLE_TIMEOUT = "idle_timeout"
    STOP_REQUESTED = "stop_requested"


async def handle_connection(io: AsyncStreamIO, credentials: CredentialStore) -> SessionReport:
    session = Session(peer=io.peer, io=io)
    processed = 0

    def report(outcome: SessionOutcome, detail: str = "") -> SessionReport:
        return SessionReport(
            outcome=outcome,
            peer=session.peer,
            login=session.login,
            vectors_processed=processed,
            detail=detail,
        )

    try:
        if not await server_handshake(session, credentials):
            return report(SessionOutcome.AUTH_REJECTED, "authentication failed")

        count = await read_batch_count(io)
        log.info("client %s announced %d vectors", session.peer, count)

        for i in range(count):
            vec = await read_vector(io)
            result = reduce_product(vec)
            await write_result(io, result)
            processed += 1
            log.info("vector %d/%d (len=%d) result: %r", i + 1, count, vec.size, float(result))

        return report(SessionOutcome.COMPLETED)

    except ProtocolError as e:
        log.warning("protocol violation from %s: %s", session.peer, e)
        return report(SessionOutcome.PROTOCOL_VIOLATION, str(e))
    except TransportError as e:
        log.error("transport error with %s: %s", session.peer, e)
        return report(SessionOutcome.TRANSPORT_ERROR, str(e))
    except Exception as e:
        log.exception("unexpected error while handling %s", session.peer)
        return report(SessionOutcome.INTERNAL_ERROR, repr(e))


class VectorServer:
    def __init__(
        self,
        cfg: ServerConfig,
        credentials: CredentialStore,
        *,
        stop_event: Optional[asyncio.Event] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.cfg = cfg
        self.credentials = credentials
        self.stop_event = stop_event if stop_event is not None else asyncio.Event()
        self._clock = clock

        self.state = ServiceState.STOPPED
        self.active_peer: Optional[str] = None
        self.sessions_handled = 0
        self._sock: Optional[socket.socket] = None

    @property
    def address(self) -> Tuple[str, int]:
        if self._sock is None:
            raise NetworkError("server socket is not bound")
        host, port = self._sock.getsockname()[:2]
        return host, port

    @property
    def listening(self) -> bool:
        return self._sock is not None

    def bind(self) -> None:
        if self._sock is not None:
            log.warning("server socket already bound")
            return

        self.state = ServiceState.INITIALIZING
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind((self.cfg.host, self.cfg.port))
            sock.listen(self.cfg.backlog)
            sock.setblocking(False)
        except OSError as e:
            sock.close()
            self.state = ServiceState.STOPPED
            raise NetworkError(f"cannot listen on {self.cfg.host}:{self.cfg.port}: {e}") from e

        self._sock = sock
        log.info("listening on %s:%d", *self.address)

    def close(self) -> None:
        if self._sock is not None:
            self._sock.close()
            self._sock = None
            log.info("listening socket released")
        self.state = ServiceState.STOPPED

    def stop(self) -> None:
        self.stop_event.set()

    async def serve(self) -> ShutdownReason:
        if self._sock is None:
            self.bind()
        assert self._sock is not None

        self.state = ServiceState.LISTENING
        last_activity = self._clock()
        reason = ShutdownReason.STOP_REQUESTED

        try:
            while not self.stop_event.is_set():
                if not await self._wait_readable(self.cfg.poll_interval):
                    if self._idle_expired(last_activity):
                        reason = ShutdownReason.IDLE_TIMEOUT
                        break
                    continue

                try:
                    conn, addr = self._accept()
                except BlockingIOError:
                    continue
                except OSError as e:
                    log.error("failed to accept client connection: %s", e)
                    await asyncio.sleep(self.cfg.poll_interval)
                    if self._idle_expired(last_activity):
                        reason = ShutdownReason.IDLE_TIMEOUT
                        break
                    continue

                await self._dispatch(conn, addr)
                last_activity = self._clock()
                log.info("ready for next client connection")
        finally:
            self.close()

        log.info("server stopped (%s)", reason.value)
        return reason

    def _idle_expired(self, last_activity: float) -> bool:
        idle = self._clock() - last_activity
        if idle >= self.cfg.idle_timeout:
            log.info("no connections for %.0fs, shutting down", idle)
            return True
        return False

    async def _wait_readable(self, timeout: float) -> bool:
        # readiness only: a timed-out wait never holds an accepted socket
        assert self._sock is not None
        loop = asyncio.get_running_loop()
        ready = loop.create_future()
        fd = self._sock.fileno()

        def _on_readable() -> None:
            if not ready.done():
                ready.set_result(None)

        loop.add_reader(fd, _on_readable)
        try:
            await asyncio.wait_for(ready, timeout=timeout)
            return True
        except asyncio.TimeoutError:
            return False
        finally:
            loop.remove_reader(fd)

    def _accept(self) -> Tuple[socket.socket, Tuple[str, int]]:
        assert self._sock is not None
        return self._sock.accept()

    async def _dispatch(self, conn: socket.socket, addr: Tuple[str, int]) -> Optional[SessionReport]:
        self.active_peer = str(addr[0])
        log.info("new client connection from %s", self.active_peer)
        try:
            io = await wrap_socket(conn, timeout=self.cfg.io_timeout)
        except OSError as e:
            log.error("cannot set up stream for %s: %s", self.active_peer, e)
            conn.close()
            self.active_peer = None
            return None

        try:
            rep = await handle_connection(io, self.credentials)
        finally:
            await io.close()
            self.active_peer = None
        self.sessions_handled += 1
        log.info(
            "client disconnected: %s outcome=%s vectors=%d",
            rep.peer,
            rep.outcome.name,
            rep.vectors_processed,
        )
        return rep


async def run_server(
    *,
    server_cfg: ServerConfig,
    credentials: CredentialStore,
    stop_event: Optional[asyncio.Event] = None,
) -> ShutdownReason:
    srv = VectorServer(server_cfg, credentials, stop_event=stop_event)
    srv.bind()
    return await srv.serve()
