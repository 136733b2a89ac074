# MIT License © 2025 Motohiro Suzuki
from __future__ import annotations

import asyncio
import socket
import struct
import time

from api.vcalc_server_async import handle_connection
from crypto.challenge import compute_response
from protocol.errors import SessionOutcome, TransportError
from protocol.handshake import client_handshake
from protocol.session import SessionReport
from transport.io_async import AsyncStreamIO, wrap_socket
from transport.vector_frame import encode_batch_count, encode_vector, read_result
from vcalc_core.credentials import CredentialStore


CREDS = CredentialStore({"user": "P@ssW0rd"})


def _run_session(client_fn, server_timeout: float = 2.0) -> tuple[SessionReport, object]:
    async def run():
        a, b = socket.socketpair()
        server_io = await wrap_socket(a, timeout=server_timeout)
        client_io = await wrap_socket(b, timeout=2.0)

        async def server_side() -> SessionReport:
            try:
                return await handle_connection(server_io, CREDS)
            finally:
                await server_io.close()

        try:
            return await asyncio.gather(server_side(), client_fn(client_io))
        finally:
            await client_io.close()

    report, out = asyncio.run(run())
    return report, out


async def _login(io: AsyncStreamIO) -> None:
    assert await client_handshake(io, "user", "P@ssW0rd")


async def _read_or_eof(io: AsyncStreamIO) -> float | None:
    try:
        return await read_result(io)
    except TransportError:
        return None


def test_single_vector_round_trip() -> None:
    async def client(io: AsyncStreamIO) -> float:
        await _login(io)
        await io.write_all(encode_batch_count(1) + encode_vector([2.0, 3.0, 4.0]))
        return await read_result(io)

    report, result = _run_session(client)
    assert result == 24.0
    assert report.outcome is SessionOutcome.COMPLETED
    assert report.vectors_processed == 1
    assert report.login == "user"


def test_results_are_streamed_per_vector() -> None:
    async def client(io: AsyncStreamIO) -> list[float]:
        await _login(io)
        await io.write_all(encode_batch_count(3))
        out = []
        for vec in ([1.0, 2.0], [3.0e38, 10.0], [-0.5, 4.0]):
            # next vector is only sent after the previous result has arrived
            await io.write_all(encode_vector(vec))
            out.append(await read_result(io))
        return out

    report, results = _run_session(client)
    assert results[0] == 2.0
    assert results[1] == float("-inf")
    assert results[2] == -2.0
    assert report.ok and report.vectors_processed == 3


def test_zero_length_second_vector_aborts_after_first_result() -> None:
    async def client(io: AsyncStreamIO) -> tuple[float | None, float | None]:
        await _login(io)
        await io.write_all(encode_batch_count(2) + encode_vector([1.5, 2.0]))
        first = await _read_or_eof(io)
        await io.write_all(struct.pack("<I", 0))
        return first, await _read_or_eof(io)

    report, (first, second) = _run_session(client)
    assert first == 3.0
    assert second is None
    assert report.outcome is SessionOutcome.PROTOCOL_VIOLATION
    assert report.vectors_processed == 1


def test_out_of_range_batch_count_aborts() -> None:
    for count in (0, 101):
        async def client(io: AsyncStreamIO, count: int = count) -> float | None:
            await _login(io)
            await io.write_all(struct.pack("<I", count) + encode_vector([1.0]))
            return await _read_or_eof(io)

        report, result = _run_session(client)
        assert result is None
        assert report.outcome is SessionOutcome.PROTOCOL_VIOLATION
        assert report.vectors_processed == 0


def test_oversized_vector_length_aborts_without_waiting_for_payload() -> None:
    async def client(io: AsyncStreamIO) -> float | None:
        await _login(io)
        await io.write_all(encode_batch_count(1) + struct.pack("<I", 1001))
        return await _read_or_eof(io)

    report, result = _run_session(client)
    assert result is None
    assert report.outcome is SessionOutcome.PROTOCOL_VIOLATION


def test_failed_authentication_stops_the_exchange() -> None:
    async def client(io: AsyncStreamIO) -> tuple[bool, float | None]:
        ok = await client_handshake(io, "user", "nope")
        try:
            await io.write_all(encode_batch_count(1) + encode_vector([2.0]))
        except TransportError:
            pass
        return ok, await _read_or_eof(io)

    report, (ok, result) = _run_session(client)
    assert ok is False
    assert result is None
    assert report.outcome is SessionOutcome.AUTH_REJECTED


def test_disconnect_mid_vector_is_a_transport_error() -> None:
    async def client(io: AsyncStreamIO) -> None:
        await _login(io)
        await io.write_all(encode_batch_count(1) + struct.pack("<I", 4) + struct.pack("<f", 1.0))
        await io.close()

    report, _ = _run_session(client)
    assert report.outcome is SessionOutcome.TRANSPORT_ERROR
    assert report.vectors_processed == 0


def test_silent_client_times_out() -> None:
    async def client(io: AsyncStreamIO) -> tuple[float | None, float]:
        t0 = time.monotonic()
        result = await _read_or_eof(io)
        return result, time.monotonic() - t0

    report, (result, waited) = _run_session(client, server_timeout=0.3)
    assert result is None
    assert report.outcome is SessionOutcome.TRANSPORT_ERROR
    assert report.login is None
    assert 0.25 <= waited < 1.5


def test_silence_after_login_times_out() -> None:
    async def client(io: AsyncStreamIO) -> float | None:
        await _login(io)
        return await _read_or_eof(io)

    report, result = _run_session(client, server_timeout=0.3)
    assert result is None
    assert report.outcome is SessionOutcome.TRANSPORT_ERROR
    assert report.login == "user"
    assert report.vectors_processed == 0


def test_bytes_after_hash_are_read_as_batch_count() -> None:
    async def client(io: AsyncStreamIO) -> tuple[bytes, float]:
        await io.write_all(b"user")
        salt = await io.read_exactly(16)
        # hash and batch count in one segment
        await io.write_all(compute_response(salt.decode(), "P@ssW0rd").encode() + encode_batch_count(1))
        reply = await io.read_exactly(2)
        await io.write_all(encode_vector([2.0, 5.0]))
        return reply, await read_result(io)

    report, (reply, result) = _run_session(client)
    assert reply == b"OK"
    assert result == 10.0
    assert report.outcome is SessionOutcome.COMPLETED
    assert report.vectors_processed == 1
