# MIT License © 2025 Motohiro Suzuki
from __future__ import annotations

import asyncio
import math
import struct

import pytest

from protocol.errors import ProtocolError, TransportError
from transport.io_async import AsyncStreamIO
from transport.vector_frame import (
    MAX_BATCH_COUNT,
    MAX_VECTOR_LENGTH,
    check_batch_count,
    check_vector_length,
    decode_result,
    encode_batch_count,
    encode_result,
    encode_vector,
    read_batch_count,
    read_vector,
    write_result,
)


class _RecordingWriter:
    def __init__(self) -> None:
        self.data = bytearray()

    def get_extra_info(self, name: str, default=None):
        return default

    def write(self, data: bytes) -> None:
        self.data += data

    async def drain(self) -> None:
        pass

    def close(self) -> None:
        pass

    async def wait_closed(self) -> None:
        pass


def _io(data: bytes, *, eof: bool = True) -> tuple[AsyncStreamIO, _RecordingWriter]:
    r = asyncio.StreamReader()
    r.feed_data(data)
    if eof:
        r.feed_eof()
    w = _RecordingWriter()
    return AsyncStreamIO(r, w, timeout=0.5), w  # type: ignore[arg-type]


def test_vector_wire_layout_is_little_endian() -> None:
    assert encode_vector([2.0, -1.0]) == struct.pack("<I", 2) + struct.pack("<ff", 2.0, -1.0)
    assert encode_batch_count(3) == b"\x03\x00\x00\x00"


@pytest.mark.parametrize("count", [0, MAX_BATCH_COUNT + 1, 2**32 - 1])
def test_batch_count_out_of_range(count: int) -> None:
    with pytest.raises(ProtocolError):
        check_batch_count(count)


@pytest.mark.parametrize("length", [0, MAX_VECTOR_LENGTH + 1])
def test_vector_length_out_of_range(length: int) -> None:
    with pytest.raises(ProtocolError):
        check_vector_length(length)


def test_bounds_are_inclusive() -> None:
    assert check_batch_count(1) == 1
    assert check_batch_count(MAX_BATCH_COUNT) == MAX_BATCH_COUNT
    assert check_vector_length(1) == 1
    assert check_vector_length(MAX_VECTOR_LENGTH) == MAX_VECTOR_LENGTH


def test_encode_rejects_empty_vector() -> None:
    with pytest.raises(ProtocolError):
        encode_vector([])


def test_read_vector_from_stream() -> None:
    async def run() -> list[float]:
        io, _ = _io(encode_vector([2.0, 3.0, 4.0]))
        return (await read_vector(io)).tolist()

    assert asyncio.run(run()) == [2.0, 3.0, 4.0]


def test_read_batch_count_rejects_zero() -> None:
    async def run() -> None:
        io, _ = _io(struct.pack("<I", 0))
        await read_batch_count(io)

    with pytest.raises(ProtocolError):
        asyncio.run(run())


def test_oversized_length_rejected_before_payload_is_read() -> None:
    # only the header is available and the stream stays open: a reader that
    # waited for the payload would time out instead of failing on the bound
    async def run() -> None:
        io, _ = _io(struct.pack("<I", MAX_VECTOR_LENGTH + 1), eof=False)
        await read_vector(io)

    with pytest.raises(ProtocolError):
        asyncio.run(run())


def test_truncated_payload_is_a_transport_error() -> None:
    async def run() -> None:
        io, _ = _io(struct.pack("<I", 3) + struct.pack("<ff", 1.0, 2.0))
        await read_vector(io)

    with pytest.raises(TransportError):
        asyncio.run(run())


def test_partial_frames_are_accumulated() -> None:
    async def run() -> list[float]:
        r = asyncio.StreamReader()
        io = AsyncStreamIO(r, _RecordingWriter(), timeout=1.0)  # type: ignore[arg-type]
        frame = encode_vector([1.5, -2.0])

        async def trickle() -> None:
            for i in range(len(frame)):
                r.feed_data(frame[i : i + 1])
                await asyncio.sleep(0)
            r.feed_eof()

        vec, _ = await asyncio.gather(read_vector(io), trickle())
        return vec.tolist()

    assert asyncio.run(run()) == [1.5, -2.0]


def test_write_result_sends_one_float32() -> None:
    async def run() -> bytes:
        io, w = _io(b"")
        await write_result(io, 24.0)
        await write_result(io, float("-inf"))
        return bytes(w.data)

    data = asyncio.run(run())
    assert data == struct.pack("<ff", 24.0, float("-inf"))


def test_result_sentinel_survives_the_wire() -> None:
    out = decode_result(encode_result(float("-inf")))
    assert math.isinf(out) and out < 0
