# MIT License © 2025 Motohiro Suzuki
"""
transport/vector_frame.py

Binary format (little-endian throughout):
- batch_count   : u32          1..100, once per session
- vector_length : u32          1..1000, once per vector
- elements      : f32 * length
- result        : f32          server -> client, once per vector

Every declared count/length is checked against its bound before any of the
bytes it announces are read.
"""

from __future__ import annotations

import struct
from typing import Iterable

import numpy as np

from protocol.errors import ProtocolError
from transport.io_async import AsyncStreamIO


MAX_BATCH_COUNT = 100
MAX_VECTOR_LENGTH = 1000

_U32 = struct.Struct("<I")
_F32 = struct.Struct("<f")
_F32_DTYPE = np.dtype("<f4")


def check_batch_count(count: int) -> int:
    if not (1 <= int(count) <= MAX_BATCH_COUNT):
        raise ProtocolError(f"batch count out of range: {count} (allowed 1..{MAX_BATCH_COUNT})")
    return int(count)


def check_vector_length(length: int) -> int:
    if not (1 <= int(length) <= MAX_VECTOR_LENGTH):
        raise ProtocolError(f"vector length out of range: {length} (allowed 1..{MAX_VECTOR_LENGTH})")
    return int(length)


# -----------------------------
# encode (client side / tests)
# -----------------------------

def encode_batch_count(count: int) -> bytes:
    return _U32.pack(check_batch_count(count))


def encode_vector(values: Iterable[float]) -> bytes:
    arr = np.asarray(list(values), dtype=_F32_DTYPE)
    return _U32.pack(check_vector_length(arr.size)) + arr.tobytes()


def encode_result(value: float) -> bytes:
    return _F32.pack(float(value))


# -----------------------------
# decode
# -----------------------------

def decode_u32(data: bytes) -> int:
    if len(data) != _U32.size:
        raise ProtocolError(f"u32 frame must be {_U32.size} bytes, got {len(data)}")
    return _U32.unpack(data)[0]


def decode_elements(data: bytes, length: int) -> np.ndarray:
    if len(data) != length * _F32_DTYPE.itemsize:
        raise ProtocolError(f"element frame size mismatch: {len(data)} bytes for {length} values")
    return np.frombuffer(data, dtype=_F32_DTYPE).astype(np.float32)


def decode_result(data: bytes) -> float:
    if len(data) != _F32.size:
        raise ProtocolError(f"result frame must be {_F32.size} bytes, got {len(data)}")
    return _F32.unpack(data)[0]


# -----------------------------
# stream helpers
# -----------------------------

async def read_batch_count(io: AsyncStreamIO) -> int:
    return check_batch_count(decode_u32(await io.read_exactly(_U32.size)))


async def read_vector(io: AsyncStreamIO) -> np.ndarray:
    length = check_vector_length(decode_u32(await io.read_exactly(_U32.size)))
    payload = await io.read_exactly(length * _F32_DTYPE.itemsize)
    return decode_elements(payload, length)


async def write_result(io: AsyncStreamIO, value: float) -> None:
    await io.write_all(encode_result(value))


async def read_result(io: AsyncStreamIO) -> float:
    return decode_result(await io.read_exactly(_F32.size))
