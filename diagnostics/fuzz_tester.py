# MIT License © 2025 Motohiro Suzuki
"""
diagnostics/fuzz_tester.py

Lightweight fuzz (ALWAYS prints results)

Goals:
- vector frame decoder never fails with anything but ProtocolError / TransportError
- reducer never raises and, batch by batch, only ever returns a finite float32 or the sentinel

Run:
  python3 -m diagnostics.fuzz_tester
  python3 -m diagnostics.fuzz_tester 2>&1 | tee fuzz_vcalc.txt
"""

from __future__ import annotations

import asyncio
import os
import random
import struct
import traceback
from dataclasses import dataclass

import numpy as np

from protocol.errors import ProtocolError, TransportError
from transport.io_async import AsyncStreamIO
from transport.vector_frame import read_batch_count, read_vector
from vcalc_core.reducer import OVERFLOW_SENTINEL, reduce_batch


@dataclass
class FuzzStats:
    iters: int = 0
    frame_parsed_ok: int = 0
    frame_rejected: int = 0
    frame_exceptions: int = 0

    reduce_vectors: int = 0
    reduce_finite: int = 0
    reduce_sentinel: int = 0
    reduce_bad_value: int = 0
    reduce_exceptions: int = 0


class _NullWriter:
    def get_extra_info(self, name: str, default=None):
        return default

    def write(self, data: bytes) -> None:
        pass

    async def drain(self) -> None:
        pass

    def close(self) -> None:
        pass

    async def wait_closed(self) -> None:
        pass


def _stream_io(data: bytes) -> AsyncStreamIO:
    r = asyncio.StreamReader()
    r.feed_data(data)
    r.feed_eof()
    return AsyncStreamIO(r, _NullWriter(), timeout=1.0)  # type: ignore[arg-type]


async def _try_parse(data: bytes) -> int:
    io = _stream_io(data)
    count = await read_batch_count(io)
    for _ in range(count):
        await read_vector(io)
    return count


def _random_stream() -> bytes:
    # half the time start with a plausible count so the vector path gets exercised
    if random.random() < 0.5:
        head = struct.pack("<I", random.randint(0, 4))
        body = b""
        for _ in range(random.randint(0, 4)):
            n = random.choice([0, 1, 2, 3, 1001, random.randint(1, 16)])
            body += struct.pack("<I", n) + os.urandom(4 * random.randint(0, n + 1) if n < 32 else 8)
        return head + body
    return os.urandom(random.randint(0, 64))


def fuzz_vector_frame(stats: FuzzStats, iters: int = 2000) -> None:
    for _ in range(iters):
        stats.iters += 1
        try:
            asyncio.run(_try_parse(_random_stream()))
            stats.frame_parsed_ok += 1
        except (ProtocolError, TransportError):
            stats.frame_rejected += 1
        except Exception:
            stats.frame_exceptions += 1


def fuzz_reducer(stats: FuzzStats, iters: int = 2000) -> None:
    for _ in range(iters):
        stats.iters += 1
        batch = [
            np.frombuffer(os.urandom(4 * random.randint(0, 32)), dtype="<f4")
            for _ in range(random.randint(1, 4))
        ]
        try:
            results = reduce_batch(batch)
        except Exception:
            stats.reduce_exceptions += 1
            continue

        if len(results) != len(batch):
            stats.reduce_bad_value += 1
            continue

        for out in results:
            stats.reduce_vectors += 1
            if out == OVERFLOW_SENTINEL:
                stats.reduce_sentinel += 1
            elif np.isfinite(out) and isinstance(out, np.float32):
                stats.reduce_finite += 1
            else:
                stats.reduce_bad_value += 1


def main() -> None:
    random.seed(33333)

    print("=== vcalc Fuzz Tester ===")
    print("")

    stats_frame = FuzzStats()
    try:
        fuzz_vector_frame(stats_frame, iters=2000)
        print("[FRAME] fuzz done")
        print(f"  parsed_ok={stats_frame.frame_parsed_ok}")
        print(f"  rejected(as expected)={stats_frame.frame_rejected}")
        print(f"  exceptions={stats_frame.frame_exceptions}")
    except Exception as e:
        print(f"[FRAME] fuzz failed: {e!r}")
        print(traceback.format_exc())

    print("")

    stats_reduce = FuzzStats()
    try:
        fuzz_reducer(stats_reduce, iters=2000)
        print("[REDUCE] fuzz done")
        print(f"  vectors={stats_reduce.reduce_vectors}")
        print(f"  finite={stats_reduce.reduce_finite}")
        print(f"  sentinel={stats_reduce.reduce_sentinel}")
        print(f"  bad_value={stats_reduce.reduce_bad_value}")
        print(f"  exceptions={stats_reduce.reduce_exceptions}")
    except Exception as e:
        print(f"[REDUCE] fuzz failed: {e!r}")
        print(traceback.format_exc())

    print("")
    print("=== DONE ===")


if __name__ == "__main__":
    main()
