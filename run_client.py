# MIT License © 2025 Motohiro Suzuki
"""
vcalc client runner (demo)

- login as user / P@ssW0rd (defaults)
- send 4 vectors of 4 values, print one product per vector
"""

from __future__ import annotations

import argparse
import asyncio
import sys

from api.vcalc_client_async import ClientConfig, run_client
from diagnostics.logging_config import setup_logging
from protocol.errors import AuthError, ProtocolError, TransportError


DEMO_VECTORS = [
    [1.0, 2.0, 3.0, 4.0],
    [-1.5, 2.0, -0.5, 8.0],
    [0.25, 0.25, 0.25, 0.25],
    [3.0e38, 10.0, 1.0, 1.0],
]


def main() -> int:
    p = argparse.ArgumentParser(prog="vcalc-client")
    p.add_argument("--host", default="127.0.0.1")
    p.add_argument("-p", "--port", type=int, default=33333)
    p.add_argument("-u", "--user", default="user")
    p.add_argument("-s", "--secret", default="P@ssW0rd")
    p.add_argument("-v", "--verbose", action="store_true")
    args = p.parse_args()

    setup_logging(level="DEBUG" if args.verbose else "WARNING", console=True)
    cfg = ClientConfig(host=args.host, port=args.port, login=args.user, secret=args.secret)

    try:
        results = asyncio.run(run_client(cfg, DEMO_VECTORS))
    except AuthError as e:
        print(f"[client] {e}")
        return 2
    except (ProtocolError, TransportError) as e:
        print(f"[client] error: {e}")
        return 1

    for i, (vec, res) in enumerate(zip(DEMO_VECTORS, results), start=1):
        print(f"[client] vector {i} {vec} -> {res!r}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
