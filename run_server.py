# MIT License © 2025 Motohiro Suzuki
"""
vcalc server runner

- load credentials (login:secret file), configure logging
- listen, serve one client at a time
- SIGINT / SIGTERM or idle timeout -> exit 0
- configuration / startup failures -> exit 1
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
from typing import List, Optional

from api.vcalc_server_async import VectorServer
from diagnostics.logging_config import setup_logging
from protocol.errors import ConfigError, ServerError
from vcalc_core.config import ServerConfig
from vcalc_core.credentials import load_credentials


log = logging.getLogger("vcalc.server")

DESCRIPTION = """\
Server for vector calculations.

  - SHA-1 authentication with server-side salt
  - binary little-endian protocol, one float32 product per vector
  - one client at a time; shuts down after the idle timeout
"""


def build_parser() -> argparse.ArgumentParser:
    defaults = ServerConfig()
    p = argparse.ArgumentParser(
        prog="vcalc-server",
        description=DESCRIPTION,
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="examples:\n  vcalc-server -c users.db -l server.log\n  vcalc-server --config /etc/vcalc.conf",
    )
    p.add_argument("-c", "--config", dest="client_db_file", metavar="FILE",
                   help=f"client database file (default: {defaults.client_db_file})")
    p.add_argument("-l", "--log", dest="log_file", metavar="FILE",
                   help=f"log file (default: {defaults.log_file})")
    p.add_argument("-p", "--port", type=int, help=f"listen port (default: {defaults.port})")
    p.add_argument("--host", help=f"listen address (default: {defaults.host})")
    p.add_argument("--idle-timeout", type=float, metavar="SECONDS",
                   help=f"stop after this long without clients (default: {defaults.idle_timeout:.0f})")
    p.add_argument("-v", "--verbose", action="store_true", help="log at DEBUG level")
    return p


def load_config(args: argparse.Namespace) -> ServerConfig:
    cfg = ServerConfig.from_env()
    cfg = cfg.replace(
        client_db_file=args.client_db_file,
        log_file=args.log_file,
        port=args.port,
        host=args.host,
        idle_timeout=args.idle_timeout,
        log_level="DEBUG" if args.verbose else None,
    )
    return cfg.validate()


def _install_signal_handlers(loop: asyncio.AbstractEventLoop, stop_event: asyncio.Event) -> None:
    def _on_signal(signum: int) -> None:
        log.info("received signal %d, shutting down after the current client", signum)
        stop_event.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, _on_signal, int(sig))
        except (NotImplementedError, RuntimeError):
            signal.signal(sig, lambda signum, _frame: loop.call_soon_threadsafe(_on_signal, signum))


async def serve(cfg: ServerConfig) -> None:
    credentials = load_credentials(cfg.client_db_file)

    stop_event = asyncio.Event()
    _install_signal_handlers(asyncio.get_running_loop(), stop_event)

    srv = VectorServer(cfg, credentials, stop_event=stop_event)
    srv.bind()
    log.info("server started, %d users loaded, idle timeout %.0fs", len(credentials), cfg.idle_timeout)
    await srv.serve()


def main(argv: Optional[List[str]] = None) -> int:
    argv = sys.argv[1:] if argv is None else argv
    parser = build_parser()
    if not argv:
        parser.print_help()
        return 0

    args = parser.parse_args(argv)
    try:
        cfg = load_config(args)
    except ConfigError as e:
        print(f"ERROR: Configuration error: {e}", file=sys.stderr)
        parser.print_help(sys.stderr)
        return 1
    except ServerError as e:
        print(f"CRITICAL: Server error: {e}", file=sys.stderr)
        return 1

    setup_logging(cfg.log_file, cfg.log_level)
    try:
        asyncio.run(serve(cfg))
    except ServerError as e:
        log.error("%s", e)
        print(f"CRITICAL: Server error: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
