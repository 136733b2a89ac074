# MIT License © 2025 Motohiro Suzuki
from __future__ import annotations

import logging
import sys
from typing import List, Optional


LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def setup_logging(log_file: Optional[str] = None, level: str | int = logging.INFO, *, console: bool = False) -> None:
    handlers: List[logging.Handler] = []
    if log_file:
        try:
            handlers.append(logging.FileHandler(log_file, mode="a", encoding="utf-8"))
        except OSError as e:
            print(f"WARNING: Cannot open log file: {log_file} ({e.strerror or e})", file=sys.stderr)
            console = True
    if console or not handlers:
        handlers.append(logging.StreamHandler(sys.stderr))

    if isinstance(level, str):
        level = logging.getLevelName(level.upper())

    logging.basicConfig(
        level=level,
        format=LOG_FORMAT,
        datefmt=DATE_FORMAT,
        handlers=handlers,
        force=True,
    )
