# MIT License © 2025 Motohiro Suzuki
"""
vcalc_core/config.py

Server settings.

- defaults mirror the deployed service (/etc/vcalc.conf, /var/log/vcalc.log, port 33333)
- env overrides: VCALC_DB_FILE, VCALC_LOG_FILE, VCALC_HOST, VCALC_PORT,
  VCALC_IDLE_TIMEOUT, VCALC_IO_TIMEOUT, VCALC_LOG_LEVEL
- CLI flags (run_server.py) override env
"""

from __future__ import annotations

import dataclasses
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Mapping

from protocol.errors import ConfigError, CredentialFileError


LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")


@dataclass(frozen=True)
class ServerConfig:
    client_db_file: str = "/etc/vcalc.conf"
    log_file: str = "/var/log/vcalc.log"
    host: str = "0.0.0.0"
    port: int = 33333  # 0 = ephemeral
    backlog: int = 10

    poll_interval: float = 1.0
    idle_timeout: float = 300.0
    io_timeout: float = 10.0

    log_level: str = "INFO"

    def replace(self, **changes: Any) -> "ServerConfig":
        return dataclasses.replace(self, **{k: v for k, v in changes.items() if v is not None})

    def validate(self, *, check_files: bool = True) -> "ServerConfig":
        if not self.client_db_file:
            raise ConfigError("client database file path cannot be empty")
        if not self.log_file:
            raise ConfigError("log file path cannot be empty")
        if not isinstance(self.port, int) or not (0 <= self.port <= 65535):
            raise ConfigError(f"port must be in 0..65535, got {self.port!r}")
        if self.backlog <= 0:
            raise ConfigError("backlog must be positive")
        for name in ("poll_interval", "idle_timeout", "io_timeout"):
            if getattr(self, name) <= 0:
                raise ConfigError(f"{name} must be positive")
        if self.log_level.upper() not in LOG_LEVELS:
            raise ConfigError(f"unknown log level {self.log_level!r} (expected one of {', '.join(LOG_LEVELS)})")

        if check_files:
            try:
                with Path(self.client_db_file).open("rb"):
                    pass
            except OSError as e:
                raise CredentialFileError(f"cannot access client database file: {self.client_db_file}") from e
        return self

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None, base: "ServerConfig | None" = None) -> "ServerConfig":
        env = os.environ if environ is None else environ
        cfg = base or cls()
        return cfg.replace(
            client_db_file=_env(env, "VCALC_DB_FILE", str),
            log_file=_env(env, "VCALC_LOG_FILE", str),
            host=_env(env, "VCALC_HOST", str),
            port=_env(env, "VCALC_PORT", int),
            idle_timeout=_env(env, "VCALC_IDLE_TIMEOUT", float),
            io_timeout=_env(env, "VCALC_IO_TIMEOUT", float),
            log_level=_env(env, "VCALC_LOG_LEVEL", str),
        )


def _env(env: Mapping[str, str], name: str, conv: Callable[[str], Any]) -> Any:
    v = env.get(name, "").strip()
    if not v:
        return None
    try:
        return conv(v)
    except ValueError as e:
        raise ConfigError(f"{name} must be {conv.__name__}, got {v!r}") from e
