# MIT License © 2025 Motohiro Suzuki
"""
protocol/errors.py

Two channels:
- fatal setup errors (ServerError and subclasses) reach the caller of setup
- per-connection errors (ProtocolError / TransportError / AuthError) stop one
  session and are folded into a SessionOutcome by the connection handler
"""

from __future__ import annotations

from enum import IntEnum


class VcalcError(RuntimeError):
    pass


# -----------------------------
# fatal (before listening)
# -----------------------------

class ServerError(VcalcError):
    pass


class ConfigError(ServerError):
    pass


class CredentialFileError(ServerError):
    pass


class NetworkError(ServerError):
    pass


# -----------------------------
# per-connection
# -----------------------------

class ProtocolError(VcalcError):
    pass


class TransportError(VcalcError):
    pass


class AuthError(VcalcError):
    pass


class SessionOutcome(IntEnum):
    COMPLETED = 0
    AUTH_REJECTED = 1
    PROTOCOL_VIOLATION = 2
    TRANSPORT_ERROR = 3
    INTERNAL_ERROR = 4
