# MIT License © 2025 Motohiro Suzuki
"""
protocol/session.py

Per-connection session record.

States:
  AWAITING_LOGIN -> CHECKING_USER -> SALT_SENT -> AWAITING_RESPONSE -> AUTHENTICATED
  CHECKING_USER -> REJECTED        (unknown login, no salt issued)
  AWAITING_RESPONSE -> REJECTED    (hash mismatch)

- login and challenge salt are set once
- AUTHENTICATED / REJECTED are terminal: a session never authenticates twice
- nothing here outlives the connection
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, Optional

from protocol.errors import ProtocolError, SessionOutcome


class HandshakeState(Enum):
    AWAITING_LOGIN = "awaiting_login"
    CHECKING_USER = "checking_user"
    SALT_SENT = "salt_sent"
    AWAITING_RESPONSE = "awaiting_response"
    AUTHENTICATED = "authenticated"
    REJECTED = "rejected"


_TRANSITIONS: Dict[HandshakeState, FrozenSet[HandshakeState]] = {
    HandshakeState.AWAITING_LOGIN: frozenset({HandshakeState.CHECKING_USER}),
    HandshakeState.CHECKING_USER: frozenset({HandshakeState.SALT_SENT, HandshakeState.REJECTED}),
    HandshakeState.SALT_SENT: frozenset({HandshakeState.AWAITING_RESPONSE}),
    HandshakeState.AWAITING_RESPONSE: frozenset({HandshakeState.AUTHENTICATED, HandshakeState.REJECTED}),
    HandshakeState.AUTHENTICATED: frozenset(),
    HandshakeState.REJECTED: frozenset(),
}


@dataclass
class Session:
    peer: str
    io: Any = field(default=None, repr=False)
    login: Optional[str] = None
    challenge_salt: Optional[str] = field(default=None, repr=False)
    state: HandshakeState = HandshakeState.AWAITING_LOGIN

    @property
    def authenticated(self) -> bool:
        return self.state is HandshakeState.AUTHENTICATED

    @property
    def finished(self) -> bool:
        return not _TRANSITIONS[self.state]

    def advance(self, new_state: HandshakeState) -> None:
        if new_state not in _TRANSITIONS[self.state]:
            raise ProtocolError(f"illegal handshake transition {self.state.value} -> {new_state.value}")
        self.state = new_state

    def set_login(self, login: str) -> None:
        if self.login is not None:
            raise ProtocolError("login already set for this session")
        self.login = login

    def set_salt(self, salt: str) -> None:
        if self.challenge_salt is not None:
            raise ProtocolError("challenge salt already issued for this session")
        self.challenge_salt = salt


@dataclass(frozen=True)
class SessionReport:
    outcome: SessionOutcome
    peer: str
    login: Optional[str] = None
    vectors_processed: int = 0
    detail: str = ""

    @property
    def ok(self) -> bool:
        return self.outcome is SessionOutcome.COMPLETED
