# MIT License © 2025 Motohiro Suzuki
"""
protocol/handshake.py

Login / salt / hash exchange.

Wire (no length prefixes, no terminators):
  client -> server : login            one raw read, at most 255 bytes
  server -> client : "ERR"            unknown login, exchange ends here
  server -> client : salt             16 ASCII uppercase hex chars
  client -> server : response         one raw read, at most 40 bytes
                                      expected uppercase(hex(SHA1(salt || secret)))
  server -> client : "OK" | "ERR"

Known logins get a salt and unknown ones do not, so the reply shape reveals
whether a login exists. The engine never closes the connection.
"""

from __future__ import annotations

import logging

from crypto.challenge import RESPONSE_HEX_LEN, SALT_HEX_LEN, compute_response, generate_salt, verify_response
from protocol.errors import ProtocolError
from protocol.session import HandshakeState, Session
from transport.io_async import AsyncStreamIO
from vcalc_core.credentials import CredentialStore


log = logging.getLogger(__name__)

LOGIN_BUFFER = 255
RESPONSE_BUFFER = RESPONSE_HEX_LEN

MSG_OK = b"OK"
MSG_ERR = b"ERR"

_HEX_UPPER = frozenset("0123456789ABCDEF")


async def server_handshake(session: Session, credentials: CredentialStore) -> bool:
    io: AsyncStreamIO = session.io
    if session.state is not HandshakeState.AWAITING_LOGIN:
        raise ProtocolError(f"handshake already run for this session (state={session.state.value})")

    log.debug("waiting for login from %s", session.peer)
    raw_login = await io.read_chunk(LOGIN_BUFFER)
    session.set_login(raw_login.decode("utf-8", errors="replace"))
    session.advance(HandshakeState.CHECKING_USER)
    log.info("authentication attempt for user: %s", session.login)

    if not credentials.exists(session.login):
        log.warning("user not found: %s", session.login)
        session.advance(HandshakeState.REJECTED)
        await io.write_all(MSG_ERR)
        return False

    salt = generate_salt()
    session.set_salt(salt)
    session.advance(HandshakeState.SALT_SENT)
    await io.write_all(salt.encode("ascii"))
    log.debug("sent salt to %s: %s", session.peer, salt)

    session.advance(HandshakeState.AWAITING_RESPONSE)
    received = await io.read_chunk(RESPONSE_BUFFER)
    log.debug("received hash from %s: %r", session.peer, received)

    secret = credentials.secret_of(session.login)
    if verify_response(received, salt, secret):
        session.advance(HandshakeState.AUTHENTICATED)
        log.info("user authenticated successfully: %s", session.login)
        await io.write_all(MSG_OK)
        return True

    session.advance(HandshakeState.REJECTED)
    log.warning("authentication failed for user: %s", session.login)
    log.debug("expected hash: %s", compute_response(salt, secret))
    await io.write_all(MSG_ERR)
    return False


async def client_handshake(io: AsyncStreamIO, login: str, secret: str) -> bool:
    raw_login = login.encode("utf-8")
    if not raw_login or len(raw_login) > LOGIN_BUFFER:
        raise ProtocolError(f"login must be 1..{LOGIN_BUFFER} bytes")
    await io.write_all(raw_login)

    buf = b""
    while len(buf) < SALT_HEX_LEN and buf != MSG_ERR:
        buf += await io.read_chunk(SALT_HEX_LEN - len(buf))
    if buf == MSG_ERR:
        log.warning("server rejected login %s", login)
        return False

    salt = buf.decode("ascii", errors="replace")
    if not set(salt) <= _HEX_UPPER:
        raise ProtocolError(f"malformed salt from server: {buf!r}")

    await io.write_all(compute_response(salt, secret).encode("ascii"))

    reply = b""
    while reply not in (MSG_OK, MSG_ERR):
        if len(reply) >= len(MSG_ERR):
            raise ProtocolError(f"unexpected auth reply: {reply!r}")
        reply += await io.read_chunk(len(MSG_ERR) - len(reply))
    return reply == MSG_OK
