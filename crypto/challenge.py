# MIT License © 2025 Motohiro Suzuki
"""
Salted SHA-1 challenge:
- salt     : 8 random bytes rendered as 16 uppercase hex chars
- response : uppercase(hex(SHA1(salt_hex || secret)))

SHA-1 here is the legacy wire contract, not a recommendation.
"""

from __future__ import annotations

import hmac
import os

from cryptography.hazmat.primitives import hashes


SALT_BYTES = 8
SALT_HEX_LEN = SALT_BYTES * 2
RESPONSE_HEX_LEN = 40


def generate_salt() -> str:
    return os.urandom(SALT_BYTES).hex().upper().zfill(SALT_HEX_LEN)


def compute_response(salt: str, secret: str) -> str:
    h = hashes.Hash(hashes.SHA1())
    h.update(salt.encode("utf-8") + secret.encode("utf-8"))
    return h.finalize().hex().upper()


def verify_response(received: bytes, salt: str, secret: str) -> bool:
    expected = compute_response(salt, secret).encode("ascii")
    return hmac.compare_digest(bytes(received), expected)
