# MIT License © 2025 Motohiro Suzuki
"""
vcalc_core/credentials.py

Read-only login -> secret mapping, plus the flat-file loader.

File format:
  # comment
  login:secret
Split on the first ':'; login and secret are trimmed of spaces/tabs.
Duplicate logins: the last entry wins.
A missing file or a file with no valid entries is a startup failure.
"""

from __future__ import annotations

import logging
from pathlib import Path
from types import MappingProxyType
from typing import Dict, Iterator, Mapping

from protocol.errors import CredentialFileError


log = logging.getLogger(__name__)

_BLANKS = " \t"


class CredentialStore(Mapping[str, str]):
    def __init__(self, entries: Mapping[str, str] | None = None) -> None:
        self._users: Mapping[str, str] = MappingProxyType(dict(entries or {}))

    def exists(self, login: str) -> bool:
        return login in self._users

    def secret_of(self, login: str) -> str:
        return self._users[login]

    def __getitem__(self, login: str) -> str:
        return self._users[login]

    def __iter__(self) -> Iterator[str]:
        return iter(self._users)

    def __len__(self) -> int:
        return len(self._users)

    def __repr__(self) -> str:
        return f"CredentialStore(logins={sorted(self._users)!r})"


def parse_credentials(text: str, *, source: str = "<memory>") -> Dict[str, str]:
    users: Dict[str, str] = {}
    for lineno, line in enumerate(text.splitlines(), start=1):
        if not line or line.startswith("#"):
            continue

        login, sep, secret = line.partition(":")
        if not sep:
            log.warning("%s:%d: malformed line in user database (no ':')", source, lineno)
            continue

        login = login.strip(_BLANKS)
        secret = secret.strip(_BLANKS)
        if not login or not secret:
            log.warning("%s:%d: invalid user entry (empty login or secret)", source, lineno)
            continue

        if login in users:
            log.debug("%s:%d: duplicate login %r, later entry wins", source, lineno, login)
        users[login] = secret
        log.debug("loaded user: %s", login)
    return users


def load_credentials(path: str | Path) -> CredentialStore:
    p = Path(path)
    try:
        text = p.read_text(encoding="utf-8")
    except OSError as e:
        raise CredentialFileError(f"cannot open user database file: {p}: {e.strerror or e}") from e
    except UnicodeDecodeError as e:
        raise CredentialFileError(f"user database is not valid UTF-8: {p}") from e

    users = parse_credentials(text, source=str(p))
    if not users:
        raise CredentialFileError(f"no valid users found in database: {p}")

    log.info("loaded %d users from database: %s", len(users), p)
    return CredentialStore(users)
