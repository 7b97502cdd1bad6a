"""Password hashing and verification backed by bcrypt."""

from __future__ import annotations

from typing import Protocol

import bcrypt


class PasswordHasher(Protocol):
    def hash_password(self, password: str) -> str:
        """Return a one-way hash of ``password`` suitable for storage."""

    def verify_password(self, password: str, password_hash: str) -> bool:
        """Return ``True`` when ``password`` matches ``password_hash``."""


class BcryptPasswordHasher:
    """Salted bcrypt hashes with a configurable work factor."""

    def __init__(self, rounds: int = 12) -> None:
        self._rounds = rounds

    def hash_password(self, password: str) -> str:
        salt = bcrypt.gensalt(rounds=self._rounds)
        return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")

    def verify_password(self, password: str, password_hash: str) -> bool:
        try:
            return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
        except ValueError:
            # malformed stored hash
            return False
