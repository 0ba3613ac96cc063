"""Password hashing helpers used before credentials reach the user service."""

from __future__ import annotations

import bcrypt


class PasswordHasher:
    """Salted one-way hashing backed by bcrypt at a configurable cost factor."""

    def __init__(self, rounds: int = 12) -> None:
        self._rounds = rounds

    def hash(self, password: str) -> str:
        """Return the bcrypt hash of ``password`` as text suitable for storage."""
        salt = bcrypt.gensalt(rounds=self._rounds)
        return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")

    def verify(self, password: str, hashed: str) -> bool:
        """Return ``True`` when ``password`` matches a hash produced by :meth:`hash`."""
        return bcrypt.checkpw(password.encode("utf-8"), hashed.encode("utf-8"))
