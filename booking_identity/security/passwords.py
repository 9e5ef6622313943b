"""One-way password hashing backed by bcrypt."""

from __future__ import annotations

import bcrypt

from ..domain.errors import ValidationError

# bcrypt only reads the first 72 bytes of its input.
MAX_PASSWORD_BYTES = 72


class CredentialStore:
    """Hash and verify account passwords with a fixed bcrypt cost factor."""

    def __init__(self, rounds: int = 12) -> None:
        self._rounds = rounds
        # Used to equalise timing when the account being logged into does not exist.
        self._dummy_hash = bcrypt.hashpw(b"booking-identity", bcrypt.gensalt(rounds=rounds))

    def hash(self, password: str) -> str:
        """Return a salted bcrypt hash; identical inputs produce different outputs."""
        encoded = self._encode(password)
        if not encoded:
            raise ValidationError("password must not be empty")
        if len(encoded) > MAX_PASSWORD_BYTES:
            raise ValidationError(f"password must be at most {MAX_PASSWORD_BYTES} bytes")
        return bcrypt.hashpw(encoded, bcrypt.gensalt(rounds=self._rounds)).decode("utf-8")

    def verify(self, password: str, password_hash: str | None) -> bool:
        """Return ``True`` iff ``password`` matches ``password_hash``."""
        encoded = self._encode(password)
        if not password_hash or not encoded or len(encoded) > MAX_PASSWORD_BYTES:
            return False
        try:
            return bcrypt.checkpw(encoded, password_hash.encode("utf-8"))
        except ValueError:
            # malformed stored hash
            return False

    def dummy_verify(self, password: str) -> None:
        encoded = self._encode(password)[:MAX_PASSWORD_BYTES] or b"-"
        bcrypt.checkpw(encoded, self._dummy_hash)

    @staticmethod
    def _encode(password: str | None) -> bytes:
        return (password or "").encode("utf-8")
