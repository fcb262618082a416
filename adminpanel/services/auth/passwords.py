from __future__ import annotations

from typing import Protocol

from passlib.context import CryptContext

from adminpanel.core.config import get_settings


SALT_BYTES = 16
HASH_BYTES = 32
SCHEME = "pbkdf2_sha256"


class PasswordHasher(Protocol):
    def hash(self, password: str) -> str: ...

    def verify(self, password: str, hashed: str) -> bool: ...


class Pbkdf2PasswordHasher:
    """Salted PBKDF2-HMAC-SHA256 hashes in passlib's modular crypt format.

    Every call to :meth:`hash` draws a fresh random salt, so hashing the same
    password twice yields different strings that both verify. The round count
    is stored in the hash itself, so hashes made with a different work factor
    still verify.
    """

    def __init__(self, iterations: int | None = None) -> None:
        self.iterations = iterations or get_settings().password_hash_iterations
        self._context = CryptContext(
            schemes=[SCHEME],
            pbkdf2_sha256__rounds=self.iterations,
            pbkdf2_sha256__salt_size=SALT_BYTES,
        )

    def hash(self, password: str) -> str:
        return self._context.hash(password)

    def verify(self, password: str, hashed: str) -> bool:
        # Malformed stored hashes never verify; they are not an error for the caller.
        if not hashed:
            return False
        try:
            return self._context.verify(password, hashed)
        except (ValueError, TypeError):
            return False
