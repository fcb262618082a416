from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Generic, TypeVar


T = TypeVar("T")


class ErrorKind(str, Enum):
    NOT_FOUND = "NOT_FOUND"
    CONFLICT = "CONFLICT"
    INVALID_CREDENTIALS = "INVALID_CREDENTIALS"
    ACCOUNT_DISABLED = "ACCOUNT_DISABLED"
    ACCOUNT_LOCKED = "ACCOUNT_LOCKED"
    INVALID_TOKEN = "INVALID_TOKEN"
    TOKEN_EXPIRED = "TOKEN_EXPIRED"
    PASSWORD_MISMATCH = "PASSWORD_MISMATCH"
    FORBIDDEN = "FORBIDDEN"
    VALIDATION_ERROR = "VALIDATION_ERROR"


@dataclass(frozen=True)
class Result(Generic[T]):
    """Outcome of a core operation.

    Expected business-rule violations (wrong password, duplicate name, locked
    account) come back as a failed ``Result``; only infrastructure failures
    are raised.
    """

    ok: bool
    data: T | None = None
    messages: list[str] = field(default_factory=list)
    error: ErrorKind | None = None

    @classmethod
    def success(cls, data: T | None = None, message: str | None = None) -> "Result[T]":
        return cls(ok=True, data=data, messages=[message] if message else [])

    @classmethod
    def failure(cls, error: ErrorKind, *messages: str) -> "Result[T]":
        return cls(ok=False, error=error, messages=list(messages))

    @property
    def message(self) -> str | None:
        # First message is the headline shown to users.
        return self.messages[0] if self.messages else None
