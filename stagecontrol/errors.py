"""Exception types shared by the store, the API and the console controller."""

from __future__ import annotations


class ConsoleError(RuntimeError):
    """Base class for errors raised by the user admin console."""


class ValidationError(ConsoleError, ValueError):
    """Raised when a user record is missing a required field or is malformed."""

    def __init__(self, message: str, *, field: str | None = None) -> None:
        super().__init__(message)
        self.field = field


class NotFound(ConsoleError, LookupError):
    """Raised when an update targets a record that does not exist."""


class StoreUnavailable(ConsoleError):
    """Raised when the record store cannot be reached or a query fails."""


class BadRequest(ConsoleError, ValueError):
    """Raised for malformed client payloads, e.g. a missing identifier."""


__all__ = [
    "BadRequest",
    "ConsoleError",
    "NotFound",
    "StoreUnavailable",
    "ValidationError",
]
