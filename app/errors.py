"""
Errors raised by the restock services.

Routers translate these into HTTP responses:

    ValidationError      -> 400 (nothing was changed)
    NotFoundError        -> 404
    ConflictError        -> 409
    TransientStoreError  -> 503 (safe to retry reads; re-read truth after writes)
"""

from __future__ import annotations

from typing import Any


class RestockError(Exception):
    """Base class for every error the restock services raise on purpose."""

    def __init__(self, message: str, **data: Any) -> None:
        super().__init__(message)
        self.message = message
        self.data = data

    def as_dict(self) -> dict[str, Any]:
        return {'error': type(self).__name__, 'message': self.message, 'data': self.data}


class ValidationError(RestockError, ValueError):
    """Malformed input caught before any mutation."""


class EmptySubmission(ValidationError):
    """A counting session had nothing flagged for order."""

    def __init__(self, message: str = 'Nothing to order', **data: Any) -> None:
        super().__init__(message, **data)


class NotFoundError(RestockError, LookupError):
    """A referenced product, order or line no longer exists."""


class TransientStoreError(RestockError):
    """The backing store call failed; partial writes must not be trusted."""


class RankPersistenceError(TransientStoreError):
    """A rank rewrite failed part way. `authoritative` holds the reloaded collection."""

    def __init__(self, message: str, *, authoritative: list | None = None, **data: Any) -> None:
        super().__init__(message, **data)
        self.authoritative = authoritative or []


class ConflictError(RestockError):
    """The change would orphan history, e.g. deleting a location that still has orders."""
