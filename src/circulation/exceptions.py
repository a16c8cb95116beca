"""Domain exception classes for lending and catalog errors.

Every error is recoverable at the boundary. ``to_dict`` renders the
structured error body shown to clients.
"""

from datetime import datetime, timezone
from typing import Any, Optional


class CirculationError(Exception):
    """Base class for all circulation errors."""

    status: int = 400
    error: str = "BAD_REQUEST"

    def __init__(self, message: str, value: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.value = value

    def to_dict(self) -> dict[str, Any]:
        """Render the error as a structured response body."""
        detail: dict[str, Any] = {"message": self.message}
        if self.value is not None:
            detail["value"] = self.value
        return {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "status": self.status,
            "error": self.error,
            "details": [detail],
        }


class NotFoundError(CirculationError):
    """Raised when a referenced record does not exist."""

    status = 404
    error = "NOT_FOUND"


class BookNotFoundError(NotFoundError):
    """Raised when a book id does not resolve."""

    def __init__(self, book_id: int):
        super().__init__(f"Book not found by id {book_id}", value=str(book_id))
        self.book_id = book_id


class MemberNotFoundError(NotFoundError):
    """Raised when a member id or name does not resolve."""

    def __init__(self, key: Any, by: str = "id"):
        super().__init__(f"Member not found by {by} {key}", value=str(key))
        self.key = key


class HoldingNotFoundError(NotFoundError):
    """Raised when returning a book the member does not hold."""

    def __init__(self, member_id: int, book_id: int):
        super().__init__(
            f"Member with id {member_id} does not hold book with id {book_id}"
        )
        self.member_id = member_id
        self.book_id = book_id


class BookCantBeBorrowedError(CirculationError):
    """Raised on zero stock, duplicate hold, or a reached borrow limit."""


class CantBeDeletedError(CirculationError):
    """Raised when deleting a record still referenced by a holding."""


class NotUniqueError(CirculationError):
    """Raised when a create or update would collide with an existing record."""


class ConflictError(CirculationError):
    """Raised when a concurrent mutation won the race. Safe to resubmit."""

    status = 409
    error = "CONFLICT"
