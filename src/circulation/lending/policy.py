"""Lending policies.

A policy looks at a member, a book and the current holding state and decides
whether the request is a borrow, a return, or must be rejected. Policies never
touch the database; ``LendingEngine`` applies their decisions.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from ..db.models import Book, Member


class LoanAction(str, Enum):
    """What a lending request turns into."""

    BORROW = "borrow"
    RETURN = "return"
    REJECT = "reject"


class RejectReason(str, Enum):
    """Why a lending request was refused."""

    NO_COPIES = "no_copies"
    ALREADY_HELD = "already_held"
    LIMIT_REACHED = "limit_reached"
    NOT_HELD = "not_held"


@dataclass(frozen=True)
class LendingContext:
    """Holding state observed inside the transaction."""

    holds: bool  # member already holds this book
    held_count: int
    borrow_limit: int

    @property
    def at_limit(self) -> bool:
        return self.held_count >= self.borrow_limit


@dataclass(frozen=True)
class Decision:
    """Outcome of a policy check."""

    action: LoanAction
    reason: Optional[RejectReason] = None

    @classmethod
    def borrow(cls) -> "Decision":
        return cls(LoanAction.BORROW)

    @classmethod
    def give_back(cls) -> "Decision":
        return cls(LoanAction.RETURN)

    @classmethod
    def reject(cls, reason: RejectReason) -> "Decision":
        return cls(LoanAction.REJECT, reason)


class LendingPolicy(ABC):
    """Decides the direction of a lending request."""

    name: str = "base"

    @abstractmethod
    def decide(self, member: Member, book: Book, context: LendingContext) -> Decision:
        """Decide whether to borrow, return, or reject."""


def _check_borrow(book: Book, context: LendingContext) -> Decision:
    if book.amount <= 0:
        return Decision.reject(RejectReason.NO_COPIES)
    if context.at_limit:
        return Decision.reject(RejectReason.LIMIT_REACHED)
    return Decision.borrow()


class TogglePolicy(LendingPolicy):
    """Return the book if the member holds it, otherwise borrow it."""

    name = "toggle"

    def decide(self, member: Member, book: Book, context: LendingContext) -> Decision:
        if context.holds:
            return Decision.give_back()
        return _check_borrow(book, context)


class BorrowPolicy(LendingPolicy):
    """Borrow only; holding the book already is an error."""

    name = "borrow"

    def decide(self, member: Member, book: Book, context: LendingContext) -> Decision:
        if book.amount <= 0:
            return Decision.reject(RejectReason.NO_COPIES)
        if context.holds:
            return Decision.reject(RejectReason.ALREADY_HELD)
        if context.at_limit:
            return Decision.reject(RejectReason.LIMIT_REACHED)
        return Decision.borrow()


class ReturnPolicy(LendingPolicy):
    """Return only; the member must hold the book."""

    name = "return"

    def decide(self, member: Member, book: Book, context: LendingContext) -> Decision:
        if not context.holds:
            return Decision.reject(RejectReason.NOT_HELD)
        return Decision.give_back()
