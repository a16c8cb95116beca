"""Lending module.

Provides functionality for:
- Toggling a loan (borrow if not held, return if held)
- Explicit borrow and return requests
- Swappable lending policies
"""

from .engine import LendingEngine
from .policy import (
    BorrowPolicy,
    Decision,
    LendingContext,
    LendingPolicy,
    LoanAction,
    RejectReason,
    ReturnPolicy,
    TogglePolicy,
)

__all__ = [
    "LendingEngine",
    "LendingPolicy",
    "TogglePolicy",
    "BorrowPolicy",
    "ReturnPolicy",
    "Decision",
    "LendingContext",
    "LoanAction",
    "RejectReason",
]
