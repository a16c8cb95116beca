"""Pydantic schemas for lending reports."""

from pydantic import BaseModel


class LendingStats(BaseModel):
    """Overall lending statistics."""

    total_titles: int
    available_copies: int
    copies_on_loan: int
    total_members: int
    members_with_loans: int
    members_at_limit: int
    borrow_limit: int
