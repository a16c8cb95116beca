"""Pydantic schemas shared across modules."""

from typing import Generic, TypeVar

from pydantic import BaseModel, Field

T = TypeVar("T")


class Page(BaseModel, Generic[T]):
    """One page of a listing."""

    items: list[T]
    total: int
    page: int = Field(..., ge=0)
    size: int = Field(..., ge=1)

    @property
    def pages(self) -> int:
        """Total number of pages."""
        return (self.total + self.size - 1) // self.size
