"""Pydantic schemas for the book catalog."""

import re
from typing import Optional

from pydantic import BaseModel, Field, field_validator

TITLE_PATTERN = re.compile(r"^[A-Z].*")
AUTHOR_PATTERN = re.compile(r"^[A-Z][a-z]+ [A-Z][a-z]+$")


def _check_title(value: str) -> str:
    if len(value) < 3:
        raise ValueError("Min length is 3 characters")
    if not TITLE_PATTERN.match(value):
        raise ValueError("Must start with capital letter")
    return value


def _check_author(value: str) -> str:
    if not AUTHOR_PATTERN.match(value):
        raise ValueError(
            "Should contain two capitalized words, name and surname, separated by a space"
        )
    return value


class BookCreate(BaseModel):
    """Schema for registering a copy of a book."""

    title: str = Field(..., min_length=1, max_length=500)
    author: str = Field(..., min_length=1, max_length=500)

    @field_validator("title")
    @classmethod
    def title_format(cls, v: str) -> str:
        """Validate title format."""
        return _check_title(v.strip())

    @field_validator("author")
    @classmethod
    def author_format(cls, v: str) -> str:
        """Validate author format."""
        return _check_author(v.strip())


class BookUpdate(BaseModel):
    """Schema for updating a book.

    Blank title or author means "keep the current value".
    """

    title: Optional[str] = Field(None, max_length=500)
    author: Optional[str] = Field(None, max_length=500)
    amount: Optional[int] = Field(None, ge=0)

    @field_validator("title")
    @classmethod
    def title_format(cls, v: Optional[str]) -> Optional[str]:
        """Validate title format, treating blank as absent."""
        if v is None or not v.strip():
            return None
        return _check_title(v.strip())

    @field_validator("author")
    @classmethod
    def author_format(cls, v: Optional[str]) -> Optional[str]:
        """Validate author format, treating blank as absent."""
        if v is None or not v.strip():
            return None
        return _check_author(v.strip())


class BookResponse(BaseModel):
    """Schema for book responses."""

    id: int
    title: str
    author: str
    amount: int

    model_config = {"from_attributes": True}


class BorrowedTitle(BaseModel):
    """A title with at least one copy on loan."""

    title: str
    amount_borrowed: Optional[int] = None
