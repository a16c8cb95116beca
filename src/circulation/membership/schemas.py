"""Pydantic schemas for library members."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator


class MemberCreate(BaseModel):
    """Schema for creating a member."""

    name: str = Field(..., min_length=1, max_length=200)

    @field_validator("name")
    @classmethod
    def name_not_blank(cls, v: str) -> str:
        """Reject blank names."""
        if not v.strip():
            raise ValueError("Can't be blank")
        return v.strip()


class MemberUpdate(BaseModel):
    """Schema for updating a member. Blank name keeps the current one."""

    name: Optional[str] = Field(None, max_length=200)

    @field_validator("name")
    @classmethod
    def blank_as_absent(cls, v: Optional[str]) -> Optional[str]:
        """Treat a blank name as not supplied."""
        if v is None or not v.strip():
            return None
        return v.strip()


class MemberResponse(BaseModel):
    """Schema for member responses."""

    id: int
    name: str
    membership_date: datetime

    model_config = {"from_attributes": True}
