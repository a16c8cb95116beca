"""Library membership module."""

from .manager import MembershipManager
from .schemas import MemberCreate, MemberResponse, MemberUpdate

__all__ = [
    "MembershipManager",
    "MemberCreate",
    "MemberResponse",
    "MemberUpdate",
]
