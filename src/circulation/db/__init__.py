"""Database module for the SQLite inventory store."""

from .models import Base, Book, Holding, Member, MemberName
from .sqlite import Database, get_db, reset_db

__all__ = [
    "Base",
    "Book",
    "Holding",
    "Member",
    "MemberName",
    "Database",
    "get_db",
    "reset_db",
]
