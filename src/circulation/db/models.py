"""SQLAlchemy ORM models for the inventory store.

Tables:
- books: Catalog records with the available-copy counter
- members: Library members
- holdings: Which member currently holds a copy of which book
- member_names: Names reserved while member names must be unique
"""

from datetime import datetime, timezone

from sqlalchemy import (
    CheckConstraint,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


def utc_now() -> str:
    """Current UTC time as an ISO string."""
    return datetime.now(timezone.utc).isoformat()


class Holding(Base):
    """Holding model - one member holding one copy of one book.

    This table is the only source of truth for who holds what. ``Book.holders``
    and ``Member.books`` are read-only views over it.
    """

    __tablename__ = "holdings"

    member_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("members.id", ondelete="RESTRICT"),
        primary_key=True,
    )
    book_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("books.id", ondelete="RESTRICT"),
        primary_key=True,
        index=True,
    )
    borrowed_at: Mapped[str] = mapped_column(String(32), default=utc_now)

    def __repr__(self) -> str:
        return f"<Holding(member_id={self.member_id}, book_id={self.book_id})>"


class Book(Base):
    """Book model - a catalog entry and its available copies."""

    __tablename__ = "books"
    __table_args__ = (
        UniqueConstraint("title", "author", name="uq_books_title_author"),
        CheckConstraint("amount >= 0", name="ck_books_amount_non_negative"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    title: Mapped[str] = mapped_column(String(500), nullable=False, index=True)
    author: Mapped[str] = mapped_column(String(500), nullable=False, index=True)

    # Available copies; copies on loan are counted by holdings rows
    amount: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    # Optimistic lock
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    # Timestamps
    created_at: Mapped[str] = mapped_column(String(32), default=utc_now)
    updated_at: Mapped[str] = mapped_column(String(32), default=utc_now, onupdate=utc_now)

    # Relationships
    holders: Mapped[list["Member"]] = relationship(
        "Member",
        secondary="holdings",
        viewonly=True,
        order_by="Member.id",
    )

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return f"<Book(id={self.id}, title='{self.title}', amount={self.amount})>"


class Member(Base):
    """Member model - people who borrow books."""

    __tablename__ = "members"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False, index=True)

    # Set once on creation
    membership_date: Mapped[str] = mapped_column(String(32), nullable=False, default=utc_now)

    # Optimistic lock, bumped on every lending change
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    updated_at: Mapped[str] = mapped_column(String(32), default=utc_now, onupdate=utc_now)

    books: Mapped[list["Book"]] = relationship(
        "Book",
        secondary="holdings",
        viewonly=True,
        order_by="Book.id",
    )

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return f"<Member(id={self.id}, name='{self.name}')>"


class MemberName(Base):
    """Reserved member name, one row per member while names must be unique.

    The primary key makes two concurrent registrations of the same name
    collide at the store.
    """

    __tablename__ = "member_names"

    name: Mapped[str] = mapped_column(String(200), primary_key=True)
    member_id: Mapped[int] = mapped_column(
        Integer,
        ForeignKey("members.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )

    def __repr__(self) -> str:
        return f"<MemberName(name='{self.name}', member_id={self.member_id})>"
