"""Read-only reports over the current lending state."""

from typing import Optional

from sqlalchemy import func, select

from ..catalog.schemas import BorrowedTitle
from ..config import Config, get_config
from ..db.models import Book, Holding, Member
from ..db.sqlite import Database, get_db
from .schemas import LendingStats


class ReportManager:
    """Builds lending reports by scanning the inventory store."""

    def __init__(self, db: Optional[Database] = None, config: Optional[Config] = None):
        self.db = db or get_db()
        self.config = config or get_config()

    def borrowed_titles(self, with_counts: bool = False) -> list[BorrowedTitle]:
        """Titles with at least one copy on loan.

        Copies on loan are summed per title, so two books sharing a title by
        different authors appear once.

        Args:
            with_counts: Fill in ``amount_borrowed``

        Returns:
            Titles ordered alphabetically
        """
        with self.db.get_session() as session:
            stmt = (
                select(Book.title, func.count(Holding.member_id))
                .join(Holding, Holding.book_id == Book.id)
                .group_by(Book.title)
                .order_by(Book.title)
            )
            rows = session.execute(stmt).all()

        return [
            BorrowedTitle(title=title, amount_borrowed=count if with_counts else None)
            for title, count in rows
        ]

    def loan_counts(self) -> dict[int, int]:
        """Number of holders per book id, for books with any holder."""
        with self.db.get_session() as session:
            stmt = (
                select(Holding.book_id, func.count(Holding.member_id))
                .group_by(Holding.book_id)
                .order_by(Holding.book_id)
            )
            return {book_id: count for book_id, count in session.execute(stmt).all()}

    def get_stats(self) -> LendingStats:
        """Get overall lending statistics.

        Returns:
            LendingStats with counts
        """
        limit = self.config.borrow_limit
        with self.db.get_session() as session:
            total_titles = session.execute(
                select(func.count()).select_from(Book)
            ).scalar() or 0

            available_copies = session.execute(
                select(func.coalesce(func.sum(Book.amount), 0))
            ).scalar() or 0

            copies_on_loan = session.execute(
                select(func.count()).select_from(Holding)
            ).scalar() or 0

            total_members = session.execute(
                select(func.count()).select_from(Member)
            ).scalar() or 0

            per_member = (
                select(Holding.member_id, func.count().label("held"))
                .group_by(Holding.member_id)
                .subquery()
            )
            members_with_loans = session.execute(
                select(func.count()).select_from(per_member)
            ).scalar() or 0

            members_at_limit = session.execute(
                select(func.count())
                .select_from(per_member)
                .where(per_member.c.held >= limit)
            ).scalar() or 0

        return LendingStats(
            total_titles=total_titles,
            available_copies=available_copies,
            copies_on_loan=copies_on_loan,
            total_members=total_members,
            members_with_loans=members_with_loans,
            members_at_limit=members_at_limit,
            borrow_limit=limit,
        )
