"""Membership manager for member lifecycle operations."""

from typing import Optional

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session

from ..catalog.schemas import BookResponse
from ..config import Config, get_config
from ..db.models import Book, Holding, Member, MemberName
from ..db.sqlite import Database, get_db
from ..exceptions import CantBeDeletedError, MemberNotFoundError, NotUniqueError
from ..log import get_logger
from ..schemas import Page
from .schemas import MemberCreate, MemberResponse, MemberUpdate

logger = get_logger(__name__)


def load_member(session: Session, member_id: int) -> Member:
    """Load a member inside ``session`` or raise ``MemberNotFoundError``."""
    member = session.get(Member, member_id)
    if member is None:
        raise MemberNotFoundError(member_id)
    return member


def held_books(session: Session, member_id: int) -> list[Book]:
    """Books currently held by a member, ordered by id."""
    stmt = (
        select(Book)
        .join(Holding, Holding.book_id == Book.id)
        .where(Holding.member_id == member_id)
        .order_by(Book.id)
    )
    return list(session.execute(stmt).scalars().all())


def count_held(session: Session, member_id: int) -> int:
    """Number of books currently held by a member."""
    stmt = select(func.count()).select_from(Holding).where(Holding.member_id == member_id)
    return session.execute(stmt).scalar() or 0


class MembershipManager:
    """Manages library members."""

    def __init__(self, db: Optional[Database] = None, config: Optional[Config] = None):
        """Initialize membership manager.

        Args:
            db: Database instance
            config: Configuration, for the name uniqueness rule
        """
        self.db = db or get_db()
        self.config = config or get_config()

    def _check_name_free(
        self, session: Session, name: str, exclude_id: Optional[int] = None
    ) -> None:
        if not self.config.unique_member_names:
            return
        stmt = select(Member.id).where(Member.name == name)
        if exclude_id is not None:
            stmt = stmt.where(Member.id != exclude_id)
        if session.execute(stmt).first() is not None:
            raise NotUniqueError(f"Member with name '{name}' already exists", value=name)

    def _reserve_name(self, session: Session, member: Member) -> None:
        # A concurrent holder of the same name fails the flush or commit
        session.execute(delete(MemberName).where(MemberName.member_id == member.id))
        if self.config.unique_member_names:
            session.add(MemberName(name=member.name, member_id=member.id))

    def create_member(self, data: MemberCreate) -> MemberResponse:
        """Create a new member, stamped with the current time.

        Raises:
            NotUniqueError: if names must be unique and the name is taken
        """

        def _create(session: Session) -> MemberResponse:
            self._check_name_free(session, data.name)
            member = Member(name=data.name)
            session.add(member)
            session.flush()
            self._reserve_name(session, member)
            session.flush()
            return MemberResponse.model_validate(member)

        member = self.db.run_in_transaction(_create)
        logger.info("Created member id=%s '%s'", member.id, member.name)
        return member

    def get_member(self, member_id: int) -> MemberResponse:
        """Get a member by ID.

        Raises:
            MemberNotFoundError: if the id is unknown
        """
        with self.db.get_session() as session:
            return MemberResponse.model_validate(load_member(session, member_id))

    def get_member_by_name(self, name: str) -> MemberResponse:
        """Get the first member with an exact name.

        Raises:
            MemberNotFoundError: if no member has that name
        """
        with self.db.get_session() as session:
            stmt = select(Member).where(Member.name == name).order_by(Member.id).limit(1)
            member = session.execute(stmt).scalar_one_or_none()
            if member is None:
                raise MemberNotFoundError(name, by="name")
            return MemberResponse.model_validate(member)

    def list_members(
        self,
        name: Optional[str] = None,
        page: int = 0,
        size: int = 20,
    ) -> Page[MemberResponse]:
        """List members, optionally only those with an exact name."""
        with self.db.get_session() as session:
            stmt = select(Member)
            if name:
                stmt = stmt.where(Member.name == name)

            total = session.execute(
                select(func.count()).select_from(stmt.subquery())
            ).scalar() or 0

            members = session.execute(
                stmt.order_by(Member.id).offset(page * size).limit(size)
            ).scalars().all()

            return Page[MemberResponse](
                items=[MemberResponse.model_validate(m) for m in members],
                total=total,
                page=page,
                size=size,
            )

    def update_member(self, member_id: int, data: MemberUpdate) -> MemberResponse:
        """Update a member's name. The membership date never changes.

        Raises:
            MemberNotFoundError: if the id is unknown
            NotUniqueError: if names must be unique and the name is taken
        """

        def _update(session: Session) -> MemberResponse:
            member = load_member(session, member_id)
            if data.name and data.name != member.name:
                self._check_name_free(session, data.name, exclude_id=member.id)
                member.name = data.name
                self._reserve_name(session, member)
            session.flush()
            return MemberResponse.model_validate(member)

        response = self.db.run_in_transaction(_update)
        logger.info("Updated member id=%s", member_id)
        return response

    def delete_member(self, member_id: int) -> None:
        """Delete a member.

        Raises:
            MemberNotFoundError: if the id is unknown
            CantBeDeletedError: if the member still holds books
        """

        def _delete(session: Session) -> None:
            member = load_member(session, member_id)
            if count_held(session, member.id) > 0:
                raise CantBeDeletedError(
                    "Member can't be deleted because they haven't returned all borrowed books yet"
                )
            session.execute(delete(MemberName).where(MemberName.member_id == member.id))
            session.delete(member)

        self.db.run_in_transaction(_delete)
        logger.info("Deleted member id=%s", member_id)

    def borrowed_books(
        self,
        member_id: Optional[int] = None,
        name: Optional[str] = None,
    ) -> list[BookResponse]:
        """Books currently held by a member, looked up by id or name.

        Raises:
            MemberNotFoundError: if the member does not exist
            ValueError: if neither id nor name is given
        """
        if member_id is None and not name:
            raise ValueError("Either member_id or name is required")

        if member_id is None:
            member_id = self.get_member_by_name(name).id

        with self.db.get_session() as session:
            load_member(session, member_id)
            return [BookResponse.model_validate(b) for b in held_books(session, member_id)]
