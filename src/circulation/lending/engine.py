"""Lending engine: applies borrow and return decisions atomically.

Each request loads the member and the book, asks a ``LendingPolicy`` what to
do, then moves one copy between ``Book.amount`` and the ``holdings`` table.
Both rows are versioned, so a concurrent request touching the same book or
member makes one of the two commits fail and be retried by the transaction
boundary.
"""

from typing import Optional

from sqlalchemy.orm import Session
from sqlalchemy.orm.attributes import flag_modified

from ..catalog.manager import load_book
from ..catalog.schemas import BookResponse
from ..config import Config, get_config
from ..db.models import Book, Holding, Member, utc_now
from ..db.sqlite import Database, get_db
from ..exceptions import (
    BookCantBeBorrowedError,
    CirculationError,
    HoldingNotFoundError,
)
from ..log import get_logger
from ..membership.manager import count_held, held_books, load_member
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

logger = get_logger(__name__)


class LendingEngine:
    """Coordinates books and members for borrow and return requests."""

    def __init__(
        self,
        db: Optional[Database] = None,
        config: Optional[Config] = None,
        policy: Optional[LendingPolicy] = None,
    ):
        """Initialize lending engine.

        Args:
            db: Database instance
            config: Configuration, for the borrow limit
            policy: Policy used by ``toggle_loan`` (default ``TogglePolicy``)
        """
        self.db = db or get_db()
        self.config = config or get_config()
        self.policy = policy or TogglePolicy()

    @property
    def borrow_limit(self) -> int:
        return self.config.borrow_limit

    def toggle_loan(self, member_id: int, book_id: int) -> list[BookResponse]:
        """Borrow the book, or return it if the member already holds it.

        Returns:
            The member's held books after the change

        Raises:
            MemberNotFoundError, BookNotFoundError: unknown ids
            BookCantBeBorrowedError: no copies left or borrow limit reached
            ConflictError: lost a concurrent update race on every attempt
        """
        return self.apply(member_id, book_id, self.policy)

    def borrow_book(self, member_id: int, book_id: int) -> list[BookResponse]:
        """Borrow one copy of a book.

        Raises:
            BookCantBeBorrowedError: no copies left, already held, or limit reached
        """
        return self.apply(member_id, book_id, BorrowPolicy())

    def return_book(self, member_id: int, book_id: int) -> list[BookResponse]:
        """Return a held copy of a book.

        Raises:
            HoldingNotFoundError: the member does not hold this book
        """
        return self.apply(member_id, book_id, ReturnPolicy())

    def held_books(self, member_id: int) -> list[BookResponse]:
        """Books currently held by a member."""
        with self.db.get_session() as session:
            load_member(session, member_id)
            return [BookResponse.model_validate(b) for b in held_books(session, member_id)]

    def apply(
        self, member_id: int, book_id: int, policy: LendingPolicy
    ) -> list[BookResponse]:
        """Run one lending request under ``policy`` as a single transaction."""

        def _run(session: Session) -> tuple[LoanAction, list[BookResponse]]:
            member = load_member(session, member_id)
            book = load_book(session, book_id)
            holding = session.get(Holding, (member.id, book.id))

            context = LendingContext(
                holds=holding is not None,
                held_count=count_held(session, member.id),
                borrow_limit=self.borrow_limit,
            )
            decision = policy.decide(member, book, context)

            if decision.action is LoanAction.REJECT:
                raise self._rejection(decision, member, book)

            if decision.action is LoanAction.BORROW:
                self._lend(session, member, book, holding)
            else:
                self._take_back(session, member, book, holding)

            # Touch the member so its version guards the held set
            member.updated_at = utc_now()
            flag_modified(member, "updated_at")
            session.flush()

            books = [BookResponse.model_validate(b) for b in held_books(session, member.id)]
            return decision.action, books

        try:
            action, books = self.db.run_in_transaction(_run)
        except CirculationError as e:
            logger.info(
                "%s rejected for member=%s book=%s: %s",
                policy.name,
                member_id,
                book_id,
                e.message,
            )
            raise

        logger.info(
            "Member %s %s book %s (%s policy), now holds %d",
            member_id,
            "borrowed" if action is LoanAction.BORROW else "returned",
            book_id,
            policy.name,
            len(books),
        )
        return books

    def _lend(
        self, session: Session, member: Member, book: Book, holding: Optional[Holding]
    ) -> None:
        # Invariants hold whatever the policy decided
        if holding is not None:
            raise self._rejection(Decision.reject(RejectReason.ALREADY_HELD), member, book)
        if book.amount <= 0:
            raise self._rejection(Decision.reject(RejectReason.NO_COPIES), member, book)

        book.amount -= 1
        session.add(Holding(member_id=member.id, book_id=book.id))

    def _take_back(
        self, session: Session, member: Member, book: Book, holding: Optional[Holding]
    ) -> None:
        if holding is None:
            raise self._rejection(Decision.reject(RejectReason.NOT_HELD), member, book)

        book.amount += 1
        session.delete(holding)

    def _rejection(self, decision: Decision, member: Member, book: Book) -> CirculationError:
        reason = decision.reason
        if reason is RejectReason.NOT_HELD:
            return HoldingNotFoundError(member.id, book.id)
        if reason is RejectReason.NO_COPIES:
            message = f"Amount of books with id {book.id} is 0"
        elif reason is RejectReason.ALREADY_HELD:
            message = (
                f"Book with id {book.id} is already borrowed by member with id {member.id}"
            )
        else:
            message = (
                f"Member with id {member.id} borrowed max allowed "
                f"({self.borrow_limit}) amount of books"
            )
        return BookCantBeBorrowedError(message)
