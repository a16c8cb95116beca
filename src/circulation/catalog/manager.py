"""Catalog manager for book lifecycle operations."""

from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from ..db.models import Book, Holding
from ..db.sqlite import Database, get_db
from ..exceptions import BookNotFoundError, CantBeDeletedError, NotUniqueError
from ..log import get_logger
from ..schemas import Page
from .schemas import BookCreate, BookResponse, BookUpdate, BorrowedTitle

logger = get_logger(__name__)


def load_book(session: Session, book_id: int) -> Book:
    """Load a book inside ``session`` or raise ``BookNotFoundError``."""
    book = session.get(Book, book_id)
    if book is None:
        raise BookNotFoundError(book_id)
    return book


def has_holders(session: Session, book_id: int) -> bool:
    """Check the holding relation for any edge to ``book_id``."""
    stmt = select(Holding.member_id).where(Holding.book_id == book_id).limit(1)
    return session.execute(stmt).first() is not None


class CatalogManager:
    """Manages book records."""

    def __init__(self, db: Optional[Database] = None):
        """Initialize catalog manager.

        Args:
            db: Database instance
        """
        self.db = db or get_db()

    def create_book(self, data: BookCreate) -> BookResponse:
        """Register one copy of a book.

        If a book with the same title and author exists its available count
        is incremented instead of inserting a new record.

        Args:
            data: Book creation data

        Returns:
            The created or merged book
        """

        def _create(session: Session) -> tuple[BookResponse, bool]:
            stmt = select(Book).where(
                Book.title == data.title,
                Book.author == data.author,
            )
            book = session.execute(stmt).scalar_one_or_none()

            merged = book is not None
            if book is not None:
                book.amount += 1
            else:
                book = Book(title=data.title, author=data.author, amount=1)
                session.add(book)

            session.flush()
            return BookResponse.model_validate(book), merged

        response, merged = self.db.run_in_transaction(_create)
        if merged:
            logger.info(
                "Merged duplicate book id=%s, amount now %s", response.id, response.amount
            )
        else:
            logger.info("Created book id=%s '%s'", response.id, response.title)
        return response

    def get_book(self, book_id: int) -> BookResponse:
        """Get a book by ID.

        Raises:
            BookNotFoundError: if the id is unknown
        """
        with self.db.get_session() as session:
            return BookResponse.model_validate(load_book(session, book_id))

    def list_books(
        self,
        title: Optional[str] = None,
        author: Optional[str] = None,
        page: int = 0,
        size: int = 20,
    ) -> Page[BookResponse]:
        """List books with optional filters.

        Args:
            title: Case-insensitive title substring
            author: Case-insensitive author substring
            page: Zero-based page number
            size: Page size

        Returns:
            Page of books ordered by id
        """
        with self.db.get_session() as session:
            stmt = select(Book)
            if title:
                stmt = stmt.where(func.lower(Book.title).contains(title.lower()))
            if author:
                stmt = stmt.where(func.lower(Book.author).contains(author.lower()))

            total = session.execute(
                select(func.count()).select_from(stmt.subquery())
            ).scalar() or 0

            books = session.execute(
                stmt.order_by(Book.id).offset(page * size).limit(size)
            ).scalars().all()

            return Page[BookResponse](
                items=[BookResponse.model_validate(b) for b in books],
                total=total,
                page=page,
                size=size,
            )

    def update_book(self, book_id: int, data: BookUpdate) -> BookResponse:
        """Update a book.

        Only supplied fields change. A new title/author pair may not match a
        different existing book.

        Raises:
            BookNotFoundError: if the id is unknown
            NotUniqueError: if the new pair collides with another book
        """

        def _update(session: Session) -> BookResponse:
            book = load_book(session, book_id)

            new_title = data.title or book.title
            new_author = data.author or book.author
            if (new_title, new_author) != (book.title, book.author):
                clash = session.execute(
                    select(Book.id).where(
                        Book.title == new_title,
                        Book.author == new_author,
                        Book.id != book.id,
                    )
                ).first()
                if clash is not None:
                    raise NotUniqueError(
                        "Book with given title and author already exists"
                    )
                book.title = new_title
                book.author = new_author

            if data.amount is not None and data.amount != book.amount:
                book.amount = data.amount

            session.flush()
            return BookResponse.model_validate(book)

        response = self.db.run_in_transaction(_update)
        logger.info("Updated book id=%s", book_id)
        return response

    def delete_book(self, book_id: int) -> None:
        """Delete a book.

        Raises:
            BookNotFoundError: if the id is unknown
            CantBeDeletedError: if any member holds a copy
        """

        def _delete(session: Session) -> None:
            book = load_book(session, book_id)
            if has_holders(session, book.id):
                raise CantBeDeletedError(
                    "Book can't be deleted because it was borrowed by member"
                )
            session.delete(book)

        self.db.run_in_transaction(_delete)
        logger.info("Deleted book id=%s", book_id)

    def borrowed_titles(self, with_counts: bool = False) -> list[BorrowedTitle]:
        """Titles with at least one copy on loan.

        Args:
            with_counts: Include the number of copies on loan per title
        """
        from ..reports.manager import ReportManager

        return ReportManager(self.db).borrowed_titles(with_counts=with_counts)
