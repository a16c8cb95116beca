"""Tests for LendingEngine."""

import threading
from dataclasses import replace

import pytest
from sqlalchemy import func, select

from circulation.catalog import BookCreate, BookUpdate, CatalogManager
from circulation.db.models import Book, Holding
from circulation.db.sqlite import Database
from circulation.exceptions import (
    BookCantBeBorrowedError,
    BookNotFoundError,
    CantBeDeletedError,
    ConflictError,
    HoldingNotFoundError,
    MemberNotFoundError,
)
from circulation.lending import (
    BorrowPolicy,
    Decision,
    LendingEngine,
    LendingPolicy,
    RejectReason,
)
from circulation.membership import MemberCreate


def holding_count(db, book_id=None) -> int:
    """Count holding rows, optionally for one book."""
    with db.get_session() as session:
        stmt = select(func.count()).select_from(Holding)
        if book_id is not None:
            stmt = stmt.where(Holding.book_id == book_id)
        return session.execute(stmt).scalar()


def amount_of(db, book_id) -> int:
    with db.get_session() as session:
        return session.get(Book, book_id).amount


class TestToggleLoan:
    """Tests for the toggle operation."""

    def test_toggle_borrows_then_returns(self, db, engine, sample_book, sample_member):
        """Test toggling twice restores the original state."""
        held = engine.toggle_loan(sample_member.id, sample_book.id)

        assert [b.id for b in held] == [sample_book.id]
        assert held[0].amount == 0
        assert amount_of(db, sample_book.id) == 0

        held = engine.toggle_loan(sample_member.id, sample_book.id)

        assert held == []
        assert amount_of(db, sample_book.id) == 1
        assert holding_count(db) == 0

    def test_toggle_returns_other_books_untouched(self, db, engine, sample_member, sample_books):
        """Test the returned set keeps the member's other books."""
        first, second = sample_books[:2]
        engine.toggle_loan(sample_member.id, first.id)
        engine.toggle_loan(sample_member.id, second.id)

        held = engine.toggle_loan(sample_member.id, first.id)

        assert [b.id for b in held] == [second.id]

    def test_toggle_no_copies(self, db, engine, sample_book, sample_member, other_member):
        """Test the last copy can't be borrowed twice."""
        engine.toggle_loan(other_member.id, sample_book.id)

        with pytest.raises(BookCantBeBorrowedError, match="is 0"):
            engine.toggle_loan(sample_member.id, sample_book.id)

        assert amount_of(db, sample_book.id) == 0
        assert holding_count(db, sample_book.id) == 1

    def test_toggle_return_works_at_limit(self, db, config, sample_member, sample_books):
        """Test a member at the limit can still return."""
        engine = LendingEngine(db, replace(config, borrow_limit=2))
        engine.toggle_loan(sample_member.id, sample_books[0].id)
        engine.toggle_loan(sample_member.id, sample_books[1].id)

        held = engine.toggle_loan(sample_member.id, sample_books[0].id)

        assert [b.id for b in held] == [sample_books[1].id]

    def test_toggle_unknown_member(self, db, engine, sample_book):
        """Test unknown members are reported before anything changes."""
        with pytest.raises(MemberNotFoundError):
            engine.toggle_loan(999, sample_book.id)
        assert amount_of(db, sample_book.id) == 1

    def test_toggle_unknown_book(self, engine, sample_member):
        """Test unknown books are reported."""
        with pytest.raises(BookNotFoundError):
            engine.toggle_loan(sample_member.id, 999)


class TestBorrowBook:
    """Tests for explicit borrowing."""

    def test_borrow_book(self, db, engine, catalog, sample_member):
        """Test borrowing one of several copies."""
        for _ in range(3):
            book = catalog.create_book(BookCreate(title="Emma", author="Jane Austen"))

        held = engine.borrow_book(sample_member.id, book.id)

        assert [b.id for b in held] == [book.id]
        assert amount_of(db, book.id) == 2

    def test_borrow_zero_copies(self, db, engine, catalog, sample_book, sample_member):
        """Test a book with no copies can't be borrowed."""
        catalog.update_book(sample_book.id, BookUpdate(amount=0))

        with pytest.raises(BookCantBeBorrowedError):
            engine.borrow_book(sample_member.id, sample_book.id)

        assert amount_of(db, sample_book.id) == 0
        assert holding_count(db) == 0

    def test_borrow_already_held(self, db, engine, catalog, sample_member):
        """Test a member can't hold two copies of one book."""
        catalog.create_book(BookCreate(title="Emma", author="Jane Austen"))
        book = catalog.create_book(BookCreate(title="Emma", author="Jane Austen"))
        engine.borrow_book(sample_member.id, book.id)

        with pytest.raises(BookCantBeBorrowedError, match="already borrowed"):
            engine.borrow_book(sample_member.id, book.id)

        assert amount_of(db, book.id) == 1
        assert holding_count(db, book.id) == 1

    def test_borrow_limit(self, db, engine, sample_member, sample_books):
        """Test the eleventh distinct book is refused at the default limit."""
        for book in sample_books[:10]:
            engine.borrow_book(sample_member.id, book.id)

        eleventh = sample_books[10]
        with pytest.raises(BookCantBeBorrowedError, match=r"max allowed \(10\)"):
            engine.borrow_book(sample_member.id, eleventh.id)

        assert amount_of(db, eleventh.id) == 1
        assert len(engine.held_books(sample_member.id)) == 10

    def test_custom_borrow_limit(self, db, config, sample_member, sample_books):
        """Test the limit comes from configuration."""
        engine = LendingEngine(db, replace(config, borrow_limit=1))
        engine.borrow_book(sample_member.id, sample_books[0].id)

        with pytest.raises(BookCantBeBorrowedError):
            engine.borrow_book(sample_member.id, sample_books[1].id)


class TestReturnBook:
    """Tests for explicit returns."""

    def test_return_book(self, db, engine, sample_book, sample_member):
        """Test returning puts the copy back."""
        engine.borrow_book(sample_member.id, sample_book.id)

        held = engine.return_book(sample_member.id, sample_book.id)

        assert held == []
        assert amount_of(db, sample_book.id) == 1

    def test_return_not_held(self, db, engine, sample_book, sample_member):
        """Test returning a book that isn't held changes nothing."""
        with pytest.raises(HoldingNotFoundError):
            engine.return_book(sample_member.id, sample_book.id)

        assert amount_of(db, sample_book.id) == 1

    def test_return_someone_elses_book(self, db, engine, sample_book, sample_member, other_member):
        """Test a member can't return a copy held by another member."""
        engine.borrow_book(other_member.id, sample_book.id)

        with pytest.raises(HoldingNotFoundError):
            engine.return_book(sample_member.id, sample_book.id)

        assert amount_of(db, sample_book.id) == 0
        assert len(engine.held_books(other_member.id)) == 1


class TestPolicies:
    """Tests for swapping the toggle policy."""

    def test_borrow_only_policy(self, db, config, sample_book, sample_member):
        """Test a borrow-only engine refuses to toggle back."""
        engine = LendingEngine(db, config, policy=BorrowPolicy())
        engine.toggle_loan(sample_member.id, sample_book.id)

        with pytest.raises(BookCantBeBorrowedError):
            engine.toggle_loan(sample_member.id, sample_book.id)

    def test_engine_guards_against_bad_policy(self, db, config, catalog, sample_book, sample_member):
        """Test count invariants hold even if a policy always says borrow."""

        class AlwaysBorrow(LendingPolicy):
            name = "always"

            def decide(self, member, book, context):
                return Decision.borrow()

        catalog.update_book(sample_book.id, BookUpdate(amount=0))
        engine = LendingEngine(db, config, policy=AlwaysBorrow())

        with pytest.raises(BookCantBeBorrowedError):
            engine.toggle_loan(sample_member.id, sample_book.id)

        assert amount_of(db, sample_book.id) == 0

    def test_rejection_reason_maps_to_error(self, db, config, sample_book, sample_member):
        """Test a custom rejection surfaces as an error without side effects."""

        class Closed(LendingPolicy):
            name = "closed"

            def decide(self, member, book, context):
                return Decision.reject(RejectReason.LIMIT_REACHED)

        engine = LendingEngine(db, config, policy=Closed())

        with pytest.raises(BookCantBeBorrowedError):
            engine.toggle_loan(sample_member.id, sample_book.id)

        assert holding_count(db) == 0


class TestInvariants:
    """Tests for the copy accounting invariant."""

    def test_copies_conserved(self, db, engine, catalog, members):
        """Test available plus held copies stays constant through a workload."""
        for _ in range(3):
            book = catalog.create_book(BookCreate(title="Emma", author="Jane Austen"))
        readers = [members.create_member(MemberCreate(name=f"Reader {i}")) for i in range(5)]

        for step in range(20):
            reader = readers[step % len(readers)]
            try:
                engine.toggle_loan(reader.id, book.id)
            except BookCantBeBorrowedError:
                pass
            available = amount_of(db, book.id)
            assert available >= 0
            assert available + holding_count(db, book.id) == 3


class TestConcurrency:
    """Tests for concurrent borrowing."""

    def test_concurrent_borrow_of_last_copy(self, db, config, sample_book, members):
        """Test two members racing for one copy: exactly one wins."""
        readers = [members.create_member(MemberCreate(name=f"Racer {i}")) for i in range(2)]
        engine = LendingEngine(db, config)
        barrier = threading.Barrier(len(readers))
        outcomes: dict[int, object] = {}

        def borrow(member_id: int) -> None:
            barrier.wait()
            try:
                outcomes[member_id] = engine.borrow_book(member_id, sample_book.id)
            except (BookCantBeBorrowedError, ConflictError) as e:
                outcomes[member_id] = e

        threads = [threading.Thread(target=borrow, args=(r.id,)) for r in readers]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=30)

        winners = [m for m, result in outcomes.items() if isinstance(result, list)]
        losers = [m for m, result in outcomes.items() if not isinstance(result, list)]

        assert len(outcomes) == 2
        assert len(winners) == 1
        assert len(losers) == 1
        assert amount_of(db, sample_book.id) == 0
        assert holding_count(db, sample_book.id) == 1

    def test_delete_racing_borrow_leaves_no_dangling_holding(self, db, config, catalog, members):
        """Test a book deleted while being borrowed never keeps a holding."""
        engine = LendingEngine(db, config)
        reader = members.create_member(MemberCreate(name="Racer"))

        for round_no in range(5):
            book = catalog.create_book(
                BookCreate(title=f"Round {round_no}", author="Anna Writer")
            )
            barrier = threading.Barrier(2)

            def borrow() -> None:
                barrier.wait()
                try:
                    engine.borrow_book(reader.id, book.id)
                except (BookNotFoundError, ConflictError):
                    pass

            def delete() -> None:
                barrier.wait()
                try:
                    catalog.delete_book(book.id)
                except (CantBeDeletedError, ConflictError):
                    pass

            threads = [threading.Thread(target=borrow), threading.Thread(target=delete)]
            for t in threads:
                t.start()
            for t in threads:
                t.join(timeout=30)

            with db.get_session() as session:
                dangling = session.execute(
                    select(func.count())
                    .select_from(Holding)
                    .outerjoin(Book, Book.id == Holding.book_id)
                    .where(Book.id.is_(None))
                ).scalar()
                remaining = session.get(Book, book.id)
                session.expunge_all()

            assert dangling == 0
            if remaining is None:
                assert holding_count(db, book.id) == 0
            else:
                assert remaining.amount + holding_count(db, book.id) == 1

            if holding_count(db, book.id):
                engine.return_book(reader.id, book.id)


class TestConcurrentCatalog:
    """Tests for concurrent catalog writes."""

    def test_concurrent_duplicate_creates_merge(self, db, temp_db_path):
        """Test simultaneous creates of one title end as a single record."""
        patient = Database(str(temp_db_path), conflict_retries=10)
        catalog = CatalogManager(patient)
        writers = 4
        barrier = threading.Barrier(writers)
        results: list = []

        def create() -> None:
            barrier.wait()
            results.append(
                catalog.create_book(BookCreate(title="Popular Book", author="Anna Writer"))
            )

        threads = [threading.Thread(target=create) for _ in range(writers)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(timeout=60)
        patient.engine.dispose()

        with db.get_session() as session:
            books = session.execute(
                select(Book).where(Book.title == "Popular Book")
            ).scalars().all()
            session.expunge_all()

        assert len(results) == writers
        assert len(books) == 1
        assert books[0].amount == writers
        assert {r.id for r in results} == {books[0].id}
