"""SQLite database operations.

Handles database connection, session management, and the transaction
boundary that turns lost optimistic-lock races into ``ConflictError``.
"""

from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Generator, Optional, TypeVar

from sqlalchemy import create_engine, event
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.orm.exc import StaleDataError
from sqlalchemy.pool import StaticPool

from ..config import get_config
from ..exceptions import ConflictError
from ..log import get_logger
from .models import Base

logger = get_logger(__name__)

T = TypeVar("T")


def _enable_foreign_keys(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def _is_conflict(error: Exception) -> bool:
    if isinstance(error, StaleDataError):
        return True
    if isinstance(error, IntegrityError):
        # Duplicate keys and vanished parents come from a concurrent writer;
        # CHECK and NOT NULL failures are bugs in the caller
        message = str(error.orig).lower()
        return "unique constraint" in message or "foreign key constraint" in message
    # Busy timeout expired while another writer held the lock
    return isinstance(error, OperationalError) and "locked" in str(error).lower()


class Database:
    """Database connection and operations manager."""

    def __init__(
        self,
        db_path: Optional[str] = None,
        busy_timeout: Optional[float] = None,
        conflict_retries: Optional[int] = None,
    ):
        """Initialize database connection.

        Args:
            db_path: Path to SQLite database file. If None, uses the
                     configured ``CIRCULATION_DB_PATH``.
            busy_timeout: Seconds a writer waits for the SQLite lock.
            conflict_retries: Default retries for ``run_in_transaction``.
        """
        config = get_config()
        if db_path is None:
            db_path = str(config.db_path)

        self.db_path = Path(db_path)
        self._is_memory = str(db_path) == ":memory:"
        self.conflict_retries = (
            config.conflict_retries if conflict_retries is None else conflict_retries
        )
        timeout = config.busy_timeout if busy_timeout is None else busy_timeout

        if not self._is_memory:
            self._ensure_directory()

        # For in-memory databases, use StaticPool to reuse the same connection
        # so all sessions share the same in-memory database
        if self._is_memory:
            self.engine = create_engine(
                "sqlite:///:memory:",
                echo=False,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
        else:
            self.engine = create_engine(
                f"sqlite:///{self.db_path}",
                echo=False,
                connect_args={"check_same_thread": False, "timeout": timeout},
            )
        event.listen(self.engine, "connect", _enable_foreign_keys)
        self.SessionLocal = sessionmaker(bind=self.engine, autocommit=False, autoflush=False)

    def _ensure_directory(self) -> None:
        """Ensure the database directory exists."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

    def create_tables(self) -> None:
        """Create all database tables."""
        Base.metadata.create_all(self.engine)

    def drop_tables(self) -> None:
        """Drop all database tables. Use with caution!"""
        Base.metadata.drop_all(self.engine)

    @contextmanager
    def get_session(self) -> Generator[Session, None, None]:
        """Get a database session context manager."""
        session = self.SessionLocal()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def run_in_transaction(
        self,
        fn: Callable[[Session], T],
        retries: Optional[int] = None,
    ) -> T:
        """Run ``fn`` as one unit of work and commit it.

        The whole function is re-run on a fresh session when the commit loses
        a race (stale version, duplicate key, or lock timeout). Any other
        exception rolls back and propagates unchanged.

        Args:
            fn: Callable receiving the session; its result is returned
            retries: Extra attempts after a conflict. Defaults to the
                     configured ``conflict_retries``.

        Returns:
            Whatever ``fn`` returned

        Raises:
            ConflictError: if every attempt lost its race
        """
        if retries is None:
            retries = self.conflict_retries

        last_error: Optional[Exception] = None
        for attempt in range(retries + 1):
            session = self.SessionLocal()
            try:
                result = fn(session)
                session.commit()
                return result
            except Exception as e:
                session.rollback()
                if not _is_conflict(e):
                    raise
                last_error = e
                logger.warning(
                    "Transaction conflict on attempt %d/%d: %s",
                    attempt + 1,
                    retries + 1,
                    type(e).__name__,
                )
            finally:
                session.close()

        raise ConflictError(
            f"Concurrent update conflict persisted after {retries + 1} attempt(s)"
        ) from last_error


# Global database instance
_db: Optional[Database] = None


def get_db(db_path: Optional[str] = None) -> Database:
    """Get or create the global database instance."""
    global _db
    if _db is None:
        _db = Database(db_path)
        _db.create_tables()
    return _db


def reset_db() -> None:
    """Reset the global database instance. Used for testing."""
    global _db
    if _db is not None:
        _db.engine.dispose()
    _db = None
