"""Pytest configuration and shared fixtures.

This module provides fixtures for testing circulation, including a
temporary database, configuration, managers, and sample records.
"""

import os
import tempfile
from pathlib import Path
from typing import Generator

import pytest

from circulation.catalog import BookCreate, BookResponse, CatalogManager
from circulation.config import Config, reset_config
from circulation.db.sqlite import Database, reset_db
from circulation.lending import LendingEngine
from circulation.membership import MemberCreate, MemberResponse, MembershipManager
from circulation.reports import ReportManager


# ============================================================================
# Database Fixtures
# ============================================================================


@pytest.fixture(scope="function")
def temp_db_path() -> Generator[Path, None, None]:
    """Create a temporary database file path."""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        db_path = Path(f.name)
    yield db_path
    # Cleanup
    if db_path.exists():
        db_path.unlink()


@pytest.fixture(scope="function")
def config(temp_db_path: Path) -> Config:
    """Configuration with the default borrow limit."""
    return Config(
        db_path=temp_db_path,
        busy_timeout=5.0,
        borrow_limit=10,
        unique_member_names=True,
        conflict_retries=3,
        log_level="WARNING",
    )


@pytest.fixture(scope="function")
def db(temp_db_path: Path) -> Generator[Database, None, None]:
    """Create a test database instance."""
    # Reset any global state
    reset_db()
    reset_config()

    # Set environment variable for test database
    os.environ["CIRCULATION_DB_PATH"] = str(temp_db_path)

    database = Database(str(temp_db_path))
    database.create_tables()
    yield database

    # Cleanup
    database.engine.dispose()
    reset_db()
    reset_config()
    if "CIRCULATION_DB_PATH" in os.environ:
        del os.environ["CIRCULATION_DB_PATH"]


# ============================================================================
# Manager Fixtures
# ============================================================================


@pytest.fixture
def catalog(db: Database) -> CatalogManager:
    """Create a CatalogManager with test database."""
    return CatalogManager(db)


@pytest.fixture
def members(db: Database, config: Config) -> MembershipManager:
    """Create a MembershipManager with test database."""
    return MembershipManager(db, config)


@pytest.fixture
def engine(db: Database, config: Config) -> LendingEngine:
    """Create a LendingEngine with test database."""
    return LendingEngine(db, config)


@pytest.fixture
def reports(db: Database, config: Config) -> ReportManager:
    """Create a ReportManager with test database."""
    return ReportManager(db, config)


# ============================================================================
# Sample Data Fixtures
# ============================================================================


@pytest.fixture
def sample_book(catalog: CatalogManager) -> BookResponse:
    """A book with one available copy."""
    return catalog.create_book(BookCreate(title="The Great Gatsby", author="Francis Fitzgerald"))


@pytest.fixture
def sample_books(catalog: CatalogManager) -> list[BookResponse]:
    """Twelve distinct books with one copy each."""
    return [
        catalog.create_book(BookCreate(title=f"Volume {i + 1}", author="Anna Writer"))
        for i in range(12)
    ]


@pytest.fixture
def sample_member(members: MembershipManager) -> MemberResponse:
    """A member holding nothing."""
    return members.create_member(MemberCreate(name="John Doe"))


@pytest.fixture
def other_member(members: MembershipManager) -> MemberResponse:
    """A second member holding nothing."""
    return members.create_member(MemberCreate(name="Jane Roe"))


# ============================================================================
# CLI Testing Fixtures
# ============================================================================


@pytest.fixture
def cli_runner():
    """Create a Typer CLI test runner."""
    from typer.testing import CliRunner
    return CliRunner()
