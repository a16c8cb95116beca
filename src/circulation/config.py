"""Configuration management for circulation.

Loads configuration from environment variables and provides defaults.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

# Load .env file if present
load_dotenv()

DEFAULT_BORROW_LIMIT = 10


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class Config:
    """Application configuration."""

    # Database
    db_path: Path
    busy_timeout: float  # seconds

    # Lending
    borrow_limit: int
    unique_member_names: bool

    # Transactions
    conflict_retries: int

    # Logging
    log_level: str

    @classmethod
    def from_env(cls) -> "Config":
        """Load configuration from environment variables."""
        db_path_str = os.environ.get(
            "CIRCULATION_DB_PATH",
            str(Path.home() / ".circulation" / "library.db"),
        )
        db_path = Path(db_path_str).expanduser()

        return cls(
            db_path=db_path,
            busy_timeout=float(os.environ.get("CIRCULATION_BUSY_TIMEOUT", "5.0")),
            borrow_limit=int(
                os.environ.get("CIRCULATION_BORROW_LIMIT", str(DEFAULT_BORROW_LIMIT))
            ),
            unique_member_names=_env_bool("CIRCULATION_UNIQUE_MEMBER_NAMES", True),
            conflict_retries=int(os.environ.get("CIRCULATION_CONFLICT_RETRIES", "3")),
            log_level=os.environ.get("CIRCULATION_LOG_LEVEL", "WARNING").upper(),
        )

    def validate(self) -> list[str]:
        """Validate configuration, return list of errors."""
        errors = []

        if self.borrow_limit < 1:
            errors.append(f"Borrow limit must be at least 1, got {self.borrow_limit}")

        if self.conflict_retries < 0:
            errors.append(
                f"Conflict retries can't be negative, got {self.conflict_retries}"
            )

        if str(self.db_path) != ":memory:" and not self.db_path.parent.exists():
            try:
                self.db_path.parent.mkdir(parents=True, exist_ok=True)
            except PermissionError:
                errors.append(f"Cannot create database directory: {self.db_path.parent}")

        return errors


# Global config instance
_config: Optional[Config] = None


def get_config() -> Config:
    """Get or create the global config instance."""
    global _config
    if _config is None:
        _config = Config.from_env()
    return _config


def reset_config() -> None:
    """Reset the global config instance. Used for testing."""
    global _config
    _config = None
