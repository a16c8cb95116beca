"""Logging setup for circulation.

Usage:
    from circulation.log import get_logger

    logger = get_logger(__name__)
    logger.info("Book borrowed", extra={"book_id": 1})
"""

import logging
from threading import Lock
from typing import Optional

LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"

_logging_configured = False
_configuration_lock = Lock()


def configure_logging(level: Optional[str] = None) -> None:
    """Configure the ``circulation`` logger hierarchy once.

    Args:
        level: Log level name. Defaults to the configured ``log_level``.
    """
    global _logging_configured

    with _configuration_lock:
        if level is None:
            from .config import get_config

            level = get_config().log_level

        root = logging.getLogger("circulation")
        root.setLevel(level)

        if not _logging_configured:
            handler = logging.StreamHandler()
            handler.setFormatter(logging.Formatter(LOG_FORMAT))
            root.addHandler(handler)
            root.propagate = False
            _logging_configured = True


def get_logger(name: str) -> logging.Logger:
    """Get a logger under the ``circulation`` namespace."""
    if not name.startswith("circulation"):
        name = f"circulation.{name}"
    return logging.getLogger(name)
