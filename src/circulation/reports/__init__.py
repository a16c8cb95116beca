"""Lending reports module."""

from .manager import ReportManager
from .schemas import LendingStats

__all__ = ["ReportManager", "LendingStats"]
