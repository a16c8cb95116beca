"""Book catalog module.

Provides functionality for:
- Registering copies with merge-on-duplicate semantics
- Partial updates guarded by title/author uniqueness
- Deletion guarded by outstanding loans
"""

from .manager import CatalogManager
from .schemas import BookCreate, BookResponse, BookUpdate, BorrowedTitle

__all__ = [
    "CatalogManager",
    "BookCreate",
    "BookResponse",
    "BookUpdate",
    "BorrowedTitle",
]
