"""
Repository Pattern Implementation

Async SQLAlchemy repositories with soft-delete filtering.
All data access goes through repositories so driver errors are translated
in one place.
"""

from .base import BaseRepository
from .product import ProductRepository

__all__ = [
    "BaseRepository",
    "ProductRepository",
]
