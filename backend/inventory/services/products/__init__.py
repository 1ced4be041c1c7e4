"""
Product services.
"""

from .product_service import ProductService, ENTITY_TYPE

__all__ = ["ProductService", "ENTITY_TYPE"]
