"""
Product Repository

Product-specific queries on top of BaseRepository: SKU reservation check,
case-insensitive category filter, active filter, stock projection and
in-database stock adjustment.
"""

from datetime import datetime
from typing import Optional, Tuple

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
import structlog

from ..domain.errors import ConflictError
from ..models import Product
from .base import BaseRepository, _CONNECTIVITY_ERRORS

logger = structlog.get_logger()


class ProductRepository(BaseRepository):
    """Repository for Product rows."""

    def __init__(self, session: AsyncSession):
        """Initialize product repository."""
        super().__init__(session, Product)

    def _conflict(self, obj: Product, error: IntegrityError) -> ConflictError:
        return ConflictError(self.entity_name, "sku", obj.sku)

    async def sku_exists(self, sku: str) -> bool:
        """
        Check whether a SKU is taken.

        Soft-deleted products keep their SKU, matching the unique index.
        """
        return await self.exists(Product.sku == sku, include_deleted=True)

    async def find_by_category(self, category: str) -> list[Product]:
        """
        Active, non-deleted products in a category.

        Matching ignores case and surrounding whitespace.
        """
        normalized = category.strip().lower()
        products = await self.find_where(
            func.lower(Product.category) == normalized,
            Product.is_active.is_(True),
        )

        logger.debug(
            "Repository: Products by category",
            category=normalized,
            count=len(products),
        )
        return products

    async def find_active(self) -> list[Product]:
        """Active, non-deleted products."""
        return await self.find_where(Product.is_active.is_(True))

    async def get_stock_quantity(self, id: int) -> Optional[int]:
        """Stock level of a non-deleted product, or None when absent."""
        stmt = select(Product.stock_quantity).where(
            Product.id == id, Product.is_deleted.is_(False)
        )

        try:
            result = await self.session.execute(stmt)
            return result.scalar_one_or_none()
        except _CONNECTIVITY_ERRORS as e:
            raise self._store_unavailable("get_stock_quantity", e, entity_id=id) from e

    async def adjust_stock_quantity(
        self, id: int, delta: int, updated_at: datetime
    ) -> Optional[Tuple[int, str]]:
        """
        Add ``delta`` to a non-deleted product's stock in one UPDATE.

        The sum is computed by the database, so concurrent adjustments of the
        same row are applied one after another and none is lost.

        Returns:
            The new stock level and the product's category, or None when absent
        """
        stmt = (
            update(Product)
            .where(Product.id == id, Product.is_deleted.is_(False))
            .values(
                stock_quantity=Product.stock_quantity + delta,
                updated_at=updated_at,
            )
            .returning(Product.stock_quantity, Product.category)
            .execution_options(synchronize_session="fetch")
        )

        try:
            result = await self.session.execute(stmt)
            row = result.one_or_none()
        except _CONNECTIVITY_ERRORS as e:
            raise self._store_unavailable("adjust_stock_quantity", e, entity_id=id) from e

        if row is None:
            return None

        logger.info(
            "Repository: Stock adjusted",
            entity_id=id,
            delta=delta,
            stock_quantity=row.stock_quantity,
        )
        return row.stock_quantity, row.category
