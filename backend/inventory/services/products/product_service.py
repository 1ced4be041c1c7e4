"""
Product Service

Entity service for products. Reads go through the cache-aside stores, one
per view; writes go to the repository, are committed, and then invalidate
every cached view the product could appear in before returning.
"""

from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Tuple

import structlog

from ...core.clock import Clock, system_clock
from ...core.config import Settings
from ...domain.cache.repository_interfaces import CacheBackend, CacheableEntity
from ...domain.cache.value_objects import CacheKey, CachePolicy, EntityCacheKeys
from ...domain.errors import ConflictError, NotFoundError, ValidationError
from ...models import Product
from ...repositories import ProductRepository
from ...schemas import ProductCreate, ProductRead, ProductStats, ProductUpdate
from ..cache.cache_aside import CacheAsideStore

logger = structlog.get_logger()

ENTITY_TYPE = "product"

# Columns that may be patched but never set to null
_REQUIRED_FIELDS = ("name", "price", "stock_quantity", "category", "is_active")


def _is_live(entity: Optional[CacheableEntity]) -> bool:
    return entity is not None and not entity.is_deleted


class ProductService:
    """
    Cache-aside product service.

    Known race: two concurrent updates of the same product each invalidate
    and may each repopulate a view, so the cache can briefly hold whichever
    load finished last rather than the latest commit. Stock write-throughs
    from concurrent adjustments can land out of order in the same way. The
    cache is advisory; TTLs bound how long that lasts.
    """

    def __init__(
        self,
        repository: ProductRepository,
        cache_backend: CacheBackend,
        settings: Settings,
        clock: Clock = system_clock,
    ):
        self.repository = repository
        self.clock = clock
        self.keys = EntityCacheKeys(ENTITY_TYPE)

        self._products: CacheAsideStore[ProductRead] = CacheAsideStore(
            cache_backend, ProductRead
        )
        self._lists: CacheAsideStore[List[ProductRead]] = CacheAsideStore(
            cache_backend, List[ProductRead]
        )
        self._stock: CacheAsideStore[int] = CacheAsideStore(cache_backend, int)
        self._stats: CacheAsideStore[ProductStats] = CacheAsideStore(
            cache_backend, ProductStats
        )

        self.view_policy = CachePolicy.sliding(
            settings.sliding_expiration_seconds,
            absolute_seconds=settings.absolute_expiration_seconds,
        )
        self.stats_policy = CachePolicy.absolute(settings.CACHE_STATS_TTL_SECONDS)

    # Validation

    @staticmethod
    def _require_id(id: int) -> int:
        if isinstance(id, bool) or not isinstance(id, int) or id <= 0:
            raise ValidationError("Product id must be a positive integer", field="id")
        return id

    @staticmethod
    def _require_category(category: str) -> str:
        if not isinstance(category, str) or not category.strip():
            raise ValidationError("Category cannot be empty", field="category")
        return category

    # Reads

    async def get_by_id(self, id: int) -> ProductRead:
        """
        Get a product by id.

        Raises:
            ValidationError: If id is not a positive integer
            NotFoundError: If the product is absent or soft-deleted
        """
        product, _ = await self.get_by_id_with_status(id)
        return product

    async def get_by_id_with_status(self, id: int) -> Tuple[ProductRead, bool]:
        """Get a product by id along with whether it was served from cache."""
        self._require_id(id)

        async def load() -> Optional[ProductRead]:
            product = await self.repository.find_by_id(id)
            return ProductRead.model_validate(product) if _is_live(product) else None

        lookup = await self._products.get_or_load(
            self.keys.by_id(id), load, self.view_policy
        )
        if lookup.value is None:
            raise NotFoundError(ENTITY_TYPE, id)

        logger.debug("Product retrieved", product_id=id, cache_hit=lookup.cache_hit)
        return lookup.value, lookup.cache_hit

    async def get_all(self) -> List[ProductRead]:
        """All non-deleted products."""

        async def load() -> List[ProductRead]:
            return self._to_read(await self.repository.find_all())

        lookup = await self._lists.get_or_load(self.keys.all(), load, self.view_policy)
        return lookup.value

    async def get_active(self) -> List[ProductRead]:
        """Active, non-deleted products."""

        async def load() -> List[ProductRead]:
            return self._to_read(await self.repository.find_active())

        lookup = await self._lists.get_or_load(
            self.keys.active(), load, self.view_policy
        )
        return lookup.value

    async def get_by_category(self, category: str) -> List[ProductRead]:
        """Active, non-deleted products in a category, matched case-insensitively."""
        self._require_category(category)

        async def load() -> List[ProductRead]:
            return self._to_read(await self.repository.find_by_category(category))

        lookup = await self._lists.get_or_load(
            self.keys.category(category), load, self.view_policy
        )
        return lookup.value

    async def get_stock(self, id: int) -> int:
        """
        Current stock level of a product.

        Raises:
            NotFoundError: If the product is absent or soft-deleted
        """
        self._require_id(id)

        async def load() -> Optional[int]:
            return await self.repository.get_stock_quantity(id)

        lookup = await self._stock.get_or_load(
            self.keys.stock(id), load, self.view_policy
        )
        if lookup.value is None:
            raise NotFoundError(ENTITY_TYPE, id)
        return lookup.value

    async def get_stats(self) -> ProductStats:
        """Catalogue statistics, cached for a short fixed period."""

        async def load() -> ProductStats:
            return self._compute_stats(await self.repository.find_all())

        lookup = await self._stats.get_or_load(
            self.keys.stats(), load, self.stats_policy
        )
        return lookup.value

    # Writes

    async def create(self, data: ProductCreate) -> ProductRead:
        """
        Create a product.

        Raises:
            ConflictError: If the SKU is already taken
        """
        if await self.repository.sku_exists(data.sku):
            logger.warning("Product SKU already exists", sku=data.sku)
            raise ConflictError(ENTITY_TYPE, "sku", data.sku)

        now = self.clock.now()
        product = Product(
            **data.model_dump(),
            is_deleted=False,
            deleted_at=None,
            created_at=now,
            updated_at=now,
        )
        await self.repository.insert(product)
        await self.repository.commit()
        result = ProductRead.model_validate(product)

        await self._invalidate(
            self.keys.all(),
            self.keys.active(),
            self.keys.stats(),
            self.keys.category(result.category),
        )

        logger.info("Product created", product_id=result.id, sku=result.sku)
        return result

    async def update(self, id: int, changes: ProductUpdate) -> ProductRead:
        """
        Merge-patch a product: only fields set in ``changes`` are applied.

        Raises:
            ValidationError: If a required field is explicitly null
            NotFoundError: If the product is absent or soft-deleted
        """
        self._require_id(id)
        patch = changes.model_dump(exclude_unset=True)
        for field in _REQUIRED_FIELDS:
            if field in patch and patch[field] is None:
                raise ValidationError(f"Field '{field}' cannot be null", field=field)

        product = await self.repository.find_by_id(id)
        if not _is_live(product):
            raise NotFoundError(ENTITY_TYPE, id)

        old_category = product.category
        patch["updated_at"] = self.clock.now()
        await self.repository.update_fields(product, patch)
        await self.repository.commit()
        result = ProductRead.model_validate(product)

        await self._invalidate(
            self.keys.by_id(id),
            self.keys.stock(id),
            self.keys.all(),
            self.keys.active(),
            self.keys.stats(),
            self.keys.category(old_category),
            self.keys.category(result.category),
        )

        logger.info("Product updated", product_id=id, fields=sorted(patch))
        return result

    async def delete(self, id: int) -> None:
        """
        Soft-delete a product.

        Raises:
            NotFoundError: If the product is absent or already deleted
        """
        self._require_id(id)
        product = await self.repository.find_by_id(id)
        if not _is_live(product):
            raise NotFoundError(ENTITY_TYPE, id)

        category = product.category
        await self.repository.soft_delete(product, self.clock.now())
        await self.repository.commit()

        await self._invalidate(
            self.keys.by_id(id),
            self.keys.stock(id),
            self.keys.all(),
            self.keys.active(),
            self.keys.stats(),
            self.keys.category(category),
        )

        logger.info("Product deleted", product_id=id)

    async def adjust_stock(self, id: int, delta: int) -> int:
        """
        Add ``delta`` to a product's stock level and return the new level.

        The sum is computed by the store, so concurrent adjustments are all
        applied. The result is not clamped: negative stock records a backorder.
        """
        self._require_id(id)
        if isinstance(delta, bool) or not isinstance(delta, int):
            raise ValidationError("Stock adjustment must be an integer", field="quantity")

        adjusted = await self.repository.adjust_stock_quantity(
            id, delta, self.clock.now()
        )
        if adjusted is None:
            raise NotFoundError(ENTITY_TYPE, id)

        new_quantity, category = adjusted
        await self.repository.commit()

        await self._stock.set(self.keys.stock(id), new_quantity, self.view_policy)
        await self._invalidate(
            self.keys.by_id(id),
            self.keys.all(),
            self.keys.active(),
            self.keys.stats(),
            self.keys.category(category),
        )

        logger.info(
            "Product stock adjusted",
            product_id=id,
            delta=delta,
            stock_quantity=new_quantity,
        )
        return new_quantity

    async def clear_cache(self, id: Optional[int] = None) -> List[str]:
        """
        Drop cached views on demand.

        With an id, that product's entry and stock counter go too. Category
        views are left to expire on their own.

        Returns:
            The keys that were cleared
        """
        keys: List[CacheKey] = []
        if id is not None:
            self._require_id(id)
            keys.extend([self.keys.by_id(id), self.keys.stock(id)])
        keys.extend([self.keys.all(), self.keys.active(), self.keys.stats()])

        await self._invalidate(*keys)
        logger.info("Product cache cleared", product_id=id)
        return [str(key) for key in keys]

    # Helpers

    async def _invalidate(self, *keys: CacheKey) -> None:
        await self._products.invalidate_many(keys)

    @staticmethod
    def _to_read(products: Iterable[Product]) -> List[ProductRead]:
        return [ProductRead.model_validate(p) for p in products]

    def _compute_stats(self, products: List[Product]) -> ProductStats:
        by_category: Dict[str, int] = {}
        for product in products:
            by_category[product.category] = by_category.get(product.category, 0) + 1

        total_value = sum(
            (Decimal(product.price) * product.stock_quantity for product in products),
            Decimal("0"),
        )

        return ProductStats(
            total_products=len(products),
            active_products=sum(1 for p in products if p.is_active),
            out_of_stock_products=sum(1 for p in products if p.stock_quantity <= 0),
            total_inventory_value=total_value.quantize(Decimal("0.01")),
            products_by_category=by_category,
            generated_at=self.clock.now(),
        )
