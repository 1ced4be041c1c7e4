"""
Unit tests for ProductService.

Runs against an in-memory SQLite store with either the in-process cache
or a cache backend that always fails, to check that caching never changes
what callers observe.
"""

import asyncio
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from inventory.domain.errors import (
    ConflictError,
    NotFoundError,
    StoreUnavailableError,
    ValidationError,
)
from inventory.repositories import ProductRepository
from inventory.schemas import ProductCreate, ProductUpdate
from inventory.services.products import ProductService


def product_data(**overrides) -> ProductCreate:
    data = {
        "name": "Hammer",
        "price": Decimal("20.00"),
        "stock_quantity": 10,
        "category": "Tools",
        "sku": "H-1",
    }
    data.update(overrides)
    return ProductCreate(**data)


def hold_first_statement(session: AsyncSession, barrier: asyncio.Barrier) -> None:
    """Make the session's first statement wait until every party reaches the barrier."""
    execute = session.execute

    async def execute_after_barrier(*args, **kwargs):
        del session.execute
        await barrier.wait()
        return await execute(*args, **kwargs)

    session.execute = execute_after_barrier


class TestProductReads:
    """Test cached reads."""

    @pytest.mark.asyncio
    async def test_read_after_create(self, product_service, widget_data):
        created = await product_service.create(widget_data)

        product = await product_service.get_by_id(created.id)

        assert product.name == "Widget"
        assert product.sku == "W-1"
        assert product.price == Decimal("9.99")
        assert product.stock_quantity == 5
        assert product.is_active is True
        assert product.is_deleted is False

    @pytest.mark.asyncio
    async def test_second_read_served_from_cache(self, product_service, widget_data):
        created = await product_service.create(widget_data)

        _, first_hit = await product_service.get_by_id_with_status(created.id)
        cached, second_hit = await product_service.get_by_id_with_status(created.id)

        assert first_hit is False
        assert second_hit is True
        assert cached == created

    @pytest.mark.asyncio
    async def test_missing_product(self, product_service):
        with pytest.raises(NotFoundError) as exc_info:
            await product_service.get_by_id(999)

        assert exc_info.value.message == "Product with ID 999 not found"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("bad_id", [0, -1, True])
    async def test_invalid_id_rejected_before_any_lookup(
        self, uncached_product_service, failing_backend, bad_id
    ):
        with pytest.raises(ValidationError):
            await uncached_product_service.get_by_id(bad_id)
        with pytest.raises(ValidationError):
            await uncached_product_service.get_stock(bad_id)

        assert failing_backend.calls == 0

    @pytest.mark.asyncio
    async def test_active_excludes_inactive(self, product_service, widget_data):
        active = await product_service.create(widget_data)
        inactive = await product_service.create(product_data(is_active=False))

        assert [p.id for p in await product_service.get_active()] == [active.id]
        assert [p.id for p in await product_service.get_all()] == [
            active.id,
            inactive.id,
        ]

    @pytest.mark.asyncio
    async def test_category_lookup_ignores_case(self, product_service, widget_data):
        created = await product_service.create(widget_data)

        upper = await product_service.get_by_category("TOOLS")
        lower = await product_service.get_by_category("tools")

        assert [p.id for p in upper] == [created.id]
        assert upper == lower

    @pytest.mark.asyncio
    async def test_blank_category_rejected(self, product_service):
        with pytest.raises(ValidationError):
            await product_service.get_by_category("   ")

    @pytest.mark.asyncio
    async def test_store_errors_propagate(self, product_service, product_repository):
        product_repository.find_by_id = AsyncMock(
            side_effect=StoreUnavailableError(original_error=OSError("refused"))
        )

        with pytest.raises(StoreUnavailableError):
            await product_service.get_by_id(1)


class TestProductWrites:
    """Test writes and the cache invalidation they trigger."""

    @pytest.mark.asyncio
    async def test_widget_lifecycle(self, product_service, widget_data):
        """Create, reject a duplicate SKU, then ship past zero stock."""
        created = await product_service.create(widget_data)
        assert await product_service.get_by_id(created.id) == created

        with pytest.raises(ConflictError):
            await product_service.create(product_data(sku="W-1", name="Other"))
        assert len(await product_service.get_all()) == 1

        assert await product_service.adjust_stock(created.id, -5) == 0
        assert await product_service.adjust_stock(created.id, -5) == -5
        assert await product_service.get_stock(created.id) == -5
        assert (await product_service.get_by_id(created.id)).stock_quantity == -5

    @pytest.mark.asyncio
    async def test_create_invalidates_lists(self, product_service, widget_data):
        assert await product_service.get_all() == []
        assert await product_service.get_by_category("tools") == []

        created = await product_service.create(widget_data)

        assert [p.id for p in await product_service.get_all()] == [created.id]
        assert [p.id for p in await product_service.get_active()] == [created.id]
        assert [p.id for p in await product_service.get_by_category("tools")] == [
            created.id
        ]

    @pytest.mark.asyncio
    async def test_create_sets_timestamps_from_clock(
        self, product_service, widget_data, clock
    ):
        created = await product_service.create(widget_data)

        assert created.created_at == clock.now()
        assert created.updated_at == clock.now()
        assert created.deleted_at is None

    @pytest.mark.asyncio
    async def test_update_is_merge_patch(self, product_service, widget_data):
        created = await product_service.create(widget_data)
        await product_service.get_by_id(created.id)

        updated = await product_service.update(
            created.id, ProductUpdate(price=Decimal("12.50"))
        )

        assert updated.price == Decimal("12.50")
        assert updated.name == "Widget"
        assert updated.description == "A useful widget"
        assert updated.stock_quantity == 5

        product, cache_hit = await product_service.get_by_id_with_status(created.id)
        assert product.price == Decimal("12.50")
        assert cache_hit is False

    @pytest.mark.asyncio
    async def test_update_bumps_updated_at(self, product_service, widget_data, clock):
        created = await product_service.create(widget_data)
        clock.advance(60)

        updated = await product_service.update(created.id, ProductUpdate(name="Gadget"))

        assert updated.updated_at == clock.now()
        assert updated.created_at == created.created_at

    @pytest.mark.asyncio
    async def test_update_can_clear_description(self, product_service, widget_data):
        created = await product_service.create(widget_data)

        updated = await product_service.update(
            created.id, ProductUpdate(description=None)
        )

        assert updated.description is None

    @pytest.mark.asyncio
    async def test_update_rejects_null_required_field(self, product_service, widget_data):
        created = await product_service.create(widget_data)

        with pytest.raises(ValidationError) as exc_info:
            await product_service.update(created.id, ProductUpdate(name=None))

        assert exc_info.value.details["field"] == "name"
        assert (await product_service.get_by_id(created.id)).name == "Widget"

    @pytest.mark.asyncio
    async def test_update_missing_product(self, product_service):
        with pytest.raises(NotFoundError):
            await product_service.update(42, ProductUpdate(name="Ghost"))

    @pytest.mark.asyncio
    async def test_category_change_invalidates_both_categories(
        self, product_service, widget_data
    ):
        created = await product_service.create(widget_data)
        assert len(await product_service.get_by_category("tools")) == 1
        assert await product_service.get_by_category("Garden") == []

        await product_service.update(created.id, ProductUpdate(category="Garden"))

        assert await product_service.get_by_category("TOOLS") == []
        assert [p.id for p in await product_service.get_by_category("garden")] == [
            created.id
        ]

    @pytest.mark.asyncio
    async def test_update_invalidates_stock(self, product_service, widget_data):
        created = await product_service.create(widget_data)
        assert await product_service.get_stock(created.id) == 5

        await product_service.update(created.id, ProductUpdate(stock_quantity=12))

        assert await product_service.get_stock(created.id) == 12

    @pytest.mark.asyncio
    async def test_delete_hides_product(self, product_service, widget_data):
        created = await product_service.create(widget_data)
        await product_service.get_by_id(created.id)
        await product_service.get_all()

        await product_service.delete(created.id)

        with pytest.raises(NotFoundError):
            await product_service.get_by_id(created.id)
        with pytest.raises(NotFoundError):
            await product_service.get_stock(created.id)
        assert await product_service.get_all() == []

    @pytest.mark.asyncio
    async def test_delete_twice(self, product_service, widget_data):
        created = await product_service.create(widget_data)
        await product_service.delete(created.id)

        with pytest.raises(NotFoundError):
            await product_service.delete(created.id)

    @pytest.mark.asyncio
    async def test_deleted_sku_stays_reserved(self, product_service, widget_data):
        created = await product_service.create(widget_data)
        await product_service.delete(created.id)

        with pytest.raises(ConflictError):
            await product_service.create(widget_data)

    @pytest.mark.asyncio
    async def test_adjust_stock_writes_through(
        self, product_service, memory_backend, widget_data
    ):
        created = await product_service.create(widget_data)

        assert await product_service.adjust_stock(created.id, -3) == 2

        cached = await memory_backend.get_string(product_service.keys.stock(created.id))
        assert cached == "2"
        assert await product_service.get_stock(created.id) == 2

    @pytest.mark.asyncio
    async def test_adjust_stock_validation(self, product_service, widget_data):
        created = await product_service.create(widget_data)

        with pytest.raises(ValidationError):
            await product_service.adjust_stock(created.id, True)
        with pytest.raises(NotFoundError):
            await product_service.adjust_stock(999, 1)


class TestConcurrentStockAdjustment:
    """Test stock adjustments racing on separate sessions."""

    @pytest.mark.asyncio
    async def test_interleaved_adjustments_both_apply(
        self, session_factory, memory_backend, settings, clock, widget_data
    ):
        """Both deltas land even when the two calls read the row at the same time."""
        async with session_factory() as session:
            service = ProductService(
                ProductRepository(session), memory_backend, settings, clock=clock
            )
            created = await service.create(widget_data)

        barrier = asyncio.Barrier(2)
        async with session_factory() as first, session_factory() as second:
            services = []
            for session in (first, second):
                hold_first_statement(session, barrier)
                services.append(
                    ProductService(
                        ProductRepository(session), memory_backend, settings, clock=clock
                    )
                )

            results = await asyncio.gather(
                services[0].adjust_stock(created.id, -3),
                services[1].adjust_stock(created.id, -1),
            )

        assert sorted(results) in ([1, 2], [1, 4])

        async with session_factory() as session:
            repository = ProductRepository(session)
            assert await repository.get_stock_quantity(created.id) == 1

            service = ProductService(repository, memory_backend, settings, clock=clock)
            assert await service.get_stock(created.id) == 1


class TestProductStats:
    """Test catalogue statistics."""

    @pytest.mark.asyncio
    async def test_stats_figures(self, product_service, widget_data):
        await product_service.create(widget_data)
        await product_service.create(product_data(stock_quantity=0))
        await product_service.create(
            product_data(
                name="Chair",
                sku="C-1",
                price=Decimal("50.00"),
                stock_quantity=2,
                category="Furniture",
                is_active=False,
            )
        )

        stats = await product_service.get_stats()

        assert stats.total_products == 3
        assert stats.active_products == 2
        assert stats.out_of_stock_products == 1
        assert stats.total_inventory_value == Decimal("149.95")
        assert stats.products_by_category == {"Tools": 2, "Furniture": 1}

    @pytest.mark.asyncio
    async def test_negative_stock_counts_as_out_of_stock(
        self, product_service, widget_data
    ):
        created = await product_service.create(widget_data)
        await product_service.adjust_stock(created.id, -6)

        stats = await product_service.get_stats()

        assert stats.out_of_stock_products == 1

    @pytest.mark.asyncio
    async def test_stats_cached_for_fixed_period(self, product_service, widget_data, clock):
        await product_service.create(widget_data)
        first = await product_service.get_stats()

        clock.advance(299)
        assert (await product_service.get_stats()).generated_at == first.generated_at

        clock.advance(1)
        assert (await product_service.get_stats()).generated_at == clock.now()

    @pytest.mark.asyncio
    async def test_mutation_refreshes_stats(self, product_service, widget_data):
        assert (await product_service.get_stats()).total_products == 0

        await product_service.create(widget_data)

        assert (await product_service.get_stats()).total_products == 1


class TestClearCache:
    """Test on-demand cache clearing."""

    @pytest.mark.asyncio
    async def test_clear_product_views(
        self, product_service, memory_backend, widget_data
    ):
        created = await product_service.create(widget_data)
        await product_service.get_by_id(created.id)
        await product_service.get_stock(created.id)
        await product_service.get_all()

        cleared = await product_service.clear_cache(created.id)

        assert cleared == [
            f"product:id:{created.id}",
            f"product:stock:{created.id}",
            "product:all",
            "product:active",
            "product:stats",
        ]
        keys = product_service.keys
        for key in (keys.by_id(created.id), keys.stock(created.id), keys.all()):
            assert await memory_backend.exists(key) is False

    @pytest.mark.asyncio
    async def test_clear_without_id(self, product_service):
        assert await product_service.clear_cache() == [
            "product:all",
            "product:active",
            "product:stats",
        ]

    @pytest.mark.asyncio
    async def test_clear_rejects_invalid_id(self, product_service):
        with pytest.raises(ValidationError):
            await product_service.clear_cache(0)


class TestCacheUnavailable:
    """The service behaves identically when every cache call fails."""

    @pytest.mark.asyncio
    async def test_full_lifecycle_without_cache(
        self, uncached_product_service, failing_backend, widget_data
    ):
        service = uncached_product_service

        created = await service.create(widget_data)
        product, cache_hit = await service.get_by_id_with_status(created.id)
        assert product == created
        assert cache_hit is False

        with pytest.raises(ConflictError):
            await service.create(widget_data)

        updated = await service.update(created.id, ProductUpdate(price=Decimal("11.00")))
        assert (await service.get_by_id(created.id)).price == updated.price

        assert await service.adjust_stock(created.id, -7) == -2
        assert await service.get_stock(created.id) == -2
        assert [p.id for p in await service.get_by_category("tools")] == [created.id]
        assert (await service.get_stats()).out_of_stock_products == 1

        await service.delete(created.id)
        with pytest.raises(NotFoundError):
            await service.get_by_id(created.id)
        assert await service.get_all() == []

        assert failing_backend.calls > 0
