"""
Unit tests for settings, cache backend selection and database seeding.
"""

import pytest
from pydantic import ValidationError

from inventory.core.config import Settings
from inventory.db.seed import SAMPLE_PRODUCTS, seed_products
from inventory.infrastructure.cache.factory import build_cache_backend
from inventory.infrastructure.cache.memory_backend import InMemoryCacheBackend
from inventory.infrastructure.cache.redis_backend import RedisCacheBackend
from inventory.repositories import ProductRepository


def make_settings(**overrides) -> Settings:
    return Settings(_env_file=None, **overrides)


class TestSettings:
    """Test configuration validation and derived values."""

    def test_expiration_in_seconds(self, settings):
        assert settings.sliding_expiration_seconds == 300
        assert settings.absolute_expiration_seconds == 3600

    @pytest.mark.parametrize(
        "overrides",
        [
            {"ENVIRONMENT": "staging-ish"},
            {"CACHE_BACKEND": "memcached"},
            {"DATABASE_URL": "mysql://localhost/db"},
            {"LOG_LEVEL": "LOUD"},
            {"REDIS_INSTANCE_NAME": "has space"},
        ],
    )
    def test_invalid_values_rejected(self, overrides):
        with pytest.raises(ValidationError):
            make_settings(**overrides)

    def test_environment_flags(self):
        assert make_settings(ENVIRONMENT="development").is_development is True
        assert make_settings(ENVIRONMENT="production").is_production is True


class TestBuildCacheBackend:
    """Test backend selection at startup."""

    def test_memory_backend(self, settings, clock):
        assert isinstance(build_cache_backend(settings, clock=clock), InMemoryCacheBackend)

    def test_redis_backend_built_without_connecting(self, clock):
        """Construction succeeds even though nothing listens on the URL."""
        settings = make_settings(
            CACHE_BACKEND="redis",
            REDIS_URL="redis://127.0.0.1:1/0",
            CIRCUIT_BREAKER_FAILURE_THRESHOLD=2,
        )

        backend = build_cache_backend(settings, clock=clock)

        assert isinstance(backend, RedisCacheBackend)
        assert backend.circuit_breaker.config.failure_threshold == 2


class TestSeedProducts:
    """Test sample data seeding."""

    @pytest.mark.asyncio
    async def test_seeds_empty_table_once(self, session, clock):
        assert await seed_products(session, clock=clock) == len(SAMPLE_PRODUCTS)
        assert await seed_products(session, clock=clock) == 0

        products = await ProductRepository(session).find_all()
        assert len(products) == len(SAMPLE_PRODUCTS)
        assert {p.sku for p in products} >= {"MBP16-M2-001", "NIKE-AM270-001"}
