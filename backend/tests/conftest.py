"""
Main pytest configuration for all backend tests.

Fixtures for unit and integration tests: a manual clock, cache backends
(in-process, fakeredis-backed and always-failing), an in-memory SQLite
store and a ProductService wired to them.
"""

import os

# Set test environment variables before importing app modules
os.environ["ENVIRONMENT"] = "test"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["CACHE_BACKEND"] = "memory"
os.environ["SEED_DATABASE"] = "false"
os.environ["LOG_LEVEL"] = "DEBUG"

from decimal import Decimal
from typing import AsyncGenerator

import fakeredis
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from inventory.core.clock import ManualClock
from inventory.core.config import Settings
from inventory.domain.cache.repository_interfaces import CacheBackend
from inventory.infrastructure.cache.exceptions import CacheUnavailableError
from inventory.infrastructure.cache.memory_backend import InMemoryCacheBackend
from inventory.infrastructure.cache.redis_backend import RedisCacheBackend
from inventory.models import Base
from inventory.repositories import ProductRepository
from inventory.schemas import ProductCreate
from inventory.services.products import ProductService


class FailingCacheBackend(CacheBackend):
    """Cache backend whose every operation fails, as if Redis were down."""

    name = "failing"

    def __init__(self):
        self.calls = 0

    def _fail(self, operation, key):
        self.calls += 1
        raise CacheUnavailableError(
            operation=operation,
            key=str(key),
            original_error=ConnectionError("cache is down"),
        )

    async def get_string(self, key):
        self._fail("get", key)

    async def set_string(self, key, value, policy):
        self._fail("set", key)

    async def remove(self, key):
        self._fail("delete", key)

    async def exists(self, key):
        self._fail("exists", key)

    async def health_check(self):
        return {"status": "unhealthy", "backend": self.name}


@pytest.fixture
def clock():
    """Clock that only moves when the test advances it."""
    return ManualClock()


@pytest.fixture
def settings():
    """Settings isolated from the developer's environment and .env file."""
    return Settings(
        _env_file=None,
        ENVIRONMENT="test",
        DATABASE_URL="sqlite+aiosqlite://",
        CACHE_BACKEND="memory",
        CACHE_SLIDING_EXPIRATION_MINUTES=5,
        CACHE_ABSOLUTE_EXPIRATION_MINUTES=60,
        CACHE_STATS_TTL_SECONDS=300,
    )


@pytest.fixture
def memory_backend(clock):
    return InMemoryCacheBackend(clock=clock)


@pytest.fixture
def failing_backend():
    return FailingCacheBackend()


@pytest_asyncio.fixture
async def fake_redis():
    """Async fakeredis client on a private server."""
    server = fakeredis.FakeServer()
    client = fakeredis.FakeAsyncRedis(server=server, decode_responses=True)
    yield client
    await client.aclose()


@pytest.fixture
def redis_backend(fake_redis, clock):
    return RedisCacheBackend(fake_redis, instance_name="test_", clock=clock)


@pytest_asyncio.fixture
async def engine():
    """In-memory SQLite engine shared across sessions of one test."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(
        bind=engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
    )


@pytest_asyncio.fixture
async def session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def product_repository(session):
    return ProductRepository(session)


@pytest.fixture
def product_service(product_repository, memory_backend, settings, clock):
    return ProductService(product_repository, memory_backend, settings, clock=clock)


@pytest.fixture
def uncached_product_service(product_repository, failing_backend, settings, clock):
    """ProductService whose cache backend is permanently unavailable."""
    return ProductService(product_repository, failing_backend, settings, clock=clock)


@pytest.fixture
def widget_data():
    return ProductCreate(
        name="Widget",
        description="A useful widget",
        price=Decimal("9.99"),
        stock_quantity=5,
        category="Tools",
        sku="W-1",
    )
