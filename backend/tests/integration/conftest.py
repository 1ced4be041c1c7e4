"""
Configuration and fixtures for API integration tests.

The application is driven in-process through httpx's ASGI transport. The
lifespan does not run, so the fixtures place the cache backend, clock and
database manager on ``app.state`` themselves.
"""

import httpx
import pytest
import pytest_asyncio

from inventory.core.config import get_settings
from inventory.core.database import DatabaseManager
from inventory.db import get_database_session
from inventory.main import create_app


@pytest_asyncio.fixture
async def database_manager(settings):
    """DatabaseManager on its own in-memory SQLite database, for health checks."""
    manager = DatabaseManager(settings)
    await manager.initialize()
    yield manager
    await manager.close()


def build_app(settings, cache_backend, clock, session_factory, database_manager):
    app = create_app(settings, clock=clock)
    app.state.cache_backend = cache_backend
    app.state.clock = clock
    app.state.database = database_manager

    async def override_session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_database_session] = override_session
    app.dependency_overrides[get_settings] = lambda: settings
    return app


@pytest.fixture
def app(settings, memory_backend, clock, session_factory, database_manager):
    return build_app(settings, memory_backend, clock, session_factory, database_manager)


@pytest.fixture
def uncached_app(settings, failing_backend, clock, session_factory, database_manager):
    """Application whose cache backend is permanently unavailable."""
    return build_app(settings, failing_backend, clock, session_factory, database_manager)


@pytest_asyncio.fixture
async def client(app):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest_asyncio.fixture
async def uncached_client(uncached_app):
    transport = httpx.ASGITransport(app=uncached_app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
def widget_payload():
    return {
        "name": "Widget",
        "description": "A useful widget",
        "price": "9.99",
        "stock_quantity": 5,
        "category": "Tools",
        "sku": "W-1",
    }
