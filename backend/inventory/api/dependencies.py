"""
FastAPI dependencies for the Inventory API.

Long-lived resources (cache backend, clock) are created once in the
application lifespan and stored on ``app.state``; services are built per
request around a request-scoped database session.
"""

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.clock import Clock, system_clock
from ..core.config import Settings, get_settings
from ..db import get_database_session
from ..domain.cache.repository_interfaces import CacheBackend
from ..repositories import ProductRepository
from ..services.products import ProductService


def get_cache_backend(request: Request) -> CacheBackend:
    """Cache backend selected at startup."""
    return request.app.state.cache_backend


def get_clock(request: Request) -> Clock:
    return getattr(request.app.state, "clock", system_clock)


def get_product_service(
    session: AsyncSession = Depends(get_database_session),
    cache_backend: CacheBackend = Depends(get_cache_backend),
    settings: Settings = Depends(get_settings),
    clock: Clock = Depends(get_clock),
) -> ProductService:
    """Build a ProductService bound to this request's session."""
    return ProductService(
        ProductRepository(session),
        cache_backend,
        settings,
        clock=clock,
    )
