"""
Inventory Database Access

FastAPI dependencies that hand out request-scoped sessions from the
DatabaseManager created at application startup.
"""

from typing import AsyncGenerator
import logging

from fastapi import Request
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.database import DatabaseManager

logger = logging.getLogger(__name__)


def get_database_manager(request: Request) -> DatabaseManager:
    """Return the DatabaseManager stored on the application."""
    return request.app.state.database


async def get_database_session(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """
    Get database session with proper error handling.

    Yields:
        AsyncSession: Database session with transaction management
    """
    database = get_database_manager(request)
    async with database.get_session() as session:
        yield session
