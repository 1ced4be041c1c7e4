"""
Sample catalogue data.

Inserted at startup when SEED_DATABASE is enabled and the products table
has no rows, so a fresh environment has something to serve.
"""

from decimal import Decimal

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..core.clock import Clock, system_clock
from ..models import Product

logger = structlog.get_logger()

SAMPLE_PRODUCTS = [
    {
        "name": 'Apple MacBook Pro 16"',
        "description": "16-inch MacBook Pro with M2 Pro chip",
        "price": Decimal("2499.99"),
        "stock_quantity": 50,
        "category": "Electronics",
        "sku": "MBP16-M2-001",
    },
    {
        "name": "iPhone 15 Pro",
        "description": "Latest iPhone with A17 Pro chip",
        "price": Decimal("999.99"),
        "stock_quantity": 100,
        "category": "Electronics",
        "sku": "IP15-PRO-001",
    },
    {
        "name": "Sony WH-1000XM5",
        "description": "Noise cancelling headphones",
        "price": Decimal("399.99"),
        "stock_quantity": 75,
        "category": "Electronics",
        "sku": "SONY-XM5-001",
    },
    {
        "name": "Nike Air Max 270",
        "description": "Comfortable running shoes",
        "price": Decimal("149.99"),
        "stock_quantity": 200,
        "category": "Fashion",
        "sku": "NIKE-AM270-001",
    },
]


async def seed_products(session: AsyncSession, clock: Clock = system_clock) -> int:
    """
    Insert the sample products into an empty table.

    Returns:
        Number of products inserted (0 when the table already has rows)
    """
    existing = (await session.execute(select(func.count()).select_from(Product))).scalar_one()
    if existing:
        logger.debug("Seed skipped, products table not empty", existing=existing)
        return 0

    now = clock.now()
    session.add_all(
        Product(
            **data,
            is_active=True,
            is_deleted=False,
            created_at=now,
            updated_at=now,
        )
        for data in SAMPLE_PRODUCTS
    )
    await session.commit()

    logger.info("Sample products seeded", count=len(SAMPLE_PRODUCTS))
    return len(SAMPLE_PRODUCTS)
