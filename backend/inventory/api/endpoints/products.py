"""
Products API endpoints

CRUD operations for products, served through the cache-aside
ProductService. Domain errors are mapped to HTTP responses by the
exception handlers registered in main.py.
"""

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query, Request, Response, status
import structlog

from ...schemas import (
    ProductCreate,
    ProductRead,
    ProductStats,
    ProductUpdate,
    StockAdjustment,
    StockLevel,
)
from ...services.products import ProductService
from ..dependencies import get_product_service

logger = structlog.get_logger()
router = APIRouter(prefix="/api/products", tags=["products"])

CACHE_STATUS_HEADER = "X-Cache-Status"


@router.get("", response_model=List[ProductRead])
async def list_products(service: ProductService = Depends(get_product_service)):
    """List all non-deleted products."""
    return await service.get_all()


@router.get("/active", response_model=List[ProductRead])
async def list_active_products(service: ProductService = Depends(get_product_service)):
    """List active products."""
    return await service.get_active()


@router.get("/stats", response_model=ProductStats)
async def get_product_stats(service: ProductService = Depends(get_product_service)):
    """
    Catalogue statistics.

    Cached for a short fixed period, so figures may trail recent writes.
    """
    return await service.get_stats()


@router.get("/category/{category}", response_model=List[ProductRead])
async def list_products_by_category(
    category: str, service: ProductService = Depends(get_product_service)
):
    """List active products in a category (case-insensitive)."""
    return await service.get_by_category(category)


@router.post("/clear-cache")
async def clear_cache(
    product_id: Optional[int] = Query(
        None, description="Also drop this product's entry and stock counter"
    ),
    service: ProductService = Depends(get_product_service),
) -> Dict[str, Any]:
    """Drop cached product views."""
    cleared = await service.clear_cache(product_id)
    logger.info("Cache clear requested", product_id=product_id, keys=len(cleared))
    return {"message": "Cache cleared", "cleared_keys": cleared}


@router.get("/{product_id}", response_model=ProductRead)
async def get_product(
    product_id: int,
    response: Response,
    service: ProductService = Depends(get_product_service),
):
    """
    Get product by ID.

    The X-Cache-Status header reports HIT when the product was served from
    cache and MISS when it was loaded from the database.
    """
    product, cache_hit = await service.get_by_id_with_status(product_id)
    response.headers[CACHE_STATUS_HEADER] = "HIT" if cache_hit else "MISS"
    return product


@router.get("/{product_id}/stock", response_model=StockLevel)
async def get_product_stock(
    product_id: int, service: ProductService = Depends(get_product_service)
):
    """Get current stock level."""
    quantity = await service.get_stock(product_id)
    return StockLevel(product_id=product_id, stock_quantity=quantity)


@router.post("", response_model=ProductRead, status_code=status.HTTP_201_CREATED)
async def create_product(
    product_data: ProductCreate,
    request: Request,
    response: Response,
    service: ProductService = Depends(get_product_service),
):
    """
    Create a new product.

    Returns 409 when the SKU is already taken.
    """
    product = await service.create(product_data)
    response.headers["Location"] = str(
        request.url_for("get_product", product_id=product.id)
    )
    return product


@router.api_route("/{product_id}", methods=["PUT", "PATCH"], response_model=ProductRead)
async def update_product(
    product_id: int,
    update_data: ProductUpdate,
    service: ProductService = Depends(get_product_service),
):
    """
    Update product.

    Merge-patch semantics: fields omitted from the body are left unchanged.
    """
    return await service.update(product_id, update_data)


@router.delete("/{product_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_product(
    product_id: int, service: ProductService = Depends(get_product_service)
):
    """Soft delete a product."""
    await service.delete(product_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.patch("/{product_id}/stock", response_model=StockLevel)
async def adjust_product_stock(
    product_id: int,
    adjustment: StockAdjustment,
    service: ProductService = Depends(get_product_service),
):
    """
    Adjust stock by a signed quantity.

    Stock may go negative (backorder).
    """
    quantity = await service.adjust_stock(product_id, adjustment.quantity)
    return StockLevel(product_id=product_id, stock_quantity=quantity)
