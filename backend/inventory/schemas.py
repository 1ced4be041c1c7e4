"""
Product schemas.

Pydantic models shared by the HTTP layer, the product service and the
cache (ProductRead and ProductStats are what the cache stores).
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # Some drivers hand back naive datetimes for timezone-aware columns
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class ProductBase(BaseModel):
    """Base product schema with validation."""

    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., min_length=1, max_length=200, description="Product name")
    description: Optional[str] = Field(None, max_length=500)
    price: Decimal = Field(
        ..., ge=Decimal("0.01"), max_digits=18, decimal_places=2, description="Unit price"
    )
    category: str = Field(..., min_length=1, max_length=100)


class ProductCreate(ProductBase):
    """Schema for creating products."""

    sku: str = Field(..., min_length=1, max_length=50, description="Stock keeping unit")
    stock_quantity: int = Field(0, ge=0, description="Initial stock level")
    is_active: bool = True


class ProductUpdate(BaseModel):
    """
    Schema for merge-patch updates.

    Only fields present in the request are applied. Sending ``null`` for a
    required field is rejected by the service rather than here, so the
    difference between "absent" and "null" survives ``exclude_unset``.
    """

    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")

    name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = Field(None, max_length=500)
    price: Optional[Decimal] = Field(
        None, ge=Decimal("0.01"), max_digits=18, decimal_places=2
    )
    stock_quantity: Optional[int] = Field(None, ge=0)
    category: Optional[str] = Field(None, min_length=1, max_length=100)
    is_active: Optional[bool] = None


class ProductRead(BaseModel):
    """Schema for reading products."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    description: Optional[str] = None
    price: Decimal
    stock_quantity: int
    category: str
    sku: str
    is_active: bool
    is_deleted: bool = False
    created_at: datetime
    updated_at: datetime
    deleted_at: Optional[datetime] = None

    @field_validator("created_at", "updated_at", "deleted_at")
    @classmethod
    def ensure_utc(cls, v):
        return _as_utc(v)


class ProductStats(BaseModel):
    """Aggregate catalogue statistics over non-deleted products."""

    total_products: int
    active_products: int
    out_of_stock_products: int
    total_inventory_value: Decimal
    products_by_category: Dict[str, int]
    generated_at: datetime

    @field_validator("generated_at")
    @classmethod
    def ensure_utc(cls, v):
        return _as_utc(v)


class StockAdjustment(BaseModel):
    """Signed change to apply to a product's stock level."""

    quantity: int = Field(..., description="Positive to receive, negative to ship")


class StockLevel(BaseModel):
    """Current stock level of one product."""

    product_id: int
    stock_quantity: int
