from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel, field_validator


# ─── Categories & Brands ──────────────────────────────────────────────────────


class CategoryCreate(BaseModel):
    name: str
    description: str | None = None


class CategoryUpdate(BaseModel):
    name: str | None = None
    description: str | None = None


class CategoryOut(BaseModel):
    id: UUID
    name: str
    description: str | None

    class Config:
        from_attributes = True


class BrandCreate(BaseModel):
    name: str
    image_url: str | None = None


class BrandUpdate(BaseModel):
    name: str | None = None
    image_url: str | None = None


class BrandOut(BaseModel):
    id: UUID
    name: str
    image_url: str | None

    class Config:
        from_attributes = True


# ─── Products ─────────────────────────────────────────────────────────────────


class ProductCreate(BaseModel):
    name: str
    barcode: str | None = None
    category_id: UUID
    brand_id: UUID | None = None
    supplier_id: UUID | None = None
    unit_price: Decimal
    discount_percentage: Decimal = Decimal("0")
    reorder_level: int = 0
    image_url: str | None = None
    # No stock field: stock arrives through /inventory/restock as a batch

    @field_validator("unit_price")
    @classmethod
    def price_non_negative(cls, v: Decimal) -> Decimal:
        if v < 0:
            raise ValueError("Price must be non-negative")
        return v

    @field_validator("discount_percentage")
    @classmethod
    def discount_in_range(cls, v: Decimal) -> Decimal:
        if not 0 <= v <= 100:
            raise ValueError("Discount percentage must be between 0 and 100")
        return v


class ProductUpdate(BaseModel):
    name: str | None = None
    barcode: str | None = None
    category_id: UUID | None = None
    brand_id: UUID | None = None
    supplier_id: UUID | None = None
    unit_price: Decimal | None = None
    discount_percentage: Decimal | None = None
    reorder_level: int | None = None
    image_url: str | None = None
    is_active: bool | None = None

    @field_validator("unit_price")
    @classmethod
    def price_non_negative(cls, v: Decimal | None) -> Decimal | None:
        if v is not None and v < 0:
            raise ValueError("Price must be non-negative")
        return v

    @field_validator("discount_percentage")
    @classmethod
    def discount_in_range(cls, v: Decimal | None) -> Decimal | None:
        if v is not None and not 0 <= v <= 100:
            raise ValueError("Discount percentage must be between 0 and 100")
        return v


class ProductOut(BaseModel):
    id: UUID
    name: str
    barcode: str | None
    category_id: UUID
    category_name: str | None = None
    brand_id: UUID | None
    brand_name: str | None = None
    supplier_id: UUID | None
    unit_price: Decimal
    discount_percentage: Decimal
    reorder_level: int
    image_url: str | None
    is_active: bool
    stock: int = 0


# ─── Batches & stock movements ────────────────────────────────────────────────


class BatchOut(BaseModel):
    id: UUID
    product_id: UUID
    stock_quantity: int
    expiration_date: date | None
    created_at: datetime | None

    class Config:
        from_attributes = True


class RestockRequest(BaseModel):
    product_id: UUID
    quantity: int
    expiration_date: date | None = None
    notes: str | None = None

    @field_validator("quantity")
    @classmethod
    def quantity_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("Quantity must be greater than zero")
        return v


class SpoilageRequest(BaseModel):
    product_id: UUID
    quantity: int
    # Write off a specific batch; otherwise batches are picked by policy
    batch_id: UUID | None = None
    notes: str | None = None

    @field_validator("quantity")
    @classmethod
    def quantity_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("Quantity must be greater than zero")
        return v


class InventoryTransactionOut(BaseModel):
    id: UUID
    batch_id: UUID
    product_id: UUID
    product_name: str
    transaction_type: str
    quantity: int
    reference_number: str | None
    notes: str | None
    user: str
    created_at: datetime | None


class StockMovementOut(BaseModel):
    success: bool = True
    product_id: UUID
    stock: int
    transactions: list[InventoryTransactionOut]
