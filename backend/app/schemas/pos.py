from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from pydantic import BaseModel

from backend.app.models.sales import PaymentMethod
from backend.app.services.pricing import DEFAULT_VAT_PERCENTAGE


# ─── Request ──────────────────────────────────────────────────────────────────


class SaleItem(BaseModel):
    product_id: UUID
    quantity: int
    # Omitted price / discount fall back to the product's catalogue values
    unit_price: Decimal | None = None
    discount_percentage: Decimal | None = None


class SaleRequest(BaseModel):
    """Checkout request.

    Range checks (quantity, discount, VAT, cash tendered) are done by
    ``services.pos.create_sale`` so direct callers get the same errors as
    the HTTP API.
    """

    items: list[SaleItem]
    payment_method: PaymentMethod = PaymentMethod.CASH
    cash_received: Decimal | None = None
    vat_percentage: Decimal = DEFAULT_VAT_PERCENTAGE
    customer_name: str | None = None
    customer_phone: str | None = None


# ─── Response ─────────────────────────────────────────────────────────────────


class SaleCreatedOut(BaseModel):
    success: bool = True
    sale_id: UUID
    invoice_number: str
    final_total: Decimal
    change: Decimal | None = None


# ─── Barcode scan ─────────────────────────────────────────────────────────────


class ScanRequest(BaseModel):
    barcode: str


class ScanProductOut(BaseModel):
    id: UUID
    name: str
    barcode: str | None
    unit_price: Decimal
    discount_percentage: Decimal
    stock: int
