from __future__ import annotations

from pydantic import BaseModel


class SaleLineOut(BaseModel):
    product_id: str
    product: str
    quantity: int
    original_unit_price: str
    unit_price: str
    unit_price_after_discount: str
    discount_percentage: str
    vat_percentage: str
    subtotal_before_discount: str
    discount_amount: str
    subtotal_after_discount: str
    vat_amount: str
    final_total: str


class SaleHistoryOut(BaseModel):
    id: str
    invoice_number: str
    date: str
    customer_name: str | None
    cashier: str
    payment_method: str
    item_count: int
    final_total: str


class SaleDetailOut(BaseModel):
    id: str
    invoice_number: str
    date: str
    cashier: str
    payment_method: str
    cash_received: str | None
    change_amount: str | None
    customer_name: str | None
    customer_phone: str | None
    items: list[SaleLineOut]
    subtotal_before_discount: str
    total_discount_percentage: str
    total_discount_amount: str
    subtotal_after_discount: str
    vat_percentage: str
    total_vat_amount: str
    final_total: str


class InvoiceSummaryOut(BaseModel):
    id: str
    invoice_number: str
    sale_id: str
    created_date: str
    status: str
    customer_name: str | None
    cashier: str
    final_total: str


class InvoiceDetailOut(BaseModel):
    invoice_number: str
    status: str
    created_date: str
    sale: SaleDetailOut


class InvoiceScanRequest(BaseModel):
    invoice_number: str


class InvoiceScanOut(BaseModel):
    success: bool = True
    invoice_number: str
    sale_id: str
