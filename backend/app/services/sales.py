from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from sqlalchemy import asc, desc, or_
from sqlalchemy.orm import Session, joinedload, selectinload

from backend.app.core.errors import NotFoundError, ValidationError
from backend.app.models.sales import Invoice, Sale, SaleLine

INVOICE_SORT_COLUMNS = {
    "date": Invoice.created_date,
    "number": Invoice.invoice_number,
    "amount": Sale.final_total,
}


def _money(value: Decimal | None) -> str | None:
    return None if value is None else str(value)


def _cashier(sale: Sale) -> str:
    return sale.user.display_name if sale.user else "Unknown"


def _line_to_dict(line: SaleLine) -> dict:
    return {
        "product_id": str(line.product_id),
        "product": line.product.name if line.product else "Unknown",
        "quantity": line.quantity,
        "original_unit_price": str(line.original_unit_price),
        "unit_price": str(line.unit_price),
        "unit_price_after_discount": str(line.unit_price_after_discount),
        "discount_percentage": str(line.discount_percentage),
        "vat_percentage": str(line.vat_percentage),
        "subtotal_before_discount": str(line.line_subtotal_before_discount),
        "discount_amount": str(line.line_discount_amount),
        "subtotal_after_discount": str(line.line_subtotal_after_discount),
        "vat_amount": str(line.line_vat_amount),
        "final_total": str(line.line_final_total),
    }


def _sale_to_dict(sale: Sale) -> dict:
    return {
        "id": str(sale.id),
        "invoice_number": sale.invoice_number,
        "date": sale.sale_date.isoformat(timespec="seconds"),
        "cashier": _cashier(sale),
        "payment_method": sale.payment_method.value,
        "cash_received": _money(sale.cash_received),
        "change_amount": _money(sale.change_amount),
        "customer_name": sale.customer_name,
        "customer_phone": sale.customer_phone,
        "items": [_line_to_dict(line) for line in sale.lines],
        "subtotal_before_discount": str(sale.subtotal_before_discount),
        "total_discount_percentage": str(sale.total_discount_percentage),
        "total_discount_amount": str(sale.total_discount_amount),
        "subtotal_after_discount": str(sale.subtotal_after_discount),
        "vat_percentage": str(sale.vat_percentage),
        "total_vat_amount": str(sale.total_vat_amount),
        "final_total": str(sale.final_total),
    }


def _load_sale(db: Session, sale_id: UUID) -> Sale:
    sale = (
        db.query(Sale)
        .options(
            joinedload(Sale.user),
            selectinload(Sale.lines).joinedload(SaleLine.product),
        )
        .filter(Sale.id == sale_id)
        .first()
    )
    if sale is None:
        raise NotFoundError(f"Sale {sale_id} not found")
    return sale


def list_sales(db: Session) -> list[dict]:
    """Return all sales, newest first, with item count and cashier."""
    sales = (
        db.query(Sale)
        .options(joinedload(Sale.user), selectinload(Sale.lines))
        .order_by(desc(Sale.sale_date), desc(Sale.invoice_number))
        .all()
    )
    return [
        {
            "id": str(sale.id),
            "invoice_number": sale.invoice_number,
            "date": sale.sale_date.isoformat(timespec="seconds"),
            "customer_name": sale.customer_name,
            "cashier": _cashier(sale),
            "payment_method": sale.payment_method.value,
            "item_count": sum(line.quantity for line in sale.lines),
            "final_total": str(sale.final_total),
        }
        for sale in sales
    ]


def get_sale_detail(db: Session, sale_id: UUID) -> dict:
    """Totals and per-line breakdown of one sale."""
    return _sale_to_dict(_load_sale(db, sale_id))


def list_invoices(
    db: Session,
    search: str | None = None,
    sort_by: str = "date",
    sort_order: str = "desc",
) -> list[dict]:
    column = INVOICE_SORT_COLUMNS.get(sort_by)
    if column is None:
        raise ValidationError(
            f"Invalid sort_by '{sort_by}'",
            details={"allowed": sorted(INVOICE_SORT_COLUMNS)},
        )
    if sort_order not in ("asc", "desc"):
        raise ValidationError(f"Invalid sort_order '{sort_order}'")
    direction = asc if sort_order == "asc" else desc

    query = (
        db.query(Invoice)
        .join(Invoice.sale)
        .options(joinedload(Invoice.sale).joinedload(Sale.user))
    )
    if search:
        pattern = f"%{search}%"
        query = query.filter(
            or_(
                Invoice.invoice_number.ilike(pattern),
                Sale.customer_name.ilike(pattern),
                Sale.customer_phone.ilike(pattern),
            )
        )
    invoices = query.order_by(direction(column), direction(Invoice.invoice_number)).all()

    return [
        {
            "id": str(invoice.id),
            "invoice_number": invoice.invoice_number,
            "sale_id": str(invoice.sale_id),
            "created_date": invoice.created_date.isoformat(timespec="seconds"),
            "status": invoice.status.value,
            "customer_name": invoice.sale.customer_name,
            "cashier": _cashier(invoice.sale),
            "final_total": str(invoice.sale.final_total),
        }
        for invoice in invoices
    ]


def get_invoice_detail(db: Session, sale_id: UUID) -> dict:
    """Receipt view of the invoice issued for *sale_id*."""
    sale = _load_sale(db, sale_id)
    if sale.invoice is None:
        raise NotFoundError(f"No invoice found for sale {sale_id}")
    return {
        "invoice_number": sale.invoice.invoice_number,
        "status": sale.invoice.status.value,
        "created_date": sale.invoice.created_date.isoformat(timespec="seconds"),
        "sale": _sale_to_dict(sale),
    }


def find_invoice_by_number(db: Session, invoice_number: str) -> Invoice:
    invoice = (
        db.query(Invoice)
        .filter(Invoice.invoice_number == invoice_number.strip())
        .first()
    )
    if invoice is None:
        raise NotFoundError(f"Invoice {invoice_number} not found")
    return invoice
