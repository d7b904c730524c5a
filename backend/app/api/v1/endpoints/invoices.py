from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from backend.app.api.deps import get_current_user
from backend.app.core.database import get_db
from backend.app.models.user import User
from backend.app.schemas.sales import (
    InvoiceDetailOut,
    InvoiceScanOut,
    InvoiceScanRequest,
    InvoiceSummaryOut,
)
from backend.app.services.sales import (
    find_invoice_by_number,
    get_invoice_detail,
    list_invoices,
)

router = APIRouter()


@router.get("", response_model=list[InvoiceSummaryOut])
def get_invoices(
    search: str | None = Query(None),
    sort_by: str = Query("date"),
    sort_order: str = Query("desc"),
    db: Session = Depends(get_db),
    _current_user: User = Depends(get_current_user),
) -> list[dict]:
    return list_invoices(db, search=search, sort_by=sort_by, sort_order=sort_order)


@router.post("/scan", response_model=InvoiceScanOut)
def scan_invoice(
    payload: InvoiceScanRequest,
    db: Session = Depends(get_db),
    _current_user: User = Depends(get_current_user),
) -> dict:
    invoice = find_invoice_by_number(db, payload.invoice_number)
    return {
        "success": True,
        "invoice_number": invoice.invoice_number,
        "sale_id": str(invoice.sale_id),
    }


@router.get("/{sale_id}", response_model=InvoiceDetailOut)
def get_invoice(
    sale_id: UUID,
    db: Session = Depends(get_db),
    _current_user: User = Depends(get_current_user),
) -> dict:
    return get_invoice_detail(db, sale_id)
