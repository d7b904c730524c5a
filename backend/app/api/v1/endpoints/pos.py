from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from backend.app.api.deps import client_ip, get_current_user
from backend.app.core.database import get_db
from backend.app.models.user import User
from backend.app.schemas.pos import (
    SaleCreatedOut,
    SaleRequest,
    ScanProductOut,
    ScanRequest,
)
from backend.app.services.inventory import find_by_barcode
from backend.app.services.pos import create_sale

router = APIRouter()


@router.post("/sale", response_model=SaleCreatedOut)
def post_sale(
    payload: SaleRequest,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> dict:
    result = create_sale(
        db,
        payload,
        current_user.id,
        ip_address=client_ip(request),
    )
    return {
        "success": True,
        "sale_id": result.sale_id,
        "invoice_number": result.invoice_number,
        "final_total": result.final_total,
        "change": result.change,
    }


@router.post("/scan", response_model=ScanProductOut)
def scan_barcode(
    payload: ScanRequest,
    db: Session = Depends(get_db),
    _current_user: User = Depends(get_current_user),
) -> dict:
    return find_by_barcode(db, payload.barcode, in_stock=True)
