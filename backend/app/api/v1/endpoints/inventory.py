from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session

from backend.app.api.deps import client_ip, get_current_user
from backend.app.core.database import get_db
from backend.app.models.inventory import InventoryTransactionType, ProductBatch
from backend.app.models.user import User
from backend.app.schemas.inventory import (
    BatchOut,
    InventoryTransactionOut,
    ProductOut,
    RestockRequest,
    SpoilageRequest,
    StockMovementOut,
)
from backend.app.services.inventory import (
    list_batches,
    list_inventory,
    list_low_stock,
    list_transactions,
    record_spoilage,
    restock,
)

router = APIRouter()


@router.get("", response_model=list[ProductOut])
def get_inventory(
    search: str | None = Query(None),
    category_id: UUID | None = Query(None),
    brand_id: UUID | None = Query(None),
    db: Session = Depends(get_db),
    _current_user: User = Depends(get_current_user),
) -> list[dict]:
    return list_inventory(db, search=search, category_id=category_id, brand_id=brand_id)


@router.get("/low-stock", response_model=list[ProductOut])
def get_low_stock(
    threshold: int | None = Query(None, ge=0),
    search: str | None = Query(None),
    category_id: UUID | None = Query(None),
    brand_id: UUID | None = Query(None),
    db: Session = Depends(get_db),
    _current_user: User = Depends(get_current_user),
) -> list[dict]:
    return list_low_stock(
        db, threshold, search=search, category_id=category_id, brand_id=brand_id
    )


@router.get("/products/{product_id}/batches", response_model=list[BatchOut])
def get_batches(
    product_id: UUID,
    db: Session = Depends(get_db),
    _current_user: User = Depends(get_current_user),
) -> list[ProductBatch]:
    return list_batches(db, product_id)


@router.post(
    "/restock", response_model=StockMovementOut, status_code=status.HTTP_201_CREATED
)
def post_restock(
    payload: RestockRequest,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> dict:
    return restock(
        db,
        product_id=payload.product_id,
        quantity=payload.quantity,
        user_id=current_user.id,
        expiration_date=payload.expiration_date,
        notes=payload.notes,
        ip_address=client_ip(request),
    )


@router.post(
    "/spoilage", response_model=StockMovementOut, status_code=status.HTTP_201_CREATED
)
def post_spoilage(
    payload: SpoilageRequest,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> dict:
    return record_spoilage(
        db,
        product_id=payload.product_id,
        quantity=payload.quantity,
        user_id=current_user.id,
        batch_id=payload.batch_id,
        notes=payload.notes,
        ip_address=client_ip(request),
    )


@router.get("/transactions", response_model=list[InventoryTransactionOut])
def get_transactions(
    product_id: UUID | None = Query(None),
    transaction_type: InventoryTransactionType | None = Query(None),
    limit: int = Query(200, ge=1, le=1000),
    db: Session = Depends(get_db),
    _current_user: User = Depends(get_current_user),
) -> list[dict]:
    return list_transactions(
        db, product_id=product_id, transaction_type=transaction_type, limit=limit
    )
