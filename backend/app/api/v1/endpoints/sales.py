from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from backend.app.api.deps import get_current_user
from backend.app.core.database import get_db
from backend.app.models.user import User
from backend.app.schemas.sales import SaleDetailOut, SaleHistoryOut
from backend.app.services.sales import get_sale_detail, list_sales

router = APIRouter()


@router.get("", response_model=list[SaleHistoryOut])
def get_sales(
    db: Session = Depends(get_db),
    _current_user: User = Depends(get_current_user),
) -> list[dict]:
    return list_sales(db)


@router.get("/{sale_id}", response_model=SaleDetailOut)
def get_sale(
    sale_id: UUID,
    db: Session = Depends(get_db),
    _current_user: User = Depends(get_current_user),
) -> dict:
    return get_sale_detail(db, sale_id)
