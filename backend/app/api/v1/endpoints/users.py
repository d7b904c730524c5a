from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from backend.app.api.deps import require_manager
from backend.app.core.database import get_db
from backend.app.models.user import User
from backend.app.schemas.user import UserCreate, UserOut, UserUpdate
from backend.app.services.user_management import (
    create_user,
    delete_user,
    get_user,
    list_roles,
    list_users,
)
from backend.app.services.user_management import update_user as apply_user_update

router = APIRouter()


@router.get("", response_model=list[UserOut])
def list_all_users(
    db: Session = Depends(get_db),
    _manager: User = Depends(require_manager),
) -> list[User]:
    return list_users(db)


@router.get("/roles", response_model=list[str])
def read_roles(_manager: User = Depends(require_manager)) -> list[str]:
    return list_roles()


@router.get("/{user_id}", response_model=UserOut)
def read_user(
    user_id: UUID,
    db: Session = Depends(get_db),
    _manager: User = Depends(require_manager),
) -> User:
    return get_user(db, user_id)


@router.post("", response_model=UserOut, status_code=status.HTTP_201_CREATED)
def create_new_user(
    body: UserCreate,
    db: Session = Depends(get_db),
    manager: User = Depends(require_manager),
) -> User:
    return create_user(
        db,
        username=body.username,
        password=body.password,
        full_name=body.full_name,
        role=body.role,
        admin_id=manager.id,
    )


@router.patch("/{user_id}", response_model=UserOut)
def update_user(
    user_id: UUID,
    body: UserUpdate,
    db: Session = Depends(get_db),
    manager: User = Depends(require_manager),
) -> User:
    return apply_user_update(
        db, user_id=user_id, admin_id=manager.id, **body.model_dump(exclude_unset=True)
    )


@router.delete("/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
def remove_user(
    user_id: UUID,
    db: Session = Depends(get_db),
    manager: User = Depends(require_manager),
) -> None:
    delete_user(db, user_id=user_id, admin_id=manager.id)
