from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy import func
from sqlalchemy.orm import Session

from backend.app.api.deps import client_ip, get_current_user, oauth2_scheme
from backend.app.core.database import get_db
from backend.app.core.security import (
    create_access_token,
    revoke_token,
    verify_password,
)
from backend.app.models.user import User
from backend.app.schemas.auth import Token
from backend.app.schemas.user import UserOut
from backend.app.services.audit import log_action

router = APIRouter()


def _reject_login(
    db: Session, username: str, user: User | None, ip: str | None, reason: str
) -> None:
    log_action(
        db,
        user_id=user.id if user else None,
        action="LOGIN_FAILED",
        resource_type="auth",
        resource_id=username,
        ip_address=ip,
        changes={"reason": reason},
    )
    db.commit()


@router.post("/login/access-token", response_model=Token)
def login_access_token(
    request: Request,
    db: Session = Depends(get_db),
    form_data: OAuth2PasswordRequestForm = Depends(),
) -> dict[str, str]:
    ip = client_ip(request)
    username = form_data.username.strip()
    user = (
        db.query(User)
        .filter(func.lower(User.username) == username.lower())
        .first()
    )

    if not user or not verify_password(form_data.password, user.hashed_password):
        _reject_login(db, username, user, ip, "invalid_credentials")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect username or password",
            headers={"WWW-Authenticate": "Bearer"},
        )
    if not user.is_active:
        _reject_login(db, username, user, ip, "inactive_user")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN, detail="Inactive user"
        )

    log_action(
        db,
        user_id=user.id,
        action="LOGIN_SUCCESS",
        resource_type="auth",
        resource_id=str(user.id),
        ip_address=ip,
        changes={"username": user.username, "role": user.role.value},
    )
    db.commit()

    return {
        "access_token": create_access_token(str(user.id), role=user.role.value),
        "token_type": "bearer",
    }


@router.post("/logout")
def logout(
    token: str = Depends(oauth2_scheme),
    _current_user: User = Depends(get_current_user),
) -> dict[str, str]:
    """Revoke the bearer token used for this request."""
    revoke_token(token)
    return {"detail": "Logged out successfully"}


@router.get("/me", response_model=UserOut)
def read_current_user(current_user: User = Depends(get_current_user)) -> User:
    return current_user
