from __future__ import annotations

import logging
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.orm import Session

from backend.app.core.errors import NotFoundError, ValidationError
from backend.app.core.security import get_password_hash
from backend.app.models.inventory import InventoryTransaction
from backend.app.models.sales import Sale
from backend.app.models.user import RoleEnum, User
from backend.app.services.audit import log_action

logger = logging.getLogger(__name__)


def list_users(db: Session) -> list[User]:
    """Return all users, newest first."""
    return db.query(User).order_by(User.created_at.desc(), User.username).all()


def get_user(db: Session, user_id: UUID) -> User:
    user = db.get(User, user_id)
    if user is None:
        raise NotFoundError("User not found")
    return user


def list_roles() -> list[str]:
    return [role.value for role in RoleEnum]


def _ensure_username_free(
    db: Session, username: str, exclude_id: UUID | None = None
) -> None:
    query = db.query(User.id).filter(func.lower(User.username) == username.lower())
    if exclude_id is not None:
        query = query.filter(User.id != exclude_id)
    if query.first() is not None:
        raise ValidationError("Username already exists", details={"username": username})


def create_user(
    db: Session,
    *,
    username: str,
    password: str,
    role: RoleEnum,
    admin_id: UUID,
    full_name: str = "",
) -> User:
    """Create a user account. Raises ``ValidationError`` if the username is taken."""
    username = username.strip()
    _ensure_username_free(db, username)

    user = User(
        username=username,
        full_name=full_name.strip(),
        hashed_password=get_password_hash(password),
        role=role,
    )
    db.add(user)
    db.flush()

    log_action(
        db,
        user_id=admin_id,
        action="USER_CREATED",
        resource_type="users",
        resource_id=str(user.id),
        changes={"username": username, "role": role.value},
    )
    db.commit()
    db.refresh(user)
    logger.info("user %s created with role %s", username, role.value)
    return user


def update_user(
    db: Session,
    *,
    user_id: UUID,
    admin_id: UUID,
    username: str | None = None,
    full_name: str | None = None,
    role: RoleEnum | None = None,
    password: str | None = None,
    is_active: bool | None = None,
) -> User:
    """Apply the given changes; only changed fields are audited."""
    user = get_user(db, user_id)
    changes: dict[str, object] = {}

    if username is not None:
        username = username.strip()
        if username != user.username:
            _ensure_username_free(db, username, exclude_id=user_id)
            changes["username"] = {"old": user.username, "new": username}
            user.username = username

    if full_name is not None and full_name != user.full_name:
        changes["full_name"] = {"old": user.full_name, "new": full_name}
        user.full_name = full_name

    if role is not None and role != user.role:
        if user_id == admin_id:
            raise ValidationError("You cannot change your own role")
        changes["role"] = {"old": user.role.value, "new": role.value}
        user.role = role

    if is_active is not None and is_active != user.is_active:
        if user_id == admin_id and not is_active:
            raise ValidationError("You cannot deactivate yourself")
        changes["is_active"] = is_active
        user.is_active = is_active

    if password:
        user.hashed_password = get_password_hash(password)
        changes["password"] = "reset"

    if changes:
        log_action(
            db,
            user_id=admin_id,
            action="USER_UPDATED",
            resource_type="users",
            resource_id=str(user.id),
            changes=changes,
        )
        db.commit()
        db.refresh(user)
    return user


def delete_user(db: Session, *, user_id: UUID, admin_id: UUID) -> None:
    """Delete a user that never recorded a sale or stock movement.

    Users with history must be deactivated instead so their records keep
    pointing at them.
    """
    user = get_user(db, user_id)
    if user_id == admin_id:
        raise ValidationError("You cannot delete yourself")

    has_history = (
        db.query(Sale.id).filter(Sale.user_id == user_id).first() is not None
        or db.query(InventoryTransaction.id)
        .filter(InventoryTransaction.user_id == user_id)
        .first()
        is not None
    )
    if has_history:
        raise ValidationError(
            f"User '{user.username}' has recorded sales or stock movements; "
            "deactivate the account instead"
        )

    username = user.username
    db.delete(user)
    log_action(
        db,
        user_id=admin_id,
        action="USER_DELETED",
        resource_type="users",
        resource_id=str(user_id),
        changes={"username": username},
    )
    db.commit()
    logger.info("user %s deleted", username)
