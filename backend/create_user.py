"""Create (or reset) a POS user.

Usage:
    python -m backend.create_user
"""

from __future__ import annotations

import getpass

from sqlalchemy import func
from sqlalchemy.orm import Session

from backend.app.core.database import SessionLocal, init_db
from backend.app.core.errors import ValidationError
from backend.app.core.security import get_password_hash
from backend.app.models.user import RoleEnum, User


def create_user(
    db: Session,
    username: str,
    password: str,
    full_name: str = "",
    role: RoleEnum = RoleEnum.MANAGER,
) -> tuple[User, bool]:
    """Create *username*, or reset its password if it already exists.

    Returns the user and whether it was newly created.
    """
    username = username.strip()
    if not username:
        raise ValidationError("Username cannot be empty")
    if not password:
        raise ValidationError("Password cannot be empty")

    existing = (
        db.query(User).filter(func.lower(User.username) == username.lower()).first()
    )
    if existing:
        existing.hashed_password = get_password_hash(password)
        existing.is_active = True
        if full_name:
            existing.full_name = full_name
        existing.role = role
        db.commit()
        db.refresh(existing)
        return existing, False

    user = User(
        username=username,
        full_name=full_name,
        hashed_password=get_password_hash(password),
        role=role,
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    return user, True


def main() -> None:
    init_db()

    username = input("Username [admin]: ").strip() or "admin"
    full_name = input("Full name: ").strip()
    role_input = input("Role (EMPLOYEE/MANAGER) [MANAGER]: ").strip().upper() or "MANAGER"
    try:
        role = RoleEnum(role_input)
    except ValueError:
        print(f"Error: unknown role {role_input}")
        return
    password = getpass.getpass("Password: ")

    db = SessionLocal()
    try:
        user, created = create_user(db, username, password, full_name, role)
    except ValidationError as e:
        print(f"Error: {e.message}")
        return
    finally:
        db.close()

    print("User created successfully!" if created else "User already exists, password reset!")
    print(f"  ID:       {user.id}")
    print(f"  Username: {user.username}")
    print(f"  Role:     {user.role.value}")


if __name__ == "__main__":
    main()
