from __future__ import annotations

from uuid import UUID

from pydantic import BaseModel, Field

from backend.app.models.user import RoleEnum


class UserOut(BaseModel):
    id: UUID
    username: str
    full_name: str
    role: RoleEnum
    is_active: bool

    class Config:
        from_attributes = True


class UserCreate(BaseModel):
    username: str = Field(..., min_length=3, max_length=150)
    password: str = Field(..., min_length=4, max_length=128)
    full_name: str = Field("", max_length=255)
    role: RoleEnum = RoleEnum.EMPLOYEE


class UserUpdate(BaseModel):
    username: str | None = Field(None, min_length=3, max_length=150)
    password: str | None = Field(None, min_length=4, max_length=128)
    full_name: str | None = Field(None, max_length=255)
    role: RoleEnum | None = None
    is_active: bool | None = None
