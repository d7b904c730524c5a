from __future__ import annotations

from uuid import UUID

from pydantic import BaseModel


class SupplierCreate(BaseModel):
    name: str
    contact_name: str | None = None
    email: str | None = None
    phone: str | None = None
    address: str | None = None


class SupplierUpdate(BaseModel):
    name: str | None = None
    contact_name: str | None = None
    email: str | None = None
    phone: str | None = None
    address: str | None = None


class SupplierOut(BaseModel):
    id: UUID
    name: str
    contact_name: str | None
    email: str | None
    phone: str | None
    address: str | None

    class Config:
        from_attributes = True
