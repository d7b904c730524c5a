from fastapi import APIRouter

from backend.app.api.v1.endpoints import (
    auth,
    catalog,
    inventory,
    invoices,
    pos,
    sales,
    suppliers,
    users,
)

api_router = APIRouter(prefix="/api/v1")

api_router.include_router(auth.router, prefix="/auth", tags=["auth"])
api_router.include_router(catalog.router, tags=["catalog"])
api_router.include_router(inventory.router, prefix="/inventory", tags=["inventory"])
api_router.include_router(pos.router, prefix="/pos", tags=["pos"])
api_router.include_router(sales.router, prefix="/sales", tags=["sales"])
api_router.include_router(invoices.router, prefix="/invoices", tags=["invoices"])
api_router.include_router(suppliers.router, prefix="/suppliers", tags=["suppliers"])
api_router.include_router(users.router, prefix="/users", tags=["users"])
