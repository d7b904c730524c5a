"""Typed failures raised by the checkout and inventory services.

Each error knows the HTTP status it maps to; ``backend.app.main`` renders
them as ``{"success": false, "error": ..., "details": ...}``.
"""

from __future__ import annotations

from typing import Any
from uuid import UUID


class POSError(Exception):
    """Base class for every business error the API reports to callers."""

    status_code: int = 500

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"success": False, "error": self.message}
        if self.details:
            body["details"] = self.details
        return body


class ValidationError(POSError):
    status_code = 400


class InsufficientStockError(POSError):
    status_code = 400

    def __init__(self, product_id: UUID, requested: int, available: int, product_name: str | None = None) -> None:
        label = product_name or str(product_id)
        super().__init__(
            f"Insufficient stock for {label}: {available} available, {requested} requested",
            details={
                "product_id": str(product_id),
                "requested": requested,
                "available": available,
            },
        )
        self.product_id = product_id
        self.requested = requested
        self.available = available


class NotFoundError(POSError):
    status_code = 404


class AuthenticationError(POSError):
    status_code = 401


class ConflictError(POSError):
    """A concurrent writer won a race (invoice number, stock row)."""

    status_code = 500


class PersistenceError(POSError):
    """The store failed; the original exception is logged, never returned."""

    status_code = 500
