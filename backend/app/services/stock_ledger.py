"""Batch-based stock ledger.

A product's available quantity is the sum of its ``ProductBatch`` rows.
Stock only goes down through a guarded ``UPDATE ... WHERE stock_quantity >=
:n``, executed inside the caller's transaction: the ledger never commits,
and a caller that rolls back after a failed reservation restores every
decrement it made.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import date
from typing import Any
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from backend.app.core.config import settings
from backend.app.core.errors import (
    ConflictError,
    InsufficientStockError,
    NotFoundError,
    ValidationError,
)
from backend.app.models.inventory import ProductBatch

logger = logging.getLogger(__name__)

BatchPolicy = Callable[[], list[Any]]


def _fefo() -> list[Any]:
    # Soonest expiry first; batches without an expiry date go last
    return [
        ProductBatch.expiration_date.is_(None),
        ProductBatch.expiration_date.asc(),
        ProductBatch.created_at.asc(),
        ProductBatch.id.asc(),
    ]


def _fifo() -> list[Any]:
    return [ProductBatch.created_at.asc(), ProductBatch.id.asc()]


def _lifo() -> list[Any]:
    return [ProductBatch.created_at.desc(), ProductBatch.id.desc()]


BATCH_POLICIES: dict[str, BatchPolicy] = {
    "fefo": _fefo,
    "fifo": _fifo,
    "lifo": _lifo,
}


def resolve_policy(policy: str | BatchPolicy | None) -> BatchPolicy:
    if policy is None:
        policy = settings.BATCH_SELECTION_POLICY
    if callable(policy):
        return policy
    try:
        return BATCH_POLICIES[policy.lower()]
    except KeyError:
        raise ValueError(f"Unknown batch selection policy: {policy}") from None


@dataclass(frozen=True)
class BatchAllocation:
    batch_id: UUID
    quantity: int


@dataclass
class Reservation:
    product_id: UUID
    quantity: int
    allocations: list[BatchAllocation] = field(default_factory=list)


class StockLedger:
    def __init__(
        self,
        db: Session,
        policy: str | BatchPolicy | None = None,
        max_attempts: int | None = None,
    ) -> None:
        self.db = db
        self.policy = resolve_policy(policy)
        self.max_attempts = max_attempts or settings.STOCK_RESERVE_MAX_ATTEMPTS

    def available(self, product_id: UUID) -> int:
        total = self.db.execute(
            select(func.coalesce(func.sum(ProductBatch.stock_quantity), 0)).where(
                ProductBatch.product_id == product_id
            )
        ).scalar_one()
        return int(total)

    def reserve(
        self, product_id: UUID, quantity: int, product_name: str | None = None
    ) -> Reservation:
        """Take *quantity* units of a product out of its batches, in policy order.

        Raises ``InsufficientStockError`` when the batches cannot cover the
        request and ``ConflictError`` when concurrent writers keep changing
        the batches under us for ``max_attempts`` re-reads.
        """
        if quantity <= 0:
            raise ValidationError("Quantity must be greater than zero")

        reservation = Reservation(product_id=product_id, quantity=quantity)
        remaining = quantity
        for _ in range(self.max_attempts):
            batches = self.db.execute(
                select(ProductBatch.id, ProductBatch.stock_quantity)
                .where(
                    ProductBatch.product_id == product_id,
                    ProductBatch.stock_quantity > 0,
                )
                .order_by(*self.policy())
            ).all()

            on_hand = sum(qty for _, qty in batches)
            if on_hand < remaining:
                raise InsufficientStockError(
                    product_id,
                    requested=quantity,
                    available=on_hand + (quantity - remaining),
                    product_name=product_name,
                )

            for batch_id, batch_qty in batches:
                take = min(batch_qty, remaining)
                if not self._decrement(batch_id, take):
                    logger.info(
                        "batch %s changed concurrently, re-reading product %s",
                        batch_id,
                        product_id,
                    )
                    break
                reservation.allocations.append(BatchAllocation(batch_id, take))
                remaining -= take
                if remaining == 0:
                    return reservation

        raise ConflictError(
            f"Stock for product {product_id} kept changing; try again",
            details={"product_id": str(product_id)},
        )

    def reserve_from_batch(self, batch_id: UUID, quantity: int) -> Reservation:
        """Take *quantity* units out of one specific batch."""
        if quantity <= 0:
            raise ValidationError("Quantity must be greater than zero")
        batch = self.db.get(ProductBatch, batch_id)
        if batch is None:
            raise NotFoundError("Batch not found")
        if not self._decrement(batch_id, quantity):
            self.db.refresh(batch)
            raise InsufficientStockError(
                batch.product_id,
                requested=quantity,
                available=batch.stock_quantity,
            )
        return Reservation(
            product_id=batch.product_id,
            quantity=quantity,
            allocations=[BatchAllocation(batch_id, quantity)],
        )

    def receive(
        self, product_id: UUID, quantity: int, expiration_date: date | None = None
    ) -> ProductBatch:
        """Record a newly received batch."""
        if quantity <= 0:
            raise ValidationError("Quantity must be greater than zero")
        batch = ProductBatch(
            product_id=product_id,
            stock_quantity=quantity,
            expiration_date=expiration_date,
        )
        self.db.add(batch)
        self.db.flush()
        return batch

    def _decrement(self, batch_id: UUID, quantity: int) -> bool:
        result = self.db.execute(
            update(ProductBatch)
            .where(
                ProductBatch.id == batch_id,
                ProductBatch.stock_quantity >= quantity,
            )
            .values(stock_quantity=ProductBatch.stock_quantity - quantity)
            .execution_options(synchronize_session="evaluate")
        )
        return result.rowcount == 1
