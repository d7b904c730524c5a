"""Tests for the batch-based stock ledger."""
from __future__ import annotations

import uuid
from datetime import date, datetime, timezone

import pytest
from sqlalchemy.orm import Session

from backend.app.core.errors import (
    ConflictError,
    InsufficientStockError,
    NotFoundError,
    ValidationError,
)
from backend.app.models.inventory import ProductBatch
from backend.app.services.stock_ledger import (
    BatchAllocation,
    StockLedger,
    resolve_policy,
)


def _qty(db: Session, batch: ProductBatch) -> int:
    db.refresh(batch)
    return batch.stock_quantity


# ─── TestAvailable ───────────────────────────────────────────────────────────


class TestAvailable:
    def test_sums_batches(self, db: Session, product, make_batch) -> None:
        make_batch(product, 3)
        make_batch(product, 4)
        assert StockLedger(db).available(product.id) == 7

    def test_no_batches(self, db: Session, product) -> None:
        assert StockLedger(db).available(product.id) == 0


# ─── TestReserve ─────────────────────────────────────────────────────────────


class TestReserve:
    def test_single_batch(self, db: Session, product, make_batch) -> None:
        batch = make_batch(product, 10)
        reservation = StockLedger(db).reserve(product.id, 4)
        assert reservation.allocations == [BatchAllocation(batch.id, 4)]
        assert _qty(db, batch) == 6

    def test_fefo_takes_soonest_expiry_first(self, db: Session, product, make_batch) -> None:
        undated = make_batch(product, 5)
        late = make_batch(product, 5, expiration_date=date(2030, 1, 1))
        soon = make_batch(product, 3, expiration_date=date(2029, 1, 1))

        reservation = StockLedger(db, policy="fefo").reserve(product.id, 9)

        assert reservation.allocations == [
            BatchAllocation(soon.id, 3),
            BatchAllocation(late.id, 5),
            BatchAllocation(undated.id, 1),
        ]
        assert (_qty(db, soon), _qty(db, late), _qty(db, undated)) == (0, 0, 4)

    def test_fifo_and_lifo(self, db: Session, product, make_batch) -> None:
        old = make_batch(product, 2, received_at=datetime(2025, 1, 1, tzinfo=timezone.utc))
        new = make_batch(product, 2, received_at=datetime(2025, 2, 1, tzinfo=timezone.utc))

        fifo = StockLedger(db, policy="fifo").reserve(product.id, 1)
        assert fifo.allocations == [BatchAllocation(old.id, 1)]

        lifo = StockLedger(db, policy="lifo").reserve(product.id, 1)
        assert lifo.allocations == [BatchAllocation(new.id, 1)]

    def test_empty_batches_are_skipped(self, db: Session, product, make_batch) -> None:
        make_batch(product, 0, expiration_date=date(2026, 1, 1))
        full = make_batch(product, 2, expiration_date=date(2027, 1, 1))
        reservation = StockLedger(db).reserve(product.id, 2)
        assert reservation.allocations == [BatchAllocation(full.id, 2)]

    def test_insufficient_stock_leaves_batches_untouched(
        self, db: Session, product, make_batch
    ) -> None:
        batch = make_batch(product, 3)
        with pytest.raises(InsufficientStockError) as exc_info:
            StockLedger(db).reserve(product.id, 5, product_name=product.name)

        err = exc_info.value
        assert (err.product_id, err.requested, err.available) == (product.id, 5, 3)
        assert err.details == {"product_id": str(product.id), "requested": 5, "available": 3}
        assert "Milk 1L" in err.message
        assert _qty(db, batch) == 3

    @pytest.mark.parametrize("quantity", [0, -2])
    def test_non_positive_quantity(self, db: Session, product, quantity: int) -> None:
        with pytest.raises(ValidationError):
            StockLedger(db).reserve(product.id, quantity)

    def test_concurrent_change_is_re_read(
        self, db: Session, product, make_batch, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """A batch drained between read and update makes the ledger re-read."""
        first = make_batch(product, 2, expiration_date=date(2029, 1, 1))
        second = make_batch(product, 5, expiration_date=date(2030, 1, 1))
        ledger = StockLedger(db)
        real_decrement = ledger._decrement
        calls = {"n": 0}

        def _racing_decrement(batch_id, quantity):
            calls["n"] += 1
            if calls["n"] == 1:
                # Another checkout empties the first batch just before us
                db.query(ProductBatch).filter(ProductBatch.id == first.id).update(
                    {ProductBatch.stock_quantity: 0}
                )
            return real_decrement(batch_id, quantity)

        monkeypatch.setattr(ledger, "_decrement", _racing_decrement)
        reservation = ledger.reserve(product.id, 3)

        assert reservation.allocations == [BatchAllocation(second.id, 3)]
        assert _qty(db, second) == 2

    def test_gives_up_after_max_attempts(
        self, db: Session, product, make_batch, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        make_batch(product, 5)
        ledger = StockLedger(db, max_attempts=2)
        monkeypatch.setattr(ledger, "_decrement", lambda batch_id, quantity: False)
        with pytest.raises(ConflictError):
            ledger.reserve(product.id, 1)


# ─── TestReserveFromBatch ────────────────────────────────────────────────────


class TestReserveFromBatch:
    def test_named_batch(self, db: Session, product, make_batch) -> None:
        make_batch(product, 5, expiration_date=date(2029, 1, 1))
        target = make_batch(product, 5, expiration_date=date(2030, 1, 1))
        reservation = StockLedger(db).reserve_from_batch(target.id, 2)
        assert reservation.allocations == [BatchAllocation(target.id, 2)]
        assert _qty(db, target) == 3

    def test_more_than_batch_holds(self, db: Session, product, make_batch) -> None:
        batch = make_batch(product, 2)
        with pytest.raises(InsufficientStockError) as exc_info:
            StockLedger(db).reserve_from_batch(batch.id, 3)
        assert exc_info.value.available == 2
        assert _qty(db, batch) == 2

    def test_unknown_batch(self, db: Session) -> None:
        with pytest.raises(NotFoundError):
            StockLedger(db).reserve_from_batch(uuid.uuid4(), 1)


# ─── TestReceive ─────────────────────────────────────────────────────────────


class TestReceive:
    def test_new_batch(self, db: Session, product) -> None:
        ledger = StockLedger(db)
        batch = ledger.receive(product.id, 12, date(2031, 5, 1))
        assert batch.stock_quantity == 12
        assert batch.expiration_date == date(2031, 5, 1)
        assert ledger.available(product.id) == 12

    def test_rejects_zero(self, db: Session, product) -> None:
        with pytest.raises(ValidationError):
            StockLedger(db).receive(product.id, 0)


# ─── TestPolicies ────────────────────────────────────────────────────────────


class TestPolicies:
    def test_unknown_policy(self) -> None:
        with pytest.raises(ValueError):
            resolve_policy("random")

    def test_callable_policy_is_used_as_is(self) -> None:
        def order():
            return [ProductBatch.id]

        assert resolve_policy(order) is order
