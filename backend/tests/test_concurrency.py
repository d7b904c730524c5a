"""Concurrent checkouts against a real file-backed database.

These tests do not use the transactional ``db`` fixture: every thread needs
its own connection so the database's locking actually comes into play.
"""
from __future__ import annotations

import threading
from collections.abc import Callable, Generator
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path

import pytest
from sqlalchemy import Engine, func, select
from sqlalchemy.orm import Session, sessionmaker

from backend.app.core.database import Base, build_engine
from backend.app.core.errors import InsufficientStockError
from backend.app.core.security import get_password_hash
from backend.app.models.inventory import Category, Product, ProductBatch
from backend.app.models.sales import Invoice, Sale
from backend.app.models.user import User
from backend.app.schemas.pos import SaleItem, SaleRequest
from backend.app.services.pos import create_sale

NOW = datetime(2025, 6, 16, 12, 0, tzinfo=timezone.utc)


@pytest.fixture()
def race_engine(tmp_path: Path) -> Generator[Engine, None, None]:
    engine = build_engine(f"sqlite:///{tmp_path / 'race.db'}")
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture()
def seed(race_engine: Engine) -> Callable[[int], tuple]:
    def _seed(stock: int) -> tuple:
        with Session(race_engine) as session:
            user = User(username="racer", hashed_password=get_password_hash("pass"))
            category = Category(name="Bakery")
            session.add_all([user, category])
            session.flush()
            product = Product(
                name="Bread", category_id=category.id, unit_price=Decimal("3.00")
            )
            session.add(product)
            session.flush()
            session.add(ProductBatch(product_id=product.id, stock_quantity=stock))
            session.commit()
            return user.id, product.id

    return _seed


def _run_concurrently(
    race_engine: Engine, workers: int, fn: Callable[[Session], object]
) -> list[object]:
    """Run *fn* in *workers* threads released together; collect results or errors."""
    factory = sessionmaker(bind=race_engine, autoflush=False)
    barrier = threading.Barrier(workers)
    outcomes: list[object] = [None] * workers

    def _worker(index: int) -> None:
        with factory() as session:
            barrier.wait()
            try:
                outcomes[index] = fn(session)
            except Exception as exc:  # collected and asserted on by the test
                outcomes[index] = exc

    threads = [threading.Thread(target=_worker, args=(i,)) for i in range(workers)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=60)
    return outcomes


def test_last_unit_is_sold_once(race_engine: Engine, seed) -> None:
    user_id, product_id = seed(1)
    request = SaleRequest(items=[SaleItem(product_id=product_id, quantity=1)])

    outcomes = _run_concurrently(
        race_engine, 6, lambda s: create_sale(s, request, user_id, now=NOW)
    )

    successes = [o for o in outcomes if not isinstance(o, Exception)]
    failures = [o for o in outcomes if isinstance(o, Exception)]
    assert len(successes) == 1
    assert len(failures) == 5
    assert all(isinstance(f, InsufficientStockError) for f in failures)

    with Session(race_engine) as session:
        assert session.scalar(select(func.sum(ProductBatch.stock_quantity))) == 0
        assert session.scalar(select(func.count()).select_from(Sale)) == 1


def test_concurrent_sales_get_distinct_invoice_numbers(race_engine: Engine, seed) -> None:
    user_id, product_id = seed(100)
    request = SaleRequest(items=[SaleItem(product_id=product_id, quantity=2)])
    workers = 8

    outcomes = _run_concurrently(
        race_engine, workers, lambda s: create_sale(s, request, user_id, now=NOW)
    )

    assert not [o for o in outcomes if isinstance(o, Exception)]
    numbers = sorted(o.invoice_number for o in outcomes)
    assert numbers == [f"INV20250616{n:06d}" for n in range(1, workers + 1)]

    with Session(race_engine) as session:
        assert session.scalar(select(func.sum(ProductBatch.stock_quantity))) == 100 - 2 * workers
        assert session.scalar(select(func.count()).select_from(Invoice)) == workers
