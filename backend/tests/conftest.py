"""Shared test fixtures.

Each test runs inside an outer DB transaction that is rolled back after the
test completes; the session under test works on SAVEPOINTs, so service code
can commit and roll back freely without touching other tests.
"""

from __future__ import annotations

import os
import tempfile
from collections.abc import Callable
from datetime import date, datetime
from decimal import Decimal
from typing import Generator

# Point the app at a throwaway SQLite file before any backend module loads
_TMP_DIR = tempfile.mkdtemp(prefix="pos-tests-")
os.environ.setdefault("DATABASE_URL", f"sqlite:///{_TMP_DIR}/pos_test.db")

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy.orm import Session  # noqa: E402

from backend.app.core.database import Base, engine, get_db, init_db  # noqa: E402
from backend.app.core.security import create_access_token, get_password_hash  # noqa: E402
from backend.app.main import app  # noqa: E402
from backend.app.models.inventory import Brand, Category, Product, ProductBatch  # noqa: E402
from backend.app.models.supplier import Supplier  # noqa: E402
from backend.app.models.user import RoleEnum, User  # noqa: E402


@pytest.fixture(scope="session", autouse=True)
def _schema() -> Generator[None, None, None]:
    init_db()
    yield
    Base.metadata.drop_all(bind=engine)


# ─── DB session that rolls back after every test ──────────────────────────────


@pytest.fixture()
def db() -> Generator[Session, None, None]:
    """Yield a session bound to an outer transaction; rolled back after the test."""
    connection = engine.connect()
    transaction = connection.begin()
    session = Session(bind=connection, join_transaction_mode="create_savepoint")

    yield session

    session.close()
    transaction.rollback()
    connection.close()


@pytest.fixture()
def client(db: Session) -> Generator[TestClient, None, None]:
    """FastAPI TestClient wired to the transactional test session."""

    def _override_get_db() -> Generator[Session, None, None]:
        yield db

    app.dependency_overrides[get_db] = _override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


# ─── Auth helpers ─────────────────────────────────────────────────────────────


@pytest.fixture()
def cashier(db: Session) -> User:
    user = User(
        username="test_cashier",
        full_name="Test Cashier",
        hashed_password=get_password_hash("pass"),
        role=RoleEnum.EMPLOYEE,
    )
    db.add(user)
    db.commit()
    return user


@pytest.fixture()
def manager(db: Session) -> User:
    user = User(
        username="test_manager",
        hashed_password=get_password_hash("pass"),
        role=RoleEnum.MANAGER,
    )
    db.add(user)
    db.commit()
    return user


def auth_header(user: User) -> dict[str, str]:
    token = create_access_token(subject=str(user.id))
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def cashier_headers(cashier: User) -> dict[str, str]:
    return auth_header(cashier)


@pytest.fixture()
def manager_headers(manager: User) -> dict[str, str]:
    return auth_header(manager)


# ─── Catalogue ────────────────────────────────────────────────────────────────


@pytest.fixture()
def category(db: Session) -> Category:
    cat = Category(name="Dairy", description="Milk, cheese, yoghurt")
    db.add(cat)
    db.commit()
    return cat


@pytest.fixture()
def brand(db: Session) -> Brand:
    b = Brand(name="Almarai")
    db.add(b)
    db.commit()
    return b


@pytest.fixture()
def supplier(db: Session) -> Supplier:
    s = Supplier(name="Fresh Foods Co", contact_name="Sami", phone="0500000000")
    db.add(s)
    db.commit()
    return s


@pytest.fixture()
def make_product(db: Session, category: Category) -> Callable[..., Product]:
    counter = iter(range(1, 1000))

    def _make(
        name: str | None = None,
        unit_price: str = "5.00",
        discount_percentage: str = "0",
        barcode: str | None = None,
        is_active: bool = True,
        brand: Brand | None = None,
    ) -> Product:
        n = next(counter)
        product = Product(
            name=name or f"Product {n}",
            barcode=barcode,
            category_id=category.id,
            brand_id=brand.id if brand else None,
            unit_price=Decimal(unit_price),
            discount_percentage=Decimal(discount_percentage),
            is_active=is_active,
        )
        db.add(product)
        db.commit()
        return product

    return _make


@pytest.fixture()
def make_batch(db: Session) -> Callable[..., ProductBatch]:
    def _make(
        product: Product,
        quantity: int,
        expiration_date: date | None = None,
        received_at: datetime | None = None,
    ) -> ProductBatch:
        batch = ProductBatch(
            product_id=product.id,
            stock_quantity=quantity,
            expiration_date=expiration_date,
        )
        if received_at is not None:
            batch.created_at = received_at
        db.add(batch)
        db.commit()
        return batch

    return _make


@pytest.fixture()
def product(make_product: Callable[..., Product]) -> Product:
    return make_product(name="Milk 1L", unit_price="5.00", barcode="6281007000017")
