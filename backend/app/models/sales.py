from __future__ import annotations

import enum
import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Uuid,
    event,
    func,
)
from sqlalchemy.orm import Mapped, mapped_column, object_session, relationship

from backend.app.core.database import Base
from backend.app.core.errors import PersistenceError
from backend.app.models.inventory import Product
from backend.app.models.user import User


class PaymentMethod(str, enum.Enum):
    CASH = "Cash"
    CARD = "Card"


class InvoiceStatus(str, enum.Enum):
    GENERATED = "Generated"


MONEY = Numeric(precision=18, scale=2)
PERCENT = Numeric(precision=5, scale=2)


class Sale(Base):
    """One checkout. Totals are the sums of the line snapshots."""

    __tablename__ = "sales"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    invoice_number: Mapped[str] = mapped_column(String(20), unique=True, nullable=False)
    user_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("users.id"), nullable=False)
    sale_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    payment_method: Mapped[PaymentMethod] = mapped_column(
        Enum(PaymentMethod, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=PaymentMethod.CASH,
    )
    cash_received: Mapped[Decimal | None] = mapped_column(MONEY, nullable=True)
    change_amount: Mapped[Decimal | None] = mapped_column(MONEY, nullable=True)
    customer_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    customer_phone: Mapped[str | None] = mapped_column(String(50), nullable=True)

    subtotal_before_discount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    total_discount_percentage: Mapped[Decimal] = mapped_column(PERCENT, nullable=False)
    total_discount_amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    subtotal_after_discount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    vat_percentage: Mapped[Decimal] = mapped_column(PERCENT, nullable=False)
    total_vat_amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    final_total: Mapped[Decimal] = mapped_column(MONEY, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    user: Mapped[User] = relationship()
    lines: Mapped[list[SaleLine]] = relationship(
        back_populates="sale", cascade="all, delete-orphan", passive_deletes=True
    )
    invoice: Mapped[Invoice | None] = relationship(
        back_populates="sale", cascade="all, delete-orphan", uselist=False
    )

    __table_args__ = (
        CheckConstraint("final_total >= 0", name="ck_sale_final_total_non_negative"),
        Index("ix_sales_sale_date", "sale_date"),
        Index("ix_sales_user", "user_id"),
    )


class SaleLine(Base):
    """Pricing snapshot of one product within a sale."""

    __tablename__ = "sale_lines"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    sale_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("sales.id", ondelete="CASCADE"), nullable=False
    )
    product_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("products.id"), nullable=False
    )
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    original_unit_price: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    unit_price_after_discount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    discount_percentage: Mapped[Decimal] = mapped_column(PERCENT, nullable=False)
    vat_percentage: Mapped[Decimal] = mapped_column(PERCENT, nullable=False)
    line_subtotal_before_discount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    line_discount_amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    line_subtotal_after_discount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    line_vat_amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    line_final_total: Mapped[Decimal] = mapped_column(MONEY, nullable=False)

    sale: Mapped[Sale] = relationship(back_populates="lines")
    product: Mapped[Product] = relationship()

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_sale_line_quantity_positive"),
        Index("ix_sale_lines_sale", "sale_id"),
        Index("ix_sale_lines_product", "product_id"),
    )


class Invoice(Base):
    __tablename__ = "invoices"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    invoice_number: Mapped[str] = mapped_column(String(20), unique=True, nullable=False)
    sale_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("sales.id", ondelete="CASCADE"), unique=True, nullable=False
    )
    created_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    status: Mapped[InvoiceStatus] = mapped_column(
        Enum(InvoiceStatus, values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=InvoiceStatus.GENERATED,
    )
    pdf_path: Mapped[str | None] = mapped_column(String(255), nullable=True)

    sale: Mapped[Sale] = relationship(back_populates="invoice")


@event.listens_for(Sale, "before_update")
@event.listens_for(SaleLine, "before_update")
def _reject_sale_update(mapper, connection, target) -> None:  # type: ignore[no-untyped-def]
    session = object_session(target)
    if session is not None and not session.is_modified(target, include_collections=False):
        return
    raise PersistenceError(
        f"{type(target).__name__} {target.id} is immutable once recorded"
    )
