from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from backend.app.core.config import settings
from backend.app.core.errors import (
    AuthenticationError,
    ConflictError,
    PersistenceError,
    POSError,
    ValidationError,
)
from backend.app.models.inventory import (
    InventoryTransaction,
    InventoryTransactionType,
    Product,
)
from backend.app.models.sales import (
    Invoice,
    InvoiceStatus,
    PaymentMethod,
    Sale,
    SaleLine,
)
from backend.app.schemas.pos import SaleItem, SaleRequest
from backend.app.services.audit import log_action
from backend.app.services.invoice import allocate_invoice_number
from backend.app.services.pricing import (
    HUNDRED,
    ZERO,
    LinePricing,
    price_line,
    total_order,
    unit_price_after_discount,
)
from backend.app.services.stock_ledger import BatchPolicy, Reservation, StockLedger

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SaleResult:
    sale_id: UUID
    invoice_number: str
    final_total: Decimal
    change: Decimal | None


@dataclass
class _Line:
    product: Product
    quantity: int
    unit_price: Decimal
    discount_percentage: Decimal
    reservation: Reservation | None = None
    pricing: LinePricing | None = None


def create_sale(
    db: Session,
    request: SaleRequest,
    user_id: UUID | None,
    *,
    ip_address: str | None = None,
    now: datetime | None = None,
    policy: str | BatchPolicy | None = None,
) -> SaleResult:
    """Record a checkout atomically.

    One attempt validates the cart, takes the stock out of the product
    batches, prices every line, allocates the day's next invoice number and
    writes Sale + SaleLines + Invoice + stock movements in a single
    transaction. Any failure rolls the whole attempt back; an invoice
    number collision (``ConflictError``) re-runs it up to
    ``SALE_MAX_ATTEMPTS`` times.
    """
    if user_id is None:
        raise AuthenticationError("Authentication required")

    now = now or datetime.now(timezone.utc)
    max_attempts = max(1, settings.SALE_MAX_ATTEMPTS)

    for attempt in range(1, max_attempts + 1):
        try:
            return _attempt_sale(db, request, user_id, now, ip_address, policy)
        except ConflictError as exc:
            db.rollback()
            if attempt == max_attempts:
                logger.error(
                    "sale abandoned after %d attempts: %s", max_attempts, exc.message
                )
                raise
            logger.warning(
                "sale attempt %d/%d conflicted (%s), retrying",
                attempt,
                max_attempts,
                exc.message,
            )
        except POSError:
            db.rollback()
            raise
        except SQLAlchemyError as exc:
            db.rollback()
            logger.exception("failed to persist sale for user %s", user_id)
            raise PersistenceError("Failed to record the sale") from exc
        except Exception:
            db.rollback()
            raise

    # max_attempts >= 1 so the loop always returns or raises
    raise ConflictError("Sale could not be recorded")


def _attempt_sale(
    db: Session,
    request: SaleRequest,
    user_id: UUID,
    now: datetime,
    ip_address: str | None,
    policy: str | BatchPolicy | None,
) -> SaleResult:
    # ── Validating ───────────────────────────────────────────────────────
    lines = _validate(db, request)

    # ── Reserving ────────────────────────────────────────────────────────
    # Batch rows are locked in product id order so two carts naming the same
    # products in a different order cannot deadlock each other.
    ledger = StockLedger(db, policy=policy)
    for line in sorted(lines, key=lambda item: item.product.id):
        line.reservation = ledger.reserve(
            line.product.id, line.quantity, product_name=line.product.name
        )

    # ── Pricing ──────────────────────────────────────────────────────────
    for line in lines:
        line.pricing = price_line(
            line.quantity,
            line.unit_price,
            line.discount_percentage,
            request.vat_percentage,
        )
    totals = total_order(line.pricing for line in lines)

    change: Decimal | None = None
    cash_received: Decimal | None = None
    if request.payment_method == PaymentMethod.CASH and request.cash_received is not None:
        cash_received = request.cash_received
        if cash_received < totals.final_total:
            raise ValidationError(
                "Cash received is less than the sale total",
                details={
                    "cash_received": str(cash_received),
                    "final_total": str(totals.final_total),
                },
            )
        change = cash_received - totals.final_total

    # ── Allocating ───────────────────────────────────────────────────────
    invoice_number = allocate_invoice_number(db, now.date())

    # ── Persisting ───────────────────────────────────────────────────────
    sale = Sale(
        invoice_number=invoice_number,
        user_id=user_id,
        sale_date=now,
        payment_method=request.payment_method,
        cash_received=cash_received,
        change_amount=change,
        customer_name=request.customer_name,
        customer_phone=request.customer_phone,
        subtotal_before_discount=totals.subtotal_before_discount,
        total_discount_percentage=totals.discount_percentage,
        total_discount_amount=totals.discount_amount,
        subtotal_after_discount=totals.subtotal_after_discount,
        vat_percentage=request.vat_percentage,
        total_vat_amount=totals.vat_amount,
        final_total=totals.final_total,
    )
    for line in lines:
        pricing = line.pricing
        sale.lines.append(
            SaleLine(
                product_id=line.product.id,
                quantity=line.quantity,
                original_unit_price=line.product.unit_price,
                unit_price=line.unit_price,
                unit_price_after_discount=unit_price_after_discount(
                    line.unit_price, line.discount_percentage
                ),
                discount_percentage=line.discount_percentage,
                vat_percentage=request.vat_percentage,
                line_subtotal_before_discount=pricing.subtotal_before_discount,
                line_discount_amount=pricing.discount_amount,
                line_subtotal_after_discount=pricing.subtotal_after_discount,
                line_vat_amount=pricing.vat_amount,
                line_final_total=pricing.final_total,
            )
        )
    sale.invoice = Invoice(
        invoice_number=invoice_number,
        created_date=now,
        status=InvoiceStatus.GENERATED,
    )
    _persist_sale(db, sale, invoice_number)

    for line in lines:
        for allocation in line.reservation.allocations:
            db.add(
                InventoryTransaction(
                    batch_id=allocation.batch_id,
                    transaction_type=InventoryTransactionType.SALE,
                    quantity=allocation.quantity,
                    reference_number=invoice_number,
                    user_id=user_id,
                )
            )

    log_action(
        db,
        user_id=user_id,
        action="SALE_COMPLETED",
        resource_type="sales",
        resource_id=str(sale.id),
        ip_address=ip_address,
        changes={
            "invoice_number": invoice_number,
            "item_count": sum(line.quantity for line in lines),
            "payment_method": request.payment_method.value,
            "subtotal_before_discount": str(totals.subtotal_before_discount),
            "discount_amount": str(totals.discount_amount),
            "vat_amount": str(totals.vat_amount),
            "final_total": str(totals.final_total),
        },
    )

    db.commit()
    logger.info(
        "sale %s committed: %d lines, total %s",
        invoice_number,
        len(lines),
        totals.final_total,
    )
    return SaleResult(
        sale_id=sale.id,
        invoice_number=invoice_number,
        final_total=totals.final_total,
        change=change,
    )


def _persist_sale(db: Session, sale: Sale, invoice_number: str) -> None:
    """Flush the sale graph; classify a constraint failure.

    Only a failure caused by *invoice_number* already being recorded is a
    retryable ``ConflictError``; any other violation is a ``PersistenceError``.
    """
    try:
        with db.begin_nested():
            db.add(sale)
            db.flush()
    except IntegrityError as exc:
        taken = db.scalar(
            select(Sale.id).where(Sale.invoice_number == invoice_number)
        )
        if taken is not None:
            raise ConflictError(
                f"Invoice number {invoice_number} was taken by a concurrent sale"
            ) from exc
        logger.error("sale %s violated a constraint: %s", invoice_number, exc.orig)
        raise PersistenceError("Failed to record the sale") from exc


def _validate(db: Session, request: SaleRequest) -> list[_Line]:
    if not request.items:
        raise ValidationError("Sale must contain at least one item")
    if not ZERO <= request.vat_percentage <= HUNDRED:
        raise ValidationError("VAT percentage must be between 0 and 100")

    return [_validate_item(db, item) for item in request.items]


def _validate_item(db: Session, item: SaleItem) -> _Line:
    product = db.get(Product, item.product_id)
    if product is None:
        raise ValidationError(
            f"Product {item.product_id} not found",
            details={"product_id": str(item.product_id)},
        )
    if not product.is_active:
        raise ValidationError(
            f"Product '{product.name}' is not available for sale",
            details={"product_id": str(product.id)},
        )
    if item.quantity <= 0:
        raise ValidationError(
            f"Quantity for '{product.name}' must be greater than zero",
            details={"product_id": str(product.id), "quantity": item.quantity},
        )

    unit_price = product.unit_price if item.unit_price is None else item.unit_price
    if unit_price < ZERO:
        raise ValidationError(
            f"Unit price for '{product.name}' must be non-negative",
            details={"product_id": str(product.id)},
        )

    discount = (
        product.discount_percentage
        if item.discount_percentage is None
        else item.discount_percentage
    )
    if not ZERO <= discount <= HUNDRED:
        raise ValidationError(
            f"Discount for '{product.name}' must be between 0 and 100",
            details={"product_id": str(product.id)},
        )

    return _Line(
        product=product,
        quantity=item.quantity,
        unit_price=Decimal(unit_price),
        discount_percentage=Decimal(discount),
    )
