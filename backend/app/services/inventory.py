from __future__ import annotations

import logging
from datetime import date
from uuid import UUID

from sqlalchemy import func, or_
from sqlalchemy.orm import Session, joinedload

from backend.app.core.config import settings
from backend.app.core.errors import NotFoundError, POSError, ValidationError
from backend.app.models.inventory import (
    InventoryTransaction,
    InventoryTransactionType,
    Product,
    ProductBatch,
)
from backend.app.services.audit import log_action
from backend.app.services.stock_ledger import BatchPolicy, Reservation, StockLedger

logger = logging.getLogger(__name__)


# ─── Read side ───────────────────────────────────────────────────────────────


def stock_by_product(db: Session, product_ids: list[UUID] | None = None) -> dict[UUID, int]:
    """Sum of batch quantities per product (products without batches omitted)."""
    query = db.query(
        ProductBatch.product_id, func.coalesce(func.sum(ProductBatch.stock_quantity), 0)
    ).group_by(ProductBatch.product_id)
    if product_ids is not None:
        query = query.filter(ProductBatch.product_id.in_(product_ids))
    return {product_id: int(total) for product_id, total in query.all()}


def product_to_dict(product: Product, stock: int) -> dict:
    return {
        "id": product.id,
        "name": product.name,
        "barcode": product.barcode,
        "category_id": product.category_id,
        "category_name": product.category.name if product.category else None,
        "brand_id": product.brand_id,
        "brand_name": product.brand.name if product.brand else None,
        "supplier_id": product.supplier_id,
        "unit_price": product.unit_price,
        "discount_percentage": product.discount_percentage,
        "reorder_level": product.reorder_level,
        "image_url": product.image_url,
        "is_active": product.is_active,
        "stock": stock,
    }


def get_product(db: Session, product_id: UUID) -> Product:
    product = db.get(Product, product_id)
    if product is None:
        raise NotFoundError("Product not found")
    return product


def list_inventory(
    db: Session,
    search: str | None = None,
    category_id: UUID | None = None,
    brand_id: UUID | None = None,
) -> list[dict]:
    """Products with their summed batch stock."""
    query = db.query(Product).options(
        joinedload(Product.category), joinedload(Product.brand)
    )
    if search:
        pattern = f"%{search}%"
        query = query.filter(
            or_(Product.name.ilike(pattern), Product.barcode.ilike(pattern))
        )
    if category_id:
        query = query.filter(Product.category_id == category_id)
    if brand_id:
        query = query.filter(Product.brand_id == brand_id)
    products = query.order_by(Product.name).all()

    stock = stock_by_product(db, [p.id for p in products])
    return [product_to_dict(p, stock.get(p.id, 0)) for p in products]


def list_low_stock(
    db: Session,
    threshold: int | None = None,
    search: str | None = None,
    category_id: UUID | None = None,
    brand_id: UUID | None = None,
) -> list[dict]:
    if threshold is None:
        threshold = settings.LOW_STOCK_THRESHOLD
    return [
        row
        for row in list_inventory(
            db, search=search, category_id=category_id, brand_id=brand_id
        )
        if row["is_active"] and row["stock"] <= threshold
    ]


def find_by_barcode(db: Session, barcode: str, in_stock: bool = False) -> dict:
    product = (
        db.query(Product)
        .options(joinedload(Product.category), joinedload(Product.brand))
        .filter(Product.barcode == barcode.strip())
        .first()
    )
    if product is None:
        raise NotFoundError("Product not found")
    stock = StockLedger(db).available(product.id)
    if in_stock and (not product.is_active or stock <= 0):
        raise NotFoundError(f"Product '{product.name}' is out of stock")
    return product_to_dict(product, stock)


def list_batches(db: Session, product_id: UUID) -> list[ProductBatch]:
    get_product(db, product_id)
    return (
        db.query(ProductBatch)
        .filter(ProductBatch.product_id == product_id)
        .order_by(ProductBatch.expiration_date.is_(None), ProductBatch.expiration_date, ProductBatch.created_at)
        .all()
    )


def _transaction_to_dict(txn: InventoryTransaction) -> dict:
    return {
        "id": txn.id,
        "batch_id": txn.batch_id,
        "product_id": txn.batch.product_id,
        "product_name": txn.batch.product.name,
        "transaction_type": txn.transaction_type.value,
        "quantity": txn.quantity,
        "reference_number": txn.reference_number,
        "notes": txn.notes,
        "user": txn.user.display_name if txn.user else "Unknown",
        "created_at": txn.created_at,
    }


def list_transactions(
    db: Session,
    product_id: UUID | None = None,
    transaction_type: InventoryTransactionType | None = None,
    limit: int = 200,
) -> list[dict]:
    query = db.query(InventoryTransaction).options(
        joinedload(InventoryTransaction.batch).joinedload(ProductBatch.product),
        joinedload(InventoryTransaction.user),
    )
    if product_id:
        query = query.join(InventoryTransaction.batch).filter(
            ProductBatch.product_id == product_id
        )
    if transaction_type:
        query = query.filter(InventoryTransaction.transaction_type == transaction_type)
    txns = query.order_by(InventoryTransaction.created_at.desc()).limit(limit).all()
    return [_transaction_to_dict(t) for t in txns]


# ─── Stock movements ─────────────────────────────────────────────────────────


def restock(
    db: Session,
    product_id: UUID,
    quantity: int,
    user_id: UUID,
    expiration_date: date | None = None,
    notes: str | None = None,
    ip_address: str | None = None,
) -> dict:
    """Receive a new batch and record the RESTOCK movement."""
    product = get_product(db, product_id)
    ledger = StockLedger(db)
    batch = ledger.receive(product.id, quantity, expiration_date)
    txn = InventoryTransaction(
        batch_id=batch.id,
        transaction_type=InventoryTransactionType.RESTOCK,
        quantity=quantity,
        notes=notes,
        user_id=user_id,
    )
    db.add(txn)
    log_action(
        db,
        user_id=user_id,
        action="STOCK_RESTOCKED",
        resource_type="product_batches",
        resource_id=str(batch.id),
        ip_address=ip_address,
        changes={
            "product_id": str(product.id),
            "quantity": quantity,
            "expiration_date": expiration_date.isoformat() if expiration_date else None,
        },
    )
    db.commit()
    logger.info("restocked %d x %s (batch %s)", quantity, product.name, batch.id)

    db.refresh(txn)
    return {
        "product_id": product.id,
        "stock": ledger.available(product.id),
        "transactions": [_transaction_to_dict(txn)],
    }


def record_spoilage(
    db: Session,
    product_id: UUID,
    quantity: int,
    user_id: UUID,
    batch_id: UUID | None = None,
    notes: str | None = None,
    ip_address: str | None = None,
    policy: str | BatchPolicy | None = None,
) -> dict:
    """Write off spoiled stock, from one named batch or by batch policy."""
    product = get_product(db, product_id)
    ledger = StockLedger(db, policy=policy)
    try:
        if batch_id is not None:
            batch = db.get(ProductBatch, batch_id)
            if batch is None:
                raise NotFoundError("Batch not found")
            if batch.product_id != product.id:
                raise ValidationError("Batch does not belong to this product")
            reservation: Reservation = ledger.reserve_from_batch(batch_id, quantity)
        else:
            reservation = ledger.reserve(product.id, quantity, product_name=product.name)

        txns = [
            InventoryTransaction(
                batch_id=allocation.batch_id,
                transaction_type=InventoryTransactionType.SPOILAGE,
                quantity=allocation.quantity,
                notes=notes,
                user_id=user_id,
            )
            for allocation in reservation.allocations
        ]
        db.add_all(txns)
        log_action(
            db,
            user_id=user_id,
            action="STOCK_SPOILED",
            resource_type="products",
            resource_id=str(product.id),
            ip_address=ip_address,
            changes={
                "quantity": quantity,
                "batches": {
                    str(a.batch_id): a.quantity for a in reservation.allocations
                },
            },
        )
        db.commit()
    except POSError:
        db.rollback()
        raise

    logger.info("wrote off %d x %s as spoiled", quantity, product.name)
    for txn in txns:
        db.refresh(txn)
    return {
        "product_id": product.id,
        "stock": ledger.available(product.id),
        "transactions": [_transaction_to_dict(t) for t in txns],
    }
