from __future__ import annotations

from uuid import UUID, uuid4

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from backend.app.api.deps import client_ip, get_current_user
from backend.app.core.database import get_db
from backend.app.core.errors import NotFoundError, ValidationError
from backend.app.models.inventory import Brand, Category, Product, ProductBatch
from backend.app.models.sales import SaleLine
from backend.app.models.supplier import Supplier
from backend.app.models.user import User
from backend.app.schemas.inventory import (
    BrandCreate,
    BrandOut,
    BrandUpdate,
    CategoryCreate,
    CategoryOut,
    CategoryUpdate,
    ProductCreate,
    ProductOut,
    ProductUpdate,
)
from backend.app.services.audit import log_action
from backend.app.services.inventory import (
    find_by_barcode,
    get_product,
    list_inventory,
    product_to_dict,
)
from backend.app.services.stock_ledger import StockLedger

router = APIRouter()


def _commit_unique(db: Session, message: str) -> None:
    """Commit, reporting a unique-constraint clash as a 400."""
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ValidationError(message)


def _check_references(db: Session, category_id: UUID | None, brand_id: UUID | None, supplier_id: UUID | None) -> None:
    if category_id is not None and db.get(Category, category_id) is None:
        raise ValidationError("Category not found")
    if brand_id is not None and db.get(Brand, brand_id) is None:
        raise ValidationError("Brand not found")
    if supplier_id is not None and db.get(Supplier, supplier_id) is None:
        raise ValidationError("Supplier not found")


# ─── Categories ───────────────────────────────────────────────────────────────


@router.get("/categories", response_model=list[CategoryOut])
def list_categories(
    db: Session = Depends(get_db),
    _current_user: User = Depends(get_current_user),
) -> list[Category]:
    return db.query(Category).order_by(Category.name).all()


@router.post(
    "/categories", response_model=CategoryOut, status_code=status.HTTP_201_CREATED
)
def create_category(
    payload: CategoryCreate,
    db: Session = Depends(get_db),
    _current_user: User = Depends(get_current_user),
) -> Category:
    category = Category(name=payload.name, description=payload.description)
    db.add(category)
    _commit_unique(db, f"Category '{payload.name}' already exists")
    db.refresh(category)
    return category


@router.patch("/categories/{category_id}", response_model=CategoryOut)
def update_category(
    category_id: UUID,
    payload: CategoryUpdate,
    db: Session = Depends(get_db),
    _current_user: User = Depends(get_current_user),
) -> Category:
    category = db.get(Category, category_id)
    if category is None:
        raise NotFoundError("Category not found")
    for field, value in payload.model_dump(exclude_unset=True).items():
        setattr(category, field, value)
    _commit_unique(db, "A category with that name already exists")
    db.refresh(category)
    return category


@router.delete("/categories/{category_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_category(
    category_id: UUID,
    db: Session = Depends(get_db),
    _current_user: User = Depends(get_current_user),
) -> None:
    category = db.get(Category, category_id)
    if category is None:
        raise NotFoundError("Category not found")
    if db.query(Product.id).filter(Product.category_id == category_id).first():
        raise ValidationError("Cannot delete a category that still has products")
    db.delete(category)
    db.commit()


# ─── Brands ───────────────────────────────────────────────────────────────────


@router.get("/brands", response_model=list[BrandOut])
def list_brands(
    db: Session = Depends(get_db),
    _current_user: User = Depends(get_current_user),
) -> list[Brand]:
    return db.query(Brand).order_by(Brand.name).all()


@router.post("/brands", response_model=BrandOut, status_code=status.HTTP_201_CREATED)
def create_brand(
    payload: BrandCreate,
    db: Session = Depends(get_db),
    _current_user: User = Depends(get_current_user),
) -> Brand:
    brand = Brand(name=payload.name, image_url=payload.image_url)
    db.add(brand)
    _commit_unique(db, f"Brand '{payload.name}' already exists")
    db.refresh(brand)
    return brand


@router.patch("/brands/{brand_id}", response_model=BrandOut)
def update_brand(
    brand_id: UUID,
    payload: BrandUpdate,
    db: Session = Depends(get_db),
    _current_user: User = Depends(get_current_user),
) -> Brand:
    brand = db.get(Brand, brand_id)
    if brand is None:
        raise NotFoundError("Brand not found")
    for field, value in payload.model_dump(exclude_unset=True).items():
        setattr(brand, field, value)
    _commit_unique(db, "A brand with that name already exists")
    db.refresh(brand)
    return brand


@router.delete("/brands/{brand_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_brand(
    brand_id: UUID,
    db: Session = Depends(get_db),
    _current_user: User = Depends(get_current_user),
) -> None:
    brand = db.get(Brand, brand_id)
    if brand is None:
        raise NotFoundError("Brand not found")
    if db.query(Product.id).filter(Product.brand_id == brand_id).first():
        raise ValidationError("Cannot delete a brand that still has products")
    db.delete(brand)
    db.commit()


# ─── Products ─────────────────────────────────────────────────────────────────


@router.get("/products", response_model=list[ProductOut])
def list_products(
    search: str | None = Query(None),
    category_id: UUID | None = Query(None),
    brand_id: UUID | None = Query(None),
    db: Session = Depends(get_db),
    _current_user: User = Depends(get_current_user),
) -> list[dict]:
    return list_inventory(db, search=search, category_id=category_id, brand_id=brand_id)


@router.get("/products/barcode/{barcode}", response_model=ProductOut)
def get_product_by_barcode(
    barcode: str,
    db: Session = Depends(get_db),
    _current_user: User = Depends(get_current_user),
) -> dict:
    return find_by_barcode(db, barcode)


@router.get("/products/{product_id}", response_model=ProductOut)
def read_product(
    product_id: UUID,
    db: Session = Depends(get_db),
    _current_user: User = Depends(get_current_user),
) -> dict:
    product = get_product(db, product_id)
    return product_to_dict(product, StockLedger(db).available(product.id))


@router.post(
    "/products", response_model=ProductOut, status_code=status.HTTP_201_CREATED
)
def create_product(
    payload: ProductCreate,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> dict:
    _check_references(db, payload.category_id, payload.brand_id, payload.supplier_id)
    product = Product(id=uuid4(), **payload.model_dump())
    db.add(product)
    log_action(
        db,
        user_id=current_user.id,
        action="PRODUCT_CREATED",
        resource_type="products",
        resource_id=str(product.id),
        ip_address=client_ip(request),
        changes={"name": product.name, "unit_price": str(product.unit_price)},
    )
    _commit_unique(db, f"Barcode '{payload.barcode}' is already in use")
    db.refresh(product)
    return product_to_dict(product, 0)


@router.patch("/products/{product_id}", response_model=ProductOut)
def update_product(
    product_id: UUID,
    payload: ProductUpdate,
    request: Request,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> dict:
    product = get_product(db, product_id)
    update_data = payload.model_dump(exclude_unset=True)
    _check_references(
        db,
        update_data.get("category_id"),
        update_data.get("brand_id"),
        update_data.get("supplier_id"),
    )
    old_values = {f: str(getattr(product, f)) for f in update_data}
    for field, value in update_data.items():
        setattr(product, field, value)

    log_action(
        db,
        user_id=current_user.id,
        action="PRICE_CHANGE"
        if ("unit_price" in update_data or "discount_percentage" in update_data)
        else "PRODUCT_UPDATED",
        resource_type="products",
        resource_id=str(product.id),
        ip_address=client_ip(request),
        changes={"old": old_values, "new": {f: str(v) for f, v in update_data.items()}},
    )

    _commit_unique(db, "Barcode is already in use")
    db.refresh(product)
    return product_to_dict(product, StockLedger(db).available(product.id))


@router.delete("/products/{product_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_product(
    product_id: UUID,
    db: Session = Depends(get_db),
    _current_user: User = Depends(get_current_user),
) -> None:
    product = get_product(db, product_id)
    if db.query(SaleLine.id).filter(SaleLine.product_id == product_id).first():
        raise ValidationError(
            "Cannot delete a product that appears on sales; deactivate it instead"
        )
    if db.query(ProductBatch.id).filter(ProductBatch.product_id == product_id).first():
        raise ValidationError("Cannot delete a product that has stock batches")
    db.delete(product)
    db.commit()
