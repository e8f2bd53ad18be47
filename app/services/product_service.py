from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import update
from sqlalchemy.orm import Session

from app.core.exceptions import InvalidArgumentError, NotFoundError
from app.core.logging import get_logger
from app.database.connection import unit_of_work
from app.models.category import Category
from app.models.order import OrderItem
from app.models.product import Product
from app.schemas.product import ProductCreate, ProductResponse, ProductUpdate
from app.services.category_service import collect_descendant_ids
from app.services.pricing_service.calculate_price import (
    effective_price,
    has_active_discount,
    quantize_money,
    validate_discount,
    validate_percentage,
)

logger = get_logger(__name__)


def _require_category(db: Session, category_id: int) -> Category:
    category = db.get(Category, category_id)
    if not category:
        raise NotFoundError(f"Category with ID {category_id} not found.")
    return category


def _validate_name(name: Optional[str]) -> str:
    if not name or not name.strip():
        raise InvalidArgumentError("Product name is required", field="name")
    return name


def _validate_price(price: Optional[Decimal]) -> Decimal:
    # checked after rounding to the stored scale so sub-cent amounts cannot become 0.00
    amount = quantize_money(price) if price is not None else None
    if amount is None or amount <= 0:
        raise InvalidArgumentError("Product price must be greater than zero", field="price")
    return amount


def _validate_stock(stock: int) -> int:
    if stock is None or stock < 0:
        raise InvalidArgumentError("Product stock cannot be negative", field="stock")
    return stock


def to_product_response(product: Product, now: Optional[datetime] = None) -> ProductResponse:
    """Final price and discount flag are computed here, never stored."""
    now = now or datetime.utcnow()
    return ProductResponse(
        id=product.id,
        name=product.name,
        description=product.description,
        price=product.price,
        stock=product.stock,
        image_url=product.image_url,
        category_id=product.category_id,
        category_name=product.category.name if product.category else None,
        discount_percentage=product.discount_percentage,
        discount_start_date=product.discount_start_date,
        discount_end_date=product.discount_end_date,
        final_price=effective_price(product, now),
        is_discount_active=has_active_discount(product, now),
        created_at=product.created_at,
        updated_at=product.updated_at,
    )


# --------------------------
# CREATE PRODUCT
# --------------------------
def create_product(db: Session, data: ProductCreate) -> Product:
    _validate_name(data.name)
    price = _validate_price(data.price)
    _validate_stock(data.stock)
    validate_discount(
        data.discount_percentage,
        data.discount_start_date,
        data.discount_end_date,
    )
    _require_category(db, data.category_id)

    now = datetime.utcnow()
    with unit_of_work(db):
        product = Product(**{**data.model_dump(), "price": price}, created_at=now, updated_at=now)
        db.add(product)

    db.refresh(product)
    return product

# --------------------------
# GET PRODUCT
# --------------------------
def get_product(db: Session, product_id: int) -> Product:
    product = db.get(Product, product_id)
    if not product:
        raise NotFoundError(f"Product with ID {product_id} not found.")
    return product

# --------------------------
# LIST PRODUCTS
# --------------------------
def list_products(db: Session) -> List[Product]:
    return db.query(Product).order_by(Product.id).all()


def list_products_by_category(
    db: Session,
    category_id: int,
    include_subcategories: bool = False,
) -> List[Product]:
    _require_category(db, category_id)

    query = db.query(Product)
    if include_subcategories:
        ids = collect_descendant_ids(db, category_id, include_root=True)
        query = query.filter(Product.category_id.in_(ids))
    else:
        query = query.filter(Product.category_id == category_id)
    return query.order_by(Product.id).all()

# --------------------------
# UPDATE PRODUCT
# --------------------------
def _apply_discount_update(product: Product, data: ProductUpdate, sent: set) -> None:
    if data.remove_discount:
        product.discount_percentage = None
        product.discount_start_date = None
        product.discount_end_date = None
        return

    new_pct = data.discount_percentage if "discount_percentage" in sent else None
    new_start = data.discount_start_date if "discount_start_date" in sent else None
    new_end = data.discount_end_date if "discount_end_date" in sent else None

    if new_pct is None and new_start is None and new_end is None:
        return

    if new_pct is not None:
        validate_percentage(new_pct)
    elif product.discount_percentage is None:
        raise InvalidArgumentError(
            "Discount percentage is required when a discount window is set",
            field="discount_percentage",
        )

    pct = new_pct if new_pct is not None else product.discount_percentage
    start = new_start or product.discount_start_date
    end = new_end or product.discount_end_date
    validate_discount(pct, start, end)

    product.discount_percentage = pct
    product.discount_start_date = start
    product.discount_end_date = end


def update_product(db: Session, product_id: int, data: ProductUpdate) -> Product:
    product = get_product(db, product_id)
    sent = data.model_fields_set

    with unit_of_work(db):
        if "name" in sent:
            product.name = _validate_name(data.name)
        if "description" in sent:
            product.description = data.description
        if "price" in sent:
            product.price = _validate_price(data.price)
        if "stock" in sent:
            product.stock = _validate_stock(data.stock)
        if "image_url" in sent:
            product.image_url = data.image_url
        if "category_id" in sent:
            if data.category_id is None:
                raise InvalidArgumentError("Product category is required", field="category_id")
            product.category = _require_category(db, data.category_id)

        _apply_discount_update(product, data, sent)
        product.updated_at = datetime.utcnow()

    db.refresh(product)
    return product


# --------------------------
# DELETE PRODUCT
# --------------------------
def delete_product(db: Session, product_id: int) -> bool:
    product = db.get(Product, product_id)
    if not product:
        return False

    with unit_of_work(db):
        # order history keeps its snapshots, only the link is dropped
        db.execute(
            update(OrderItem)
            .where(OrderItem.product_id == product_id)
            .values(product_id=None)
        )
        db.delete(product)

    logger.info("Deleted product %s", product_id)
    return True
