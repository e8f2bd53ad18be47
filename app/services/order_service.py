from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional

from sqlalchemy import update
from sqlalchemy.orm import Session, selectinload

from app.core.exceptions import (
    FailedPreconditionError,
    ForbiddenError,
    InvalidArgumentError,
    NotFoundError,
)
from app.core.logging import get_logger
from app.core.timeutils import to_naive_utc
from app.database.connection import unit_of_work
from app.models.order import Order, OrderItem
from app.models.product import Product
from app.models.user import User
from app.schemas.order import OrderCreate, OrderItemResponse, OrderResponse
from app.services.pricing_service.calculate_price import (
    effective_price,
    has_active_discount,
    quantize_money,
)

logger = get_logger(__name__)


def _display_fields(product: Optional[Product]) -> dict:
    if product is None:
        return {}
    return {
        "product_name": product.name,
        "product_image": product.image_url,
        "product_description": product.description,
        "category": product.category.name if product.category else None,
        "category_id": product.category_id,
    }


def _validate_request(db: Session, user_id: Optional[int], data: OrderCreate) -> User:
    if not user_id:
        raise InvalidArgumentError("User not identified", field="user_id")
    user = db.get(User, user_id)
    if not user:
        raise NotFoundError(f"User with ID {user_id} not found")

    if not data.items:
        raise InvalidArgumentError("Order items are required", field="items")
    for item in data.items:
        if item.quantity <= 0:
            raise InvalidArgumentError(
                f"Quantity for product {item.product_id} must be greater than zero",
                field="quantity",
            )
    return user


def _lock_products(db: Session, requested: Dict[int, int]) -> Dict[int, Product]:
    products = (
        db.query(Product)
        .filter(Product.id.in_(list(requested)))
        .with_for_update(of=Product)
        .populate_existing()
        .all()
    )
    by_id = {p.id: p for p in products}

    for product_id, quantity in requested.items():
        product = by_id.get(product_id)
        if product is None:
            raise NotFoundError(f"Product with ID {product_id} not found")
        if product.stock < quantity:
            logger.warning(
                "Rejected order line: product %s has %s in stock, %s requested",
                product_id, product.stock, quantity,
            )
            raise FailedPreconditionError(
                f"Insufficient stock for product {product_id} ({product.name}): "
                f"available {product.stock}, requested {quantity}",
                field="quantity",
            )
    return by_id


def _decrement_stock(db: Session, product_id: int, quantity: int) -> None:
    # Conditional decrement: a concurrent placement that got there first
    # leaves zero matched rows instead of negative stock.
    result = db.execute(
        update(Product)
        .where(Product.id == product_id, Product.stock >= quantity)
        .values(stock=Product.stock - quantity)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise FailedPreconditionError(
            f"Insufficient stock for product {product_id}",
            field="quantity",
        )


# ---------- PLACE ORDER ----------

def place_order(db: Session, user_id: Optional[int], data: OrderCreate) -> OrderResponse:
    user = _validate_request(db, user_id, data)

    requested: Dict[int, int] = {}
    for item in data.items:
        requested[item.product_id] = requested.get(item.product_id, 0) + item.quantity

    now = datetime.utcnow()
    with unit_of_work(db):
        products = _lock_products(db, requested)

        order = Order(user_id=user.id, order_date=now, total_amount=Decimal("0.00"))
        lines: List[OrderItemResponse] = []
        total = Decimal("0.00")

        for item in data.items:
            product = products[item.product_id]
            unit_price = quantize_money(Decimal(str(product.price)))
            if has_active_discount(product, now):
                discounted_price = effective_price(product, now)
                discount_percentage = product.discount_percentage
            else:
                discounted_price = unit_price
                discount_percentage = None

            total += discounted_price * item.quantity
            order.items.append(
                OrderItem(
                    product_id=product.id,
                    quantity=item.quantity,
                    unit_price=unit_price,
                    discounted_price=discounted_price,
                    discount_percentage=discount_percentage,
                )
            )
            lines.append(
                OrderItemResponse(
                    product_id=product.id,
                    quantity=item.quantity,
                    price=unit_price,
                    discounted_price=discounted_price,
                    discount_percentage=discount_percentage,
                    **_display_fields(product),
                )
            )

        for product_id, quantity in requested.items():
            _decrement_stock(db, product_id, quantity)

        order.total_amount = quantize_money(total)
        db.add(order)
        db.flush()

        response = OrderResponse(
            id=order.id,
            user_id=user.id,
            user_name=user.username,
            order_date=order.order_date,
            total_amount=order.total_amount,
            order_items=lines,
        )

    logger.info(
        "Order %s placed by user %s: %s line(s), total %s",
        response.id, user.id, len(lines), response.total_amount,
    )
    return response


# ---------- QUERIES ----------

def to_order_response(db: Session, order: Order) -> OrderResponse:
    """
    Money fields come from the stored snapshots; product and category
    display fields are re-read from the live catalog.
    """
    product_ids = {i.product_id for i in order.items if i.product_id is not None}
    products = {}
    if product_ids:
        products = {
            p.id: p for p in db.query(Product).filter(Product.id.in_(product_ids)).all()
        }

    return OrderResponse(
        id=order.id,
        user_id=order.user_id,
        user_name=order.user.username,
        order_date=order.order_date,
        total_amount=order.total_amount,
        order_items=[
            OrderItemResponse(
                product_id=item.product_id,
                quantity=item.quantity,
                price=item.unit_price,
                discounted_price=item.discounted_price,
                discount_percentage=item.discount_percentage,
                **_display_fields(products.get(item.product_id)),
            )
            for item in order.items
        ],
    )


def _can_view(current_user: User, owner_id: int) -> bool:
    return current_user.role == "admin" or current_user.id == owner_id


def _orders_query(db: Session):
    return (
        db.query(Order)
        .options(selectinload(Order.items), selectinload(Order.user))
        .order_by(Order.order_date, Order.id)
    )


def _date_range(start: datetime, end: datetime):
    start, end = to_naive_utc(start), to_naive_utc(end)
    if start is None or end is None:
        raise InvalidArgumentError("Both start_date and end_date are required", field="start_date")
    if end < start:
        raise InvalidArgumentError("End date cannot be earlier than start date", field="end_date")
    return start, end


def _require_user(db: Session, user_id: int) -> User:
    user = db.get(User, user_id)
    if not user:
        raise NotFoundError(f"User with ID {user_id} not found")
    return user


def get_order(db: Session, order_id: int, current_user: User) -> OrderResponse:
    order = _orders_query(db).filter(Order.id == order_id).first()
    if not order:
        raise NotFoundError(f"Order with ID {order_id} not found")
    if not _can_view(current_user, order.user_id):
        raise ForbiddenError("You are not allowed to view this order")
    return to_order_response(db, order)


def list_orders(db: Session) -> List[OrderResponse]:
    return [to_order_response(db, o) for o in _orders_query(db).all()]


def list_orders_by_user(db: Session, user_id: int, current_user: User) -> List[OrderResponse]:
    _require_user(db, user_id)
    if not _can_view(current_user, user_id):
        raise ForbiddenError("You are not allowed to view these orders")
    orders = _orders_query(db).filter(Order.user_id == user_id).all()
    return [to_order_response(db, o) for o in orders]


def list_orders_by_date(db: Session, start: datetime, end: datetime) -> List[OrderResponse]:
    start, end = _date_range(start, end)
    orders = (
        _orders_query(db)
        .filter(Order.order_date >= start, Order.order_date <= end)
        .all()
    )
    return [to_order_response(db, o) for o in orders]


def list_orders_by_user_and_date(
    db: Session,
    user_id: int,
    start: datetime,
    end: datetime,
    current_user: User,
) -> List[OrderResponse]:
    start, end = _date_range(start, end)
    _require_user(db, user_id)
    if not _can_view(current_user, user_id):
        raise ForbiddenError("You are not allowed to view these orders")
    orders = (
        _orders_query(db)
        .filter(
            Order.user_id == user_id,
            Order.order_date >= start,
            Order.order_date <= end,
        )
        .all()
    )
    return [to_order_response(db, o) for o in orders]
