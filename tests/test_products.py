from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from app.core.exceptions import InvalidArgumentError, NotFoundError
from app.models.order import Order, OrderItem
from app.models.product import Product
from app.schemas.product import ProductCreate, ProductUpdate
from app.services.product_service import (
    create_product,
    delete_product,
    get_product,
    list_products,
    list_products_by_category,
    to_product_response,
    update_product,
)
from conftest import make_category, make_product


def _payload(category, **overrides):
    data = dict(
        name="Headphones",
        description="Over-ear",
        price=Decimal("100.00"),
        stock=5,
        image_url="https://img.example.com/headphones.png",
        category_id=category.id,
    )
    data.update(overrides)
    return ProductCreate(**data)


def test_create_with_active_discount_reports_final_price(db, electronics):
    now = datetime.utcnow()
    product = create_product(
        db,
        _payload(
            electronics,
            discount_percentage=Decimal("20"),
            discount_start_date=now - timedelta(hours=1),
            discount_end_date=now + timedelta(hours=1),
        ),
    )

    response = to_product_response(get_product(db, product.id))
    assert response.final_price == Decimal("80.00")
    assert response.is_discount_active is True
    assert response.category_name == "Electronics"
    assert response.created_at is not None
    assert response.created_at == response.updated_at


def test_create_normalises_aware_discount_dates(db, electronics):
    now = datetime.now(timezone.utc)
    product = create_product(
        db,
        _payload(
            electronics,
            discount_percentage=Decimal("10"),
            discount_start_date=now - timedelta(hours=1),
            discount_end_date=now + timedelta(hours=1),
        ),
    )
    assert product.discount_start_date.tzinfo is None
    assert to_product_response(product).is_discount_active is True


@pytest.mark.parametrize(
    "overrides, field",
    [
        ({"name": ""}, "name"),
        ({"price": Decimal("0")}, "price"),
        ({"price": Decimal("-5")}, "price"),
        ({"stock": -1}, "stock"),
        ({"discount_percentage": Decimal("150"),
          "discount_start_date": datetime(2025, 1, 1),
          "discount_end_date": datetime(2025, 2, 1)}, "discount_percentage"),
        ({"discount_percentage": Decimal("10")}, "discount_start_date"),
        ({"discount_percentage": Decimal("10"),
          "discount_start_date": datetime(2025, 2, 1),
          "discount_end_date": datetime(2025, 1, 1)}, "discount_end_date"),
        ({"discount_end_date": datetime(2025, 1, 1)}, "discount_percentage"),
    ],
)
def test_create_validation(db, electronics, overrides, field):
    with pytest.raises(InvalidArgumentError) as exc:
        create_product(db, _payload(electronics, **overrides))
    assert exc.value.field == field
    assert db.query(Product).count() == 0


def test_create_requires_existing_category(db, electronics):
    with pytest.raises(NotFoundError):
        create_product(db, _payload(electronics, category_id=electronics.id + 100))


def test_get_missing_product(db):
    with pytest.raises(NotFoundError):
        get_product(db, 999)


def test_partial_update_only_touches_sent_fields(db, electronics):
    product = make_product(db, electronics, name="Mouse", price="25.00", stock=3)
    before = product.updated_at

    updated = update_product(db, product.id, ProductUpdate(stock=7))
    assert updated.stock == 7
    assert updated.name == "Mouse"
    assert updated.price == Decimal("25.00")
    assert updated.updated_at >= before


def test_update_validates_present_fields(db, electronics):
    product = make_product(db, electronics)
    with pytest.raises(InvalidArgumentError):
        update_product(db, product.id, ProductUpdate(price=Decimal("0")))
    with pytest.raises(InvalidArgumentError):
        update_product(db, product.id, ProductUpdate(name=""))
    db.refresh(product)
    assert product.price == Decimal("100.00")


def test_update_missing_product(db):
    with pytest.raises(NotFoundError):
        update_product(db, 321, ProductUpdate(name="x"))


def test_update_category_must_exist(db, electronics):
    product = make_product(db, electronics)
    with pytest.raises(NotFoundError):
        update_product(db, product.id, ProductUpdate(category_id=9999))

    books = make_category(db, "Books")
    moved = update_product(db, product.id, ProductUpdate(category_id=books.id))
    assert moved.category_id == books.id
    assert to_product_response(moved).category_name == "Books"


def test_remove_discount_wins_over_new_percentage(db, electronics):
    product = make_product(db, electronics, discount=30)

    updated = update_product(
        db,
        product.id,
        ProductUpdate(remove_discount=True, discount_percentage=Decimal("10")),
    )
    assert updated.discount_percentage is None
    assert updated.discount_start_date is None
    assert updated.discount_end_date is None
    assert to_product_response(updated).final_price == Decimal("100.00")


def test_new_percentage_reuses_existing_window(db, electronics):
    product = make_product(db, electronics, discount=30)
    start, end = product.discount_start_date, product.discount_end_date

    updated = update_product(db, product.id, ProductUpdate(discount_percentage=Decimal("50")))
    assert updated.discount_percentage == Decimal("50")
    assert updated.discount_start_date == start
    assert updated.discount_end_date == end
    assert to_product_response(updated).final_price == Decimal("50.00")


def test_new_percentage_without_any_window_is_rejected(db, electronics):
    product = make_product(db, electronics)
    with pytest.raises(InvalidArgumentError) as exc:
        update_product(db, product.id, ProductUpdate(discount_percentage=Decimal("10")))
    assert exc.value.field == "discount_start_date"


def test_new_window_must_not_end_before_start(db, electronics):
    product = make_product(db, electronics, discount=10)
    with pytest.raises(InvalidArgumentError) as exc:
        update_product(
            db,
            product.id,
            ProductUpdate(discount_end_date=product.discount_start_date - timedelta(days=1)),
        )
    assert exc.value.field == "discount_end_date"


def test_window_without_percentage_requires_existing_discount(db, electronics):
    product = make_product(db, electronics)
    with pytest.raises(InvalidArgumentError) as exc:
        update_product(db, product.id, ProductUpdate(discount_end_date=datetime(2030, 1, 1)))
    assert exc.value.field == "discount_percentage"


def test_delete_product_keeps_order_snapshots(db, electronics, buyer):
    product = make_product(db, electronics, price="40.00")
    product_id = product.id
    order = Order(user_id=buyer.id, total_amount=Decimal("40.00"))
    order.items.append(
        OrderItem(
            product_id=product_id,
            quantity=1,
            unit_price=Decimal("40.00"),
            discounted_price=Decimal("40.00"),
        )
    )
    db.add(order)
    db.commit()

    assert delete_product(db, product_id) is True
    assert delete_product(db, product_id) is False
    assert db.get(Product, product_id) is None

    item = db.query(OrderItem).one()
    assert item.product_id is None
    assert item.discounted_price == Decimal("40.00")


def test_list_by_category_with_and_without_subtree(db, electronics):
    phones = make_category(db, "Phones", electronics)
    android = make_category(db, "Android", phones)
    other = make_category(db, "Garden")

    tv = make_product(db, electronics, name="TV")
    phone = make_product(db, phones, name="Phone")
    pixel = make_product(db, android, name="Pixel")
    make_product(db, other, name="Rake")

    exact = list_products_by_category(db, electronics.id)
    assert [p.id for p in exact] == [tv.id]

    subtree = list_products_by_category(db, electronics.id, include_subcategories=True)
    assert [p.id for p in subtree] == [tv.id, phone.id, pixel.id]

    assert [p.name for p in list_products(db)] == ["TV", "Phone", "Pixel", "Rake"]

    with pytest.raises(NotFoundError):
        list_products_by_category(db, 5555)


def test_sub_cent_price_is_rejected_on_create(db, electronics):
    with pytest.raises(InvalidArgumentError) as exc:
        create_product(db, _payload(electronics, name="Tiny", price=Decimal("0.004")))
    assert exc.value.field == "price"
    assert db.query(Product).count() == 0


def test_price_is_stored_rounded_to_cents(db, electronics):
    created = create_product(db, _payload(electronics, price=Decimal("19.995")))
    assert get_product(db, created.id).price == Decimal("20.00")


def test_sub_cent_price_is_rejected_on_update(db, electronics):
    product = make_product(db, electronics)
    with pytest.raises(InvalidArgumentError) as exc:
        update_product(db, product.id, ProductUpdate(price=Decimal("0.001")))
    assert exc.value.field == "price"
    db.refresh(product)
    assert product.price == Decimal("100.00")


def test_update_rejects_null_category(db, electronics):
    product = make_product(db, electronics)
    with pytest.raises(InvalidArgumentError) as exc:
        update_product(db, product.id, ProductUpdate(category_id=None))
    assert exc.value.field == "category_id"
    db.refresh(product)
    assert product.category_id == electronics.id
