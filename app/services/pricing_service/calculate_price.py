from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, Any

from app.core.exceptions import InvalidArgumentError

CENTS = Decimal("0.01")
HUNDRED = Decimal("100")


def _to_decimal(value: Any) -> Decimal:
    if isinstance(value, Decimal):
        return value
    # str() first so floats don't leak binary noise into the amount
    return Decimal(str(value))


def quantize_money(amount: Decimal) -> Decimal:
    return amount.quantize(CENTS, rounding=ROUND_HALF_UP)


# ===================== DISCOUNT WINDOW =====================


def has_active_discount(product: Any, now: Optional[datetime] = None) -> bool:
    """
    A discount is active when the percentage is set and > 0, both window
    dates are set, and start <= now <= end.

    `product` is anything exposing discount_percentage, discount_start_date
    and discount_end_date (ORM row or schema).
    """
    percentage = product.discount_percentage
    start = product.discount_start_date
    end = product.discount_end_date

    if percentage is None or _to_decimal(percentage) <= 0:
        return False
    if start is None or end is None:
        return False

    now = now or datetime.utcnow()
    return start <= now <= end


def apply_discount(price: Any, discount_percentage: Any) -> Decimal:
    """
    Apply percentage discount:
    price=100, discount_percentage=20 -> 80.00
    """
    price = _to_decimal(price)
    pct = _to_decimal(discount_percentage)
    return quantize_money(price * (1 - pct / HUNDRED))


def effective_price(product: Any, now: Optional[datetime] = None) -> Decimal:
    """Price actually charged at `now`: discounted inside the window, base price otherwise."""
    if has_active_discount(product, now):
        return apply_discount(product.price, product.discount_percentage)
    return quantize_money(_to_decimal(product.price))


# ===================== VALIDATION =====================


def validate_discount(
    percentage: Optional[Any],
    start: Optional[datetime],
    end: Optional[datetime],
) -> None:
    """
    Discount invariant: when any of the three fields is set, all three must
    be set, the percentage must be within [0, 100] and end must not precede
    start.
    """
    if percentage is None and start is None and end is None:
        return

    if percentage is None:
        raise InvalidArgumentError(
            "Discount percentage is required when a discount window is set",
            field="discount_percentage",
        )
    validate_percentage(percentage)

    if start is None:
        raise InvalidArgumentError(
            "Discount start date is required when discount is applied",
            field="discount_start_date",
        )
    if end is None:
        raise InvalidArgumentError(
            "Discount end date is required when discount is applied",
            field="discount_end_date",
        )
    if end < start:
        raise InvalidArgumentError(
            "Discount end date cannot be earlier than start date",
            field="discount_end_date",
        )


def validate_percentage(percentage: Any) -> None:
    pct = _to_decimal(percentage)
    if pct < 0 or pct > HUNDRED:
        raise InvalidArgumentError(
            "Discount percentage must be between 0 and 100",
            field="discount_percentage",
        )
