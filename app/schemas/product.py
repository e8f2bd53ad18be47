from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, field_validator

from app.core.timeutils import to_naive_utc


class DiscountWindowMixin(BaseModel):
    discount_percentage: Optional[Decimal] = None
    discount_start_date: Optional[datetime] = None
    discount_end_date: Optional[datetime] = None

    @field_validator("discount_start_date", "discount_end_date")
    @classmethod
    def _normalise_dates(cls, value: Optional[datetime]) -> Optional[datetime]:
        return to_naive_utc(value)


class ProductCreate(DiscountWindowMixin):
    name: str
    description: Optional[str] = None
    price: Decimal
    stock: int = 0
    image_url: Optional[str] = None
    category_id: int


class ProductUpdate(DiscountWindowMixin):
    name: Optional[str] = None
    description: Optional[str] = None
    price: Optional[Decimal] = None
    stock: Optional[int] = None
    image_url: Optional[str] = None
    category_id: Optional[int] = None
    # wins over any discount field sent alongside it
    remove_discount: bool = False


class ProductResponse(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    price: Decimal
    stock: int
    image_url: Optional[str] = None
    category_id: int
    category_name: Optional[str] = None
    discount_percentage: Optional[Decimal] = None
    discount_start_date: Optional[datetime] = None
    discount_end_date: Optional[datetime] = None
    final_price: Decimal
    is_discount_active: bool
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True
