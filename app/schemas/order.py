from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel


class OrderItemRequest(BaseModel):
    product_id: int
    quantity: int


class OrderCreate(BaseModel):
    items: List[OrderItemRequest]


class OrderItemResponse(BaseModel):
    product_id: Optional[int] = None
    quantity: int

    # Display fields (placement time on create, live catalog on reads)
    product_name: Optional[str] = None
    product_image: Optional[str] = None
    product_description: Optional[str] = None
    category: Optional[str] = None
    category_id: Optional[int] = None

    # Snapshots, never recomputed
    price: Decimal
    discounted_price: Decimal
    discount_percentage: Optional[Decimal] = None


class OrderResponse(BaseModel):
    id: int
    user_id: int
    user_name: str
    order_date: datetime
    total_amount: Decimal
    order_items: List[OrderItemResponse]
