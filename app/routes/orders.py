from datetime import datetime
from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.database.connection import get_db
from app.dependencies.auth import require_admin, require_auth
from app.models.user import User
from app.schemas.order import OrderCreate, OrderResponse
from app.services.order_service import (
    get_order,
    list_orders,
    list_orders_by_date,
    list_orders_by_user,
    list_orders_by_user_and_date,
    place_order,
)

router = APIRouter(prefix="/orders", tags=["Orders"])


# ---------- PLACE ORDER ----------

@router.post("/", response_model=OrderResponse, status_code=201)
def create_order_route(
    data: OrderCreate,
    user: User = Depends(require_auth),
    db: Session = Depends(get_db),
):
    return place_order(db, user.id, data)


# ---------- QUERIES ----------

@router.get("/", response_model=List[OrderResponse], dependencies=[Depends(require_admin)])
def list_orders_route(db: Session = Depends(get_db)):
    return list_orders(db)


@router.get("/filter", response_model=List[OrderResponse], dependencies=[Depends(require_admin)])
def orders_by_date_route(
    start_date: datetime,
    end_date: datetime,
    db: Session = Depends(get_db),
):
    return list_orders_by_date(db, start_date, end_date)


@router.get("/filter/user", response_model=List[OrderResponse])
def orders_by_user_and_date_route(
    user_id: int,
    start_date: datetime,
    end_date: datetime,
    user: User = Depends(require_auth),
    db: Session = Depends(get_db),
):
    return list_orders_by_user_and_date(db, user_id, start_date, end_date, user)


@router.get("/user/{user_id}", response_model=List[OrderResponse])
def orders_by_user_route(
    user_id: int,
    user: User = Depends(require_auth),
    db: Session = Depends(get_db),
):
    return list_orders_by_user(db, user_id, user)


@router.get("/{order_id}", response_model=OrderResponse)
def get_order_route(
    order_id: int,
    user: User = Depends(require_auth),
    db: Session = Depends(get_db),
):
    return get_order(db, order_id, user)
