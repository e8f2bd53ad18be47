from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session
from sqlalchemy import select, func
from sqlalchemy.exc import SQLAlchemyError
from datetime import datetime

from app.core.logging import get_logger
from app.database.connection import get_db
from app.dependencies.auth import require_admin
from app.schemas.system import HealthCheckResponse, SystemMetricsResponse
from app.models.category import Category
from app.models.order import Order
from app.models.product import Product

router = APIRouter(tags=["System"])

logger = get_logger(__name__)


def _uptime(request: Request, now: datetime) -> float:
    start_time = getattr(request.app.state, "start_time", now)
    return (now - start_time).total_seconds()


@router.get("/health", response_model=HealthCheckResponse)
def health_check(request: Request, db: Session = Depends(get_db)):
    """
    Lightweight public health check.
    Returns ok + DB connectivity check (SELECT 1).
    """
    now = datetime.utcnow()

    db_ok = True
    extra = {}
    try:
        db.execute(select(1))
    except SQLAlchemyError as e:
        logger.warning("Health check DB probe failed: %s", e)
        db_ok = False
        extra["db_error"] = str(e)

    return HealthCheckResponse(
        status="ok" if db_ok else "degraded",
        now=now,
        uptime_seconds=_uptime(request, now),
        db_ok=db_ok,
        extra=extra or None,
    )


@router.get("/metrics", response_model=SystemMetricsResponse, dependencies=[Depends(require_admin)])
def system_metrics(request: Request, db: Session = Depends(get_db)):
    """
    Admin-only system metrics in JSON form.
    Uses in-process counters stored on app.state.metrics and DB-derived metrics.
    """
    now = datetime.utcnow()

    metrics = getattr(request.app.state, "metrics", None) or {}
    requests_count = int(metrics.get("requests", 0))
    total_response_ms = float(metrics.get("total_response_ms", 0.0))
    avg_response_ms = (total_response_ms / requests_count) if requests_count > 0 else None

    start_today = datetime.combine(now.date(), datetime.min.time())

    total_categories = db.query(func.count(Category.id)).scalar() or 0
    total_products = db.query(func.count(Product.id)).scalar() or 0
    out_of_stock_products = (
        db.query(func.count(Product.id)).filter(Product.stock == 0).scalar()
    ) or 0
    total_orders = db.query(func.count(Order.id)).scalar() or 0
    total_orders_today = (
        db.query(func.count(Order.id)).filter(Order.order_date >= start_today).scalar()
    ) or 0
    average_order_value = db.query(func.avg(Order.total_amount)).scalar()
    if average_order_value is not None:
        average_order_value = float(average_order_value)

    return SystemMetricsResponse(
        uptime_seconds=_uptime(request, now),
        now=now,
        requests_count=requests_count,
        error_responses=int(metrics.get("error_responses", 0)),
        avg_response_ms=avg_response_ms,
        total_categories=int(total_categories),
        total_products=int(total_products),
        out_of_stock_products=int(out_of_stock_products),
        total_orders_today=int(total_orders_today),
        total_orders=int(total_orders),
        average_order_value=average_order_value,
    )
