from pydantic import BaseModel
from typing import Optional, Dict, Any
from datetime import datetime


class HealthCheckResponse(BaseModel):
    status: str
    now: datetime
    uptime_seconds: float
    db_ok: bool
    extra: Optional[Dict[str, Any]] = None


class SystemMetricsResponse(BaseModel):
    uptime_seconds: float
    now: datetime

    # middleware counters
    requests_count: int
    error_responses: int = 0
    avg_response_ms: Optional[float] = None

    # DB metrics
    total_categories: int
    total_products: int
    out_of_stock_products: int
    total_orders_today: int
    total_orders: int
    average_order_value: Optional[float] = None
