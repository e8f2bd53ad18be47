from datetime import datetime
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from app.core.exceptions import CatalogError
from app.core.logging import get_logger, setup_logging
from app.middleware.metrics import MetricsMiddleware, new_metrics
from app.routes import system
from app.database.connection import Base, engine
from app.models import category, order, product, user  # noqa: F401  (register tables)
from app.routes.auth import router as auth_router
from app.routes.categories import router as category_router
from app.routes.products import router as product_router
from app.routes.orders import router as order_router

setup_logging()
logger = get_logger(__name__)

Base.metadata.create_all(bind=engine)

app = FastAPI(title="Catalog & Order Management")

app.add_middleware(MetricsMiddleware)


@app.exception_handler(CatalogError)
async def catalog_error_handler(request: Request, exc: CatalogError):
    if exc.http_status >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.http_status, content=exc.to_dict())


app.include_router(auth_router)
app.include_router(category_router)
app.include_router(product_router)
app.include_router(order_router)
app.include_router(system.router)

@app.on_event("startup")
async def startup_event():
    app.state.start_time = datetime.utcnow()
    app.state.metrics = new_metrics()
