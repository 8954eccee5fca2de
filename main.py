"""
Fulfillment Engine API.

Wires the routers, logging and error handlers. Storage is selected by
DATA_BACKEND (memory or supabase); see repositories.get_repository.
"""

from contextlib import asynccontextmanager
from datetime import datetime
import logging
import secrets

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from config import settings, check_connection
from exceptions import AppError


def configure_logging() -> None:
    """Route structlog through stdlib logging at the configured level."""
    logging.basicConfig(format="%(message)s", level=settings.log_level)

    renderer = (
        structlog.processors.JSONRenderer()
        if settings.is_production
        else structlog.dev.ConsoleRenderer()
    )
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


configure_logging()
logger = structlog.get_logger(__name__)


def _log_backend_status(db_status: dict) -> None:
    status = db_status["status"]
    if status == "healthy":
        logger.info(
            "storage_ready",
            backend=db_status["backend"],
            warehouses=db_status.get("warehouses_count"),
            orders=db_status.get("orders_count"),
        )
    elif status == "degraded":
        logger.warning("database_tables_missing", tables=db_status.get("missing_tables"))
    else:
        logger.error("storage_unavailable", backend=db_status["backend"], error=db_status.get("error"))


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(
        "application_starting",
        environment=settings.environment,
        backend=settings.data_backend,
        debug=settings.debug,
    )
    _log_backend_status(check_connection())

    if not settings.channel_configured:
        logger.warning("channel_not_configured")

    yield

    logger.info("application_shutting_down")


app = FastAPI(
    title="Fulfillment Engine",
    description="Material lots, production and order fulfillment for a marketplace seller",
    version="0.1.0",
    lifespan=lifespan,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://localhost:5173"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def bind_request_id(request: Request, call_next):
    """Tag every log line of a request with one id, echoed back in X-Request-Id."""
    request_id = request.headers.get("X-Request-Id") or secrets.token_hex(8)
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(request_id=request_id, path=request.url.path)
    response = await call_next(request)
    response.headers["X-Request-Id"] = request_id
    return response


# ===================
# ERROR HANDLERS
# ===================

@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    # Routes map their own errors; this covers dependencies and anything re-raised
    logger.warning("request_failed", code=exc.code, status_code=exc.status_code)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.error(
        "unhandled_exception",
        method=request.method,
        error=str(exc),
        error_type=type(exc).__name__,
    )
    return JSONResponse(
        status_code=500,
        content={
            "error": {
                "code": "INTERNAL_ERROR",
                "message": "An unexpected error occurred",
                "details": {"error": str(exc)} if settings.debug else None,
                "timestamp": datetime.utcnow().isoformat(),
            }
        },
    )


# ===================
# SYSTEM ROUTES
# ===================

@app.get("/health")
async def health_check():
    """Storage health plus whether the marketplace channel can be polled."""
    db_status = check_connection()
    return {
        "status": "healthy" if db_status["status"] == "healthy" else "degraded",
        "timestamp": datetime.utcnow().isoformat(),
        "environment": settings.environment,
        "storage": db_status,
        "channel": {
            "configured": settings.channel_configured,
            "api_url": settings.channel_api_url if settings.channel_configured else None,
        },
    }


@app.get("/")
async def root():
    return {
        "name": "Fulfillment Engine API",
        "version": app.version,
        "health": "/health",
        "endpoints": {
            "orders": "/api/orders",
            "production": "/api/production",
            "materials": "/api/materials",
            "operations": "/api/operations",
        },
    }


# ===================
# ROUTERS
# ===================
from routes import orders_router, production_router, materials_router, operations_router  # noqa: E402

app.include_router(orders_router, prefix="/api/orders", tags=["Orders"])
app.include_router(production_router, prefix="/api/production", tags=["Production"])
app.include_router(materials_router, prefix="/api/materials", tags=["Materials"])
app.include_router(operations_router, prefix="/api/operations", tags=["Operations"])


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:app", host=settings.api_host, port=settings.api_port, reload=settings.debug)
