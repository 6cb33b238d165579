from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from fishstock.core.errors import DomainError
from fishstock.core.observability import (
    domain_exception_handler,
    http_exception_handler,
    request_logging_middleware,
    setup_observability,
    unhandled_exception_handler,
    validation_exception_handler,
)
from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware

from fishstock.core.config import settings
from fishstock.db.session import engine
from fishstock.routers import audit, products, sales, stock_movements, stock_requests

app = FastAPI(
    title=settings.app_name,
    version="0.1.0",
    description=(
        "Inventory and sales backend for a fish wholesaler.\n\n"
        "Every stock change is proposed as a pending movement and applied only when a "
        "manager approves it. Sales are allocated against whole boxes and loose kg, "
        "opening boxes when loose stock runs short.\n\n"
        f"Identity is supplied by the gateway in `{settings.actor_id_header}` and "
        f"`{settings.actor_role_header}` (`owner`, `manager` or `employee`)."
    ),
    swagger_ui_parameters={
        "displayRequestDuration": True,
        "defaultModelsExpandDepth": 1,
    },
    openapi_tags=[
        {"name": "health", "description": "Service status and quick links."},
        {"name": "products", "description": "Catalog, stock levels, and product change requests."},
        {"name": "stock-movements", "description": "Movement ledger and the approve/reject/cancel workflow."},
        {"name": "stock-requests", "description": "Stock additions, corrections, and damage reports."},
        {"name": "sales", "description": "Sale allocation, capture, and history."},
        {"name": "audit", "description": "Audit trail for approvals, deletions, and sales."},
    ],
)

setup_observability()
app.middleware("http")(request_logging_middleware)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(DomainError, domain_exception_handler)
app.add_exception_handler(Exception, unhandled_exception_handler)

cors_origins = settings.cors_origins or ["http://localhost:3000"]
allow_all_origins = "*" in cors_origins
env_value = settings.env.lower().strip()
allow_origin_regex = settings.cors_origin_regex

if (
    not allow_origin_regex
    and env_value in {"dev", "development", "staging", "stage"}
):
    allow_origin_regex = r"^https?://(localhost|127\.0\.0\.1)(:\d+)?$"

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if allow_all_origins else cors_origins,
    allow_origin_regex=allow_origin_regex,
    allow_credentials=not allow_all_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(products.router)
app.include_router(stock_movements.router)
app.include_router(stock_requests.additions_router)
app.include_router(stock_requests.corrections_router)
app.include_router(stock_requests.damage_router)
app.include_router(sales.router)
app.include_router(audit.router)


@app.get("/", tags=["health"])
def root():
    return {
        "app": settings.app_name,
        "docs": "/docs",
        "redoc": "/redoc",
        "health": "/health",
        "ready": "/ready",
    }


@app.get("/health", tags=["health"])
def health():
    return {"ok": True}


@app.get("/ready", tags=["health"])
def ready():
    try:
        with engine.connect() as conn:
            conn.execute(text("SELECT 1"))
    except SQLAlchemyError:
        return {"ok": False}
    return {"ok": True}
