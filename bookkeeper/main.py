# bookkeeper/main.py
# Main FastAPI app instance: middleware, route table and error envelopes

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import List, NamedTuple

from fastapi import APIRouter, Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import models
from .config import get_settings
from .dependencies import get_current_user
from .errors import BookkeeperError, error_response
from .middleware import install_middleware
from .routers import (
    analytics, assistant, auth, budget, cashflow, dashboard, expense, income, reports, settings, tax
)

logger = logging.getLogger(__name__)

app_settings = get_settings()

# ===== HEALTH =====

health_router = APIRouter()


@health_router.get("/health")
def health_check():
    return {
        "success": True,
        "data": {
            "status": "OK",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "version": app_settings.version,
            "environment": app_settings.environment,
        },
    }

# ===== ROUTE TABLE =====

class Route(NamedTuple):
    router: APIRouter
    prefix: str
    tag: str
    requires_auth: bool = True


ROUTE_TABLE: List[Route] = [
    Route(health_router, "/api", "health", requires_auth=False),
    Route(auth.router, "/api/auth", "auth", requires_auth=False),
    Route(tax.reference_router, "/api/tax", "tax", requires_auth=False),
    Route(tax.router, "/api/tax", "tax"),
    Route(income.router, "/api/income", "income"),
    Route(expense.router, "/api/expense", "expense"),
    Route(dashboard.router, "/api/dashboard", "dashboard"),
    Route(reports.router, "/api/reports", "reports"),
    Route(budget.router, "/api/budget", "budget"),
    Route(cashflow.router, "/api/cashflow", "cashflow"),
    Route(analytics.router, "/api/analytics", "analytics"),
    Route(assistant.router, "/api/assistant", "assistant"),
    Route(settings.router, "/api/settings", "settings"),
]


def include_routes(app: FastAPI, table: List[Route]):
    for route in table:
        dependencies = [Depends(get_current_user)] if route.requires_auth else []
        app.include_router(route.router, prefix=route.prefix, tags=[route.tag], dependencies=dependencies)

# ===== ERROR ENVELOPES =====

def _field_errors(exc: RequestValidationError) -> list:
    fields = []
    for error in exc.errors():
        location = [str(part) for part in error["loc"] if part not in ("body", "query", "path")]
        fields.append({"field": ".".join(location), "message": error["msg"]})
    return fields


def register_exception_handlers(app: FastAPI):
    @app.exception_handler(BookkeeperError)
    async def bookkeeper_error_handler(request: Request, exc: BookkeeperError):
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        return error_response(exc.status_code, exc.message, exc.error, exc.details)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        return error_response(400, "Input validation failed", "Validation failed", _field_errors(exc))

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        if exc.status_code == 404 and exc.detail == "Not Found":
            return error_response(404, f"Route {request.url.path} not found", "Not found")
        return error_response(exc.status_code, str(exc.detail), headers=getattr(exc, "headers", None))

    @app.exception_handler(SQLAlchemyError)
    async def database_error_handler(request: Request, exc: SQLAlchemyError):
        logger.exception("Database error on %s %s", request.method, request.url.path)
        message = str(exc) if app_settings.is_development else "Internal server error"
        return error_response(500, message, "Database error")

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        message = str(exc) if app_settings.is_development else "Internal server error"
        return error_response(500, message, "Server error")

# ===== APPLICATION =====

@asynccontextmanager
async def lifespan(app: FastAPI):
    models.init_database()
    logger.info("%s %s started (%s)", app_settings.app_name, app_settings.version, app_settings.environment)
    yield


def create_app() -> FastAPI:
    app = FastAPI(
        title=app_settings.app_name,
        description="Small-business bookkeeping API: ledgers, budgets, tax, forecasting and assistant",
        version=app_settings.version,
        lifespan=lifespan,
    )
    install_middleware(app, app_settings)
    # Added last so it wraps every other middleware, including 429/413 replies
    app.add_middleware(
        CORSMiddleware,
        allow_origins=app_settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    include_routes(app, ROUTE_TABLE)
    register_exception_handlers(app)
    return app


app = create_app()
