# backend/fundledger/main.py
"""
FastAPI application entry point.

This file:
- Configures application-wide logging
- Creates the FastAPI application and its middleware
- Maps domain exceptions to HTTP responses
- Registers all routers
- Defines the health endpoints
"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from sqlalchemy import text
from sqlalchemy.orm import Session
from starlette.exceptions import HTTPException as StarletteHTTPException

from fundledger import __version__
from fundledger.config import settings
from fundledger.database import check_database_health, get_db, init_db
from fundledger.dependencies import close_price_service
from fundledger.middleware import (
    RATE_LIMIT_HEALTH,
    CorrelationIdMiddleware,
    SlowAPIMiddleware,
    limiter,
    rate_limit_exceeded_handler,
)
from fundledger.routers.accounts import router as accounts_router
from fundledger.routers.assets import router as assets_router
from fundledger.routers.cash_flows import router as cash_flows_router
from fundledger.routers.deposits import router as deposits_router
from fundledger.routers.investors import (
    holdings_router as investor_holdings_router,
    router as investors_router,
    transactions_router as fund_unit_transactions_router,
)
from fundledger.routers.portfolios import router as portfolios_router
from fundledger.routers.snapshots import router as snapshots_router
from fundledger.routers.trades import router as trades_router
from fundledger.schemas.errors import ErrorDetail, ValidationErrorDetail
from fundledger.services.exceptions import (
    ConflictError,
    InsufficientUnitsError,
    InvalidStateError,
    NavUndefinedError,
    NotFoundError,
    PermissionDeniedError,
    PortfolioBusyError,
    PriceLookupError,
    PriceLookupTimeoutError,
    PriceNotAvailableError,
    ServiceError,
    ValidationError,
)
from fundledger.utils import setup_logging

logger = logging.getLogger(__name__)

# =============================================================================
# LOGGING SETUP (must be before app creation)
# =============================================================================

setup_logging()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    init_db()
    logger.info("%s %s started (environment=%s)", settings.app_name, __version__, settings.environment)
    yield
    close_price_service()
    logger.info("%s stopped", settings.app_name)


# =============================================================================
# APPLICATION SETUP
# =============================================================================

app = FastAPI(
    title=settings.app_name,
    description="Fund-unit accounting and cash-flow ledger API",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=settings.cors_allow_credentials,
    allow_methods=settings.cors_allow_methods,
    allow_headers=settings.cors_allow_headers,
)

# Middleware order: last added = first executed
app.state.limiter = limiter
app.add_middleware(SlowAPIMiddleware)
app.add_middleware(CorrelationIdMiddleware)


# =============================================================================
# EXCEPTION HANDLERS
# =============================================================================
# Handlers are looked up along the exception's MRO, so the most specific
# handler wins (PortfolioBusyError before ConflictError, and so on).

app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)


def _error_response(status_code: int, exc: Exception, details: dict | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorDetail(
            error=type(exc).__name__,
            message=str(exc),
            details=details,
        ).model_dump(mode="json"),
    )


@app.exception_handler(ValidationError)
async def validation_error_handler(request: Request, exc: ValidationError) -> JSONResponse:
    """Invalid input caught by a service (400)."""
    logger.warning("Validation error: %s", exc)
    return _error_response(400, exc, {"field": exc.field} if exc.field else None)


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
    """Unknown account, portfolio, entry, holding, transaction or snapshot (404)."""
    logger.warning("Not found: %s %s", exc.resource_type, exc.resource_id)
    return _error_response(404, exc, {"resource_type": exc.resource_type, "resource_id": exc.resource_id})


@app.exception_handler(PermissionDeniedError)
async def permission_denied_handler(request: Request, exc: PermissionDeniedError) -> JSONResponse:
    """Acting account does not own the portfolio (403)."""
    logger.warning("Permission denied: account %s on portfolio %s", exc.account_id, exc.portfolio_id)
    return _error_response(403, exc, {"account_id": exc.account_id, "portfolio_id": exc.portfolio_id})


@app.exception_handler(InsufficientUnitsError)
async def insufficient_units_handler(request: Request, exc: InsufficientUnitsError) -> JSONResponse:
    """Redemption or correction would take a holding below zero (422)."""
    logger.warning("Insufficient units: %s", exc)
    return _error_response(422, exc, {
        "requested": str(exc.requested),
        "available": str(exc.available),
        "account_id": exc.account_id,
    })


@app.exception_handler(NavUndefinedError)
async def nav_undefined_handler(request: Request, exc: NavUndefinedError) -> JSONResponse:
    """Fund has no outstanding units (409)."""
    logger.warning("NAV undefined for fund %s", exc.portfolio_id)
    last_nav = str(exc.last_known_nav) if exc.last_known_nav is not None else None
    return _error_response(409, exc, {"portfolio_id": exc.portfolio_id, "last_known_nav": last_nav})


@app.exception_handler(InvalidStateError)
async def invalid_state_handler(request: Request, exc: InvalidStateError) -> JSONResponse:
    """Operation not allowed in the resource's current state (409)."""
    logger.warning("Invalid state: %s", exc)
    return _error_response(409, exc, {"resource_type": exc.resource_type, "resource_id": exc.resource_id})


@app.exception_handler(PortfolioBusyError)
async def portfolio_busy_handler(request: Request, exc: PortfolioBusyError) -> JSONResponse:
    """Portfolio lock not acquired in time (409, retry later)."""
    logger.warning("Portfolio %s busy", exc.portfolio_id)
    response = _error_response(409, exc, {"portfolio_id": exc.portfolio_id})
    response.headers["Retry-After"] = str(max(1, int(exc.timeout_seconds)))
    return response


@app.exception_handler(ConflictError)
async def conflict_handler(request: Request, exc: ConflictError) -> JSONResponse:
    """Duplicate or concurrently modified resource (409)."""
    logger.warning("Conflict: %s", exc)
    return _error_response(409, exc)


@app.exception_handler(PriceLookupTimeoutError)
async def price_timeout_handler(request: Request, exc: PriceLookupTimeoutError) -> JSONResponse:
    """Price provider did not answer in time; nothing was written (504)."""
    logger.error("Price lookup timed out after %ss (%s)", exc.timeout_seconds, exc.provider)
    return _error_response(504, exc, {"provider": exc.provider, "timeout_seconds": exc.timeout_seconds})


@app.exception_handler(PriceNotAvailableError)
async def price_not_available_handler(request: Request, exc: PriceNotAvailableError) -> JSONResponse:
    """No stored price for some held asset (503)."""
    logger.error("No price for assets %s as of %s", exc.asset_ids, exc.as_of)
    return _error_response(503, exc, {"asset_ids": exc.asset_ids, "as_of": str(exc.as_of)})


@app.exception_handler(PriceLookupError)
async def price_lookup_handler(request: Request, exc: PriceLookupError) -> JSONResponse:
    """Price provider unavailable (503)."""
    logger.error("Price lookup failed: %s", exc)
    return _error_response(503, exc, {"provider": exc.provider})


@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
    """Any other service error (500)."""
    logger.error("Service error: %s", exc)
    return _error_response(500, exc)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Render framework HTTP errors (unknown route, wrong method) in the common format."""
    error_types = {
        400: "BadRequestError",
        404: "NotFoundError",
        405: "MethodNotAllowedError",
        409: "ConflictError",
        429: "RateLimitError",
        503: "ServiceUnavailableError",
    }
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorDetail(
            error=error_types.get(exc.status_code, "HTTPError"),
            message=str(exc.detail),
        ).model_dump(),
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Body/query validation failures (422), one entry per field."""
    errors = [
        {
            "field": ".".join(str(loc) for loc in error["loc"]),
            "message": error["msg"],
            "type": error["type"],
        }
        for error in exc.errors()
    ]
    return JSONResponse(
        status_code=422,
        content=ValidationErrorDetail(details=errors).model_dump(),
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content=ErrorDetail(
            error="InternalServerError",
            message="An unexpected error occurred",
        ).model_dump(),
    )


# =============================================================================
# ROUTERS
# =============================================================================

app.include_router(accounts_router)  # /accounts/*
app.include_router(assets_router)  # /assets/*
app.include_router(portfolios_router)  # /portfolios/*
app.include_router(cash_flows_router)  # /portfolios/{id}/cash-flow/*
app.include_router(investors_router)  # /portfolios/{id}/investors/*
app.include_router(trades_router)  # /portfolios/{id}/trades/*
app.include_router(deposits_router)  # /portfolios/{id}/deposits/*
app.include_router(snapshots_router)  # /portfolios/{id}/snapshots/*
app.include_router(investor_holdings_router)  # /investor-holdings/*
app.include_router(fund_unit_transactions_router)  # /fund-unit-transactions/*


# =============================================================================
# HEALTH
# =============================================================================

@app.get("/health", tags=["Health"])
@limiter.limit(RATE_LIMIT_HEALTH)
def liveness_check(request: Request):
    """Liveness: succeeds whenever the process is serving requests."""
    return {"status": "alive", "version": __version__}


@app.get("/health/ready", tags=["Health"])
@limiter.limit(RATE_LIMIT_HEALTH)
def readiness_check(request: Request, db: Session = Depends(get_db)):
    """
    Readiness: 200 when the database answers, 503 otherwise.

    Load balancers should stop routing to instances returning 503.
    """
    try:
        db.execute(text("SELECT 1"))
    except Exception as e:
        logger.error("Readiness check failed: %s", e)
        return JSONResponse(
            status_code=503,
            content={"status": "not_ready", "error": "Database unavailable"},
        )
    return {"status": "ready", "database": check_database_health()}
