"""
Staff Leave Tracker - FastAPI Application

Middleware order: CORS -> CorrelationId.
The schema is created at startup. Domain errors render as
{"success": false, "errors": [{msg, code, details}]} so clients branch on `code`.
"""
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Union

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from starlette.exceptions import HTTPException as StarletteHTTPException

import leave_tracker.models  # noqa: F401  Force model registration with SQLAlchemy
from leave_tracker.core.config import settings
from leave_tracker.core.exceptions import AppException, StoreUnavailable
from leave_tracker.core.logging import setup_logging
from leave_tracker.core.middleware import CorrelationIdMiddleware
from leave_tracker.database import engine, init_db, session_scope, SessionLocal
from leave_tracker.routers.api_router import api_router

# ============================================================================
# LOGGING SETUP
# ============================================================================
setup_logging()
logger = logging.getLogger(__name__)


def _error_body(msg: str, code: str, details: Union[dict, None] = None) -> dict:
    return {"success": False, "errors": [{"msg": msg, "code": code, "details": details or {}}]}


# ============================================================================
# LIFESPAN MANAGEMENT
# ============================================================================
@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(
        f"Starting {settings.app_name} v{settings.version}",
        extra={"environment": settings.environment, "store_timeout_seconds": settings.store_timeout_seconds},
    )
    try:
        init_db()
    except Exception as e:
        logger.error(f"Leave store schema setup failed: {e}")
        raise

    yield

    engine.dispose()
    logger.info("Leave store connections released")


# ============================================================================
# FASTAPI INSTANCE
# ============================================================================
app = FastAPI(
    title=settings.app_name,
    version=settings.version,
    description="Staff leave and permission tracker with two-stage HR and GM/AE approval",
    lifespan=lifespan,
)

# ============================================================================
# MIDDLEWARE STACK
# Add in REVERSE order (last added runs first)
# ============================================================================
app.add_middleware(CorrelationIdMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST"],
    allow_headers=["Authorization", "Content-Type", settings.request_id_header],
    expose_headers=[settings.request_id_header],
)

# ============================================================================
# EXCEPTION HANDLERS
# ============================================================================
@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Malformed payloads (bad dates, unknown decision, empty reason) as 422 with one entry per field."""
    errors = [
        {"field": str(error["loc"][-1]) if error["loc"] else "unknown", "msg": error["msg"], "code": "VALIDATION_ERROR"}
        for error in exc.errors()
    ]
    logger.info(f"Rejected payload on {request.url.path}", extra={"errors": errors})
    return JSONResponse(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, content={"success": False, "errors": errors})


@app.exception_handler(AppException)
async def app_exception_handler(request: Request, exc: AppException):
    if isinstance(exc, StoreUnavailable):
        logger.error(f"Leave store unavailable during {exc.operation}: {exc.message}")
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(exc.message, exc.error_code, exc.details),
            headers={"Retry-After": str(int(settings.store_timeout_seconds))},
        )
    logger.warning(f"{exc.error_code}: {exc.message}", extra={"code": exc.error_code, "path": request.url.path})
    return JSONResponse(status_code=exc.status_code, content=_error_body(exc.message, exc.error_code, exc.details))


@app.exception_handler(StarletteHTTPException)
@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: Union[HTTPException, StarletteHTTPException]):
    msg = exc.detail if isinstance(exc.detail, str) else "Request failed"
    return JSONResponse(status_code=exc.status_code, content=_error_body(msg, f"HTTP_{exc.status_code}"))


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled server error", extra={"path": request.url.path})
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=_error_body("An unexpected server error occurred.", "INTERNAL_ERROR"),
    )


# ============================================================================
# ROUTER INCLUSION
# ============================================================================
app.include_router(api_router, prefix=settings.api_prefix)

# ============================================================================
# OPERATIONAL ENDPOINTS (at root level)
# ============================================================================
@app.get("/", tags=["Health"])
def root():
    return {
        "message": "Staff Leave Tracker API",
        "version": settings.version,
        "docs": "/docs",
    }


@app.get("/health", tags=["Health"])
def health_check():
    """Liveness probe; does not touch the store."""
    return {
        "status": "up",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": settings.version,
        "environment": settings.environment,
    }


@app.get("/readiness", tags=["Health"])
def readiness_check():
    """Readiness probe: one round trip to the leave store within the store timeout."""
    try:
        with session_scope(SessionLocal, "readiness") as session:
            session.execute(text("SELECT 1"))
    except StoreUnavailable:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Leave store not reachable")
    return {"status": "ready", "components": {"database": "connected"}}
