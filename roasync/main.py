"""ROASYNC — FastAPI Application Entry Point.

Cross-platform reconciliation of Shopify sales and Facebook ad spend.
"""

import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from roasync.database import check_connection, init_db
from roasync.scheduler.jobs import start_scheduler, stop_scheduler
from roasync.api.integration_routes import router as integration_router
from roasync.api.sync_routes import router as sync_router
from roasync.api.product_routes import router as product_router
from roasync.api.decision_routes import router as decision_router
from roasync.api.profit_routes import router as profit_router
from roasync.api.facebook_routes import router as facebook_router
from roasync.core.errors import PartialSyncFailure, RateLimited, ReconcileError
from roasync.core.logging import get_logger

logger = get_logger("main")


IS_SERVERLESS = bool(
    os.environ.get("VERCEL") or os.environ.get("AWS_LAMBDA_FUNCTION_NAME")
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle."""
    logger.info(f"ROASYNC starting up ({'serverless' if IS_SERVERLESS else 'local'})")
    if check_connection():
        try:
            init_db()
        except SQLAlchemyError as e:
            logger.error(f"Table creation failed: {e}")
    else:
        logger.error("Database not connected, endpoints will fail")
    if not IS_SERVERLESS:
        start_scheduler()
    yield
    if not IS_SERVERLESS:
        stop_scheduler()
    logger.info("ROASYNC shut down")


app = FastAPI(
    title="ROASYNC",
    description="Reconcile Shopify sales with Facebook ad spend per campaign-day and decide KILL / MAINTAIN / SCALE.",
    version="1.0.0",
    lifespan=lifespan,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ── Error Taxonomy → HTTP ──


@app.exception_handler(ReconcileError)
async def reconcile_error_handler(request: Request, exc: ReconcileError):
    content = {"status": "error", "error": type(exc).__name__, "detail": exc.message}
    headers = {}
    if isinstance(exc, RateLimited):
        content["retry_after"] = exc.retry_after
        headers["Retry-After"] = str(exc.retry_after)
    if isinstance(exc, PartialSyncFailure):
        content["errors"] = exc.errors
    if exc.status_code >= 500:
        logger.error(f"{type(exc).__name__} on {request.url.path}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=content, headers=headers)


# Routers
app.include_router(integration_router)
app.include_router(sync_router)
app.include_router(product_router)
app.include_router(decision_router)
app.include_router(profit_router)
app.include_router(facebook_router)


@app.get("/health", tags=["System"])
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "service": "roasync",
        "version": "1.0.0",
    }
