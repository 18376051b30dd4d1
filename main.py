"""
Main Entry Point - FastAPI Application.

This file contains:
- FastAPI app initialization
- Route mounting from api/routes/
- Middleware setup from api/middleware.py
- Orchestrator error mapping
- Health check endpoints

NO BUSINESS LOGIC - just wiring and setup.

Usage:
    uvicorn main:app --reload
    python main.py
"""

import os
import logging
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

# Load environment variables with explicit path (works when run from any directory)
_env_path = os.path.join(os.path.dirname(os.path.abspath(__file__)), ".env")
load_dotenv(_env_path)

# ============================================================================
# NON-BLOCKING LOGGING SETUP (MUST BE BEFORE OTHER IMPORTS)
# ============================================================================
from utils.logger_config import configure_non_blocking_logging, stop_logging

# MAIN_PY_LOG_LEVEL takes precedence, falls back to LOG_LEVEL
_main_log_level = os.getenv("MAIN_PY_LOG_LEVEL") or os.getenv("LOG_LEVEL")
_log_listener = configure_non_blocking_logging(level=_main_log_level)

# Import routes
from api.routes import (
    rooms_router,
    recordings_router,
    webhooks_router,
)

# Import middleware setup
from api.middleware import setup_middlewares
from db.connection_pool import close_all_connections, get_pool_stats
from utils.errors import OrchestratorError

logger = logging.getLogger(__name__)

RETRY_AFTER_SECONDS = os.getenv("RETRY_AFTER_SECONDS", "5")


# =============================================================================
# LIFESPAN EVENTS
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    logger.info("Voice Room API starting up...")
    yield
    logger.info("Voice Room API shutting down...")
    close_all_connections()
    stop_logging()


# =============================================================================
# FASTAPI APPLICATION
# =============================================================================

app = FastAPI(
    title="Voice Room API",
    description="Voice rooms with per-participant recording on LiveKit",
    version="1.0.0",
    lifespan=lifespan,
)

# Setup middlewares (CORS, rate limiting, request logging)
setup_middlewares(app)


# =============================================================================
# ROUTES
# =============================================================================

# Rooms, join and participants (router has /rooms prefix)
app.include_router(rooms_router)

# Recording lifecycle and signed URLs
app.include_router(recordings_router)

# LiveKit webhooks (router has /webhooks prefix)
app.include_router(webhooks_router)


# =============================================================================
# HEALTH CHECK
# =============================================================================

@app.get("/", include_in_schema=False)
async def root():
    """Root endpoint - health check."""
    return {"status": "ok", "version": "1.0.0", "service": "voice-room-api"}


@app.get("/healthz", include_in_schema=False)
async def healthz():
    """Kubernetes liveness check."""
    return {"status": "healthy"}


@app.get("/readyz", include_in_schema=False)
async def readyz():
    """Kubernetes readiness check."""
    return {"status": "ready", "database": get_pool_stats()}


# =============================================================================
# ERROR HANDLERS
# =============================================================================

@app.exception_handler(OrchestratorError)
async def orchestrator_exception_handler(request: Request, exc: OrchestratorError):
    """Map orchestrator errors to their HTTP status and JSON body."""
    if exc.http_status >= 500:
        logger.warning("%s %s failed: %s (%s)", request.method, request.url.path, exc.code, exc.message)
    headers = {"Retry-After": RETRY_AFTER_SECONDS} if exc.retryable else None
    return JSONResponse(status_code=exc.http_status, content=exc.to_dict(), headers=headers)


@app.exception_handler(Exception)
async def global_exception_handler(request, exc):
    """Global exception handler for unhandled errors."""
    logger.exception("Unhandled exception: %s", exc)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"},
    )


# =============================================================================
# MAIN
# =============================================================================

if __name__ == "__main__":
    import uvicorn

    # Suppress health check access logs (Docker pings /healthz every 30s)
    class _HealthCheckFilter(logging.Filter):
        _SUPPRESSED = {"/healthz", "/readyz", "/"}
        def filter(self, record: logging.LogRecord) -> bool:
            msg = record.getMessage()
            return not any(f'"{path} ' in msg or f" {path} " in msg for path in self._SUPPRESSED)

    logging.getLogger("uvicorn.access").addFilter(_HealthCheckFilter())

    port = int(os.getenv("PORT", "8000"))
    workers = int(os.getenv("UVICORN_WORKERS", "1"))

    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=port,
        workers=workers,
        log_level=os.getenv("UVICORN_LOG_LEVEL", "info").lower(),
    )
