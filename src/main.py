"""FastAPI application entry point — wires everything together.

Usage:
    python -m src.main

Starts the compliance API (data subject rights, incident registry, platform
jobs). Errors raised by the kernel are mapped to generic bodies here, so no
message, tenant id or personal data ever reaches the client.
"""

from __future__ import annotations

import logging
import sys
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
import uvicorn
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from src.api.platform import router as platform_router
from src.api.rgpd import router as rgpd_router
from src.config import settings
from src.db.engine import db_lifespan
from src.errors import ComplianceError, LogGuardViolation
from src.security.safe_log import get_logger, shared_processors

# ── Logging setup ────────────────────────────────────────────────────

logging.basicConfig(
    level=getattr(logging, settings.log_level),
    format="%(message)s",
    stream=sys.stdout,
)
structlog.configure(
    processors=shared_processors(),
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
)

logger = get_logger(__name__)

ERROR_STATUS: dict[str, int] = {
    "validation": status.HTTP_400_BAD_REQUEST,
    "consent_required": status.HTTP_403_FORBIDDEN,
    "processing_suspended": status.HTTP_403_FORBIDDEN,
    "tenant_isolation": status.HTTP_403_FORBIDDEN,
    "forbidden": status.HTTP_403_FORBIDDEN,
    "conflict": status.HTTP_409_CONFLICT,
    "export_unavailable": status.HTTP_404_NOT_FOUND,
    "internal": status.HTTP_500_INTERNAL_SERVER_ERROR,
}

# ── FastAPI lifespan ─────────────────────────────────────────────────


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application startup and shutdown lifecycle."""
    logger.info("app.starting", environment=settings.environment)

    async with db_lifespan():
        logger.info("app.database_ready")
        if not settings.security.jwt_secret:
            logger.warning("app.jwt_secret_missing")
        try:
            yield
        finally:
            logger.info("app.stopping")

    logger.info("app.stopped")


# ── FastAPI app ──────────────────────────────────────────────────────

app = FastAPI(
    title="RGPD Compliance API",
    description="Consent gating, data subject rights and breach registry for a multi-tenant AI platform",
    version="0.1.0",
    lifespan=lifespan,
)
app.include_router(rgpd_router)
app.include_router(platform_router)


@app.exception_handler(ComplianceError)
async def compliance_error_handler(request: Request, exc: ComplianceError) -> JSONResponse:
    """Generic body keyed by error kind. Never the message."""
    code = ERROR_STATUS.get(exc.kind, status.HTTP_500_INTERNAL_SERVER_ERROR)
    if isinstance(exc, LogGuardViolation):
        # Nothing about the rejected payload is logged
        logger.error("app.log_guard_violation")
    elif code >= status.HTTP_500_INTERNAL_SERVER_ERROR:
        logger.error("app.request_failed", error_kind=exc.kind)
    else:
        logger.info("app.request_rejected", error_kind=exc.kind, status=code)
    return JSONResponse(status_code=code, content={"error": exc.kind})


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint."""
    return {
        "status": "ok",
        "environment": settings.environment,
    }


# ── Entry point ──────────────────────────────────────────────────────

if __name__ == "__main__":
    uvicorn.run(
        "src.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.environment == "development",
        log_level=settings.log_level.lower(),
    )
