from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from app.api.audit import router as audit_router
from app.api.certificates import router as certificates_router
from app.api.courses import router as courses_router
from app.api.enrollments import router as enrollments_router
from app.api.health import router as health_router
from app.api.metrics_endpoint import router as metrics_router
from app.api.orgs import router as orgs_router
from app.core.config import SETTINGS
from app.core.errors import DomainError
from app.core.logging import setup_logging
from app.db.engine import lifespan_db
from app.middleware.metrics import MetricsMiddleware
from app.middleware.request_context import RequestContextMiddleware

# Configure logging before anything else runs.
setup_logging(SETTINGS.log_level, json_format=SETTINGS.log_json)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    async with lifespan_db():
        yield


app = FastAPI(
    title="lms-compliance",
    lifespan=lifespan,
    docs_url="/docs" if SETTINGS.is_dev else None,
    redoc_url="/redoc" if SETTINGS.is_dev else None,
)


@app.exception_handler(DomainError)
async def domain_error_handler(_request: Request, exc: DomainError) -> JSONResponse:
    if exc.http_status >= 500:
        logger.error("%s: %s", exc.code, exc.message)
    headers = {"WWW-Authenticate": "Bearer"} if exc.http_status == 401 else None
    return JSONResponse(
        status_code=exc.http_status,
        content={"detail": exc.message, "reason": exc.code},
        headers=headers,
    )


# Middleware execution order: last-added runs first (outermost layer).
# RequestContext (outermost) -> Metrics -> route handler
app.add_middleware(MetricsMiddleware)
app.add_middleware(RequestContextMiddleware)

app.include_router(metrics_router)
app.include_router(health_router)
app.include_router(orgs_router)
app.include_router(courses_router)
app.include_router(enrollments_router)
app.include_router(certificates_router)
app.include_router(audit_router)

logger.info(
    "lms-compliance started  env=%s log_level=%s port=%d docs=%s",
    SETTINGS.app_env,
    SETTINGS.log_level,
    SETTINGS.port,
    "on" if SETTINGS.is_dev else "off",
)
