"""Request context middleware: request id, timing and caller identity.

Every log line emitted while a request is in flight carries its
``request_id``, and, once the principal is resolved, the caller's
``user_id`` and ``organization_id``.  Authorization denials can then be
traced back to the tenant that triggered them without parsing messages.

Context lives in ``contextvars`` because concurrent requests share one
thread under asyncio.
"""

from __future__ import annotations

import logging
import time
import uuid
from contextvars import ContextVar

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from app.models.principal import Principal

logger = logging.getLogger(__name__)

request_id_var: ContextVar[str] = ContextVar("request_id", default="-")
user_id_var: ContextVar[str | None] = ContextVar("user_id", default=None)
organization_id_var: ContextVar[str | None] = ContextVar("organization_id", default=None)


def bind_principal(principal: Principal) -> None:
    """Attach the resolved caller to the current request's log context."""
    user_id_var.set(str(principal.user_id))
    organization_id_var.set(
        str(principal.organization_id) if principal.organization_id else None
    )


class _RequestContextFilter(logging.Filter):
    """Adds request context to every LogRecord.

    A filter, not a formatter, because only filters can add attributes
    before formatting.  Values passed explicitly via ``extra=`` win.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_var.get("-")  # type: ignore[attr-defined]
        if getattr(record, "user_id", None) is None:
            record.user_id = user_id_var.get()  # type: ignore[attr-defined]
        if getattr(record, "organization_id", None) is None:
            record.organization_id = organization_id_var.get()  # type: ignore[attr-defined]
        return True


# Install on the root logger so every module logger inherits it.
root_logger = logging.getLogger()
if not any(isinstance(f, _RequestContextFilter) for f in root_logger.filters):
    root_logger.addFilter(_RequestContextFilter())


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Assign a request ID, time the request and log a summary line.

    1. Reads X-Request-ID (or generates a UUID) into a ContextVar
    2. Clears any caller identity left over in this context
    3. Logs method, path, status and duration on completion
    4. Echoes X-Request-ID on the response
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        req_id = request.headers.get("x-request-id") or str(uuid.uuid4())
        request_id_var.set(req_id)
        user_id_var.set(None)
        organization_id_var.set(None)

        start = time.monotonic()
        response = await call_next(request)
        duration_ms = round((time.monotonic() - start) * 1000, 1)

        logger.info(
            "%s %s -> %d (%.1fms)",
            request.method,
            request.url.path,
            response.status_code,
            duration_ms,
            extra={
                "request_id": req_id,
                "method": request.method,
                "path": request.url.path,
                "status_code": response.status_code,
                "duration_ms": duration_ms,
            },
        )

        response.headers["X-Request-ID"] = req_id
        return response
