"""Health and readiness endpoints.

  /health (liveness):  the process answers.  Also reports the database
                       check and the ledger reconciliation backlog, but
                       stays 200 so an orchestrator does not restart a
                       process that is merely degraded.
  /ready  (readiness): 503 when the database is configured but unreachable.
"""

from __future__ import annotations

from fastapi import APIRouter, Response, status

from app.db.engine import ping_database
from app.services.ledger import reconciliation_backlog

router = APIRouter(tags=["health"])


@router.get("/health")
async def health() -> dict:
    database = await ping_database()
    backlog = len(reconciliation_backlog.pending())
    overall = "ok" if database != "degraded" and backlog == 0 else "degraded"
    return {
        "status": overall,
        "checks": {
            "database": database,
            "ledger_reconciliation_backlog": backlog,
        },
    }


@router.get("/ready")
async def ready() -> Response:
    if await ping_database() == "degraded":
        return Response(status_code=status.HTTP_503_SERVICE_UNAVAILABLE)
    return Response(status_code=status.HTTP_200_OK)
