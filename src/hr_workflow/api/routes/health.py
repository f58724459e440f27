"""Liveness, readiness and health probes."""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, status
from pydantic import BaseModel
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError

from hr_workflow.api.dependencies import DbSession
from hr_workflow.models import AuditEntry
from hr_workflow.workflow.delete_guard import delete_guard

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    status: str
    checked_at: datetime
    database: str
    # True while an admin maintenance window is open in this process.
    maintenance_override: bool


@router.get("/health", response_model=HealthResponse)
async def health_check(db: DbSession) -> HealthResponse:
    """Probe the audit table; a reachable database without it counts as unhealthy."""
    try:
        await db.scalar(select(func.count()).select_from(AuditEntry))
        database = "healthy"
    except SQLAlchemyError:
        logger.exception("Health probe against the audit table failed")
        database = "unhealthy"

    return HealthResponse(
        status="healthy" if database == "healthy" else "degraded",
        checked_at=datetime.now(timezone.utc),
        database=database,
        maintenance_override=delete_guard.active,
    )


@router.get("/ready", status_code=status.HTTP_200_OK)
async def readiness_check() -> dict[str, str]:
    return {"status": "ready"}


@router.get("/live", status_code=status.HTTP_200_OK)
async def liveness_check() -> dict[str, str]:
    return {"status": "alive"}
