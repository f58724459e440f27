"""Audit trail endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Query

from hr_workflow.api.dependencies import DbSession, Workflow
from hr_workflow.api.errors import ensure_permitted
from hr_workflow.api.schemas import AuditEntryResponse, AuditListResponse, ErrorResponse
from hr_workflow.audit.logger import AuditFilter

router = APIRouter(prefix="/audit", tags=["audit"])


@router.get(
    "",
    response_model=AuditListResponse,
    responses={403: {"model": ErrorResponse}},
)
async def list_audit_entries(
    db: DbSession,
    caller: Workflow,
    action: str | None = None,
    entity_type: str | None = None,
    actor_id: UUID | None = None,
    entity_id: UUID | None = None,
    limit: Annotated[int | None, Query(ge=1, le=500)] = None,
    offset: Annotated[int, Query(ge=0)] = 0,
) -> AuditListResponse:
    """List audit entries newest first. Admin and HR only."""
    filters = AuditFilter(
        action=action,
        entity_type=entity_type,
        actor_id=actor_id,
        entity_id=entity_id,
        limit=limit,
        offset=offset,
    )
    listing = await caller.service.list_audit(caller.ctx, filters)
    ensure_permitted(listing.decision)
    return AuditListResponse(
        items=[AuditEntryResponse.model_validate(e) for e in listing.entries],
        limit=limit,
        offset=offset,
    )
