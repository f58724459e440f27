"""Workflow entity endpoints."""

from typing import Annotated, Any
from uuid import UUID

from fastapi import APIRouter, Body, Path, Query, Response, status

from hr_workflow.api.dependencies import DbSession, Workflow
from hr_workflow.api.errors import ensure_permitted
from hr_workflow.api.schemas import (
    CREATE_SCHEMAS,
    UPDATE_SCHEMAS,
    EntityListResponse,
    EntityResponse,
    ErrorResponse,
    StrictPayload,
    TransitionRequest,
    TransitionResponse,
)
from hr_workflow.errors import ConstraintViolationError, EntityNotFoundError

router = APIRouter(prefix="/entities", tags=["entities"])

EntityType = Annotated[str, Path(pattern=r"^[a-z_0-9]+$")]


def _validate(schemas: dict[str, type[StrictPayload]], entity_type: str, payload: dict[str, Any], *, partial: bool) -> dict[str, Any]:
    schema = schemas.get(entity_type)
    if schema is None:
        raise ConstraintViolationError(
            f"Unknown entity type: {entity_type}",
            field="entity_type",
            detail=sorted(schemas),
        )
    if "status" in payload:
        raise ConstraintViolationError("status can only change through a transition", field="status")
    model = schema.model_validate(payload)
    if partial:
        return model.model_dump(exclude_unset=True)
    return model.model_dump(exclude_none=True)


@router.post(
    "/{entity_type}",
    response_model=EntityResponse,
    status_code=status.HTTP_201_CREATED,
    responses={403: {"model": ErrorResponse}, 422: {"model": ErrorResponse}},
)
async def submit_entity(
    db: DbSession,
    caller: Workflow,
    entity_type: EntityType,
    payload: Annotated[dict[str, Any], Body()],
) -> EntityResponse:
    """Create a record in its initial state."""
    data = _validate(CREATE_SCHEMAS, entity_type, payload, partial=False)
    result = await caller.service.submit(caller.ctx, entity_type, data)
    ensure_permitted(result.decision)
    await db.commit()
    entity = await caller.service.get(entity_type, result.entity_id)
    return EntityResponse.of(entity)


@router.get(
    "/{entity_type}",
    response_model=EntityListResponse,
    responses={422: {"model": ErrorResponse}},
)
async def list_entities(
    db: DbSession,
    caller: Workflow,
    entity_type: EntityType,
    status_filter: Annotated[str | None, Query(alias="status")] = None,
) -> EntityListResponse:
    """List the records of one type the caller may read."""
    records = await caller.service.read(caller.ctx, entity_type, status=status_filter)
    await db.commit()
    return EntityListResponse(items=[EntityResponse.of(r) for r in records], total=len(records))


@router.get(
    "/{entity_type}/{entity_id}",
    response_model=EntityResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_entity(
    db: DbSession,
    caller: Workflow,
    entity_type: EntityType,
    entity_id: Annotated[UUID, Path()],
) -> EntityResponse:
    """Get one record. Records the caller may not read are reported as missing."""
    records = await caller.service.read(caller.ctx, entity_type, entity_id=entity_id)
    if not records:
        raise EntityNotFoundError(entity_type, entity_id)
    await db.commit()
    return EntityResponse.of(records[0])


@router.patch(
    "/{entity_type}/{entity_id}",
    response_model=EntityResponse,
    responses={403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}, 422: {"model": ErrorResponse}},
)
async def update_entity(
    db: DbSession,
    caller: Workflow,
    entity_type: EntityType,
    entity_id: Annotated[UUID, Path()],
    payload: Annotated[dict[str, Any], Body()],
) -> EntityResponse:
    """Edit non-status fields of a record."""
    data = _validate(UPDATE_SCHEMAS, entity_type, payload, partial=True)
    decision = await caller.service.update(caller.ctx, entity_type, entity_id, data)
    ensure_permitted(decision)
    await db.commit()
    return EntityResponse.of(await caller.service.get(entity_type, entity_id))


@router.post(
    "/{entity_type}/{entity_id}/transitions",
    response_model=TransitionResponse,
    responses={403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def transition_entity(
    db: DbSession,
    caller: Workflow,
    entity_type: EntityType,
    entity_id: Annotated[UUID, Path()],
    request: TransitionRequest,
) -> TransitionResponse:
    """Request a state change."""
    result = await caller.service.transition(
        caller.ctx,
        entity_type,
        entity_id,
        request.target_state,
        request.reviewer_notes,
    )
    ensure_permitted(result.decision)
    await db.commit()
    return TransitionResponse(
        entity_type=result.entity_type,
        entity_id=result.entity_id,
        from_state=result.from_state,
        state=result.state,
        changed=result.changed,
        journal_entry_id=result.journal_entry_id,
    )


@router.delete(
    "/{entity_type}/{entity_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    responses={403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def delete_entity(
    db: DbSession,
    caller: Workflow,
    entity_type: EntityType,
    entity_id: Annotated[UUID, Path()],
) -> Response:
    """Delete a record. Records in a guarded state cannot be deleted."""
    decision = await caller.service.delete(caller.ctx, entity_type, entity_id)
    ensure_permitted(decision)
    await db.commit()
    return Response(status_code=status.HTTP_204_NO_CONTENT)
