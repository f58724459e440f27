"""Profile endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path

from hr_workflow.api.dependencies import DbSession, Profiles
from hr_workflow.api.errors import ensure_permitted
from hr_workflow.api.schemas import ErrorResponse, ProfileResponse, ProfileUpdate
from hr_workflow.errors import EntityNotFoundError

router = APIRouter(prefix="/profiles", tags=["profiles"])


@router.get("/me/reports", response_model=list[ProfileResponse])
async def list_direct_reports(caller: Profiles) -> list[ProfileResponse]:
    """Profiles the caller directly manages."""
    reports = await caller.service.direct_reports(caller.ctx)
    return [ProfileResponse.model_validate(p) for p in reports]


@router.get(
    "/{profile_id}",
    response_model=ProfileResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_profile(
    db: DbSession,
    caller: Profiles,
    profile_id: Annotated[UUID, Path()],
) -> ProfileResponse:
    profile = await caller.service.read(caller.ctx, profile_id)
    if profile is None:
        raise EntityNotFoundError("profile", profile_id)
    await db.commit()
    return ProfileResponse.model_validate(profile)


@router.patch(
    "/{profile_id}",
    response_model=ProfileResponse,
    responses={403: {"model": ErrorResponse}, 404: {"model": ErrorResponse}, 422: {"model": ErrorResponse}},
)
async def update_profile(
    db: DbSession,
    caller: Profiles,
    profile_id: Annotated[UUID, Path()],
    payload: ProfileUpdate,
) -> ProfileResponse:
    """Edit profile fields directly (own phone, or employment fields for admin/HR)."""
    decision = await caller.service.update(caller.ctx, profile_id, payload.model_dump(exclude_unset=True))
    ensure_permitted(decision)
    await db.commit()
    return ProfileResponse.model_validate(await caller.service.get(profile_id))
