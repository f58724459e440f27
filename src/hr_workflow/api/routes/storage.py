"""Attachment access checks.

Object storage itself is external; this endpoint answers whether the caller
may read, write or delete an object path.
"""

from typing import Annotated, Literal

from fastapi import APIRouter, Path, Query

from hr_workflow.api.dependencies import Workflow
from hr_workflow.api.errors import ensure_permitted
from hr_workflow.api.schemas import ErrorResponse, StorageAccessResponse
from hr_workflow.authz.storage import can_access_object

router = APIRouter(prefix="/storage", tags=["storage"])


@router.get(
    "/{bucket}/{path:path}",
    response_model=StorageAccessResponse,
    responses={403: {"model": ErrorResponse}, 422: {"model": ErrorResponse}},
)
async def check_object_access(
    caller: Workflow,
    bucket: Annotated[str, Path()],
    path: Annotated[str, Path()],
    action: Annotated[Literal["read", "write", "delete"], Query()] = "read",
) -> StorageAccessResponse:
    decision = can_access_object(caller.service.resolver, caller.ctx, bucket, path, action)
    ensure_permitted(decision)
    return StorageAccessResponse(
        bucket=bucket,
        path=path,
        action=action,
        permitted=True,
        basis=decision.basis.value if decision.basis else None,
    )
