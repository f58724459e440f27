"""FastAPI dependencies for dependency injection."""

from collections.abc import AsyncGenerator
from dataclasses import dataclass
from typing import Annotated
from uuid import UUID

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from hr_workflow.authz.resolver import PrincipalContext
from hr_workflow.database import database
from hr_workflow.services.profile_service import ProfileService
from hr_workflow.services.workflow_service import WorkflowService


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Get database session dependency."""
    factory = database.configure()
    async with factory() as session:
        try:
            yield session
        finally:
            await session.close()


def _parse_uuid_header(value: str | None, name: str) -> UUID:
    if not value:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"{name} header is required",
        )
    try:
        return UUID(value)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid {name} format",
        )


async def get_principal_id(x_principal_id: Annotated[str | None, Header()] = None) -> UUID:
    """Extract the authenticated principal from header."""
    return _parse_uuid_header(x_principal_id, "X-Principal-ID")


async def get_organization_id(x_organization_id: Annotated[str | None, Header()] = None) -> UUID:
    """Extract organization ID from header."""
    return _parse_uuid_header(x_organization_id, "X-Organization-ID")


DbSession = Annotated[AsyncSession, Depends(get_db_session)]
PrincipalId = Annotated[UUID, Depends(get_principal_id)]
OrganizationId = Annotated[UUID, Depends(get_organization_id)]


@dataclass
class WorkflowCaller:
    service: WorkflowService
    ctx: PrincipalContext


@dataclass
class ProfileCaller:
    service: ProfileService
    ctx: PrincipalContext


async def get_workflow_caller(db: DbSession, principal_id: PrincipalId, organization_id: OrganizationId) -> WorkflowCaller:
    service = WorkflowService(db)
    return WorkflowCaller(service, await service.context(principal_id, organization_id))


async def get_profile_caller(db: DbSession, principal_id: PrincipalId, organization_id: OrganizationId) -> ProfileCaller:
    service = ProfileService(db)
    return ProfileCaller(service, await service.context(principal_id, organization_id))


# Type aliases for cleaner dependency injection
Workflow = Annotated[WorkflowCaller, Depends(get_workflow_caller)]
Profiles = Annotated[ProfileCaller, Depends(get_profile_caller)]
