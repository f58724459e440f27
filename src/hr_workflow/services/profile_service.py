"""Profile service - direct profile reads and edits.

Principals may change a few fields of their own profile directly; admin and
HR may change the broader employment fields of any profile in their
organization. Everything else goes through a profile change request.
"""

from __future__ import annotations

import logging
from typing import Any
from uuid import UUID

from sqlalchemy import select

from hr_workflow.authz.gate import Basis, Decision, DenyReason
from hr_workflow.authz.policies import (
    ADMIN_EDITABLE_PROFILE_FIELDS,
    SELF_EDITABLE_PROFILE_FIELDS,
    policy_for,
)
from hr_workflow.authz.resolver import PrincipalContext
from hr_workflow.errors import ConstraintViolationError, EntityNotFoundError
from hr_workflow.models import Profile, ProfileStatus
from hr_workflow.services.scope import DirectoryScope
from hr_workflow.workflow.engine import WORKING_WEEK_POLICIES
from hr_workflow.workflow.state_machine import Action

logger = logging.getLogger(__name__)


class ProfileService(DirectoryScope):
    """Reads and edits profiles on behalf of a principal."""

    async def get(self, profile_id: UUID) -> Profile:
        profile = await self.session.get(Profile, profile_id)
        if profile is None:
            raise EntityNotFoundError("profile", profile_id)
        return profile

    async def read(self, ctx: PrincipalContext, profile_id: UUID) -> Profile | None:
        """Return the profile if the caller may see it, else None.

        Reads through a role grant are audited.
        """
        profile = await self.get(profile_id)
        decision = self.gate.can(ctx, Action.READ, profile)
        if not decision:
            return None
        if decision.basis is Basis.ROLE and policy_for("profile").sensitive:
            await self.audit.record(
                ctx.principal_id,
                "profile_viewed",
                "profile",
                profile.id,
                ctx.organization_id,
                target_id=profile.user_id,
            )
        return profile

    async def direct_reports(self, ctx: PrincipalContext) -> list[Profile]:
        """Profiles whose manager is the caller."""
        if ctx.profile_id is None:
            return []
        result = await self.session.execute(
            select(Profile)
            .where(
                Profile.organization_id == ctx.organization_id,
                Profile.manager_id == ctx.profile_id,
            )
            .order_by(Profile.full_name)
        )
        return list(result.scalars().all())

    async def update(self, ctx: PrincipalContext, profile_id: UUID, changes: dict[str, Any]) -> Decision:
        """Apply direct edits to a profile.

        Returns a denial when the caller may not edit the profile or one of
        the fields. Raises ConstraintViolationError for unknown fields,
        invalid values and manager assignments that would form a cycle.
        """
        unknown = sorted(set(changes) - ADMIN_EDITABLE_PROFILE_FIELDS)
        if unknown:
            raise ConstraintViolationError(
                f"Profile fields cannot be edited directly: {', '.join(unknown)}",
                field=unknown[0],
                detail=sorted(ADMIN_EDITABLE_PROFILE_FIELDS),
            )

        profile = await self.get(profile_id)
        decision = self.gate.can(ctx, Action.UPDATE, profile)
        if not decision:
            return decision
        if decision.basis is Basis.OWNER and not ctx.has_any(policy_for("profile").edit_grants):
            if not set(changes) <= SELF_EDITABLE_PROFILE_FIELDS:
                logger.debug("Denied self edit of %s on profile %s", sorted(changes), profile.id)
                return Decision.deny(DenyReason.WRONG_ROLE)

        self._validate(profile, changes)

        previous = {name: _jsonable(getattr(profile, name)) for name in changes}
        for name, value in changes.items():
            setattr(profile, name, value)
        await self.session.flush()
        self.directory.refresh_profile(profile)

        await self.audit.record(
            ctx.principal_id,
            "profile_updated",
            "profile",
            profile.id,
            ctx.organization_id,
            target_id=profile.user_id,
            metadata={
                "fields": sorted(changes),
                "old": previous,
                "new": {name: _jsonable(value) for name, value in changes.items()},
            },
        )
        return decision

    def _validate(self, profile: Profile, changes: dict[str, Any]) -> None:
        if "status" in changes and changes["status"] not in {s.value for s in ProfileStatus}:
            raise ConstraintViolationError(
                f"'{changes['status']}' is not a valid profile status",
                field="status",
                detail=[s.value for s in ProfileStatus],
            )
        if "working_week_policy" in changes and changes["working_week_policy"] not in WORKING_WEEK_POLICIES:
            raise ConstraintViolationError(
                f"'{changes['working_week_policy']}' is not a valid working week policy",
                field="working_week_policy",
                detail=sorted(WORKING_WEEK_POLICIES),
            )
        if "full_name" in changes and not (changes["full_name"] or "").strip():
            raise ConstraintViolationError("full_name cannot be empty", field="full_name")
        if "manager_id" in changes:
            self._check_manager(profile, changes["manager_id"])

    def _check_manager(self, profile: Profile, manager_id: UUID | None) -> None:
        """The manager hierarchy must stay a tree within the organization."""
        if manager_id is None:
            return
        if manager_id == profile.id:
            raise ConstraintViolationError("A profile cannot manage itself", field="manager_id")

        profiles = self.directory.profiles_by_id
        if manager_id not in profiles:
            raise ConstraintViolationError("Manager must be a profile in the same organization", field="manager_id")

        seen: set[UUID] = set()
        current: UUID | None = manager_id
        while current is not None and current not in seen:
            if current == profile.id:
                raise ConstraintViolationError(
                    "Manager assignment would create a cycle",
                    field="manager_id",
                    detail={"profile_id": str(profile.id), "manager_id": str(manager_id)},
                )
            seen.add(current)
            facts = profiles.get(current)
            current = facts.manager_id if facts is not None else None


def _jsonable(value: Any) -> Any:
    return str(value) if isinstance(value, UUID) else value
