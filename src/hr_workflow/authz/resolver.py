"""Role resolver: capability lookups over an in-memory directory snapshot.

The resolver never goes through the authorization gate. It reads profiles
and role assignments with plain selects into a ``Directory`` keyed by id,
so a gate rule on the profile table can ask "is this principal HR?" or "is
this principal the manager of that profile?" without evaluating itself
again.

Every lookup answers ``False`` on missing data. Absence of a profile or a
role is a denial, never an error and never an implicit grant.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from hr_workflow.models import Profile, Role, RoleAssignment


class Capability(str, Enum):
    """Capability queries the resolver answers."""

    ADMIN = "admin"
    HR = "hr"
    FINANCE = "finance"
    MANAGER = "manager"
    ADMIN_OR_HR = "admin_or_hr"
    ADMIN_OR_FINANCE = "admin_or_finance"
    ADMIN_HR_OR_MANAGER = "admin_hr_or_manager"
    ORG_MEMBER = "org_member"


_ROLE_CAPABILITIES: dict[Role, frozenset[Capability]] = {
    Role.ADMIN: frozenset(
        {
            Capability.ADMIN,
            Capability.ADMIN_OR_HR,
            Capability.ADMIN_OR_FINANCE,
            Capability.ADMIN_HR_OR_MANAGER,
        }
    ),
    Role.HR: frozenset({Capability.HR, Capability.ADMIN_OR_HR, Capability.ADMIN_HR_OR_MANAGER}),
    Role.FINANCE: frozenset({Capability.FINANCE, Capability.ADMIN_OR_FINANCE}),
    Role.MANAGER: frozenset({Capability.MANAGER, Capability.ADMIN_HR_OR_MANAGER}),
    Role.EMPLOYEE: frozenset(),
}


@dataclass(frozen=True)
class ProfileFacts:
    """Snapshot of the profile fields authorization depends on."""

    id: UUID
    user_id: UUID
    organization_id: UUID
    manager_id: UUID | None
    full_name: str
    status: str = "active"

    @classmethod
    def of(cls, profile: Any) -> ProfileFacts:
        return cls(
            id=profile.id,
            user_id=profile.user_id,
            organization_id=profile.organization_id,
            manager_id=profile.manager_id,
            full_name=profile.full_name,
            status=getattr(profile, "status", "active"),
        )


@dataclass(frozen=True)
class PrincipalContext:
    """Facts about the caller, computed once per request."""

    principal_id: UUID
    organization_id: UUID
    profile_id: UUID | None
    display_name: str
    roles: frozenset[Role] = frozenset()
    capabilities: frozenset[Capability] = frozenset()

    def has(self, capability: Capability) -> bool:
        return capability in self.capabilities

    def has_any(self, capabilities: Iterable[Capability]) -> bool:
        return not self.capabilities.isdisjoint(capabilities)

    @property
    def is_member(self) -> bool:
        return Capability.ORG_MEMBER in self.capabilities


@dataclass
class Directory:
    """Arena of one organization's profiles and role assignments."""

    organization_id: UUID
    profiles_by_id: dict[UUID, ProfileFacts] = field(default_factory=dict)
    profiles_by_user: dict[UUID, ProfileFacts] = field(default_factory=dict)
    roles_by_user: dict[UUID, frozenset[Role]] = field(default_factory=dict)

    @classmethod
    def from_records(
        cls,
        organization_id: UUID,
        profiles: Iterable[Any],
        assignments: Iterable[Any] = (),
    ) -> Directory:
        """Build a directory from profile and role assignment records.

        Records outside ``organization_id`` are ignored.
        """
        directory = cls(organization_id=organization_id)
        for profile in profiles:
            if profile.organization_id != organization_id:
                continue
            facts = ProfileFacts.of(profile)
            directory.profiles_by_id[facts.id] = facts
            directory.profiles_by_user[facts.user_id] = facts

        roles: dict[UUID, set[Role]] = {}
        for assignment in assignments:
            if assignment.organization_id != organization_id:
                continue
            roles.setdefault(assignment.user_id, set()).add(Role(assignment.role))
        directory.roles_by_user = {user_id: frozenset(r) for user_id, r in roles.items()}
        return directory

    @classmethod
    async def load(cls, session: AsyncSession, organization_id: UUID) -> Directory:
        """Load an organization's directory with plain, unguarded selects."""
        profiles = await session.execute(
            select(Profile).where(Profile.organization_id == organization_id)
        )
        assignments = await session.execute(
            select(RoleAssignment).where(RoleAssignment.organization_id == organization_id)
        )
        return cls.from_records(
            organization_id,
            profiles.scalars().all(),
            assignments.scalars().all(),
        )

    def refresh_profile(self, profile: Any) -> None:
        """Replace a profile's snapshot after it was modified."""
        facts = ProfileFacts.of(profile)
        stale = self.profiles_by_id.get(facts.id)
        if stale is not None and stale.user_id != facts.user_id:
            self.profiles_by_user.pop(stale.user_id, None)
        self.profiles_by_id[facts.id] = facts
        self.profiles_by_user[facts.user_id] = facts


class RoleResolver:
    """Answers capability and hierarchy questions from a ``Directory``."""

    def __init__(self, directory: Directory):
        self.directory = directory

    def profile_for(self, principal_id: UUID | None) -> ProfileFacts | None:
        """O(1) principal to profile lookup."""
        if principal_id is None:
            return None
        return self.directory.profiles_by_user.get(principal_id)

    def profile(self, profile_id: UUID | None) -> ProfileFacts | None:
        if profile_id is None:
            return None
        return self.directory.profiles_by_id.get(profile_id)

    def roles(self, principal_id: UUID, organization_id: UUID) -> frozenset[Role]:
        if organization_id != self.directory.organization_id:
            return frozenset()
        explicit = self.directory.roles_by_user.get(principal_id, frozenset())
        if explicit or self.profile_for(principal_id) is not None:
            return explicit | {Role.EMPLOYEE}
        return frozenset()

    def capabilities(self, principal_id: UUID, organization_id: UUID) -> frozenset[Capability]:
        """Full capability set of a principal within an organization."""
        roles = self.roles(principal_id, organization_id)
        if not roles:
            return frozenset()
        caps: set[Capability] = {Capability.ORG_MEMBER}
        for role in roles:
            caps |= _ROLE_CAPABILITIES[role]
        return frozenset(caps)

    def has_capability(
        self,
        principal_id: UUID,
        organization_id: UUID,
        capability: Capability | str,
    ) -> bool:
        try:
            capability = Capability(capability)
        except ValueError:
            return False
        return capability in self.capabilities(principal_id, organization_id)

    def manager_of(self, principal_id: UUID, profile_id: UUID | None) -> bool:
        """True iff the target profile's manager is the principal's profile.

        Exactly one level: a manager's manager is not a manager of the
        target.
        """
        manager = self.profile_for(principal_id)
        target = self.profile(profile_id)
        if manager is None or target is None or target.manager_id is None:
            return False
        return target.manager_id == manager.id

    def display_name(self, principal_id: UUID | None) -> str:
        if principal_id is None:
            return "system"
        profile = self.profile_for(principal_id)
        return profile.full_name if profile is not None else str(principal_id)

    def context_for(self, principal_id: UUID, organization_id: UUID) -> PrincipalContext:
        """Compute the caller's capability set once for the request."""
        profile = self.profile_for(principal_id) if organization_id == self.directory.organization_id else None
        return PrincipalContext(
            principal_id=principal_id,
            organization_id=organization_id,
            profile_id=profile.id if profile is not None else None,
            display_name=profile.full_name if profile is not None else str(principal_id),
            roles=self.roles(principal_id, organization_id),
            capabilities=self.capabilities(principal_id, organization_id),
        )
