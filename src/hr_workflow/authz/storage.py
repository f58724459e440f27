"""Access contract for attachment objects.

Attachments live in per-entity buckets under a folder named after the
owning principal: ``<owner principal id>/<file name>``. Access follows the
owning entity's rules: the owner reaches their own folder and the entity's
role grants reach every folder of the caller's organization.
"""

from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID

from hr_workflow.authz.gate import Basis, Decision, DenyReason
from hr_workflow.authz.resolver import Capability, PrincipalContext, RoleResolver
from hr_workflow.errors import ConstraintViolationError


@dataclass(frozen=True)
class BucketPolicy:
    entity_type: str
    read_grants: frozenset[Capability]
    write_grants: frozenset[Capability]
    owner_writes: bool = True


BUCKETS: dict[str, BucketPolicy] = {
    "memo-attachments": BucketPolicy(
        "memo",
        read_grants=frozenset({Capability.ADMIN, Capability.HR}),
        write_grants=frozenset({Capability.ADMIN, Capability.HR}),
    ),
    "expense-receipts": BucketPolicy(
        "expense",
        read_grants=frozenset({Capability.ADMIN, Capability.FINANCE}),
        write_grants=frozenset({Capability.ADMIN, Capability.FINANCE}),
    ),
    "form16": BucketPolicy(
        "form16",
        read_grants=frozenset({Capability.ADMIN, Capability.HR, Capability.FINANCE}),
        write_grants=frozenset({Capability.ADMIN, Capability.FINANCE}),
        owner_writes=False,
    ),
}

OBJECT_ACTIONS = frozenset({"read", "write", "delete"})


def object_path(owner_id: UUID, filename: str) -> str:
    """Build the object path for a file in the owner's folder."""
    name = filename.strip().replace("\\", "/").rsplit("/", 1)[-1]
    if not name or name in (".", ".."):
        raise ConstraintViolationError(f"Invalid attachment file name: {filename!r}", field="filename")
    return f"{owner_id}/{name}"


def path_owner(path: str) -> UUID | None:
    """Owner principal id encoded in the first path segment, if any."""
    folder, sep, name = path.partition("/")
    if not sep or not name or "/" in name:
        return None
    try:
        return UUID(folder)
    except ValueError:
        return None


def folder_in_organization(resolver: RoleResolver, ctx: PrincipalContext, path: str) -> bool:
    """True iff the path's owner folder belongs to a profile in the caller's organization."""
    profile = resolver.profile_for(path_owner(path))
    return profile is not None and profile.organization_id == ctx.organization_id


def can_access_object(
    resolver: RoleResolver,
    ctx: PrincipalContext,
    bucket: str,
    path: str,
    action: str = "read",
) -> Decision:
    """Decide whether the caller may read, write or delete an object.

    Role grants reach every folder of the caller's own organization and no
    other; folders that name no profile there are treated as foreign.
    """
    policy = BUCKETS.get(bucket)
    if policy is None:
        raise ConstraintViolationError(f"Unknown bucket: {bucket}", field="bucket", detail=sorted(BUCKETS))
    if action not in OBJECT_ACTIONS:
        raise ConstraintViolationError(f"Unknown object action: {action}", field="action", detail=sorted(OBJECT_ACTIONS))

    if not ctx.is_member or not folder_in_organization(resolver, ctx, path):
        return Decision.deny(DenyReason.NOT_ORG_MEMBER)

    owner = path_owner(path)
    grants = policy.read_grants if action == "read" else policy.write_grants
    if owner == ctx.principal_id and (action == "read" or policy.owner_writes):
        return Decision.permit(Basis.OWNER)
    if ctx.has_any(grants):
        return Decision.permit(Basis.ROLE)
    if owner == ctx.principal_id:
        return Decision.deny(DenyReason.WRONG_ROLE)
    return Decision.deny(DenyReason.NOT_OWNER)
