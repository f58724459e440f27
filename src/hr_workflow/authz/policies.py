"""Per-entity authorization policies.

A policy lists the role grants of one entity type. Ownership and workflow
state rules are common to all types and live in the gate; only the parts
that differ between types are declared here.
"""

from __future__ import annotations

from dataclasses import dataclass

from hr_workflow.authz.resolver import Capability
from hr_workflow.models import ExpenseStatus, MemoStatus


@dataclass(frozen=True)
class EntityPolicy:
    """Role grants for one entity type.

    Attributes:
        read_grants: capabilities that may read any record in the org,
            regardless of ownership or state.
        member_read_states: states in which every org member may read.
        manager_reads: the owner's direct manager may read.
        reviewer_reads: principals able to trigger a transition out of the
            current state may read the record they are asked to review.
        create_grants: when set, creation is role-gated instead of
            owner-only (the creator acts on the owner's behalf).
        edit_grants: capabilities that may update or delete outside the
            owner's pre-approval window (audit correction).
        sensitive: reads through a role grant are audited.
    """

    entity_type: str
    read_grants: frozenset[Capability]
    edit_grants: frozenset[Capability]
    member_read_states: frozenset[str] = frozenset()
    manager_reads: bool = True
    reviewer_reads: bool = False
    create_grants: frozenset[Capability] | None = None
    sensitive: bool = False


_ADMIN_HR = frozenset({Capability.ADMIN, Capability.HR})
_ADMIN_FINANCE = frozenset({Capability.ADMIN, Capability.FINANCE})

POLICIES: dict[str, EntityPolicy] = {
    "memo": EntityPolicy(
        "memo",
        read_grants=_ADMIN_HR,
        edit_grants=_ADMIN_HR,
        member_read_states=frozenset({MemoStatus.PUBLISHED.value}),
        reviewer_reads=True,
    ),
    "leave": EntityPolicy("leave", read_grants=_ADMIN_HR, edit_grants=_ADMIN_HR),
    "attendance_correction": EntityPolicy(
        "attendance_correction",
        read_grants=_ADMIN_HR,
        edit_grants=_ADMIN_HR,
    ),
    "expense": EntityPolicy(
        "expense",
        read_grants=_ADMIN_FINANCE,
        edit_grants=_ADMIN_FINANCE,
        sensitive=True,
    ),
    "profile_change": EntityPolicy(
        "profile_change",
        read_grants=_ADMIN_HR,
        edit_grants=_ADMIN_HR,
    ),
    "form16": EntityPolicy(
        "form16",
        read_grants=frozenset({Capability.ADMIN, Capability.HR, Capability.FINANCE}),
        edit_grants=_ADMIN_FINANCE,
        manager_reads=False,
        create_grants=_ADMIN_FINANCE,
        sensitive=True,
    ),
    "profile": EntityPolicy(
        "profile",
        read_grants=_ADMIN_HR,
        edit_grants=_ADMIN_HR,
        sensitive=True,
    ),
}

# Fields a principal may change on their own profile without a change request.
SELF_EDITABLE_PROFILE_FIELDS = frozenset({"phone"})

# Fields admin/HR may change directly on any profile in their organization.
ADMIN_EDITABLE_PROFILE_FIELDS = frozenset(
    {
        "full_name",
        "email",
        "phone",
        "department",
        "job_title",
        "manager_id",
        "status",
        "working_week_policy",
    }
)

# Fields an approved profile change request may write.
CHANGE_REQUEST_FIELDS = frozenset(
    {"full_name", "department", "job_title", "phone", "email", "working_week_policy"}
)

# Expense states in which finance sees the record as posted.
POSTED_EXPENSE_STATES = frozenset({ExpenseStatus.PAID.value})


def policy_for(entity_type: str) -> EntityPolicy:
    try:
        return POLICIES[entity_type]
    except KeyError:
        raise ValueError(f"Unknown entity type: {entity_type}") from None
