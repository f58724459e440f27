"""Authorization gate.

Decides whether a principal may perform an action on a record. The gate
never mutates state: a permitted write is carried out by the workflow
engine or the calling service. Denials are returned as ``Decision`` values
carrying a reason tag, not raised.

Rules are evaluated in this order:

1. Organization scope: the caller must be a member of the organization
   that owns the record.
2. Ownership: owners read their records and edit them while still in a
   pre-approval state.
3. Workflow state: transition actions require an edge leaving the current
   state whose actor kinds include the caller.
4. Role grants: per-entity grants open reads regardless of ownership or
   state, and edits for correction roles. They never open a transition the
   table does not list.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any
from uuid import UUID

from hr_workflow.authz.policies import EntityPolicy, policy_for
from hr_workflow.authz.resolver import Capability, PrincipalContext, RoleResolver
from hr_workflow.workflow.state_machine import Action, Actor, StateMachine, Transition, machine_for

logger = logging.getLogger(__name__)


class DenyReason(str, Enum):
    NOT_OWNER = "NOT_OWNER"
    WRONG_ROLE = "WRONG_ROLE"
    WRONG_STATE = "WRONG_STATE"
    NOT_ORG_MEMBER = "NOT_ORG_MEMBER"


class Basis(str, Enum):
    """Which rule granted a permit."""

    OWNER = "owner"
    ROLE = "role"
    MANAGER = "manager"
    MEMBER = "member"
    REVIEWER = "reviewer"
    TRANSITION = "transition"


@dataclass(frozen=True)
class Decision:
    """Result of an authorization check. Truthy when permitted."""

    permitted: bool
    reason: DenyReason | None = None
    basis: Basis | None = None

    def __bool__(self) -> bool:
        return self.permitted

    @classmethod
    def permit(cls, basis: Basis) -> Decision:
        return cls(True, basis=basis)

    @classmethod
    def deny(cls, reason: DenyReason) -> Decision:
        return cls(False, reason=reason)


def entity_type_of(entity: Any) -> str:
    """Entity type label of a record or record class."""
    try:
        return entity.__entity_type__
    except AttributeError:
        raise ValueError(f"{type(entity).__name__} is not an authorizable entity") from None


def owner_profile_id(entity: Any) -> UUID | None:
    """Profile the record belongs to (a profile owns itself)."""
    return getattr(entity, "profile_id", None)


class AuthorizationGate:
    """Evaluates ``can(ctx, action, entity)`` for every entity type."""

    def __init__(self, resolver: RoleResolver):
        self.resolver = resolver

    def can(self, ctx: PrincipalContext, action: Action | str, entity: Any) -> Decision:
        action = Action(action)
        entity_type = entity_type_of(entity)
        decision = self._evaluate(ctx, action, entity, entity_type)
        if not decision:
            logger.debug(
                "Denied %s on %s %s for %s: %s",
                action.value,
                entity_type,
                getattr(entity, "id", None),
                ctx.principal_id,
                decision.reason.value if decision.reason else None,
            )
        return decision

    def is_owner(self, ctx: PrincipalContext, entity: Any) -> bool:
        if entity.user_id == ctx.principal_id:
            return True
        return ctx.profile_id is not None and owner_profile_id(entity) == ctx.profile_id

    def satisfies(self, ctx: PrincipalContext, actor: Actor, entity: Any) -> bool:
        """Does the caller qualify as the given actor kind for this record?"""
        if actor is Actor.OWNER:
            return self.is_owner(ctx, entity)
        if actor is Actor.MANAGER_OF_OWNER:
            return self.resolver.manager_of(ctx.principal_id, owner_profile_id(entity))
        if actor is Actor.ORG_MANAGER:
            return ctx.has(Capability.MANAGER)
        if actor is Actor.ADMIN:
            return ctx.has(Capability.ADMIN)
        if actor is Actor.HR:
            return ctx.has(Capability.HR)
        if actor is Actor.FINANCE:
            return ctx.has(Capability.FINANCE)
        return False

    def in_scope(self, ctx: PrincipalContext, entity: Any) -> bool:
        """Caller is a member of the organization that owns the record."""
        return ctx.is_member and entity.organization_id == ctx.organization_id

    def _evaluate(self, ctx: PrincipalContext, action: Action, entity: Any, entity_type: str) -> Decision:
        if not self.in_scope(ctx, entity):
            return Decision.deny(DenyReason.NOT_ORG_MEMBER)

        policy = policy_for(entity_type)
        machine = machine_for(entity_type)

        if action is Action.READ:
            return self._read(ctx, entity, policy, machine)
        if action is Action.CREATE:
            return self._create(ctx, entity, policy, machine)
        if action in (Action.UPDATE, Action.DELETE):
            return self._edit(ctx, action, entity, policy, machine)
        return self._transition(ctx, action, entity, machine)

    def _read(
        self,
        ctx: PrincipalContext,
        entity: Any,
        policy: EntityPolicy,
        machine: StateMachine | None,
    ) -> Decision:
        if self.is_owner(ctx, entity):
            return Decision.permit(Basis.OWNER)
        if ctx.has_any(policy.read_grants):
            return Decision.permit(Basis.ROLE)
        if policy.manager_reads and self.resolver.manager_of(ctx.principal_id, owner_profile_id(entity)):
            return Decision.permit(Basis.MANAGER)
        if machine is not None:
            status = entity.status
            if status in policy.member_read_states:
                return Decision.permit(Basis.MEMBER)
            if policy.reviewer_reads and self._can_act_from(ctx, entity, machine, status):
                return Decision.permit(Basis.REVIEWER)
        return Decision.deny(DenyReason.WRONG_ROLE)

    def _create(
        self,
        ctx: PrincipalContext,
        entity: Any,
        policy: EntityPolicy,
        machine: StateMachine | None,
    ) -> Decision:
        if machine is None:
            # Profiles are provisioned outside the workflow engine.
            return Decision.deny(DenyReason.WRONG_ROLE)
        status = entity.status or machine.initial_state
        if status != machine.initial_state:
            return Decision.deny(DenyReason.WRONG_STATE)

        if policy.create_grants is not None:
            if ctx.has_any(policy.create_grants):
                return Decision.permit(Basis.ROLE)
            return Decision.deny(DenyReason.WRONG_ROLE)

        # Create-own: both the owning principal and the owning profile must be the caller's.
        if entity.user_id == ctx.principal_id and ctx.profile_id is not None and owner_profile_id(entity) == ctx.profile_id:
            return Decision.permit(Basis.OWNER)
        return Decision.deny(DenyReason.NOT_OWNER)

    def _edit(
        self,
        ctx: PrincipalContext,
        action: Action,
        entity: Any,
        policy: EntityPolicy,
        machine: StateMachine | None,
    ) -> Decision:
        status = entity.status if machine is not None else None

        if action is Action.UPDATE and machine is not None and machine.is_frozen(status):
            return Decision.deny(DenyReason.WRONG_STATE)

        has_grant = ctx.has_any(policy.edit_grants)
        if policy.create_grants is not None:
            # Role-managed records: the owner only reads.
            return Decision.permit(Basis.ROLE) if has_grant else Decision.deny(DenyReason.WRONG_ROLE)

        if self.is_owner(ctx, entity):
            if machine is None:
                if action is Action.UPDATE:
                    return Decision.permit(Basis.OWNER)
            elif machine.is_owner_editable(status):
                return Decision.permit(Basis.OWNER)
            if has_grant:
                return Decision.permit(Basis.ROLE)
            return Decision.deny(DenyReason.WRONG_STATE if machine is not None else DenyReason.WRONG_ROLE)

        if has_grant:
            return Decision.permit(Basis.ROLE)
        return Decision.deny(DenyReason.NOT_OWNER)

    def _transition(
        self,
        ctx: PrincipalContext,
        action: Action,
        entity: Any,
        machine: StateMachine | None,
    ) -> Decision:
        if machine is None:
            return Decision.deny(DenyReason.WRONG_STATE)
        transition = machine.for_action(entity.status, action)
        if transition is None:
            return Decision.deny(DenyReason.WRONG_STATE)
        return self.check_actor(ctx, transition, entity)

    def check_actor(self, ctx: PrincipalContext, transition: Transition, entity: Any) -> Decision:
        """Check the caller against the actor kinds of one transition."""
        if any(self.satisfies(ctx, actor, entity) for actor in transition.actors):
            return Decision.permit(Basis.TRANSITION)
        if transition.actors == {Actor.OWNER}:
            return Decision.deny(DenyReason.NOT_OWNER)
        return Decision.deny(DenyReason.WRONG_ROLE)

    def _can_act_from(self, ctx: PrincipalContext, entity: Any, machine: StateMachine, status: str) -> bool:
        for transition in machine.transitions:
            if transition.from_state != status or transition.is_self_loop:
                continue
            if any(self.satisfies(ctx, actor, entity) for actor in transition.actors if actor is not Actor.OWNER):
                return True
        return False
