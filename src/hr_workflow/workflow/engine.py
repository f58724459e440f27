"""Workflow engine: applies role-gated state transitions.

A transition is one conditional UPDATE on the record, guarded by the state
the caller observed. If another writer moved the record first the UPDATE
matches no row and the transition fails, so two reviewers can never both
win. Side effects run only when the state actually changed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from hr_workflow.audit.logger import AuditLogger
from hr_workflow.authz.gate import AuthorizationGate, Decision, DenyReason, entity_type_of
from hr_workflow.authz.policies import CHANGE_REQUEST_FIELDS
from hr_workflow.authz.resolver import PrincipalContext
from hr_workflow.errors import ConstraintViolationError, InvalidTransitionError
from hr_workflow.models import ExpenseStatus, Form16Status, MemoStatus, Profile, ReviewStatus
from hr_workflow.models.base import utcnow
from hr_workflow.services.ledger_service import LedgerService
from hr_workflow.workflow.state_machine import Action, StateMachine, Transition, machine_for

logger = logging.getLogger(__name__)

WORKING_WEEK_POLICIES = frozenset({"mon_fri", "mon_sat", "alt_saturday"})


@dataclass(frozen=True)
class TransitionResult:
    """Outcome of a transition request.

    Truthy when permitted. ``changed`` is False for a denied request and
    for an idempotent re-entry into the current state.
    """

    decision: Decision
    entity_type: str
    entity_id: UUID
    from_state: str
    state: str
    changed: bool = False
    journal_entry_id: UUID | None = None

    def __bool__(self) -> bool:
        return bool(self.decision)

    @property
    def reason(self) -> DenyReason | None:
        return self.decision.reason


def audit_action(entity_type: str, state: str) -> str:
    return f"{entity_type}_{state}"


class WorkflowEngine:
    """Drives workflow entities through their state machines."""

    def __init__(
        self,
        session: AsyncSession,
        gate: AuthorizationGate,
        audit: AuditLogger,
        ledger: LedgerService | None = None,
    ):
        self.session = session
        self.gate = gate
        self.audit = audit
        self.ledger = ledger or LedgerService(session)

    def machine(self, entity: Any) -> StateMachine:
        entity_type = entity_type_of(entity)
        machine = machine_for(entity_type)
        if machine is None:
            raise ValueError(f"{entity_type} has no workflow")
        return machine

    async def apply(
        self,
        ctx: PrincipalContext,
        entity: Any,
        target_state: str,
        reviewer_notes: str | None = None,
    ) -> TransitionResult:
        """Move ``entity`` into ``target_state`` on behalf of ``ctx``.

        Returns a denied result when the caller cannot read the record or may
        not trigger the transition. Raises ConstraintViolationError for an unknown state and
        InvalidTransitionError when no edge leads from the current state to
        the target, including when a concurrent writer changed the state.
        """
        machine = self.machine(entity)
        entity_type = machine.entity_type
        target_state = getattr(target_state, "value", target_state)
        from_state = entity.status

        if not self.gate.in_scope(ctx, entity):
            return self._denied(Decision.deny(DenyReason.NOT_ORG_MEMBER), entity, from_state)

        # Callers who cannot see the record learn nothing about its state.
        visible = self.gate.can(ctx, Action.READ, entity)
        if not visible:
            return self._denied(visible, entity, from_state)

        transition = machine.validate_transition(from_state, target_state)
        decision = self.gate.can(ctx, transition.action, entity)
        if not decision:
            return self._denied(decision, entity, from_state)

        if transition.is_self_loop:
            logger.info("%s %s already %s; nothing to do", entity_type, entity.id, target_state)
            return TransitionResult(decision, entity_type, entity.id, from_state, target_state)

        if entity_type == "profile_change" and target_state == ReviewStatus.APPROVED.value:
            validate_profile_change(entity.field_name, entity.requested_value)

        model = type(entity)
        result = await self.session.execute(
            update(model)
            .where(model.id == entity.id, model.status == from_state)
            .values(status=target_state, **self._stamps(ctx, transition, reviewer_notes))
            .execution_options(synchronize_session=False)
        )
        await self.session.refresh(entity)

        if result.rowcount == 0:
            # Another writer moved the record first.
            current = entity.status
            if current == target_state and machine.find(current, current) is not None:
                logger.info("%s %s reached %s concurrently; nothing to do", entity_type, entity.id, target_state)
                return TransitionResult(decision, entity_type, entity.id, current, current)
            raise InvalidTransitionError(current, target_state, "Status changed during transition")

        logger.info(
            "%s %s: %s -> %s by %s",
            entity_type,
            entity.id,
            from_state,
            target_state,
            ctx.principal_id,
        )

        journal_entry_id = await self._side_effects(ctx, entity, from_state, target_state)

        metadata: dict[str, Any] = {"from": from_state, "to": target_state}
        if reviewer_notes:
            metadata["notes"] = reviewer_notes
        if journal_entry_id is not None:
            metadata["journal_entry_id"] = str(journal_entry_id)
        await self.audit.record(
            ctx.principal_id,
            audit_action(entity_type, target_state),
            entity_type,
            entity.id,
            entity.organization_id,
            target_id=entity.user_id,
            metadata=metadata,
        )

        return TransitionResult(
            decision,
            entity_type,
            entity.id,
            from_state,
            target_state,
            changed=True,
            journal_entry_id=journal_entry_id,
        )

    def _stamps(self, ctx: PrincipalContext, transition: Transition, reviewer_notes: str | None) -> dict[str, Any]:
        now = utcnow()
        values: dict[str, Any] = {}
        if transition.action in (Action.APPROVE, Action.REJECT):
            values.update(reviewed_by=ctx.principal_id, reviewed_at=now, reviewer_notes=reviewer_notes)
        if transition.to_state == MemoStatus.PUBLISHED.value and transition.action is Action.APPROVE:
            values["published_at"] = now
        if transition.action is Action.PAY and transition.to_state == ExpenseStatus.PAID.value:
            values["paid_at"] = now
        if transition.action is Action.GENERATE and transition.to_state == Form16Status.GENERATED.value:
            values.update(generated_at=now, generated_by=ctx.principal_id)
        return values

    async def _side_effects(
        self,
        ctx: PrincipalContext,
        entity: Any,
        from_state: str,
        to_state: str,
    ) -> UUID | None:
        """Effects of entering ``to_state``. Called only when the state changed."""
        entity_type = entity_type_of(entity)

        if entity_type == "expense" and to_state == ExpenseStatus.PAID.value:
            posted = await self.ledger.post_expense(entity)
            if posted.is_new:
                await self.audit.record(
                    None,
                    "journal_entry_posted",
                    "journal_entry",
                    posted.entry_id,
                    entity.organization_id,
                    target_id=entity.user_id,
                    metadata={"source_type": "expense", "source_id": str(entity.id), "amount": str(entity.amount)},
                )
            entity.journal_entry_id = posted.entry_id
            await self.session.flush()
            return posted.entry_id

        if entity_type == "profile_change" and to_state == ReviewStatus.APPROVED.value:
            await self._apply_profile_change(ctx, entity)

        return None

    async def _apply_profile_change(self, ctx: PrincipalContext, request: Any) -> None:
        result = await self.session.execute(select(Profile).where(Profile.id == request.profile_id))
        profile = result.scalar_one()
        previous = getattr(profile, request.field_name)
        setattr(profile, request.field_name, request.requested_value)
        await self.session.flush()
        self.gate.resolver.directory.refresh_profile(profile)
        await self.audit.record(
            ctx.principal_id,
            "profile_updated",
            "profile",
            profile.id,
            profile.organization_id,
            target_id=profile.user_id,
            metadata={
                "field": request.field_name,
                "old": previous,
                "new": request.requested_value,
                "change_request_id": str(request.id),
            },
        )

    def _denied(self, decision: Decision, entity: Any, from_state: str) -> TransitionResult:
        return TransitionResult(decision, entity_type_of(entity), entity.id, from_state, from_state)


def validate_profile_change(field_name: str, requested_value: str | None) -> None:
    """Reject change requests the profile cannot absorb."""
    if field_name not in CHANGE_REQUEST_FIELDS:
        raise ConstraintViolationError(
            f"'{field_name}' cannot be changed through a change request",
            field="field_name",
            detail=sorted(CHANGE_REQUEST_FIELDS),
        )
    if field_name == "full_name" and not (requested_value or "").strip():
        raise ConstraintViolationError("full_name cannot be empty", field="requested_value")
    if field_name == "working_week_policy" and requested_value not in WORKING_WEEK_POLICIES:
        raise ConstraintViolationError(
            f"'{requested_value}' is not a valid working week policy",
            field="requested_value",
            detail=sorted(WORKING_WEEK_POLICIES),
        )
