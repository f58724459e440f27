"""Workflow service - entity-scoped operations for every workflow entity.

Operations:
- submit: create a record in its initial state (owner, or admin/finance for Form 16)
- transition: move a record through its state machine
- read: records of one type, filtered by the authorization gate
- update: edit non-status fields
- delete: remove a record, subject to the delete guard
- list_audit: audit trail listing for admin/HR
- maintenance_delete: delete under the audited maintenance override
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any
from uuid import UUID

from sqlalchemy import inspect, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from hr_workflow.audit.logger import AuditFilter, AuditListing
from hr_workflow.authz.gate import Basis, Decision, DenyReason
from hr_workflow.authz.policies import policy_for
from hr_workflow.authz.resolver import Directory, PrincipalContext
from hr_workflow.errors import ConstraintViolationError, EntityNotFoundError
from hr_workflow.models import (
    AttendanceCorrection,
    Expense,
    Form16Record,
    JournalEntry,
    LeaveRequest,
    Memo,
    Profile,
    ProfileChangeRequest,
)
from hr_workflow.services.ledger_service import LedgerService
from hr_workflow.services.scope import DirectoryScope
from hr_workflow.workflow.delete_guard import delete_guard
from hr_workflow.workflow.engine import TransitionResult, WorkflowEngine, validate_profile_change
from hr_workflow.workflow.state_machine import Action, machine_for

logger = logging.getLogger(__name__)

ENTITY_REGISTRY: dict[str, type] = {
    model.__entity_type__: model
    for model in (Memo, LeaveRequest, AttendanceCorrection, Expense, ProfileChangeRequest, Form16Record)
}

# Columns owned by the engine; payloads may never set them.
SYSTEM_FIELDS = frozenset(
    {
        "id",
        "status",
        "user_id",
        "organization_id",
        "reviewed_by",
        "reviewed_at",
        "reviewer_notes",
        "created_at",
        "updated_at",
        "published_at",
        "paid_at",
        "journal_entry_id",
        "generated_at",
        "generated_by",
    }
)


def model_for(entity_type: str) -> type:
    try:
        return ENTITY_REGISTRY[entity_type]
    except KeyError:
        raise ConstraintViolationError(
            f"Unknown entity type: {entity_type}",
            field="entity_type",
            detail=sorted(ENTITY_REGISTRY),
        ) from None


def payload_fields(model: type) -> frozenset[str]:
    """Columns a caller may supply for ``model``."""
    return frozenset(c.key for c in inspect(model).column_attrs) - SYSTEM_FIELDS


def clean_payload(model: type, payload: dict[str, Any], *, allow_profile: bool) -> dict[str, Any]:
    if "status" in payload:
        raise ConstraintViolationError(
            "status can only change through a transition",
            field="status",
        )
    allowed = payload_fields(model)
    if not allow_profile:
        allowed = allowed - {"profile_id"}
    unknown = sorted(set(payload) - allowed)
    if unknown:
        raise ConstraintViolationError(
            f"Fields not accepted for {model.__entity_type__}: {', '.join(unknown)}",
            field=unknown[0],
            detail=sorted(allowed),
        )
    return dict(payload)


@dataclass(frozen=True)
class SubmitResult:
    """Outcome of a submission. Truthy when the record was created."""

    decision: Decision
    entity_id: UUID | None = None

    def __bool__(self) -> bool:
        return bool(self.decision)


class WorkflowService(DirectoryScope):
    """Entry point for entity-scoped operations on behalf of a principal."""

    def __init__(self, session: AsyncSession, directory: Directory | None = None):
        self.engine: WorkflowEngine | None = None
        self.ledger = LedgerService(session)
        super().__init__(session, directory)

    def bind(self, directory: Directory) -> None:
        super().bind(directory)
        self.engine = WorkflowEngine(self.session, self.gate, self.audit, self.ledger)

    async def get(self, entity_type: str, entity_id: UUID) -> Any:
        """Load a record without authorization. Raises EntityNotFoundError."""
        model = model_for(entity_type)
        entity = await self.session.get(model, entity_id)
        if entity is None:
            raise EntityNotFoundError(entity_type, entity_id)
        return entity

    async def submit(self, ctx: PrincipalContext, entity_type: str, payload: dict[str, Any]) -> SubmitResult:
        """Create a record in its initial state.

        The owner is the caller unless ``profile_id`` names another profile,
        in which case the gate decides (Form 16 records are created by
        admin/finance for an employee; everything else is create-own).
        """
        model = model_for(entity_type)
        machine = machine_for(entity_type)
        fields = clean_payload(model, payload, allow_profile=True)

        profile_id = fields.pop("profile_id", None) or ctx.profile_id
        if profile_id is None:
            return SubmitResult(Decision.deny(DenyReason.NOT_ORG_MEMBER))
        owner = self.resolver.profile(UUID(str(profile_id)))
        if owner is None:
            raise EntityNotFoundError("profile", profile_id)

        if entity_type == "profile_change":
            validate_profile_change(fields.get("field_name"), fields.get("requested_value"))
            if "current_value" not in fields:
                profile = await self.session.get(Profile, owner.id)
                current = getattr(profile, fields["field_name"], None) if profile is not None else None
                fields["current_value"] = None if current is None else str(current)

        entity = model(
            **fields,
            user_id=owner.user_id,
            profile_id=owner.id,
            organization_id=ctx.organization_id,
            status=machine.initial_state,
        )
        decision = self.gate.can(ctx, Action.CREATE, entity)
        if not decision:
            return SubmitResult(decision)

        if entity_type == "form16":
            await self._check_form16_unique(entity)

        self.session.add(entity)
        try:
            await self.session.flush()
        except IntegrityError as exc:
            raise ConstraintViolationError(
                f"{entity_type} violates a constraint: {exc.orig}",
                detail=str(exc.orig),
            ) from exc

        await self.audit.record(
            ctx.principal_id,
            f"{entity_type}_created",
            entity_type,
            entity.id,
            ctx.organization_id,
            target_id=owner.user_id,
            metadata={"status": entity.status},
        )
        logger.info("Created %s %s for %s", entity_type, entity.id, owner.user_id)
        return SubmitResult(decision, entity.id)

    async def transition(
        self,
        ctx: PrincipalContext,
        entity_type: str,
        entity_id: UUID,
        target_state: str,
        reviewer_notes: str | None = None,
    ) -> TransitionResult:
        """Request a state change. Denials come back as a result, not an exception."""
        entity = await self.get(entity_type, entity_id)
        return await self.engine.apply(ctx, entity, target_state, reviewer_notes)

    async def read(
        self,
        ctx: PrincipalContext,
        entity_type: str,
        entity_id: UUID | None = None,
        status: str | None = None,
    ) -> list[Any]:
        """Records visible to the caller, newest first."""
        model = model_for(entity_type)
        if not ctx.is_member:
            return []
        if status is not None:
            machine_for(entity_type).check_state(status)

        query = select(model).where(model.organization_id == ctx.organization_id)
        if entity_id is not None:
            query = query.where(model.id == entity_id)
        if status is not None:
            query = query.where(model.status == status)
        query = query.order_by(model.created_at.desc())

        result = await self.session.execute(query)
        records = list(result.scalars().all())
        if entity_id is not None and not records:
            raise EntityNotFoundError(entity_type, entity_id)

        policy = policy_for(entity_type)
        visible = []
        for record in records:
            decision = self.gate.can(ctx, Action.READ, record)
            if not decision:
                continue
            visible.append(record)
            if policy.sensitive and decision.basis is Basis.ROLE:
                await self.audit.record(
                    ctx.principal_id,
                    f"{entity_type}_viewed",
                    entity_type,
                    record.id,
                    ctx.organization_id,
                    target_id=record.user_id,
                )
        return visible

    async def update(
        self,
        ctx: PrincipalContext,
        entity_type: str,
        entity_id: UUID,
        changes: dict[str, Any],
    ) -> Decision:
        """Edit non-status fields of a record."""
        model = model_for(entity_type)
        fields = clean_payload(model, changes, allow_profile=False)
        entity = await self.get(entity_type, entity_id)

        decision = self.gate.can(ctx, Action.UPDATE, entity)
        if not decision or not fields:
            return decision

        if entity_type == "profile_change" and ("field_name" in fields or "requested_value" in fields):
            validate_profile_change(
                fields.get("field_name", entity.field_name),
                fields.get("requested_value", entity.requested_value),
            )

        observed = entity.status
        try:
            result = await self.session.execute(
                update(model)
                .where(model.id == entity.id, model.status == observed)
                .values(**fields)
                .execution_options(synchronize_session=False)
            )
        except IntegrityError as exc:
            raise ConstraintViolationError(
                f"{entity_type} violates a constraint: {exc.orig}",
                detail=str(exc.orig),
            ) from exc
        await self.session.refresh(entity)

        if result.rowcount == 0:
            logger.info("%s %s left state %s before the update applied", entity_type, entity.id, observed)
            return Decision.deny(DenyReason.WRONG_STATE)

        await self.audit.record(
            ctx.principal_id,
            f"{entity_type}_updated",
            entity_type,
            entity.id,
            ctx.organization_id,
            target_id=entity.user_id,
            metadata={"fields": sorted(fields)},
        )
        return decision

    async def delete(self, ctx: PrincipalContext, entity_type: str, entity_id: UUID) -> Decision:
        """Delete a record.

        Raises DeletionBlockedError for a record in a guarded state, whatever
        the caller's role, unless the maintenance override is active.
        """
        entity = await self.get(entity_type, entity_id)
        decision = self.gate.can(ctx, Action.DELETE, entity)
        if not decision:
            return decision

        delete_guard.check(entity)
        await self._delete(ctx, entity_type, entity)
        return decision

    async def list_audit(self, ctx: PrincipalContext, filters: AuditFilter | None = None) -> AuditListing:
        return await self.audit.list_entries(ctx, filters)

    async def maintenance_delete(
        self,
        ctx: PrincipalContext,
        entity_type: str,
        entity_id: UUID,
        reason: str,
    ) -> None:
        """Delete a guarded record under the maintenance override.

        Journal entries are addressed as ``journal_entry``. Raises
        AccessDeniedError for non-admin callers and OverrideActiveError if
        another correction holds the override.
        """
        async with delete_guard.override(self.audit, ctx, reason):
            if entity_type == "journal_entry":
                entity = await self._load_journal_entry(ctx.organization_id, entity_id)
            else:
                entity = await self.get(entity_type, entity_id)
                if entity.organization_id != ctx.organization_id:
                    raise EntityNotFoundError(entity_type, entity_id)
            await self._delete(ctx, entity_type, entity, metadata={"maintenance": True, "reason": reason})

    async def record_maintenance_failure(
        self,
        ctx: PrincipalContext,
        entity_type: str,
        entity_id: UUID,
        reason: str,
        error: Exception,
    ) -> None:
        """Audit a maintenance delete that did not complete.

        The failed attempt's own unit of work is rolled back with its
        ``maintenance_override_started`` entry, so this must run in a fresh
        session.
        """
        await self.audit.record(
            ctx.principal_id,
            "maintenance_override_failed",
            entity_type,
            entity_id,
            ctx.organization_id,
            metadata={"reason": reason, "error": str(error), "error_type": type(error).__name__},
        )
        logger.warning("Maintenance delete of %s %s by %s failed: %s", entity_type, entity_id, ctx.principal_id, error)

    async def _delete(
        self,
        ctx: PrincipalContext,
        entity_type: str,
        entity: Any,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        target_id = getattr(entity, "user_id", None)
        await self.audit.record(
            ctx.principal_id,
            f"{entity_type}_deleted",
            entity_type,
            entity.id,
            ctx.organization_id,
            target_id=target_id,
            metadata={"status": entity.status, **(metadata or {})},
        )
        await self.session.delete(entity)
        await self.session.flush()
        logger.info("Deleted %s %s", entity_type, entity.id)

    async def _load_journal_entry(self, organization_id: UUID, entry_id: UUID) -> JournalEntry:
        result = await self.session.execute(
            select(JournalEntry)
            .where(JournalEntry.id == entry_id, JournalEntry.organization_id == organization_id)
            .options(selectinload(JournalEntry.lines))
        )
        entry = result.scalar_one_or_none()
        if entry is None:
            raise EntityNotFoundError("journal_entry", entry_id)
        return entry

    async def _check_form16_unique(self, record: Form16Record) -> None:
        existing = await self.session.scalar(
            select(Form16Record.id).where(
                Form16Record.organization_id == record.organization_id,
                Form16Record.financial_year == record.financial_year,
                Form16Record.profile_id == record.profile_id,
            )
        )
        if existing is not None:
            raise ConstraintViolationError(
                f"Form 16 for {record.financial_year} already exists for this profile",
                field="financial_year",
                detail={"existing_id": str(existing)},
            )
