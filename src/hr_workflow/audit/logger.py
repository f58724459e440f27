"""Append-only audit trail.

Every privileged action writes one ``AuditEntry``. Entries are inserted and
never changed: the session listeners below reject any flush that would
update or delete one, and any bulk UPDATE/DELETE statement aimed at the
table.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any
from uuid import UUID

from sqlalchemy import event, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import ORMExecuteState, Session

from hr_workflow.authz.gate import Basis, Decision, DenyReason
from hr_workflow.authz.resolver import Capability, PrincipalContext, RoleResolver
from hr_workflow.config import MAX_AUDIT_PAGE_SIZE, get_settings
from hr_workflow.errors import ImmutableRecordError
from hr_workflow.models import AuditEntry

logger = logging.getLogger(__name__)

AUDIT_READERS = frozenset({Capability.ADMIN, Capability.HR})


@dataclass(frozen=True)
class AuditFilter:
    """Filters for listing audit entries. ``None`` means no filter."""

    action: str | None = None
    entity_type: str | None = None
    actor_id: UUID | None = None
    entity_id: UUID | None = None
    limit: int | None = None
    offset: int = 0


@dataclass
class AuditListing:
    """Result of a listing: the gate decision and, when permitted, the entries."""

    decision: Decision
    entries: Sequence[AuditEntry] = field(default_factory=list)

    def __bool__(self) -> bool:
        return bool(self.decision)


class AuditLogger:
    """Writes and lists audit entries within the caller's session."""

    def __init__(self, session: AsyncSession, resolver: RoleResolver):
        self.session = session
        self.resolver = resolver

    async def record(
        self,
        actor_id: UUID | None,
        action: str,
        entity_type: str,
        entity_id: UUID | None,
        organization_id: UUID,
        target_id: UUID | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> AuditEntry:
        """Append an audit entry.

        ``actor_id`` of ``None`` records the system as the actor. Display
        names are resolved now and stored with the entry.
        """
        target_name = None
        if target_id is not None:
            target = self.resolver.profile_for(target_id)
            target_name = target.full_name if target is not None else str(target_id)

        entry = AuditEntry(
            organization_id=organization_id,
            actor_id=actor_id,
            actor_name=self.resolver.display_name(actor_id),
            target_id=target_id,
            target_name=target_name,
            entity_type=entity_type,
            entity_id=entity_id,
            action=action,
            metadata_json=dict(metadata or {}),
        )
        self.session.add(entry)
        await self.session.flush()
        return entry

    async def list_entries(self, ctx: PrincipalContext, filters: AuditFilter | None = None) -> AuditListing:
        """List entries newest first. Admin and HR only."""
        if not ctx.is_member:
            return AuditListing(Decision.deny(DenyReason.NOT_ORG_MEMBER))
        if not ctx.has_any(AUDIT_READERS):
            logger.debug("Denied audit listing for %s: WRONG_ROLE", ctx.principal_id)
            return AuditListing(Decision.deny(DenyReason.WRONG_ROLE))

        filters = filters or AuditFilter()
        page_size = get_settings().audit_page_size
        limit = page_size if filters.limit is None else max(0, min(filters.limit, MAX_AUDIT_PAGE_SIZE))

        query = select(AuditEntry).where(AuditEntry.organization_id == ctx.organization_id)
        if filters.action is not None:
            query = query.where(AuditEntry.action == filters.action)
        if filters.entity_type is not None:
            query = query.where(AuditEntry.entity_type == filters.entity_type)
        if filters.actor_id is not None:
            query = query.where(AuditEntry.actor_id == filters.actor_id)
        if filters.entity_id is not None:
            query = query.where(AuditEntry.entity_id == filters.entity_id)
        query = (
            query.order_by(AuditEntry.created_at.desc(), AuditEntry.id.desc())
            .offset(max(0, filters.offset))
            .limit(limit)
        )

        result = await self.session.execute(query)
        return AuditListing(Decision.permit(Basis.ROLE), list(result.scalars().all()))


@event.listens_for(Session, "before_flush")
def _reject_audit_mutation(session: Session, flush_context: Any, instances: Any) -> None:
    for obj in session.deleted:
        if isinstance(obj, AuditEntry):
            raise ImmutableRecordError(AuditEntry.__tablename__, "delete")
    for obj in session.dirty:
        if isinstance(obj, AuditEntry) and session.is_modified(obj, include_collections=False):
            raise ImmutableRecordError(AuditEntry.__tablename__, "update")


@event.listens_for(Session, "do_orm_execute")
def _reject_audit_bulk_mutation(orm_execute_state: ORMExecuteState) -> None:
    if not (orm_execute_state.is_update or orm_execute_state.is_delete):
        return
    mapper = orm_execute_state.bind_mapper
    if mapper is not None and mapper.class_ is AuditEntry:
        operation = "update" if orm_execute_state.is_update else "delete"
        raise ImmutableRecordError(AuditEntry.__tablename__, operation)
