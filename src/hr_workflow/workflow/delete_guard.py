"""Delete-prevention guard and its maintenance override.

Records in an externally consumed state (published memos, approved
requests, approved or paid expenses, generated Form 16 records, every
journal entry) cannot be deleted by anyone. Corrections are compensating
entries. The only exception is the maintenance override: a process-wide,
admin-only, audited window that is released on every exit path.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any
from uuid import UUID

from sqlalchemy import event
from sqlalchemy.orm import ORMExecuteState, Session

from hr_workflow.authz.resolver import Capability, PrincipalContext
from hr_workflow.errors import AccessDeniedError, DeletionBlockedError, OverrideActiveError
from hr_workflow.models import JournalEntry, JournalLine
from hr_workflow.workflow.state_machine import MACHINES, machine_for

if TYPE_CHECKING:
    from hr_workflow.audit.logger import AuditLogger

logger = logging.getLogger(__name__)

POSTED = "posted"


def guarded_status(obj: Any) -> str | None:
    """Status that blocks deletion of ``obj``, or None if it may be deleted."""
    if isinstance(obj, (JournalEntry, JournalLine)):
        return POSTED
    entity_type = getattr(obj, "__entity_type__", None)
    machine = machine_for(entity_type) if entity_type else None
    if machine is None:
        return None
    status = obj.status
    return status if machine.is_delete_guarded(status) else None


class DeleteGuard:
    """Process-wide delete guard with a scoped override."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._active = False
        self._holder: UUID | None = None

    @property
    def active(self) -> bool:
        return self._active

    @property
    def holder(self) -> UUID | None:
        return self._holder

    def check(self, obj: Any) -> None:
        """Raise DeletionBlockedError if ``obj`` is guarded and no override is active."""
        status = guarded_status(obj)
        if status is None or self._active:
            return
        entity_type = getattr(obj, "__entity_type__", None) or obj.__tablename__
        logger.warning("Blocked delete of %s %s in status '%s'", entity_type, obj.id, status)
        raise DeletionBlockedError(entity_type, obj.id, status)

    @asynccontextmanager
    async def override(
        self,
        audit: AuditLogger,
        ctx: PrincipalContext,
        reason: str,
    ) -> AsyncIterator[DeleteGuard]:
        """Suspend the guard for one bounded correction.

        Admin only and not re-entrant. Begin and end are written to the
        audit trail; the guard is restored even when the body fails.
        """
        if not ctx.has(Capability.ADMIN):
            raise AccessDeniedError("WRONG_ROLE", "Maintenance override requires the admin role")
        if not reason or not reason.strip():
            raise ValueError("A reason is required for the maintenance override")

        with self._lock:
            if self._active:
                raise OverrideActiveError(f"Maintenance override already held by {self._holder}")
            self._active = True
            self._holder = ctx.principal_id

        logger.warning("Maintenance override started by %s: %s", ctx.principal_id, reason)
        try:
            await audit.record(
                ctx.principal_id,
                "maintenance_override_started",
                "maintenance",
                None,
                ctx.organization_id,
                metadata={"reason": reason},
            )
            yield self
            await audit.record(
                ctx.principal_id,
                "maintenance_override_ended",
                "maintenance",
                None,
                ctx.organization_id,
                metadata={"reason": reason},
            )
        finally:
            with self._lock:
                self._active = False
                self._holder = None
            logger.warning("Maintenance override ended for %s", ctx.principal_id)


delete_guard = DeleteGuard()


@event.listens_for(Session, "before_flush")
def _check_deletes(session: Session, flush_context: Any, instances: Any) -> None:
    for obj in session.deleted:
        delete_guard.check(obj)


@event.listens_for(Session, "do_orm_execute")
def _check_bulk_deletes(orm_execute_state: ORMExecuteState) -> None:
    # Bulk deletes cannot be checked row by row; they need the override.
    if not orm_execute_state.is_delete or delete_guard.active:
        return
    mapper = orm_execute_state.bind_mapper
    if mapper is None:
        return
    entity_type = getattr(mapper.class_, "__entity_type__", None)
    if mapper.class_ in (JournalEntry, JournalLine) or entity_type in MACHINES:
        name = entity_type or mapper.class_.__tablename__
        logger.warning("Blocked bulk delete on %s", name)
        raise DeletionBlockedError(name, None, "bulk")
