"""Ledger service - append-only double-entry journal posting.

Provides idempotent posting of journal entries with:
- Balanced lines (total debit equals total credit)
- Idempotency via (organization_id, idempotency_key) uniqueness
- Reversal-based corrections (entries are never updated)
- Deletion only through the delete guard's maintenance override
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import event, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import ORMExecuteState, Session, selectinload

from hr_workflow.config import get_settings
from hr_workflow.errors import EntityNotFoundError, ImmutableRecordError
from hr_workflow.models import Expense, JournalEntry, JournalLine
from hr_workflow.models.base import utcnow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PostResult:
    """Result of a ledger posting operation.

    Check ``is_new`` before acting on a posting: ``is_new=False`` means the
    idempotency key was already used and the existing entry was returned.
    """

    entry_id: UUID
    is_new: bool
    entry_type: str


@dataclass(frozen=True)
class LineSpec:
    account_code: str
    debit: Decimal = Decimal("0")
    credit: Decimal = Decimal("0")
    description: str | None = None


def expense_idempotency_key(expense_id: UUID) -> str:
    return f"expense:{expense_id}:paid"


class LedgerService:
    """Append-only journal posting service.

    Notes:
    - journal entries are immutable once inserted (session listeners enforce).
    - idempotency_key is unique per organization.
    - line amounts are positive; reversals swap debit and credit.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def post_entry(
        self,
        *,
        organization_id: UUID,
        idempotency_key: str,
        entry_type: str,
        lines: list[LineSpec],
        source_type: str,
        source_id: UUID,
        description: str,
        created_by: UUID | None = None,
        reverses_entry_id: UUID | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> PostResult:
        """Post a balanced journal entry.

        Returns the existing entry with ``is_new=False`` when the key was
        already posted for this organization.
        """
        _validate_lines(lines)

        existing = await self._find_by_key(organization_id, idempotency_key)
        if existing is not None:
            logger.info("Duplicate posting for key %s; returning entry %s", idempotency_key, existing.id)
            return PostResult(entry_id=existing.id, is_new=False, entry_type=existing.entry_type)

        entry = JournalEntry(
            organization_id=organization_id,
            entry_type=entry_type,
            entry_date=utcnow().date(),
            description=description,
            source_type=source_type,
            source_id=source_id,
            idempotency_key=idempotency_key,
            reverses_entry_id=reverses_entry_id,
            created_by=created_by,
            metadata_json=dict(metadata or {}),
            lines=[
                JournalLine(
                    line_no=i,
                    account_code=line.account_code,
                    debit=line.debit,
                    credit=line.credit,
                    description=line.description,
                )
                for i, line in enumerate(lines, start=1)
            ],
        )

        # A concurrent writer may insert the same key between lookup and flush.
        try:
            async with self.session.begin_nested():
                self.session.add(entry)
                await self.session.flush()
        except IntegrityError:
            existing = await self._find_by_key(organization_id, idempotency_key)
            if existing is None:
                raise
            logger.info("Lost posting race for key %s; returning entry %s", idempotency_key, existing.id)
            return PostResult(entry_id=existing.id, is_new=False, entry_type=existing.entry_type)

        logger.info("Posted %s entry %s for %s %s", entry_type, entry.id, source_type, source_id)
        return PostResult(entry_id=entry.id, is_new=True, entry_type=entry_type)

    async def post_expense(self, expense: Expense, created_by: UUID | None = None) -> PostResult:
        """Debit the expense account and credit cash for a paid expense."""
        settings = get_settings()
        memo = f"Expense {expense.category}: {expense.description or expense.id}"
        return await self.post_entry(
            organization_id=expense.organization_id,
            idempotency_key=expense_idempotency_key(expense.id),
            entry_type="expense",
            lines=[
                LineSpec(settings.expense_account_code, debit=expense.amount, description=memo),
                LineSpec(settings.cash_account_code, credit=expense.amount, description=memo),
            ],
            source_type="expense",
            source_id=expense.id,
            description=memo,
            created_by=created_by,
            metadata={"profile_id": str(expense.profile_id), "category": expense.category},
        )

    async def reverse_entry(
        self,
        *,
        organization_id: UUID,
        original_entry_id: UUID,
        idempotency_key: str,
        reason: str,
        created_by: UUID | None = None,
    ) -> PostResult:
        """Post a compensating entry with debit and credit swapped."""
        original = await self.get_entry(organization_id, original_entry_id)
        if original is None:
            raise EntityNotFoundError("journal_entry", original_entry_id)

        return await self.post_entry(
            organization_id=organization_id,
            idempotency_key=idempotency_key,
            entry_type="reversal",
            lines=[
                LineSpec(line.account_code, debit=line.credit, credit=line.debit, description=line.description)
                for line in original.lines
            ],
            source_type=original.source_type,
            source_id=original.source_id,
            description=f"Reversal of {original.id}: {reason}",
            created_by=created_by,
            reverses_entry_id=original.id,
            metadata={"reason": reason},
        )

    async def delete_entry(self, organization_id: UUID, entry_id: UUID) -> None:
        """Delete an entry. Blocked by the delete guard unless the override is active."""
        entry = await self.get_entry(organization_id, entry_id)
        if entry is None:
            raise EntityNotFoundError("journal_entry", entry_id)
        await self.session.delete(entry)
        await self.session.flush()

    async def get_entry(self, organization_id: UUID, entry_id: UUID) -> JournalEntry | None:
        result = await self.session.execute(
            select(JournalEntry)
            .where(JournalEntry.id == entry_id, JournalEntry.organization_id == organization_id)
            .options(selectinload(JournalEntry.lines))
        )
        return result.scalar_one_or_none()

    async def entries_for_source(self, organization_id: UUID, source_type: str, source_id: UUID) -> list[JournalEntry]:
        result = await self.session.execute(
            select(JournalEntry)
            .where(
                JournalEntry.organization_id == organization_id,
                JournalEntry.source_type == source_type,
                JournalEntry.source_id == source_id,
            )
            .options(selectinload(JournalEntry.lines))
            .order_by(JournalEntry.posted_at)
        )
        return list(result.scalars().all())

    async def _find_by_key(self, organization_id: UUID, idempotency_key: str) -> JournalEntry | None:
        result = await self.session.execute(
            select(JournalEntry).where(
                JournalEntry.organization_id == organization_id,
                JournalEntry.idempotency_key == idempotency_key,
            )
        )
        return result.scalar_one_or_none()


def _validate_lines(lines: list[LineSpec]) -> None:
    if len(lines) < 2:
        raise ValueError("A journal entry needs at least two lines")
    for line in lines:
        if line.debit < 0 or line.credit < 0:
            raise ValueError("Line amounts must be non-negative")
        if (line.debit == 0) == (line.credit == 0):
            raise ValueError("Each line must be either a debit or a credit")
    total_debit = sum((line.debit for line in lines), Decimal("0"))
    total_credit = sum((line.credit for line in lines), Decimal("0"))
    if total_debit != total_credit:
        raise ValueError(f"Unbalanced entry: debit {total_debit} != credit {total_credit}")


@event.listens_for(Session, "before_flush")
def _reject_journal_updates(session: Session, flush_context: Any, instances: Any) -> None:
    for obj in session.dirty:
        if isinstance(obj, (JournalEntry, JournalLine)) and session.is_modified(obj, include_collections=False):
            raise ImmutableRecordError(obj.__tablename__, "update")


@event.listens_for(Session, "do_orm_execute")
def _reject_journal_bulk_updates(orm_execute_state: ORMExecuteState) -> None:
    if not orm_execute_state.is_update:
        return
    mapper = orm_execute_state.bind_mapper
    if mapper is not None and mapper.class_ in (JournalEntry, JournalLine):
        raise ImmutableRecordError(mapper.class_.__tablename__, "update")
