"""Tests for the append-only ledger."""

from decimal import Decimal
from uuid import uuid4

import pytest
from conftest import ORG_ID, OTHER_ORG_ID
from sqlalchemy import delete, func, select, update

from hr_workflow.errors import DeletionBlockedError, EntityNotFoundError, ImmutableRecordError
from hr_workflow.models import JournalEntry
from hr_workflow.services.ledger_service import LedgerService, LineSpec


def balanced(amount: str = "250.00") -> list[LineSpec]:
    return [
        LineSpec("5100", debit=Decimal(amount)),
        LineSpec("1100", credit=Decimal(amount)),
    ]


@pytest.fixture
def ledger(session) -> LedgerService:
    return LedgerService(session)


async def post(ledger, key="expense:test:paid", organization_id=ORG_ID, lines=None):
    return await ledger.post_entry(
        organization_id=organization_id,
        idempotency_key=key,
        entry_type="expense",
        lines=lines or balanced(),
        source_type="expense",
        source_id=uuid4(),
        description="Test posting",
    )


class TestPosting:
    async def test_post_balanced_entry(self, ledger):
        result = await post(ledger)

        assert result.is_new
        assert result.entry_type == "expense"
        entry = await ledger.get_entry(ORG_ID, result.entry_id)
        assert [line.line_no for line in entry.lines] == [1, 2]
        assert sum(line.debit for line in entry.lines) == sum(line.credit for line in entry.lines)

    async def test_same_key_returns_existing_entry(self, ledger, session):
        first = await post(ledger)
        second = await post(ledger)

        assert not second.is_new
        assert second.entry_id == first.entry_id
        assert await session.scalar(select(func.count()).select_from(JournalEntry)) == 1

    async def test_keys_are_per_organization(self, ledger):
        first = await post(ledger)
        other = await post(ledger, organization_id=OTHER_ORG_ID)
        assert other.is_new
        assert other.entry_id != first.entry_id
        assert await ledger.get_entry(ORG_ID, other.entry_id) is None

    @pytest.mark.parametrize(
        "lines",
        [
            [LineSpec("5100", debit=Decimal("10"))],
            [LineSpec("5100", debit=Decimal("10")), LineSpec("1100", credit=Decimal("9"))],
            [LineSpec("5100", debit=Decimal("10"), credit=Decimal("10")), LineSpec("1100", credit=Decimal("0"))],
            [LineSpec("5100", debit=Decimal("-10")), LineSpec("1100", credit=Decimal("-10"))],
        ],
        ids=["single-line", "unbalanced", "two-sided", "negative"],
    )
    async def test_invalid_lines(self, ledger, lines):
        with pytest.raises(ValueError):
            await post(ledger, lines=lines)


class TestReversal:
    async def test_reversal_swaps_sides(self, ledger):
        original = await post(ledger)

        reversal = await ledger.reverse_entry(
            organization_id=ORG_ID,
            original_entry_id=original.entry_id,
            idempotency_key="expense:test:reversal",
            reason="Posted twice",
        )

        entry = await ledger.get_entry(ORG_ID, reversal.entry_id)
        assert entry.entry_type == "reversal"
        assert entry.reverses_entry_id == original.entry_id
        assert [(line.account_code, line.debit, line.credit) for line in entry.lines] == [
            ("5100", Decimal("0"), Decimal("250.00")),
            ("1100", Decimal("250.00"), Decimal("0")),
        ]

    async def test_reversal_is_idempotent(self, ledger):
        original = await post(ledger)
        kwargs = dict(
            organization_id=ORG_ID,
            original_entry_id=original.entry_id,
            idempotency_key="expense:test:reversal",
            reason="Posted twice",
        )
        first = await ledger.reverse_entry(**kwargs)
        second = await ledger.reverse_entry(**kwargs)
        assert not second.is_new
        assert second.entry_id == first.entry_id

    async def test_missing_original(self, ledger):
        with pytest.raises(EntityNotFoundError):
            await ledger.reverse_entry(
                organization_id=ORG_ID,
                original_entry_id=uuid4(),
                idempotency_key="nothing",
                reason="n/a",
            )


class TestImmutability:
    """Posted entries are never updated and never deleted outside the override."""

    async def test_update_is_rejected(self, ledger, session):
        result = await post(ledger)
        entry = await ledger.get_entry(ORG_ID, result.entry_id)
        entry.description = "Rewritten"
        with pytest.raises(ImmutableRecordError):
            await session.flush()

    async def test_line_update_is_rejected(self, ledger, session):
        result = await post(ledger)
        entry = await ledger.get_entry(ORG_ID, result.entry_id)
        entry.lines[0].account_code = "9999"
        with pytest.raises(ImmutableRecordError):
            await session.flush()

    async def test_bulk_update_is_rejected(self, ledger, session):
        await post(ledger)
        with pytest.raises(ImmutableRecordError):
            await session.execute(update(JournalEntry).values(description="Rewritten"))

    async def test_delete_is_blocked(self, ledger):
        result = await post(ledger)
        with pytest.raises(DeletionBlockedError) as exc_info:
            await ledger.delete_entry(ORG_ID, result.entry_id)
        assert exc_info.value.status == "posted"

    async def test_bulk_delete_is_blocked(self, ledger, session):
        await post(ledger)
        with pytest.raises(DeletionBlockedError):
            await session.execute(delete(JournalEntry))
