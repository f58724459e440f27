"""Expense approval, payment and ledger posting.

Approval and payment are separate authorities. Entering ``paid`` posts one
journal entry, however many times payment is requested.
"""

from decimal import Decimal

import pytest
from conftest import EXPENSE_PAYLOAD, ORG_ID
from sqlalchemy import func, select
from sqlalchemy.orm.attributes import set_committed_value

from hr_workflow.audit.logger import AuditFilter
from hr_workflow.authz.gate import DenyReason
from hr_workflow.errors import DeletionBlockedError, InvalidTransitionError
from hr_workflow.models import JournalEntry
from hr_workflow.services.ledger_service import expense_idempotency_key


@pytest.fixture
async def expense(service, as_, org):
    result = await service.submit(as_(org.alice), "expense", dict(EXPENSE_PAYLOAD))
    return await service.get("expense", result.entity_id)


@pytest.fixture
async def approved(service, as_, org, expense):
    result = await service.transition(as_(org.bob), "expense", expense.id, "approved")
    assert result.changed
    return expense


async def journal_count(session) -> int:
    return await session.scalar(select(func.count()).select_from(JournalEntry))


class TestApproval:
    async def test_approval_does_not_post(self, service, approved, session):
        assert approved.status == "approved"
        assert approved.journal_entry_id is None
        assert await journal_count(session) == 0

    async def test_manager_cannot_pay(self, service, as_, org, approved):
        result = await service.transition(as_(org.bob), "expense", approved.id, "paid")
        assert result.reason is DenyReason.WRONG_ROLE
        assert approved.status == "approved"

    async def test_cannot_pay_before_approval(self, service, as_, org, expense):
        with pytest.raises(InvalidTransitionError):
            await service.transition(as_(org.finance), "expense", expense.id, "paid")

    async def test_rejected_expense_is_never_paid(self, service, as_, org, expense):
        await service.transition(as_(org.bob), "expense", expense.id, "rejected")
        with pytest.raises(InvalidTransitionError):
            await service.transition(as_(org.admin), "expense", expense.id, "paid")


class TestPayment:
    async def test_payment_posts_balanced_entry(self, service, as_, org, approved):
        result = await service.transition(as_(org.finance), "expense", approved.id, "paid")

        assert result.changed
        assert result.journal_entry_id is not None
        assert approved.status == "paid"
        assert approved.paid_at is not None
        assert approved.journal_entry_id == result.journal_entry_id

        entry = await service.ledger.get_entry(ORG_ID, result.journal_entry_id)
        assert entry.idempotency_key == expense_idempotency_key(approved.id)
        assert entry.source_id == approved.id
        assert [(line.account_code, line.debit, line.credit) for line in entry.lines] == [
            ("5100", Decimal("120.50"), Decimal("0")),
            ("1100", Decimal("0"), Decimal("120.50")),
        ]

    async def test_paying_twice_posts_once(self, service, as_, org, approved, session):
        first = await service.transition(as_(org.finance), "expense", approved.id, "paid")
        second = await service.transition(as_(org.admin), "expense", approved.id, "paid")

        assert first.changed
        assert second
        assert not second.changed
        assert second.state == "paid"
        assert await journal_count(session) == 1

    async def test_stale_view_of_a_paid_expense(self, service, as_, org, approved, session):
        """A second payer who still sees ``approved`` loses the race quietly."""
        await service.transition(as_(org.finance), "expense", approved.id, "paid")
        set_committed_value(approved, "status", "approved")

        result = await service.engine.apply(as_(org.admin), approved, "paid")

        assert result
        assert not result.changed
        assert approved.status == "paid"
        assert await journal_count(session) == 1

    async def test_posting_is_audited_as_system(self, service, as_, org, approved):
        result = await service.transition(as_(org.finance), "expense", approved.id, "paid")

        listing = await service.list_audit(as_(org.admin), AuditFilter(action="journal_entry_posted"))
        [entry] = listing.entries
        assert entry.actor_id is None
        assert entry.actor_name == "system"
        assert entry.entity_id == result.journal_entry_id
        assert entry.target_name == "Alice Employee"

        [paid] = (await service.list_audit(as_(org.admin), AuditFilter(action="expense_paid"))).entries
        assert paid.actor_id == org.finance.user_id
        assert paid.metadata_json["journal_entry_id"] == str(result.journal_entry_id)


class TestPaidExpenseIsFinal:
    @pytest.fixture
    async def paid(self, service, as_, org, approved):
        await service.transition(as_(org.finance), "expense", approved.id, "paid")
        return approved

    async def test_no_edits(self, service, as_, org, paid):
        decision = await service.update(as_(org.finance), "expense", paid.id, {"description": "Fixed"})
        assert decision.reason is DenyReason.WRONG_STATE

    async def test_no_deletion_even_for_admin(self, service, as_, org, paid):
        with pytest.raises(DeletionBlockedError) as exc_info:
            await service.delete(as_(org.admin), "expense", paid.id)
        assert exc_info.value.status == "paid"

    async def test_corrections_are_reversals(self, service, as_, org, paid):
        reversal = await service.ledger.reverse_entry(
            organization_id=ORG_ID,
            original_entry_id=paid.journal_entry_id,
            idempotency_key=f"expense:{paid.id}:reversal",
            reason="Duplicate claim",
            created_by=org.finance.user_id,
        )

        entries = await service.ledger.entries_for_source(ORG_ID, "expense", paid.id)
        assert [e.entry_type for e in entries] == ["expense", "reversal"]
        net: dict[str, Decimal] = {}
        for entry in entries:
            for line in entry.lines:
                net[line.account_code] = net.get(line.account_code, Decimal("0")) + line.debit - line.credit
        assert set(net.values()) == {Decimal("0")}
        assert entries[1].id == reversal.entry_id
        assert entries[1].reverses_entry_id == paid.journal_entry_id
