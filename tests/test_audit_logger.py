"""Tests for the append-only audit trail."""

from datetime import datetime, timedelta, timezone

import pytest
from conftest import ORG_ID, OTHER_ORG_ID
from sqlalchemy import delete, update

from hr_workflow.audit.logger import AuditFilter, AuditLogger
from hr_workflow.authz.gate import DenyReason
from hr_workflow.errors import ImmutableRecordError
from hr_workflow.models import AuditEntry

T0 = datetime(2026, 1, 5, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
def audit(service) -> AuditLogger:
    return service.audit


@pytest.fixture
async def history(session, org):
    """Four entries a minute apart, plus one from another organization."""
    rows = [
        ("leave_created", "leave", org.alice),
        ("leave_approved", "leave", org.bob),
        ("expense_created", "expense", org.alice),
        ("expense_paid", "expense", org.finance),
    ]
    entries = []
    for minute, (action, entity_type, actor) in enumerate(rows):
        entries.append(
            AuditEntry(
                organization_id=ORG_ID,
                actor_id=actor.user_id,
                actor_name=actor.full_name,
                entity_type=entity_type,
                action=action,
                metadata_json={},
                created_at=T0 + timedelta(minutes=minute),
            )
        )
    entries.append(
        AuditEntry(
            organization_id=OTHER_ORG_ID,
            actor_id=org.outsider.user_id,
            actor_name=org.outsider.full_name,
            entity_type="leave",
            action="leave_created",
            metadata_json={},
            created_at=T0,
        )
    )
    session.add_all(entries)
    await session.flush()
    return entries


class TestRecord:
    async def test_names_are_copied(self, audit, org):
        entry = await audit.record(
            org.hr.user_id,
            "profile_viewed",
            "profile",
            org.alice.id,
            ORG_ID,
            target_id=org.alice.user_id,
        )
        assert entry.actor_name == "Hana HR"
        assert entry.target_name == "Alice Employee"
        assert entry.metadata_json == {}
        assert entry.created_at is not None

    async def test_system_actor(self, audit, org):
        entry = await audit.record(None, "journal_entry_posted", "journal_entry", None, ORG_ID)
        assert entry.actor_id is None
        assert entry.actor_name == "system"
        assert entry.target_name is None


class TestListing:
    """Admin and HR read the trail, newest first."""

    async def test_newest_first(self, service, as_, org, history):
        listing = await service.list_audit(as_(org.hr))
        assert [e.action for e in listing.entries] == [
            "expense_paid",
            "expense_created",
            "leave_approved",
            "leave_created",
        ]

    async def test_other_organizations_are_invisible(self, service, as_, org, history):
        listing = await service.list_audit(as_(org.admin))
        assert {e.organization_id for e in listing.entries} == {ORG_ID}

    @pytest.mark.parametrize(
        "filters, expected",
        [
            (AuditFilter(action="leave_created"), ["leave_created"]),
            (AuditFilter(entity_type="expense"), ["expense_paid", "expense_created"]),
            (AuditFilter(limit=2), ["expense_paid", "expense_created"]),
            (AuditFilter(limit=2, offset=2), ["leave_approved", "leave_created"]),
        ],
    )
    async def test_filters(self, service, as_, org, history, filters, expected):
        listing = await service.list_audit(as_(org.admin), filters)
        assert [e.action for e in listing.entries] == expected

    async def test_filter_by_actor(self, service, as_, org, history):
        listing = await service.list_audit(as_(org.admin), AuditFilter(actor_id=org.alice.user_id))
        assert [e.action for e in listing.entries] == ["expense_created", "leave_created"]

    @pytest.mark.parametrize("name", ["alice", "bob", "finance", "carol"])
    async def test_other_roles_are_denied(self, service, as_, org, history, name):
        listing = await service.list_audit(as_(getattr(org, name)))
        assert not listing
        assert listing.decision.reason is DenyReason.WRONG_ROLE
        assert listing.entries == []

    async def test_outsider_is_not_a_member(self, service, as_, org, history):
        listing = await service.list_audit(as_(org.outsider))
        assert listing.decision.reason is DenyReason.NOT_ORG_MEMBER


class TestAppendOnly:
    async def test_update_is_rejected(self, session, history):
        history[0].action = "leave_rejected"
        with pytest.raises(ImmutableRecordError) as exc_info:
            await session.flush()
        assert exc_info.value.operation == "update"

    async def test_delete_is_rejected(self, session, history):
        await session.delete(history[0])
        with pytest.raises(ImmutableRecordError) as exc_info:
            await session.flush()
        assert exc_info.value.operation == "delete"

    async def test_bulk_statements_are_rejected(self, session, history):
        with pytest.raises(ImmutableRecordError):
            await session.execute(update(AuditEntry).values(actor_name="someone else"))
        with pytest.raises(ImmutableRecordError):
            await session.execute(delete(AuditEntry).where(AuditEntry.organization_id == ORG_ID))
