"""Pytest fixtures for HR workflow tests."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any, AsyncGenerator
from uuid import UUID, uuid4

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from hr_workflow.authz.gate import AuthorizationGate
from hr_workflow.authz.resolver import Directory, PrincipalContext, RoleResolver
from hr_workflow.models import (
    Base,
    Expense,
    LeaveRequest,
    Memo,
    Profile,
    Role,
    RoleAssignment,
)
from hr_workflow.services.workflow_service import WorkflowService

# In-memory SQLite shared across the engine's single connection
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

ORG_ID = UUID("0a9c6f52-1d7e-4c0b-9d61-6a3f2f1b7e01")
OTHER_ORG_ID = UUID("7b2e4d10-5c8a-4f3e-8e27-93c1d0a4b602")


@dataclass
class People:
    """One organization's cast plus an outsider from another organization.

    Alice reports to Bob, Bob reports to Carol. Dave is Alice's peer.
    """

    profiles: dict[str, Profile] = field(default_factory=dict)
    assignments: list[RoleAssignment] = field(default_factory=list)

    def __getattr__(self, name: str) -> Profile:
        try:
            return self.__dict__["profiles"][name]
        except KeyError:
            raise AttributeError(name) from None

    def directory(self, organization_id: UUID = ORG_ID) -> Directory:
        return Directory.from_records(organization_id, self.profiles.values(), self.assignments)

    def all(self) -> list[Any]:
        return [*self.profiles.values(), *self.assignments]


def _profile(name: str, organization_id: UUID = ORG_ID, manager: Profile | None = None, **extra: Any) -> Profile:
    return Profile(
        id=uuid4(),
        user_id=uuid4(),
        organization_id=organization_id,
        manager_id=manager.id if manager is not None else None,
        full_name=name,
        email=f"{name.split()[0].lower()}@example.com",
        status="active",
        working_week_policy="mon_fri",
        **extra,
    )


def build_people() -> People:
    people = People()
    carol = _profile("Carol Director")
    bob = _profile("Bob Manager", manager=carol)
    alice = _profile("Alice Employee", manager=bob, department="Engineering", phone="555-0100")
    dave = _profile("Dave Peer", manager=bob)
    hr = _profile("Hana HR")
    finance = _profile("Fred Finance")
    admin = _profile("Ada Admin")
    outsider = _profile("Oscar Outsider", organization_id=OTHER_ORG_ID)
    people.profiles.update(
        carol=carol,
        bob=bob,
        alice=alice,
        dave=dave,
        hr=hr,
        finance=finance,
        admin=admin,
        outsider=outsider,
    )
    roles = [
        (carol, Role.MANAGER),
        (bob, Role.MANAGER),
        (hr, Role.HR),
        (finance, Role.FINANCE),
        (admin, Role.ADMIN),
        (outsider, Role.ADMIN),
    ]
    for profile, role in roles:
        people.assignments.append(
            RoleAssignment(
                id=uuid4(),
                user_id=profile.user_id,
                organization_id=profile.organization_id,
                role=role.value,
            )
        )
    return people


@pytest.fixture
def people() -> People:
    """Unsaved directory records for pure tests."""
    return build_people()


@pytest.fixture
def resolver(people: People) -> RoleResolver:
    return RoleResolver(people.directory())


@pytest.fixture
def gate(resolver: RoleResolver) -> AuthorizationGate:
    return AuthorizationGate(resolver)


@pytest.fixture
def ctx_of(resolver: RoleResolver):
    """Build a principal context for a profile in ORG_ID."""

    def make(profile: Profile, organization_id: UUID = ORG_ID) -> PrincipalContext:
        return resolver.context_for(profile.user_id, organization_id)

    return make


def leave_for(owner: Profile, status: str = "pending", **extra: Any) -> LeaveRequest:
    return LeaveRequest(
        id=uuid4(),
        user_id=owner.user_id,
        profile_id=owner.id,
        organization_id=owner.organization_id,
        status=status,
        leave_type="annual",
        from_date=date(2026, 3, 2),
        to_date=date(2026, 3, 4),
        days=Decimal("3"),
        **extra,
    )


def memo_for(owner: Profile, status: str = "draft") -> Memo:
    return Memo(
        id=uuid4(),
        user_id=owner.user_id,
        profile_id=owner.id,
        organization_id=owner.organization_id,
        status=status,
        title="Office closure",
        priority="medium",
        department="All",
        recipients=[],
    )


def expense_for(owner: Profile, status: str = "submitted", amount: str = "120.50") -> Expense:
    return Expense(
        id=uuid4(),
        user_id=owner.user_id,
        profile_id=owner.id,
        organization_id=owner.organization_id,
        status=status,
        category="travel",
        amount=Decimal(amount),
        expense_date=date(2026, 2, 14),
    )


# =============================================================================
# Database fixtures
# =============================================================================


@pytest.fixture
async def engine():
    """Create a fresh in-memory database for each test."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest.fixture
async def session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create a database session for each test."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture
async def org(session: AsyncSession, people: People) -> People:
    """The cast persisted to the test database."""
    session.add_all(list(people.profiles.values()))
    await session.flush()
    session.add_all(people.assignments)
    await session.commit()
    return people


@pytest.fixture
async def service(session: AsyncSession, org: People) -> WorkflowService:
    service = WorkflowService(session)
    await service.context(org.admin.user_id, ORG_ID)
    return service


@pytest.fixture
def as_(service: WorkflowService):
    """Context for acting as one of the cast."""

    def make(profile: Profile, organization_id: UUID = ORG_ID) -> PrincipalContext:
        return service.resolver.context_for(profile.user_id, organization_id)

    return make


LEAVE_PAYLOAD = {
    "leave_type": "annual",
    "from_date": date(2026, 3, 2),
    "to_date": date(2026, 3, 4),
    "days": Decimal("3"),
    "reason": "Family visit",
}

EXPENSE_PAYLOAD = {
    "category": "travel",
    "amount": Decimal("120.50"),
    "expense_date": date(2026, 2, 14),
    "description": "Client visit taxi",
}
