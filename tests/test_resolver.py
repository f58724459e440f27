"""Tests for the role resolver."""

from types import SimpleNamespace
from uuid import uuid4

from conftest import ORG_ID, OTHER_ORG_ID

from hr_workflow.authz.resolver import Capability, Directory, RoleResolver
from hr_workflow.models import Role


class TestCapabilities:
    """Capability sets per role."""

    def test_admin(self, resolver, people):
        caps = resolver.capabilities(people.admin.user_id, ORG_ID)
        assert Capability.ADMIN in caps
        assert Capability.ADMIN_OR_HR in caps
        assert Capability.ADMIN_OR_FINANCE in caps
        assert Capability.ORG_MEMBER in caps
        assert Capability.HR not in caps

    def test_finance_is_not_hr(self, resolver, people):
        assert resolver.has_capability(people.finance.user_id, ORG_ID, "admin_or_finance")
        assert not resolver.has_capability(people.finance.user_id, ORG_ID, "admin_or_hr")
        assert not resolver.has_capability(people.finance.user_id, ORG_ID, "admin_hr_or_manager")

    def test_manager(self, resolver, people):
        assert resolver.has_capability(people.bob.user_id, ORG_ID, Capability.MANAGER)
        assert resolver.has_capability(people.bob.user_id, ORG_ID, Capability.ADMIN_HR_OR_MANAGER)

    def test_plain_employee_is_member_only(self, resolver, people):
        assert resolver.capabilities(people.alice.user_id, ORG_ID) == {Capability.ORG_MEMBER}
        assert resolver.roles(people.alice.user_id, ORG_ID) == {Role.EMPLOYEE}

    def test_wrong_organization_grants_nothing(self, resolver, people):
        assert resolver.capabilities(people.admin.user_id, OTHER_ORG_ID) == frozenset()

    def test_outsider_admin_has_nothing_here(self, resolver, people):
        assert resolver.capabilities(people.outsider.user_id, ORG_ID) == frozenset()

    def test_unknown_principal_and_capability_are_false(self, resolver, people):
        assert resolver.has_capability(uuid4(), ORG_ID, Capability.ORG_MEMBER) is False
        assert resolver.has_capability(people.admin.user_id, ORG_ID, "superuser") is False


class TestManagerOf:
    """manager_of is exactly one level deep."""

    def test_direct_manager(self, resolver, people):
        assert resolver.manager_of(people.bob.user_id, people.alice.id) is True

    def test_managers_manager_is_not_manager(self, resolver, people):
        assert resolver.manager_of(people.carol.user_id, people.alice.id) is False
        assert resolver.manager_of(people.carol.user_id, people.bob.id) is True

    def test_peer_and_self(self, resolver, people):
        assert resolver.manager_of(people.dave.user_id, people.alice.id) is False
        assert resolver.manager_of(people.alice.user_id, people.alice.id) is False

    def test_missing_data_is_false(self, resolver, people):
        assert resolver.manager_of(uuid4(), people.alice.id) is False
        assert resolver.manager_of(people.bob.user_id, uuid4()) is False
        assert resolver.manager_of(people.bob.user_id, None) is False
        assert resolver.manager_of(people.bob.user_id, people.carol.id) is False


class TestDirectory:
    """Directory snapshot built from plain records."""

    def test_records_outside_the_org_are_ignored(self, people):
        directory = people.directory()
        assert people.outsider.id not in directory.profiles_by_id
        assert people.outsider.user_id not in directory.roles_by_user

    def test_from_plain_records(self):
        user, org = uuid4(), uuid4()
        profile = SimpleNamespace(
            id=uuid4(),
            user_id=user,
            organization_id=org,
            manager_id=None,
            full_name="Plain Record",
            status="active",
        )
        role = SimpleNamespace(user_id=user, organization_id=org, role="hr")
        resolver = RoleResolver(Directory.from_records(org, [profile], [role]))
        assert resolver.has_capability(user, org, Capability.HR)
        assert resolver.display_name(user) == "Plain Record"
        assert resolver.display_name(None) == "system"

    def test_refresh_profile_moves_manager_edge(self, people):
        directory = people.directory()
        resolver = RoleResolver(directory)
        people.alice.manager_id = people.carol.id
        directory.refresh_profile(people.alice)
        assert resolver.manager_of(people.carol.user_id, people.alice.id)
        assert not resolver.manager_of(people.bob.user_id, people.alice.id)

    def test_context_is_computed_once(self, resolver, people):
        ctx = resolver.context_for(people.hr.user_id, ORG_ID)
        assert ctx.profile_id == people.hr.id
        assert ctx.display_name == "Hana HR"
        assert ctx.is_member
        assert ctx.has(Capability.HR)
        assert Role.HR in ctx.roles

    def test_context_for_stranger(self, resolver):
        ctx = resolver.context_for(uuid4(), ORG_ID)
        assert ctx.profile_id is None
        assert not ctx.is_member


class TestDatabaseLoad:
    """Directory.load reads profiles and roles with plain selects."""

    async def test_load(self, session, org):
        directory = await Directory.load(session, ORG_ID)
        resolver = RoleResolver(directory)
        assert len(directory.profiles_by_id) == 7
        assert resolver.manager_of(org.bob.user_id, org.alice.id)
        assert resolver.has_capability(org.finance.user_id, ORG_ID, Capability.FINANCE)
        assert not resolver.has_capability(org.outsider.user_id, ORG_ID, Capability.ORG_MEMBER)
