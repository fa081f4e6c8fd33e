"""EntityStore: membership operations."""

import pytest

from familysync.errors import ConstraintViolation, InvalidData, ValidationFailed
from familysync.models import Membership, MembershipStatus, Role


class TestCreateMembership:
    async def test_parent_admin_scenario(self, store, family, user):
        membership = await store.create_membership(family, user, Role.parent_admin)

        assert membership.is_valid
        assert membership.is_parent_admin
        assert membership.status == MembershipStatus.active
        assert await store.has_parent_admin(family)
        assert (await store.parent_admin(family)).id == membership.id

    async def test_denormalized_names(self, store, parent_membership):
        assert parent_membership.user_display_name == "Test User"
        assert parent_membership.family_name == "Test Family"

    async def test_second_parent_admin_rejected(self, store, family, parent_membership, make_user):
        other = await make_user()
        with pytest.raises(ConstraintViolation):
            await store.create_membership(family, other, Role.parent_admin)
        assert await store.count(Membership) == 1

    async def test_user_cannot_join_twice(self, store, family, user, parent_membership):
        assert not await store.can_user_join_family(user, family)
        with pytest.raises(ConstraintViolation):
            await store.create_membership(family, user, Role.adult)

    async def test_removed_member_can_rejoin(self, store, family, make_user):
        member = await make_user()
        membership = await store.create_membership(family, member, Role.kid)
        await store.remove_membership(membership)

        assert await store.can_user_join_family(member, family)
        rejoined = await store.create_membership(family, member, Role.kid)
        assert rejoined.id != membership.id

    async def test_requires_family_and_user(self, store, family):
        with pytest.raises(InvalidData):
            await store.create_membership(family, None, Role.kid)

    async def test_role_as_string(self, store, family, user):
        membership = await store.create_membership(family, user, "kid")
        assert membership.role is Role.kid


class TestUpdateRole:
    async def test_role_change_stamps_time(self, store, family, make_user):
        member = await make_user()
        membership = await store.create_membership(family, member, Role.kid)
        assert membership.last_role_change_at is None

        await store.update_membership_role(membership, Role.adult)

        assert membership.role == Role.adult
        assert membership.last_role_change_at is not None
        assert membership.needs_sync is True

    async def test_same_role_rejected(self, store, parent_membership):
        with pytest.raises(ValidationFailed, match="already has this role"):
            await store.update_membership_role(parent_membership, Role.parent_admin)

    async def test_promoting_to_second_parent_admin_rejected(
        self, store, family, parent_membership, make_user,
    ):
        member = await make_user()
        membership = await store.create_membership(family, member, Role.adult)
        with pytest.raises(ConstraintViolation):
            await store.update_membership_role(membership, Role.parent_admin)
        assert membership.role == Role.adult


class TestSoftRemoval:
    async def test_remove_keeps_record(self, store, family, make_user):
        member = await make_user()
        membership = await store.create_membership(family, member, Role.kid)

        await store.remove_membership(membership)

        assert membership.status == MembershipStatus.removed
        assert membership.id in [m.id for m in await store.fetch_all(Membership)]
        assert membership.id not in [m.id for m in await store.active_memberships(family)]
        assert await store.active_member_count(family) == 0

    async def test_removed_parent_admin_frees_the_role(self, store, family, parent_membership):
        await store.remove_membership(parent_membership)
        assert not await store.has_parent_admin(family)

    async def test_activate(self, store, family, make_user):
        member = await make_user()
        membership = await store.create_membership(family, member, Role.kid)
        await store.remove_membership(membership)

        await store.activate_membership(membership)

        assert membership.is_active
        assert await store.active_member_count(family) == 1

    async def test_activate_second_parent_admin_rejected(
        self, store, family, parent_membership, make_user,
    ):
        await store.remove_membership(parent_membership)
        member = await make_user()
        await store.create_membership(family, member, Role.parent_admin)

        with pytest.raises(ConstraintViolation):
            await store.activate_membership(parent_membership)
        assert parent_membership.status == MembershipStatus.removed

    async def test_activate_next_to_newer_membership_rejected(self, store, family, user):
        old = await store.create_membership(family, user, Role.adult)
        await store.remove_membership(old)
        await store.create_membership(family, user, Role.kid)

        with pytest.raises(ConstraintViolation, match="already a member"):
            await store.activate_membership(old)
        assert old.status == MembershipStatus.removed
        assert await store.active_member_count(family) == 1


class TestDeleteMembership:
    async def test_delete_only_that_record(self, store, family, user, parent_membership):
        await store.delete(parent_membership)
        assert await store.count(Membership) == 0
        assert await store.fetch_family(family.id) is not None
        assert await store.fetch_user_profile(user.id) is not None
