"""EntityStore: user profile operations."""

import pytest

from familysync.errors import ConstraintViolation, InvalidData, ValidationFailed
from familysync.models import Membership, Role, UserProfile


class TestCreateUserProfile:
    async def test_create_and_fetch_by_hash(self, store):
        user = await store.create_user_profile(
            "Test User", "test_hash_0123456789", avatar_url="https://example.com/a.png",
        )
        assert user.is_fully_valid
        assert user.needs_sync is True

        fetched = await store.fetch_user_profile_by_hash("test_hash_0123456789")
        assert fetched.id == user.id
        assert fetched.avatar_url == "https://example.com/a.png"

    async def test_invalid_profile(self, store):
        with pytest.raises(ValidationFailed) as exc_info:
            await store.create_user_profile("  ", "short")
        assert exc_info.value.errors == [
            "Display name cannot be empty",
            "Invalid Apple ID hash format",
        ]
        assert await store.count(UserProfile) == 0

    async def test_duplicate_hash(self, store, user):
        with pytest.raises(ConstraintViolation):
            await store.create_user_profile("Someone Else", user.apple_user_id_hash)
        assert await store.count(UserProfile) == 1


class TestFetchUserProfile:
    async def test_empty_hash_is_invalid(self, store):
        with pytest.raises(InvalidData, match="cannot be empty"):
            await store.fetch_user_profile_by_hash("")

    async def test_unknown_hash_returns_none(self, store):
        assert await store.fetch_user_profile_by_hash("unknown_hash_000") is None


class TestUpdateUserProfile:
    async def test_update_display_name(self, store, user):
        await store.update_user_profile(user, display_name="New Name")
        assert user.display_name == "New Name"
        assert user.needs_sync is True

    async def test_clear_avatar(self, store):
        user = await store.create_user_profile(
            "Test User", "test_hash_0123456789", avatar_url="https://example.com/a.png",
        )
        await store.update_user_profile(user, avatar_url=None)
        assert user.avatar_url is None

    async def test_hash_is_immutable(self, store, user):
        with pytest.raises(InvalidData):
            await store.update_user_profile(user, apple_user_id_hash="other_hash_0123")


class TestDeleteUserProfile:
    async def test_delete_orphans_memberships(self, store, family, user):
        membership = await store.create_membership(family, user, Role.parent_admin)
        membership.mark_as_synced("rec-m")
        await store.save()

        await store.delete(user)

        assert await store.count(UserProfile) == 0
        assert await store.count(Membership) == 1
        orphan = await store.fetch_membership(membership.id)
        assert orphan.user is None
        assert orphan.user_id is None
        assert orphan.is_valid is False
        assert orphan.needs_sync is True
        assert orphan.user_display_name == "Unknown User"
