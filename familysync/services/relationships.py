"""Relationship Manager.

The ``memberships`` table, keyed by ``family_id`` and ``user_id``, is the
single source of truth for the family/user links. Every "memberships of a
family" or "memberships of a user" view is an indexed lookup over that
table, so moving a membership from one user to another is one column write
and both sides see it at once.

Delete rules:

* Family      -> its memberships are hard-deleted, users are untouched
* UserProfile -> its memberships are orphaned (``user`` set to None)
* Membership  -> only that record goes
"""

import logging

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import set_committed_value

from familysync.models import Family, Membership, MembershipStatus, Role, UserProfile

logger = logging.getLogger(__name__)


class RelationshipManager:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    # -- views ----------------------------------------------------------------

    async def memberships_for_family(self, family: Family) -> list[Membership]:
        result = await self._session.execute(
            select(Membership)
            .where(Membership.family_id == family.id)
            .order_by(Membership.joined_at)
        )
        return list(result.scalars().all())

    async def memberships_for_user(self, user: UserProfile) -> list[Membership]:
        result = await self._session.execute(
            select(Membership)
            .where(Membership.user_id == user.id)
            .order_by(Membership.joined_at)
        )
        return list(result.scalars().all())

    async def active_memberships(self, family: Family) -> list[Membership]:
        result = await self._session.execute(
            select(Membership)
            .where(
                Membership.family_id == family.id,
                Membership.status == MembershipStatus.active,
            )
            .order_by(Membership.joined_at)
        )
        return list(result.scalars().all())

    async def active_member_count(self, family: Family) -> int:
        result = await self._session.execute(
            select(func.count(Membership.id)).where(
                Membership.family_id == family.id,
                Membership.status == MembershipStatus.active,
            )
        )
        return result.scalar() or 0

    async def parent_admin(self, family: Family) -> Membership | None:
        """First active parent admin membership of the family, if any."""
        result = await self._session.execute(
            select(Membership)
            .where(
                Membership.family_id == family.id,
                Membership.role == Role.parent_admin,
                Membership.status == MembershipStatus.active,
            )
            .order_by(Membership.joined_at)
            .limit(1)
        )
        return result.scalars().first()

    async def has_parent_admin(self, family: Family) -> bool:
        return await self.parent_admin(family) is not None

    async def active_membership_between(
        self, user: UserProfile, family: Family,
    ) -> Membership | None:
        result = await self._session.execute(
            select(Membership).where(
                Membership.family_id == family.id,
                Membership.user_id == user.id,
                Membership.status == MembershipStatus.active,
            )
        )
        return result.scalars().first()

    async def can_user_join_family(self, user: UserProfile, family: Family) -> bool:
        return await self.active_membership_between(user, family) is None

    # -- writes ---------------------------------------------------------------

    def reassign_user(self, membership: Membership, user: UserProfile | None) -> None:
        membership.user = user
        membership.user_id = user.id if user is not None else None
        membership.mark_dirty()

    def reassign_family(self, membership: Membership, family: Family | None) -> None:
        membership.family = family
        membership.family_id = family.id if family is not None else None
        membership.mark_dirty()

    async def relink(self, membership: Membership) -> None:
        """Load the family/user objects matching the membership's foreign ids.

        Used after foreign ids were written directly, e.g. when applying a
        remote snapshot. A parent that is not stored locally yet leaves the
        relationship empty but keeps its id; ``adopt_memberships`` attaches
        it once the parent arrives.
        """
        for attr, model in (("family", Family), ("user", UserProfile)):
            parent_id = getattr(membership, f"{attr}_id")
            parent = None
            if parent_id is not None:
                parent = await self._session.get(model, parent_id)
            if parent is not None:
                setattr(membership, attr, parent)
            else:
                # no history, so the flush keeps the foreign id as written
                set_committed_value(membership, attr, None)

    async def adopt_memberships(self, parent: Family | UserProfile) -> int:
        """Attach memberships that carry the parent's id but no parent object."""
        if isinstance(parent, Family):
            attr, column = "family", Membership.family_id
        else:
            attr, column = "user", Membership.user_id
        result = await self._session.execute(select(Membership).where(column == parent.id))
        adopted = 0
        for membership in result.scalars().all():
            if getattr(membership, attr) is None:
                set_committed_value(membership, attr, parent)
                adopted += 1
        if adopted:
            logger.info("Attached %d waiting memberships to %s %s", adopted, attr, parent.id)
        return adopted

    # -- delete rules ---------------------------------------------------------

    async def cascade_family_delete(self, family: Family) -> int:
        """Hard-delete every membership of the family. Returns the count."""
        memberships = await self.memberships_for_family(family)
        for membership in memberships:
            await self._session.delete(membership)
        logger.info(
            "Cascade delete: %d memberships of family %s", len(memberships), family.id,
        )
        return len(memberships)

    async def orphan_user_memberships(self, user: UserProfile) -> int:
        """Detach the user from its memberships, keeping the records."""
        memberships = await self.memberships_for_user(user)
        for membership in memberships:
            self.reassign_user(membership, None)
        logger.info(
            "Orphaned %d memberships of user profile %s", len(memberships), user.id,
        )
        return len(memberships)
