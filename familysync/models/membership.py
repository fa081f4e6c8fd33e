import uuid
from datetime import datetime
from enum import Enum

from sqlalchemy import Enum as SqlEnum
from sqlalchemy import ForeignKey, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from familysync.database import Base
from familysync.models.sync_fields import SyncFieldsMixin
from familysync.types import UTCDateTime, utcnow


class Role(str, Enum):
    parent_admin = "parent_admin"
    adult = "adult"
    kid = "kid"
    visitor = "visitor"

    @property
    def display_name(self) -> str:
        return _ROLE_DISPLAY_NAMES[self]

    @property
    def description(self) -> str:
        return _ROLE_DESCRIPTIONS[self]


_ROLE_DISPLAY_NAMES = {
    Role.parent_admin: "Parent Admin",
    Role.adult: "Adult",
    Role.kid: "Kid",
    Role.visitor: "Visitor",
}

_ROLE_DESCRIPTIONS = {
    Role.parent_admin: "Full access to manage family members and settings",
    Role.adult: "Standard family member with full app access",
    Role.kid: "Limited access appropriate for children",
    Role.visitor: "Temporary access with restricted permissions",
}


class MembershipStatus(str, Enum):
    active = "active"
    invited = "invited"
    removed = "removed"

    @property
    def display_name(self) -> str:
        return self.value.capitalize()


role_sql_enum = SqlEnum(
    Role,
    name="membershiprole",
    native_enum=False,
    length=20,
    values_callable=lambda enum_cls: [item.value for item in enum_cls],
)

status_sql_enum = SqlEnum(
    MembershipStatus,
    name="membershipstatus",
    native_enum=False,
    length=20,
    values_callable=lambda enum_cls: [item.value for item in enum_cls],
)


class Membership(SyncFieldsMixin, Base):
    """Join record between a family and a user profile.

    This table is the only place the family/user link is stored. Both
    references are nullable: a membership can exist half-built during a
    migration, and deleting a user profile orphans its memberships instead
    of removing them.
    """

    __tablename__ = "memberships"
    __record_type__ = "Membership"
    __sync_fields__ = (
        "role", "status", "joined_at", "last_role_change_at", "family_id", "user_id",
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid.uuid4,
    )
    role: Mapped[Role] = mapped_column(role_sql_enum, nullable=False)
    status: Mapped[MembershipStatus] = mapped_column(
        status_sql_enum, nullable=False, default=MembershipStatus.active,
    )
    joined_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)
    last_role_change_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    family_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("families.id", ondelete="CASCADE"), nullable=True, index=True,
    )
    user_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid, ForeignKey("user_profiles.id", ondelete="SET NULL"), nullable=True, index=True,
    )

    # Relationships (many-to-one only, always eager-loaded)
    family: Mapped["Family | None"] = relationship(lazy="joined")  # noqa: F821
    user: Mapped["UserProfile | None"] = relationship(lazy="joined")  # noqa: F821

    def __init__(
        self,
        family: "Family | None" = None,  # noqa: F821
        user: "UserProfile | None" = None,  # noqa: F821
        role: Role = Role.adult,
        **kwargs,
    ) -> None:
        now = utcnow()
        kwargs.setdefault("id", uuid.uuid4())
        kwargs.setdefault("joined_at", now)
        kwargs.setdefault("modified_at", now)
        kwargs.setdefault("status", MembershipStatus.active)
        kwargs.setdefault("needs_sync", True)
        # Relationship attributes are only set when given; an explicit None
        # would null out a family_id/user_id passed in kwargs on flush.
        if family is not None:
            kwargs["family"] = family
            kwargs["family_id"] = family.id
        if user is not None:
            kwargs["user"] = user
            kwargs["user_id"] = user.id
        super().__init__(role=Role(role), **kwargs)

    # -- derived --------------------------------------------------------------

    @property
    def user_display_name(self) -> str:
        return self.user.display_name if self.user is not None else "Unknown User"

    @property
    def family_name(self) -> str:
        return self.family.name if self.family is not None else "Unknown Family"

    @property
    def is_active(self) -> bool:
        return self.status == MembershipStatus.active

    @property
    def is_parent_admin(self) -> bool:
        return self.role == Role.parent_admin

    # -- validation -----------------------------------------------------------

    @property
    def is_valid(self) -> bool:
        return self.family is not None and self.user is not None

    @property
    def is_fully_valid(self) -> bool:
        return (
            self.is_valid
            and isinstance(self.role, Role)
            and isinstance(self.status, MembershipStatus)
            and bool(self.user_display_name.strip())
            and bool(self.family_name.strip())
        )

    # -- state changes --------------------------------------------------------

    def update_role(self, new_role: Role) -> None:
        if self.role == new_role:
            return
        self.role = new_role
        self.last_role_change_at = utcnow()
        self.mark_dirty()

    def remove(self) -> None:
        """Soft delete: the record stays, only the status flips."""
        self.status = MembershipStatus.removed
        self.mark_dirty()

    def activate(self) -> None:
        self.status = MembershipStatus.active
        self.mark_dirty()

    def __repr__(self) -> str:
        return (
            f"<Membership(id={self.id}, role={self.role.value!r}, "
            f"status={self.status.value!r})>"
        )
