import uuid
from datetime import datetime

from sqlalchemy import String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from familysync.database import Base
from familysync.models.sync_fields import SyncFieldsMixin
from familysync.services import validation
from familysync.types import UTCDateTime, utcnow


class UserProfile(SyncFieldsMixin, Base):
    __tablename__ = "user_profiles"
    __record_type__ = "UserProfile"
    __sync_fields__ = ("display_name", "apple_user_id_hash", "avatar_url", "created_at")

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid.uuid4,
    )
    display_name: Mapped[str] = mapped_column(String(100), nullable=False)
    # Opaque, credential-derived key; never shown to users.
    apple_user_id_hash: Mapped[str] = mapped_column(
        String(255), unique=True, nullable=False, index=True,
    )
    avatar_url: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)

    def __init__(
        self,
        display_name: str,
        apple_user_id_hash: str,
        avatar_url: str | None = None,
        **kwargs,
    ) -> None:
        now = utcnow()
        kwargs.setdefault("id", uuid.uuid4())
        kwargs.setdefault("created_at", now)
        kwargs.setdefault("modified_at", now)
        kwargs.setdefault("needs_sync", True)
        super().__init__(
            display_name=display_name,
            apple_user_id_hash=apple_user_id_hash,
            avatar_url=avatar_url,
            **kwargs,
        )

    # -- validation -----------------------------------------------------------

    @property
    def is_display_name_valid(self) -> bool:
        return validation.is_display_name_valid(self.display_name)

    @property
    def is_apple_user_id_hash_valid(self) -> bool:
        return validation.is_apple_user_id_hash_valid(self.apple_user_id_hash)

    @property
    def is_fully_valid(self) -> bool:
        return self.is_display_name_valid and self.is_apple_user_id_hash_valid

    def __repr__(self) -> str:
        return f"<UserProfile(id={self.id}, display_name={self.display_name!r})>"
