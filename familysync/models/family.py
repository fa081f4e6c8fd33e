import uuid
from datetime import datetime

from sqlalchemy import String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from familysync.database import Base
from familysync.models.sync_fields import SyncFieldsMixin
from familysync.services import validation
from familysync.types import UTCDateTime, utcnow


class Family(SyncFieldsMixin, Base):
    __tablename__ = "families"
    __record_type__ = "Family"
    __sync_fields__ = ("name", "code", "created_by_user_id", "created_at")

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid, primary_key=True, default=uuid.uuid4,
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    code: Mapped[str] = mapped_column(String(20), unique=True, nullable=False, index=True)
    created_by_user_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)

    # Memberships live in their own table and are looked up through
    # RelationshipManager, so there is no collection attribute here.

    def __init__(self, name: str, code: str, created_by_user_id: uuid.UUID, **kwargs) -> None:
        now = utcnow()
        kwargs.setdefault("id", uuid.uuid4())
        kwargs.setdefault("created_at", now)
        kwargs.setdefault("modified_at", now)
        kwargs.setdefault("needs_sync", True)
        super().__init__(
            name=name, code=code, created_by_user_id=created_by_user_id, **kwargs,
        )

    # -- validation -----------------------------------------------------------

    @property
    def is_name_valid(self) -> bool:
        return validation.is_name_valid(self.name)

    @property
    def is_code_valid(self) -> bool:
        return validation.is_code_valid(self.code)

    @property
    def is_fully_valid(self) -> bool:
        return self.is_name_valid and self.is_code_valid and self.created_by_user_id is not None

    def __repr__(self) -> str:
        return f"<Family(id={self.id}, name={self.name!r}, code={self.code!r})>"
