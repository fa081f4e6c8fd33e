from datetime import datetime

from sqlalchemy import Boolean, String
from sqlalchemy.orm import Mapped, mapped_column

from familysync.types import UTCDateTime, utcnow

# Columns owned by the sync machinery; changing them never re-dirties a record.
SYNC_FIELD_NAMES = frozenset({"needs_sync", "ck_record_id", "last_sync_date", "modified_at"})


class SyncFieldsMixin:
    """Cloud sync bookkeeping shared by every syncable entity.

    ``needs_sync`` is the dirty flag, ``ck_record_id`` the identifier the
    remote assigned on the first successful push and ``last_sync_date`` the
    time of the last confirmed sync. ``modified_at`` is the local edit time
    the conflict resolver compares against the remote copy.
    """

    # Remote record type name, set by each model.
    __record_type__ = ""
    # Data columns that travel to and from the remote.
    __sync_fields__ = ()

    needs_sync: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    ck_record_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    last_sync_date: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    modified_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=utcnow)

    @property
    def requires_sync(self) -> bool:
        return self.needs_sync or self.ck_record_id is None

    def mark_dirty(self) -> None:
        self.needs_sync = True
        self.modified_at = utcnow()

    def mark_as_synced(self, record_id: str) -> None:
        self.ck_record_id = record_id
        self.last_sync_date = utcnow()
        self.needs_sync = False
