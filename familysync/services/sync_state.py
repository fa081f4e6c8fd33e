"""Sync-State Tracker.

Per-record sync state machine built on the three sync columns:

* ``UNSYNCED``      needs_sync, no remote id yet
* ``PENDING_PUSH``  needs_sync, remote id from an earlier (partial) sync
* ``SYNCED``        clean, remote id and last sync date present

Any local change to a data column sends a record back to dirty. The
``before_flush`` hook installed by :func:`install_dirty_tracking` enforces
that for edits made directly on model attributes; sync writes are told
apart by the ``last_sync_date`` change they always carry.
"""

import logging
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any

from sqlalchemy import event, func, inspect, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from familysync.models import SYNC_FIELD_NAMES, SYNCABLE_MODELS, SyncFieldsMixin
from familysync.types import utcnow

logger = logging.getLogger(__name__)

RECOVERED_ID_PREFIX = "recovered_"


class SyncState(str, Enum):
    unsynced = "unsynced"
    pending_push = "pending_push"
    synced = "synced"


@dataclass(frozen=True)
class RecordSnapshot:
    """Detached copy of a record's syncable data.

    This is what travels through a RemoteTransport and what the conflict
    resolver compares; it never references live ORM objects.
    """

    record_type: str
    id: uuid.UUID
    modified_at: datetime | None
    fields: dict[str, Any] = field(default_factory=dict)
    remote_id: str | None = None

    def with_fields(self, **changes: Any) -> "RecordSnapshot":
        return replace(self, fields={**self.fields, **changes})


@dataclass
class RecoveryReport:
    record_type: str
    recovered: int = 0
    already_migrated: int = 0


def sync_state(record: SyncFieldsMixin) -> SyncState:
    if (
        not record.needs_sync
        and record.ck_record_id is not None
        and record.last_sync_date is not None
    ):
        return SyncState.synced
    if record.ck_record_id is not None:
        return SyncState.pending_push
    return SyncState.unsynced


def snapshot(record: SyncFieldsMixin) -> RecordSnapshot:
    return RecordSnapshot(
        record_type=record.__record_type__,
        id=record.id,
        modified_at=record.modified_at,
        fields={name: getattr(record, name) for name in record.__sync_fields__},
        remote_id=record.ck_record_id,
    )


def apply_snapshot(record: SyncFieldsMixin, remote: RecordSnapshot) -> None:
    """Overwrite the record's data columns with the remote values.

    Only names listed in ``__sync_fields__`` are touched; the sync columns
    are left for the caller to settle.
    """
    for name in record.__sync_fields__:
        if name in remote.fields:
            setattr(record, name, remote.fields[name])
    if remote.modified_at is not None:
        record.modified_at = remote.modified_at


# ---------------------------------------------------------------------------
# Dirty tracking
# ---------------------------------------------------------------------------

def _data_columns_changed(record: SyncFieldsMixin) -> bool:
    state = inspect(record)
    for attr in state.mapper.column_attrs:
        if attr.key in SYNC_FIELD_NAMES:
            continue
        if state.attrs[attr.key].history.has_changes():
            return True
    return False


def _mark_modified_records_dirty(session, flush_context, instances) -> None:
    for obj in session.dirty:
        if not isinstance(obj, SyncFieldsMixin):
            continue
        state = inspect(obj)
        if state.attrs["last_sync_date"].history.has_changes():
            # Sync write (push confirmation, remote apply, recovery).
            continue
        if not _data_columns_changed(obj):
            continue
        if state.attrs["modified_at"].history.has_changes() and obj.needs_sync:
            continue
        obj.mark_dirty()


def install_dirty_tracking(session: AsyncSession) -> None:
    """Register the flush hook on the session's underlying sync Session."""
    sync_session = session.sync_session
    if not event.contains(sync_session, "before_flush", _mark_modified_records_dirty):
        event.listen(sync_session, "before_flush", _mark_modified_records_dirty)


# ---------------------------------------------------------------------------
# Queries and recovery
# ---------------------------------------------------------------------------

async def pending_counts(session: AsyncSession) -> dict[str, int]:
    """Number of records per record type that still need a push."""
    counts: dict[str, int] = {}
    for record_type, model in SYNCABLE_MODELS.items():
        result = await session.execute(
            select(func.count(model.id)).where(
                or_(model.needs_sync.is_(True), model.ck_record_id.is_(None))
            )
        )
        counts[record_type] = result.scalar() or 0
    return counts


async def recover_partial_migration(session: AsyncSession, model: type) -> RecoveryReport:
    """Re-queue records left half-migrated by an interrupted sync.

    A record missing ``ck_record_id`` or ``last_sync_date`` gets a
    placeholder remote id and/or the current time and is flagged dirty, so
    the next real push reconciles it. The caller commits.
    """
    report = RecoveryReport(record_type=model.__record_type__)
    result = await session.execute(select(model))
    for record in result.scalars().unique().all():
        if record.ck_record_id is not None and record.last_sync_date is not None:
            report.already_migrated += 1
            continue

        if record.ck_record_id is None:
            record.ck_record_id = f"{RECOVERED_ID_PREFIX}{record.id}"
        if record.last_sync_date is None:
            record.last_sync_date = utcnow()
        record.needs_sync = True
        report.recovered += 1

    logger.info(
        "Partial migration recovery for %s: %d recovered, %d already migrated",
        report.record_type,
        report.recovered,
        report.already_migrated,
    )
    return report
