"""Sync engine.

Pushes dirty records to a RemoteTransport and pulls remote versions back.

Every transport call runs under ``asyncio.wait_for``; a timeout surfaces as
SyncTimeout. Network errors and timeouts are retried with exponential
backoff, auth and conflict errors are not. Local records are only written
after a transport call has returned, so a failed or cancelled sync leaves
them as they were, still dirty.

Records are pushed parent first: families, user profiles, memberships.
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum

from familysync.config import settings
from familysync.errors import AuthError, ConflictError, DataServiceError, SyncError, SyncTimeout
from familysync.models import SYNCABLE_MODELS, SyncFieldsMixin
from familysync.services import sync_state
from familysync.services.conflict_resolver import ConflictOutcome, resolve
from familysync.services.entity_store import EntityStore
from familysync.services.transport import RemoteTransport
from familysync.types import utcnow

logger = logging.getLogger(__name__)


class SyncStatus(str, Enum):
    idle = "idle"
    syncing = "syncing"
    completed = "completed"
    failed = "failed"


@dataclass
class SyncFailure:
    record_type: str
    record_id: uuid.UUID
    error: str


@dataclass
class SyncResult:
    pushed: int = 0
    conflicts: int = 0
    failed: int = 0
    failures: list[SyncFailure] = field(default_factory=list)


@dataclass
class SyncRunState:
    """Outcome of the latest run, shared by every engine built on it.

    The lock keeps two runs from pushing the same records at once.
    """

    status: SyncStatus = SyncStatus.idle
    last_sync_at: datetime | None = None
    last_error: str | None = None
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)


@dataclass
class SyncStatusInfo:
    status: SyncStatus
    last_sync_at: datetime | None
    last_error: str | None
    pending: dict[str, int]


class SyncEngine:
    def __init__(
        self,
        store: EntityStore,
        transport: RemoteTransport,
        timeout: float | None = None,
        max_retries: int | None = None,
        retry_base_delay: float | None = None,
        retry_max_delay: float | None = None,
        state: "SyncRunState | None" = None,
    ) -> None:
        self.store = store
        self.transport = transport
        self.timeout = timeout if timeout is not None else settings.SYNC_TIMEOUT_SECONDS
        self.max_retries = max_retries if max_retries is not None else settings.SYNC_MAX_RETRIES
        self.retry_base_delay = (
            retry_base_delay if retry_base_delay is not None else settings.SYNC_RETRY_BASE_DELAY
        )
        self.retry_max_delay = (
            retry_max_delay if retry_max_delay is not None else settings.SYNC_RETRY_MAX_DELAY
        )
        self.state = state if state is not None else SyncRunState()

    # -- transport calls ------------------------------------------------------

    async def _call(self, fn, *args):
        try:
            return await asyncio.wait_for(fn(*args), timeout=self.timeout)
        except asyncio.TimeoutError as exc:
            raise SyncTimeout(f"{fn.__name__} timed out after {self.timeout}s") from exc

    async def _with_retry(self, fn, *args):
        attempt = 0
        while True:
            try:
                return await self._call(fn, *args)
            except SyncError as exc:
                if not exc.retryable or attempt >= self.max_retries:
                    raise
                delay = min(self.retry_base_delay * (2 ** attempt), self.retry_max_delay)
                attempt += 1
                logger.warning(
                    "%s failed (%s), retry %d/%d in %.2fs",
                    fn.__name__, exc, attempt, self.max_retries, delay,
                )
                await asyncio.sleep(delay)

    # -- push -----------------------------------------------------------------

    async def sync_record(self, record: SyncFieldsMixin) -> ConflictOutcome | None:
        """Push one record.

        Returns the conflict outcome when the remote held a diverging
        version, None for a plain push. On SyncError the record is left
        dirty and the error re-raised.
        """
        local = sync_state.snapshot(record)
        try:
            try:
                remote_id = await self._with_retry(self.transport.push, local)
            except ConflictError as exc:
                return await self._resolve_conflict(record, local, exc)
        except SyncError:
            await self.store.requeue(record)
            raise

        await self.store.confirm_push(record, local, remote_id)
        logger.debug("Pushed %s %s as %s", local.record_type, local.id, remote_id)
        return None

    async def _resolve_conflict(
        self,
        record: SyncFieldsMixin,
        local: sync_state.RecordSnapshot,
        conflict: ConflictError,
    ) -> ConflictOutcome:
        server = conflict.server_snapshot
        if server is None:
            server = await self._with_retry(self.transport.pull, local.remote_id or str(local.id))

        resolution = resolve(local, server)
        if resolution.outcome == ConflictOutcome.local_newer:
            remote_id = await self._with_retry(self.transport.push, local, True)
            await self.store.confirm_push(record, local, remote_id)
        elif resolution.outcome == ConflictOutcome.remote_newer:
            await self.store.apply_remote(record, server)
        else:
            await self.store.requeue(record, touch=True)

        logger.info(
            "Conflict on %s %s resolved: %s",
            local.record_type, local.id, resolution.outcome.value,
        )
        return resolution.outcome

    async def push_pending(self) -> SyncResult:
        """Push every dirty record, parents first. One failure never stops the batch.

        An AuthError ends the run early since every further call would fail
        the same way.
        """
        async with self.state.lock:
            self.state.status = SyncStatus.syncing
            result = SyncResult()
            try:
                await self._push_all(result)
            except asyncio.CancelledError:
                self.state.status = SyncStatus.idle
                raise

            if result.failed:
                self.state.status = SyncStatus.failed
                self.state.last_error = result.failures[-1].error
            else:
                self.state.status = SyncStatus.completed
                self.state.last_error = None
                self.state.last_sync_at = utcnow()
            logger.info(
                "Sync finished: %d pushed, %d conflicts, %d failed",
                result.pushed, result.conflicts, result.failed,
            )
            return result

    async def push_if_pending(self) -> SyncResult | None:
        """Run ``push_pending`` unless a run is active or nothing is queued."""
        if self.state.lock.locked():
            logger.debug("Periodic sync skipped: a run is already in progress")
            return None
        pending = await self.store.pending_counts()
        if not any(pending.values()):
            return None
        return await self.push_pending()

    async def _push_all(self, result: SyncResult) -> None:
        for record_type, model in SYNCABLE_MODELS.items():
            for record in await self.store.fetch_records_needing_sync(model):
                try:
                    outcome = await self.sync_record(record)
                except (SyncError, DataServiceError) as exc:
                    logger.warning("Sync of %s %s failed: %s", record_type, record.id, exc)
                    result.failed += 1
                    result.failures.append(SyncFailure(record_type, record.id, str(exc)))
                    if isinstance(exc, AuthError):
                        return
                    continue
                if outcome is None:
                    result.pushed += 1
                else:
                    result.conflicts += 1

    # -- pull -----------------------------------------------------------------

    async def pull_record(self, remote_id: str) -> SyncFieldsMixin:
        """Fetch a record from the remote and merge it into the store."""
        remote = await self._with_retry(self.transport.pull, remote_id)
        if remote.remote_id is None:
            remote = replace(remote, remote_id=remote_id)

        record = await self.store.fetch(remote.record_type, remote.id)
        if record is None:
            return await self.store.insert_from_remote(remote)
        if not record.needs_sync:
            await self.store.apply_remote(record, remote)
            return record

        resolution = resolve(sync_state.snapshot(record), remote)
        if resolution.outcome == ConflictOutcome.remote_newer:
            await self.store.apply_remote(record, remote)
        elif resolution.outcome == ConflictOutcome.concurrent:
            await self.store.requeue(record, touch=True)
        logger.info(
            "Pulled %s %s over local edits: %s",
            remote.record_type, remote.id, resolution.outcome.value,
        )
        return record

    # -- maintenance ----------------------------------------------------------

    async def recover_partial_migration(self) -> list[sync_state.RecoveryReport]:
        return [
            await self.store.recover_partial_migration(model)
            for model in SYNCABLE_MODELS.values()
        ]

    async def status_info(self) -> SyncStatusInfo:
        return SyncStatusInfo(
            status=self.state.status,
            last_sync_at=self.state.last_sync_at,
            last_error=self.state.last_error,
            pending=await self.store.pending_counts(),
        )

    async def close(self) -> None:
        await self.transport.close()
