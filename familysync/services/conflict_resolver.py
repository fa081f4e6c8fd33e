"""Conflict Resolver.

Last-writer-wins reconciliation of a local record against the copy the
remote holds, using ``modified_at`` as the recency signal.
"""

from dataclasses import dataclass
from enum import Enum

from familysync.services.sync_state import RecordSnapshot


class ConflictOutcome(str, Enum):
    local_newer = "local_newer"
    remote_newer = "remote_newer"
    concurrent = "concurrent"


@dataclass(frozen=True)
class Resolution:
    outcome: ConflictOutcome
    winner: RecordSnapshot

    @property
    def keep_local(self) -> bool:
        return self.outcome != ConflictOutcome.remote_newer


def resolve(local: RecordSnapshot, remote: RecordSnapshot) -> Resolution:
    """Pick the surviving version of a record.

    Equal or missing timestamps cannot be ordered; the local values win the
    tie and the caller re-queues the record so the next round converges.
    """
    if local.record_type != remote.record_type or local.id != remote.id:
        raise ValueError(
            f"cannot resolve {local.record_type} {local.id} "
            f"against {remote.record_type} {remote.id}"
        )

    if local.modified_at is None or remote.modified_at is None:
        return Resolution(ConflictOutcome.concurrent, local)
    if local.modified_at > remote.modified_at:
        return Resolution(ConflictOutcome.local_newer, local)
    if remote.modified_at > local.modified_at:
        return Resolution(ConflictOutcome.remote_newer, remote)
    return Resolution(ConflictOutcome.concurrent, local)
