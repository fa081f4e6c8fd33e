"""In-memory RemoteTransport with failure, latency and conflict injection.

Used by the test-suite and for running the app without a sync server.
"""

import asyncio
import logging
from collections import Counter
from dataclasses import replace
from datetime import timedelta
from enum import Enum

from familysync.errors import AuthError, ConflictError, NetworkError, RemoteNotFound, SyncError
from familysync.services.sync_state import RecordSnapshot
from familysync.services.transport import RemoteTransport

logger = logging.getLogger(__name__)

# Clock skew used to make a simulated server copy older or newer
_SCENARIO_SKEW = timedelta(minutes=1)


class ConflictScenario(str, Enum):
    none = "none"
    local_newer = "local_newer"
    server_newer = "server_newer"
    simultaneous_update = "simultaneous_update"


class MockTransport(RemoteTransport):
    def __init__(self) -> None:
        self.reset()

    def reset(self) -> None:
        """Back to an empty, healthy server."""
        self.records: dict[str, RecordSnapshot] = {}
        self.network_delay = 0.0
        self.conflict_scenario = ConflictScenario.none
        self.fail_on_record_index: int | None = None
        self.error: SyncError | None = None
        self.call_counts: Counter[str] = Counter()
        self.closed = False
        self._operation_index = 0

    # -- test controls ----------------------------------------------------------

    def simulate_network_error(self) -> None:
        self.error = NetworkError("Network unavailable")

    def simulate_auth_error(self) -> None:
        self.error = AuthError("Not signed in to the sync server")

    def simulate_conflict(self, scenario: ConflictScenario) -> None:
        self.conflict_scenario = ConflictScenario(scenario)

    def simulate_network_delay(self, seconds: float) -> None:
        self.network_delay = seconds

    def clear_errors(self) -> None:
        self.error = None
        self.fail_on_record_index = None

    def call_count(self, operation: str) -> int:
        return self.call_counts[operation]

    def stored(self, record_type: str) -> list[RecordSnapshot]:
        return [r for r in self.records.values() if r.record_type == record_type]

    def put_remote(self, record: RecordSnapshot) -> str:
        """Place a record on the server directly, as another device would."""
        remote_id = record.remote_id or str(record.id)
        self.records[remote_id] = replace(record, remote_id=remote_id)
        return remote_id

    # -- RemoteTransport ----------------------------------------------------------

    async def _simulate(self, operation: str) -> None:
        self.call_counts[operation] += 1
        if self.network_delay > 0:
            await asyncio.sleep(self.network_delay)
        if self.error is not None:
            raise self.error

        index = self._operation_index
        self._operation_index += 1
        if self.fail_on_record_index is not None and index == self.fail_on_record_index:
            raise NetworkError(f"Simulated failure at operation {index}")

    def _server_conflict(self, record: RecordSnapshot, remote_id: str) -> RecordSnapshot | None:
        stored = self.records.get(remote_id)
        base = stored or replace(record, remote_id=remote_id)
        local_time = record.modified_at

        if self.conflict_scenario == ConflictScenario.none:
            if (
                stored is not None
                and stored.modified_at is not None
                and local_time is not None
                and stored.modified_at > local_time
            ):
                return stored
            return None
        if local_time is None:
            return base
        if self.conflict_scenario == ConflictScenario.local_newer:
            return replace(base, modified_at=local_time - _SCENARIO_SKEW)
        if self.conflict_scenario == ConflictScenario.server_newer:
            return replace(base, modified_at=local_time + _SCENARIO_SKEW)
        return replace(base, modified_at=local_time)

    async def push(self, record: RecordSnapshot, force: bool = False) -> str:
        await self._simulate("push")
        remote_id = record.remote_id or str(record.id)
        if not force:
            server = self._server_conflict(record, remote_id)
            if server is not None:
                logger.debug("Mock conflict (%s) on %s", self.conflict_scenario.value, remote_id)
                raise ConflictError(server_snapshot=server)
        self.records[remote_id] = replace(record, remote_id=remote_id)
        return remote_id

    async def pull(self, remote_id: str) -> RecordSnapshot:
        await self._simulate("pull")
        try:
            return self.records[remote_id]
        except KeyError:
            raise RemoteNotFound(f"No remote record {remote_id}") from None

    async def close(self) -> None:
        self.call_counts["close"] += 1
        self.closed = True
