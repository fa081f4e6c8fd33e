"""Unit tests for last-writer-wins conflict resolution."""

import uuid
from datetime import datetime, timedelta, timezone

import pytest

from familysync.services.conflict_resolver import ConflictOutcome, resolve
from familysync.services.sync_state import RecordSnapshot

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
RECORD_ID = uuid.uuid4()


def _snap(modified_at, name):
    return RecordSnapshot(
        record_type="Family",
        id=RECORD_ID,
        modified_at=modified_at,
        fields={"name": name},
    )


class TestResolve:
    def test_local_newer_keeps_local(self):
        resolution = resolve(_snap(NOW, "Local"), _snap(NOW - timedelta(seconds=1), "Remote"))
        assert resolution.outcome == ConflictOutcome.local_newer
        assert resolution.winner.fields["name"] == "Local"
        assert resolution.keep_local

    def test_remote_newer_takes_remote(self):
        resolution = resolve(_snap(NOW, "Local"), _snap(NOW + timedelta(seconds=1), "Remote"))
        assert resolution.outcome == ConflictOutcome.remote_newer
        assert resolution.winner.fields["name"] == "Remote"
        assert not resolution.keep_local

    def test_equal_timestamps_are_concurrent_and_keep_local(self):
        resolution = resolve(_snap(NOW, "Local"), _snap(NOW, "Remote"))
        assert resolution.outcome == ConflictOutcome.concurrent
        assert resolution.winner.fields["name"] == "Local"

    def test_missing_timestamp_is_concurrent(self):
        resolution = resolve(_snap(NOW, "Local"), _snap(None, "Remote"))
        assert resolution.outcome == ConflictOutcome.concurrent
        assert resolution.keep_local

    def test_different_records_are_rejected(self):
        other = RecordSnapshot(record_type="Family", id=uuid.uuid4(), modified_at=NOW)
        with pytest.raises(ValueError):
            resolve(_snap(NOW, "Local"), other)
