"""Tests for HttpTransport against an httpx.MockTransport server."""

import json
import uuid
from datetime import datetime, timezone

import httpx
import pytest

from familysync.errors import AuthError, ConflictError, NetworkError, RemoteNotFound, SyncError
from familysync.models import MembershipStatus, Role
from familysync.services.sync_state import RecordSnapshot
from familysync.services.transport import HttpTransport, decode_snapshot, encode_snapshot

MODIFIED = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


def _family_snapshot(**overrides) -> RecordSnapshot:
    values = dict(
        record_type="Family",
        id=uuid.uuid4(),
        modified_at=MODIFIED,
        fields={
            "name": "Test Family",
            "code": "TEST123",
            "created_by_user_id": uuid.uuid4(),
            "created_at": MODIFIED,
        },
    )
    values.update(overrides)
    return RecordSnapshot(**values)


def _transport(handler) -> HttpTransport:
    transport = HttpTransport(base_url="http://sync.test", token="test-token", timeout=5.0)
    # Inject mock transport
    transport._client = httpx.AsyncClient(
        base_url="http://sync.test",
        headers={"Authorization": "Bearer test-token"},
        transport=httpx.MockTransport(handler),
    )
    return transport


class TestWireFormat:
    def test_encode_is_json_safe(self):
        snap = _family_snapshot()
        body = encode_snapshot(snap)
        json.dumps(body)
        assert body["record_type"] == "Family"
        assert body["id"] == str(snap.id)
        assert body["fields"]["created_by_user_id"] == str(snap.fields["created_by_user_id"])

    def test_decode_restores_python_types(self):
        snap = _family_snapshot(remote_id="rec-1")
        decoded = decode_snapshot(encode_snapshot(snap))
        assert decoded == snap

    def test_decode_membership_enums(self):
        data = {
            "record_type": "Membership",
            "id": str(uuid.uuid4()),
            "modified_at": "2024-05-01T12:00:00",
            "fields": {
                "role": "kid",
                "status": "removed",
                "joined_at": "2024-05-01T12:00:00+00:00",
                "family_id": str(uuid.uuid4()),
                "user_id": None,
            },
        }
        decoded = decode_snapshot(data)
        assert decoded.fields["role"] is Role.kid
        assert decoded.fields["status"] is MembershipStatus.removed
        assert decoded.modified_at.tzinfo is not None

    def test_decode_rejects_unknown_type(self):
        with pytest.raises(SyncError):
            decode_snapshot({"record_type": "Grocery", "id": str(uuid.uuid4()), "fields": {}})

    def test_decode_rejects_missing_fields(self):
        with pytest.raises(SyncError):
            decode_snapshot({"record_type": "Family", "id": str(uuid.uuid4()), "fields": {}})


class TestPush:
    async def test_push_puts_record_and_returns_remote_id(self):
        captured = {}
        snap = _family_snapshot()

        def handler(request: httpx.Request) -> httpx.Response:
            captured["method"] = request.method
            captured["url"] = str(request.url)
            captured["headers"] = dict(request.headers)
            captured["body"] = json.loads(request.content)
            return httpx.Response(200, json={"remote_id": "rec-42"})

        transport = _transport(handler)
        remote_id = await transport.push(snap)

        assert remote_id == "rec-42"
        assert captured["method"] == "PUT"
        assert f"/records/Family/{snap.id}" in captured["url"]
        assert "force" not in captured["url"]
        assert captured["headers"]["authorization"] == "Bearer test-token"
        assert captured["body"]["fields"]["code"] == "TEST123"
        await transport.close()

    async def test_force_push_sets_query_flag(self):
        captured = {}

        def handler(request: httpx.Request) -> httpx.Response:
            captured["force"] = request.url.params.get("force")
            return httpx.Response(200, json={"remote_id": "rec-42"})

        transport = _transport(handler)
        await transport.push(_family_snapshot(), force=True)
        assert captured["force"] == "true"
        await transport.close()

    @pytest.mark.parametrize("status_code", [401, 403])
    async def test_auth_errors(self, status_code):
        transport = _transport(lambda request: httpx.Response(status_code))
        with pytest.raises(AuthError):
            await transport.push(_family_snapshot())
        await transport.close()

    async def test_conflict_carries_server_record(self):
        server = _family_snapshot(remote_id="rec-1")

        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(
                409, json={"detail": "changed", "record": encode_snapshot(server)},
            )

        transport = _transport(handler)
        with pytest.raises(ConflictError) as exc_info:
            await transport.push(server)
        assert exc_info.value.server_snapshot == server
        await transport.close()

    async def test_conflict_without_record(self):
        transport = _transport(lambda request: httpx.Response(409, json={"detail": "changed"}))
        with pytest.raises(ConflictError) as exc_info:
            await transport.push(_family_snapshot())
        assert exc_info.value.server_snapshot is None
        await transport.close()

    async def test_server_error_is_retryable_network_error(self):
        transport = _transport(lambda request: httpx.Response(503, text="down"))
        with pytest.raises(NetworkError) as exc_info:
            await transport.push(_family_snapshot())
        assert exc_info.value.retryable
        await transport.close()

    async def test_client_error_is_not_retryable(self):
        transport = _transport(lambda request: httpx.Response(400, text="bad"))
        with pytest.raises(SyncError) as exc_info:
            await transport.push(_family_snapshot())
        assert not exc_info.value.retryable
        await transport.close()

    async def test_connection_failure_is_network_error(self):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        transport = _transport(handler)
        with pytest.raises(NetworkError):
            await transport.push(_family_snapshot())
        await transport.close()


class TestPull:
    async def test_pull_decodes_record(self):
        server = _family_snapshot(remote_id="rec-7")

        def handler(request: httpx.Request) -> httpx.Response:
            assert request.method == "GET"
            assert request.url.path == "/records/rec-7"
            return httpx.Response(200, json=encode_snapshot(server))

        transport = _transport(handler)
        assert await transport.pull("rec-7") == server
        await transport.close()

    async def test_pull_not_found(self):
        transport = _transport(lambda request: httpx.Response(404))
        with pytest.raises(RemoteNotFound):
            await transport.pull("missing")
        await transport.close()


class TestLifecycle:
    async def test_close_is_idempotent(self):
        transport = HttpTransport(base_url="http://sync.test", token="")
        client = await transport._ensure_client()
        assert "authorization" not in client.headers
        await transport.close()
        await transport.close()
