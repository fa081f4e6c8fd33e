"""Remote transports for record sync.

``RemoteTransport`` is the contract the sync engine talks to.
``HttpTransport`` implements it against the sync server's REST API with
httpx; every request carries the API token as a bearer token.

Wire format (JSON)::

    PUT /records/{record_type}/{id}[?force=true]   body: RecordPayload
        -> 200 {"remote_id": "..."}
        -> 409 {"detail": "...", "record": RecordPayload}   (optional record)
    GET /records/{remote_id}
        -> 200 RecordPayload
"""

import abc
import logging
from datetime import timezone

import httpx
from pydantic import ValidationError

from familysync.config import settings
from familysync.errors import (
    AuthError,
    ConflictError,
    NetworkError,
    RemoteNotFound,
    SyncError,
)
from familysync.schemas.sync import RECORD_FIELD_SCHEMAS, PushResponse, RecordPayload
from familysync.services.sync_state import RecordSnapshot

logger = logging.getLogger(__name__)


class RemoteTransport(abc.ABC):
    """Where local records are pushed to and pulled from."""

    @abc.abstractmethod
    async def push(self, record: RecordSnapshot, force: bool = False) -> str:
        """Store the record remotely and return its remote id.

        Without ``force`` the remote may refuse with ConflictError when it
        holds a diverging version.
        """

    @abc.abstractmethod
    async def pull(self, remote_id: str) -> RecordSnapshot:
        """Fetch the remote version of a record."""

    async def close(self) -> None:
        pass


# ---------------------------------------------------------------------------
# Wire encoding
# ---------------------------------------------------------------------------

def encode_snapshot(record: RecordSnapshot) -> dict:
    schema = RECORD_FIELD_SCHEMAS[record.record_type]
    fields = schema.model_validate(record.fields).model_dump(mode="json")
    payload = RecordPayload(
        record_type=record.record_type,
        id=record.id,
        modified_at=record.modified_at,
        fields=fields,
        remote_id=record.remote_id,
    )
    return payload.model_dump(mode="json")


def decode_snapshot(data: dict) -> RecordSnapshot:
    """Parse a RecordPayload into a snapshot with Python-typed fields."""
    try:
        payload = RecordPayload.model_validate(data)
        schema = RECORD_FIELD_SCHEMAS.get(payload.record_type)
        if schema is None:
            raise SyncError(f"Unknown record type from server: {payload.record_type}")
        fields = schema.model_validate(payload.fields).model_dump()
    except ValidationError as exc:
        raise SyncError(f"Malformed record from server: {exc}") from exc

    modified_at = payload.modified_at
    if modified_at is not None and modified_at.tzinfo is None:
        modified_at = modified_at.replace(tzinfo=timezone.utc)
    return RecordSnapshot(
        record_type=payload.record_type,
        id=payload.id,
        modified_at=modified_at,
        fields=fields,
        remote_id=payload.remote_id,
    )


# ---------------------------------------------------------------------------
# HTTP
# ---------------------------------------------------------------------------

class HttpTransport(RemoteTransport):
    """Async HTTP client for the sync server."""

    def __init__(
        self,
        base_url: str | None = None,
        token: str | None = None,
        timeout: float | None = None,
    ) -> None:
        self._base_url = base_url or settings.SYNC_SERVER_URL
        self._token = token if token is not None else settings.SYNC_API_TOKEN
        self._timeout = timeout or settings.SYNC_TIMEOUT_SECONDS
        self._client: httpx.AsyncClient | None = None

    # -- lifecycle -----------------------------------------------------------

    async def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            headers = {}
            if self._token:
                headers["Authorization"] = f"Bearer {self._token}"
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                headers=headers,
                timeout=httpx.Timeout(self._timeout, connect=10.0),
            )
        return self._client

    async def close(self) -> None:
        """Shut down the underlying HTTP client gracefully."""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    # -- endpoints -----------------------------------------------------------

    async def push(self, record: RecordSnapshot, force: bool = False) -> str:
        """PUT /records/{record_type}/{id}"""
        body = encode_snapshot(record)
        params = {"force": "true"} if force else None
        logger.debug("Pushing %s %s (force=%s)", record.record_type, record.id, force)
        resp = await self._request(
            "PUT", f"/records/{record.record_type}/{record.id}", json=body, params=params,
        )
        try:
            return PushResponse.model_validate(resp.json()).remote_id
        except (ValueError, ValidationError) as exc:
            raise SyncError(f"Malformed push response: {exc}") from exc

    async def pull(self, remote_id: str) -> RecordSnapshot:
        """GET /records/{remote_id}"""
        logger.debug("Pulling %s", remote_id)
        resp = await self._request("GET", f"/records/{remote_id}")
        try:
            data = resp.json()
        except ValueError as exc:
            raise SyncError(f"Malformed pull response: {exc}") from exc
        return decode_snapshot(data)

    # -- internals -----------------------------------------------------------

    async def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        client = await self._ensure_client()
        try:
            resp = await client.request(method, url, **kwargs)
        except httpx.HTTPError as exc:
            logger.error("Sync request %s %s error: %s", method, url, exc)
            raise NetworkError(str(exc)) from exc

        if resp.status_code in (401, 403):
            raise AuthError(f"Sync server rejected credentials (HTTP {resp.status_code})")
        if resp.status_code == 404:
            raise RemoteNotFound(f"No remote record at {url}")
        if resp.status_code == 409:
            raise ConflictError(server_snapshot=self._conflict_record(resp))

        try:
            resp.raise_for_status()
        except httpx.HTTPStatusError as exc:
            logger.error(
                "Sync request %s %s failed with HTTP %s: %s",
                method, url, exc.response.status_code, exc.response.text,
            )
            if exc.response.status_code >= 500:
                raise NetworkError(f"Sync server error (HTTP {exc.response.status_code})") from exc
            raise SyncError(f"Sync request rejected (HTTP {exc.response.status_code})") from exc
        return resp

    def _conflict_record(self, resp: httpx.Response) -> RecordSnapshot | None:
        try:
            body = resp.json()
        except ValueError:
            return None
        record = body.get("record") if isinstance(body, dict) else None
        if not record:
            return None
        try:
            return decode_snapshot(record)
        except SyncError:
            logger.warning("Ignoring malformed record in conflict response")
            return None
