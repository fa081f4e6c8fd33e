import uuid
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict

from familysync.models.membership import MembershipStatus, Role


class FamilyFields(BaseModel):
    name: str
    code: str
    created_by_user_id: uuid.UUID
    created_at: datetime


class UserProfileFields(BaseModel):
    display_name: str
    apple_user_id_hash: str
    avatar_url: str | None = None
    created_at: datetime


class MembershipFields(BaseModel):
    role: Role
    status: MembershipStatus
    joined_at: datetime
    last_role_change_at: datetime | None = None
    family_id: uuid.UUID | None = None
    user_id: uuid.UUID | None = None


# Record type -> schema of its data fields on the wire
RECORD_FIELD_SCHEMAS: dict[str, type[BaseModel]] = {
    "Family": FamilyFields,
    "UserProfile": UserProfileFields,
    "Membership": MembershipFields,
}


class RecordPayload(BaseModel):
    """One record as exchanged with the sync server."""

    record_type: str
    id: uuid.UUID
    modified_at: datetime | None = None
    fields: dict[str, Any] = {}
    remote_id: str | None = None


class PushResponse(BaseModel):
    remote_id: str


class SyncFailure(BaseModel):
    record_type: str
    record_id: uuid.UUID
    error: str


class SyncResultResponse(BaseModel):
    pushed: int
    conflicts: int
    failed: int
    failures: list[SyncFailure] = []
    model_config = ConfigDict(from_attributes=True)


class SyncStatusResponse(BaseModel):
    status: str
    last_sync_at: datetime | None = None
    last_error: str | None = None
    pending: dict[str, int]
    model_config = ConfigDict(from_attributes=True)
