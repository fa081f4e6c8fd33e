import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict

from familysync.models.membership import MembershipStatus, Role


class MembershipCreate(BaseModel):
    family_id: uuid.UUID
    user_id: uuid.UUID
    role: Role = Role.adult


class MembershipRoleUpdate(BaseModel):
    role: Role


class MembershipResponse(BaseModel):
    id: uuid.UUID
    family_id: uuid.UUID | None = None
    user_id: uuid.UUID | None = None
    role: Role
    status: MembershipStatus
    joined_at: datetime
    last_role_change_at: datetime | None = None
    user_display_name: str
    family_name: str
    is_valid: bool
    needs_sync: bool
    ck_record_id: str | None = None
    model_config = ConfigDict(from_attributes=True)
