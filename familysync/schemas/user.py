import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict


class UserProfileCreate(BaseModel):
    display_name: str
    apple_user_id_hash: str
    avatar_url: str | None = None


class UserProfileUpdate(BaseModel):
    display_name: str | None = None
    avatar_url: str | None = None


class UserProfileResponse(BaseModel):
    id: uuid.UUID
    display_name: str
    avatar_url: str | None = None
    created_at: datetime
    modified_at: datetime
    needs_sync: bool
    ck_record_id: str | None = None
    last_sync_date: datetime | None = None
    model_config = ConfigDict(from_attributes=True)
