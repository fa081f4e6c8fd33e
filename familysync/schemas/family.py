import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict


class FamilyBase(BaseModel):
    name: str
    code: str


class FamilyCreate(BaseModel):
    name: str
    code: str | None = None  # generated when omitted
    created_by_user_id: uuid.UUID


class FamilyUpdate(BaseModel):
    name: str | None = None
    code: str | None = None


class FamilyResponse(FamilyBase):
    id: uuid.UUID
    created_by_user_id: uuid.UUID
    created_at: datetime
    modified_at: datetime
    needs_sync: bool
    ck_record_id: str | None = None
    last_sync_date: datetime | None = None
    model_config = ConfigDict(from_attributes=True)
