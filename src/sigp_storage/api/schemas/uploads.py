"""Upload request/response schemas."""

from datetime import datetime

from pydantic import BaseModel, Field


class RequestUploadRequest(BaseModel):
    target_path: str = Field(min_length=1)
    size: int = Field(ge=0)
    content_type: str | None = None
    content_hash: str | None = None


class RequestUploadResponse(BaseModel):
    intent_id: str
    write_url: str
    expires_at: datetime


class ConfirmUploadRequest(BaseModel):
    intent_id: str
    checksum: str | None = None
    size: int = Field(ge=0)


class FileRecordResponse(BaseModel):
    file_id: str
    intent_id: str
    owner_id: str
    path: str
    bucket: str
    object_key: str
    version: int
    checksum: str | None = None
    size_bytes: int
    content_type: str | None = None
    confirmed_at: datetime


class IntentStatusResponse(BaseModel):
    intent_id: str
    target_path: str
    status: str  # "pending", "confirmed" or "expired"
    byte_size_limit: int
    created_at: datetime
    expires_at: datetime


class DownloadUrlResponse(BaseModel):
    file_id: str
    read_url: str
    expires_at: datetime
