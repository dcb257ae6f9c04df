"""
UploadedFile Pydantic schemas.
Covers record creation, reads, attach/delete requests and batch results.
"""
from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field, field_validator

from blogfiles.core.config import settings
from blogfiles.models.uploaded_file import AttachableType, FileStatus, FileType
from blogfiles.schemas.user import UserReadPublic

FileIdList = list[str]


# ── Create ────────────────────────────────────────────────────────────────────

class UploadedFileCreate(BaseModel):
    """
    Metadata for a new record. Attachment pairing is deliberately not
    validated here: the record store rejects half-set attachments.
    """

    filename: str = Field(min_length=1, max_length=255)
    original_name: str = Field(min_length=1, max_length=255)
    alt_text: str | None = Field(default=None, max_length=500)
    file_type: FileType
    mime_type: str = Field(min_length=1, max_length=100)
    size: int = Field(ge=0)
    path: str = Field(default="", max_length=500)
    url: str = Field(default="", max_length=500)
    checksum: str = Field(min_length=1, max_length=64)
    uploaded_by: uuid.UUID
    attachable_type: AttachableType | None = None
    attachable_id: str | None = Field(default=None, max_length=100)
    meta: list[dict[str, Any]] = Field(default_factory=list)

    @field_validator("filename", "original_name", "mime_type", "checksum", "path", "url")
    @classmethod
    def strip_whitespace(cls, v: str) -> str:
        return v.strip()

    @field_validator("attachable_id")
    @classmethod
    def blank_attachable_id_is_none(cls, v: str | None) -> str | None:
        if v is None:
            return None
        return v.strip() or None

    @field_validator("size")
    @classmethod
    def validate_size(cls, v: int) -> int:
        if v > settings.max_record_size_bytes:
            raise ValueError(
                f"size must not exceed {settings.MAX_RECORD_SIZE_MB} MB"
            )
        return v


# ── Update ────────────────────────────────────────────────────────────────────

class UploadedFileUpdate(BaseModel):
    alt_text: str | None = Field(default=None, max_length=500)


class AttachRequest(BaseModel):
    attachable_type: AttachableType
    attachable_id: str = Field(min_length=1, max_length=100)


class BatchAttachRequest(AttachRequest):
    file_ids: FileIdList = Field(min_length=1, max_length=100)


class BatchDeleteRequest(BaseModel):
    file_ids: FileIdList = Field(min_length=1, max_length=100)


# ── Read ──────────────────────────────────────────────────────────────────────

class UploadedFileRead(BaseModel):
    id: uuid.UUID
    filename: str
    original_name: str
    alt_text: str | None
    file_type: FileType
    mime_type: str
    size: int
    url: str
    checksum: str
    attachable_type: AttachableType | None
    attachable_id: str | None
    uploaded_by: uuid.UUID
    status: FileStatus
    meta: list[dict[str, Any]]
    uploaded_at: datetime
    updated_at: datetime
    uploader: UserReadPublic | None = None

    model_config = {"from_attributes": True}


# ── Batch results ─────────────────────────────────────────────────────────────

class AttachAllResult(BaseModel):
    attached: list[str] = Field(default_factory=list)
    failed: list[str] = Field(default_factory=list)


class DeleteFilesResult(BaseModel):
    deleted: int = 0
    failed: list[str] = Field(default_factory=list)


class CleanupFailure(BaseModel):
    id: str
    error: str


class CleanupResult(BaseModel):
    deleted: list[str] = Field(default_factory=list)
    failed: list[CleanupFailure] = Field(default_factory=list)
