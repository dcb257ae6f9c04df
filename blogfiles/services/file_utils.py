"""
Helpers used by upload callers before a record is created: checksums,
file type detection, storage names and public URLs.
"""
from __future__ import annotations

import hashlib
import uuid
from pathlib import PurePath

from blogfiles.core.config import settings
from blogfiles.core.exceptions import InvalidIdentifierException
from blogfiles.models.uploaded_file import FileType


def compute_checksum(content: bytes) -> str:
    """Return the MD5 hex digest of the content. Identifies content, not a security hash."""
    return hashlib.md5(content, usedforsecurity=False).hexdigest()


def file_type_from_mime(mime_type: str) -> FileType:
    """
    Map a MIME type to a FileType.
    Unknown types fall back to DOCUMENT.
    """
    mime = mime_type.lower().split(";", 1)[0].strip()
    if mime.startswith("image/"):
        return FileType.IMAGE
    if mime.startswith("video/"):
        return FileType.VIDEO
    if mime.startswith("audio/"):
        return FileType.AUDIO
    if mime == "application/pdf":
        return FileType.PDF
    return FileType.DOCUMENT


def generate_storage_filename(original_name: str) -> str:
    """Collision-resistant storage name that keeps the original extension."""
    suffix = PurePath(original_name).suffix.lower()
    return f"{uuid.uuid4().hex}{suffix}"


def storage_location(file_id: uuid.UUID | str, filename: str) -> str:
    """Byte store location of a record's content: one directory per file id."""
    return f"{file_id}/{filename}"


def build_file_url(file_id: uuid.UUID | str, url: str = "") -> str:
    """A URL already set by a cloud backend wins; otherwise serve through the API."""
    if url.startswith("http"):
        return url
    return f"{settings.FILE_URL_PREFIX.rstrip('/')}/{file_id}/content"


def parse_identifier(value: uuid.UUID | str) -> uuid.UUID:
    """
    Parse a record identifier without touching the database.
    Raises InvalidIdentifierException for anything that is not a UUID.
    """
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (TypeError, ValueError) as exc:
        raise InvalidIdentifierException(value) from exc
