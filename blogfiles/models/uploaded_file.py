"""
UploadedFile ORM model.
One record per uploaded asset (article images, avatars). The record is the
single source of truth for an upload's lifecycle state and for which entity
it is attached to; the bytes themselves live in a ByteStore.

State transitions are plain methods that only change in-memory state.
Persisting them is the caller's job (see CRUDUploadedFile.save).
"""
from __future__ import annotations

import enum
import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import (
    JSON,
    BigInteger,
    CheckConstraint,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    String,
    Uuid,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from blogfiles.core.exceptions import FileArchivedException, InvariantViolationException
from blogfiles.db.base import Base, UUIDMixin, utcnow


class FileType(str, enum.Enum):
    IMAGE = "image"
    PDF = "pdf"
    DOCUMENT = "document"
    VIDEO = "video"
    AUDIO = "audio"


class AttachableType(str, enum.Enum):
    ARTICLE = "article"
    USER_AVATAR = "user_avatar"
    USER_BIO = "user_bio"


class FileStatus(str, enum.Enum):
    TEMPORARY = "temporary"
    PERMANENT = "permanent"
    ARCHIVED = "archived"


def _enum_values(enum_cls: type[enum.Enum]) -> list[str]:
    return [member.value for member in enum_cls]


def check_attachment_pairing(
    attachable_type: AttachableType | str | None,
    attachable_id: str | None,
) -> None:
    """Raise if exactly one of the two attachment fields is set."""
    if attachable_type and not attachable_id:
        raise InvariantViolationException(
            "attachable_id is required when attachable_type is set"
        )
    if attachable_id and not attachable_type:
        raise InvariantViolationException(
            "attachable_type is required when attachable_id is set"
        )


class UploadedFile(UUIDMixin, Base):
    __tablename__ = "uploaded_files"

    filename: Mapped[str] = mapped_column(String(255), nullable=False)
    original_name: Mapped[str] = mapped_column(String(255), nullable=False)
    alt_text: Mapped[str | None] = mapped_column(String(500), nullable=True)
    file_type: Mapped[FileType] = mapped_column(
        Enum(FileType, name="file_type_enum", values_callable=_enum_values),
        nullable=False,
    )
    mime_type: Mapped[str] = mapped_column(String(100), nullable=False)
    size: Mapped[int] = mapped_column(BigInteger, nullable=False)
    path: Mapped[str] = mapped_column(
        String(500), nullable=False, default="", server_default=""
    )
    url: Mapped[str] = mapped_column(
        String(500), nullable=False, default="", server_default=""
    )
    checksum: Mapped[str] = mapped_column(String(64), nullable=False)
    attachable_type: Mapped[AttachableType | None] = mapped_column(
        Enum(AttachableType, name="attachable_type_enum", values_callable=_enum_values),
        nullable=True,
    )
    attachable_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    uploaded_by: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )
    status: Mapped[FileStatus] = mapped_column(
        Enum(FileStatus, name="file_status_enum", values_callable=_enum_values),
        nullable=False,
        default=FileStatus.TEMPORARY,
        server_default=FileStatus.TEMPORARY.value,
    )
    # "metadata" is reserved on declarative classes
    meta: Mapped[list[dict[str, Any]]] = mapped_column(
        "metadata",
        JSON().with_variant(JSONB, "postgresql"),
        nullable=False,
        default=list,
    )
    uploaded_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
        server_default=func.now(),
    )

    # ── Relationships ─────────────────────────────────────────────────────────
    uploader: Mapped["User"] = relationship(  # type: ignore[name-defined]  # noqa: F821
        "User",
        back_populates="uploaded_files",
        lazy="raise",
    )

    __table_args__ = (
        CheckConstraint(
            "(attachable_type IS NULL) = (attachable_id IS NULL)",
            name="attachable_pairing",
        ),
        Index("ix_uploaded_files_attachable", "attachable_type", "attachable_id"),
        Index("ix_uploaded_files_uploaded_by_status", "uploaded_by", "status"),
        Index("ix_uploaded_files_status_uploaded_at", "status", "uploaded_at"),
        Index("ix_uploaded_files_file_type_status", "file_type", "status"),
        Index("ix_uploaded_files_checksum", "checksum"),
    )

    # ── State ─────────────────────────────────────────────────────────────────

    @property
    def is_archived(self) -> bool:
        return self.status == FileStatus.ARCHIVED

    @property
    def is_attached(self) -> bool:
        return self.attachable_type is not None and self.attachable_id is not None

    @property
    def is_orphaned(self) -> bool:
        return self.status == FileStatus.TEMPORARY and not self.is_attached

    # ── Transitions ───────────────────────────────────────────────────────────

    def _ensure_not_archived(self) -> None:
        if self.is_archived:
            raise FileArchivedException(str(self.id))

    def attach_to(self, attachable_type: AttachableType, attachable_id: str) -> None:
        """Bind the file to an owning entity and make it permanent."""
        self._ensure_not_archived()
        if not attachable_type or not attachable_id:
            raise InvariantViolationException(
                "Both attachable_type and attachable_id are required to attach a file"
            )
        self.attachable_type = AttachableType(attachable_type)
        self.attachable_id = attachable_id
        self.status = FileStatus.PERMANENT

    def detach(self) -> None:
        self._ensure_not_archived()
        self.attachable_type = None
        self.attachable_id = None
        self.status = FileStatus.TEMPORARY

    def mark_as_permanent(self) -> None:
        self._ensure_not_archived()
        self.status = FileStatus.PERMANENT

    def mark_as_archived(self) -> None:
        # Attachment fields are kept so archived records remain auditable
        self.status = FileStatus.ARCHIVED

    def check_invariants(self) -> None:
        """
        Validate the record before it is written.
        Rejects half-set attachments and promotes attached, non-archived
        records to PERMANENT.
        """
        check_attachment_pairing(self.attachable_type, self.attachable_id)
        if self.is_attached and not self.is_archived:
            self.status = FileStatus.PERMANENT

    def __repr__(self) -> str:
        return (
            f"<UploadedFile id={self.id} filename={self.filename!r} "
            f"status={self.status}>"
        )
