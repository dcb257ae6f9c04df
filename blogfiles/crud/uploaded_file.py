"""
UploadedFile CRUD operations.
Every write to the uploaded_files table passes through save(), which
enforces the attachment invariants before anything is flushed.
"""
from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import Select, inspect, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from blogfiles.core.exceptions import FileArchivedException, InvariantViolationException
from blogfiles.crud.base import CRUDBase
from blogfiles.models.uploaded_file import (
    AttachableType,
    FileStatus,
    UploadedFile,
    check_attachment_pairing,
)
from blogfiles.schemas.uploaded_file import UploadedFileCreate, UploadedFileUpdate


class CRUDUploadedFile(CRUDBase[UploadedFile, UploadedFileCreate, UploadedFileUpdate]):

    @staticmethod
    def _select_with_uploader() -> Select[tuple[UploadedFile]]:
        return select(UploadedFile).options(selectinload(UploadedFile.uploader))

    def _select_by_id(
        self, file_id: uuid.UUID, owner_id: uuid.UUID | None = None
    ) -> Select[tuple[UploadedFile]]:
        query = self._select_with_uploader().where(UploadedFile.id == file_id)
        if owner_id is not None:
            query = query.where(UploadedFile.uploaded_by == owner_id)
        return query.execution_options(populate_existing=True)

    async def get_with_uploader(
        self,
        db: AsyncSession,
        file_id: uuid.UUID,
        *,
        owner_id: uuid.UUID | None = None,
    ) -> UploadedFile | None:
        """Fetch a record with its uploader, optionally scoped to one uploader."""
        result = await db.execute(self._select_by_id(file_id, owner_id))
        return result.scalar_one_or_none()

    async def save(self, db: AsyncSession, db_obj: UploadedFile) -> UploadedFile:
        """
        Validate, flush and reload a record.
        A record breaking the attachment pairing is never flushed; if it was
        already persistent its rejected in-memory changes are discarded.
        """
        try:
            db_obj.check_invariants()
        except InvariantViolationException:
            if inspect(db_obj).persistent:
                await db.refresh(db_obj)
            raise

        db.add(db_obj)
        await db.flush()
        result = await db.execute(self._select_by_id(db_obj.id))
        return result.scalar_one()

    async def create_file(
        self,
        db: AsyncSession,
        *,
        obj_in: UploadedFileCreate,
    ) -> UploadedFile:
        check_attachment_pairing(obj_in.attachable_type, obj_in.attachable_id)
        attached = obj_in.attachable_type is not None and obj_in.attachable_id is not None
        db_obj = UploadedFile(
            **obj_in.model_dump(),
            status=FileStatus.PERMANENT if attached else FileStatus.TEMPORARY,
        )
        return await self.save(db, db_obj)

    async def update(
        self,
        db: AsyncSession,
        *,
        db_obj: UploadedFile,
        obj_in: UploadedFileUpdate | dict[str, Any],
    ) -> UploadedFile:
        """Apply a partial update, rejecting it up front if it breaks an invariant."""
        if isinstance(obj_in, dict):
            update_data = obj_in
        else:
            update_data = obj_in.model_dump(exclude_unset=True)

        check_attachment_pairing(
            update_data.get("attachable_type", db_obj.attachable_type),
            update_data.get("attachable_id", db_obj.attachable_id),
        )
        new_status = update_data.get("status", db_obj.status)
        if db_obj.is_archived and new_status != FileStatus.ARCHIVED:
            raise FileArchivedException(str(db_obj.id))

        return await super().update(db, db_obj=db_obj, obj_in=update_data)

    async def list_by_entity(
        self,
        db: AsyncSession,
        *,
        attachable_type: AttachableType,
        attachable_id: str,
    ) -> list[UploadedFile]:
        result = await db.execute(
            self._select_with_uploader()
            .where(
                UploadedFile.attachable_type == attachable_type,
                UploadedFile.attachable_id == attachable_id,
                UploadedFile.status != FileStatus.ARCHIVED,
            )
            .order_by(UploadedFile.uploaded_at.desc())
        )
        return list(result.scalars().all())

    async def list_orphaned(
        self,
        db: AsyncSession,
        *,
        owner_id: uuid.UUID | None = None,
        older_than: datetime | None = None,
    ) -> list[UploadedFile]:
        query = self._select_with_uploader().where(
            UploadedFile.status == FileStatus.TEMPORARY,
            UploadedFile.attachable_type.is_(None),
            UploadedFile.attachable_id.is_(None),
        )
        if owner_id is not None:
            query = query.where(UploadedFile.uploaded_by == owner_id)
        if older_than is not None:
            query = query.where(UploadedFile.uploaded_at < older_than)

        result = await db.execute(query.order_by(UploadedFile.uploaded_at.desc()))
        return list(result.scalars().all())


crud_uploaded_file = CRUDUploadedFile(UploadedFile)
