"""
Uploaded file business logic service.
Owns every lifecycle change of an uploaded file record: creation, the
path/url follow-up, attach/detach, archiving and the orphan queries.
It never touches bytes; callers write and delete content through a ByteStore.
"""
from __future__ import annotations

import logging
import uuid
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from datetime import datetime

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from blogfiles.core.exceptions import (
    BlogFilesException,
    InvalidIdentifierException,
    PersistenceException,
    UploadFailedException,
)
from blogfiles.crud.uploaded_file import crud_uploaded_file
from blogfiles.models.uploaded_file import AttachableType, UploadedFile
from blogfiles.schemas.uploaded_file import (
    AttachAllResult,
    DeleteFilesResult,
    UploadedFileCreate,
)
from blogfiles.services.file_utils import parse_identifier

logger = logging.getLogger(__name__)

FileId = uuid.UUID | str


@contextmanager
def _store_errors(action: str) -> Iterator[None]:
    try:
        yield
    except SQLAlchemyError as exc:
        logger.exception("Record store failure while trying to %s", action)
        raise PersistenceException(f"Failed to {action}") from exc


class UploadedFileService:

    # ── Lookups ───────────────────────────────────────────────────────────────

    async def _lookup(
        self,
        db: AsyncSession,
        file_id: FileId,
        owner_id: FileId | None = None,
    ) -> UploadedFile | None:
        """
        Find a record, optionally restricted to one uploader.
        Raises InvalidIdentifierException before any query for malformed ids.
        A record owned by someone else is reported exactly like a missing one.
        """
        file_uuid = parse_identifier(file_id)
        owner_uuid = parse_identifier(owner_id) if owner_id is not None else None
        with _store_errors("load file record"):
            record = await crud_uploaded_file.get_with_uploader(
                db, file_uuid, owner_id=owner_uuid
            )
        if record is None:
            logger.debug("File %s not found (owner filter: %s)", file_id, owner_id)
        return record

    async def _lookup_or_none(
        self,
        db: AsyncSession,
        file_id: FileId,
        owner_id: FileId | None = None,
    ) -> UploadedFile | None:
        try:
            return await self._lookup(db, file_id, owner_id)
        except InvalidIdentifierException:
            logger.debug("Rejected malformed file id %r", file_id)
            return None

    async def _persist(self, db: AsyncSession, record: UploadedFile, action: str) -> UploadedFile:
        with _store_errors(action):
            return await crud_uploaded_file.save(db, record)

    # ── Create ────────────────────────────────────────────────────────────────

    async def upload_file(
        self,
        db: AsyncSession,
        *,
        file_in: UploadedFileCreate,
    ) -> UploadedFile:
        """
        Create the metadata record for an upload.
        The record is PERMANENT when created already attached, TEMPORARY
        otherwise. Bytes are not written here: the caller stores them and
        then reports the location through update_file_path_and_url.
        """
        try:
            record = await crud_uploaded_file.create_file(db, obj_in=file_in)
        except SQLAlchemyError as exc:
            logger.exception("Failed to create file record for %r", file_in.original_name)
            await db.rollback()
            raise UploadFailedException() from exc

        logger.info(
            "Created %s file record %s: %s (%d bytes)",
            record.status.value,
            record.id,
            record.original_name,
            record.size,
        )
        return record

    # ── Read ──────────────────────────────────────────────────────────────────

    async def find_file(self, db: AsyncSession, file_id: FileId) -> UploadedFile | None:
        """Return the record with its uploader, or None for unknown or malformed ids."""
        return await self._lookup_or_none(db, file_id)

    async def get_files_by_entity(
        self,
        db: AsyncSession,
        *,
        attachable_type: AttachableType,
        attachable_id: str,
    ) -> list[UploadedFile]:
        """Live (non-archived) files bound to an entity, newest first."""
        with _store_errors("list entity files"):
            return await crud_uploaded_file.list_by_entity(
                db, attachable_type=attachable_type, attachable_id=attachable_id
            )

    async def find_orphaned_files(
        self,
        db: AsyncSession,
        *,
        owner_id: FileId | None = None,
        older_than: datetime | None = None,
    ) -> list[UploadedFile]:
        """
        TEMPORARY files bound to nothing, newest first.
        Records whose bytes were never written show up here as well.
        """
        owner_uuid = parse_identifier(owner_id) if owner_id is not None else None
        with _store_errors("list orphaned files"):
            return await crud_uploaded_file.list_orphaned(
                db, owner_id=owner_uuid, older_than=older_than
            )

    # ── Update ────────────────────────────────────────────────────────────────

    async def update_file_path_and_url(
        self,
        db: AsyncSession,
        file_id: FileId,
        *,
        path: str,
        url: str,
    ) -> UploadedFile | None:
        """Record where the bytes were written. Status is left as it is."""
        record = await self._lookup_or_none(db, file_id)
        if record is None:
            return None
        with _store_errors("update file path and url"):
            return await crud_uploaded_file.update(
                db, db_obj=record, obj_in={"path": path, "url": url}
            )

    async def update_alt_text(
        self,
        db: AsyncSession,
        file_id: FileId,
        *,
        alt_text: str | None,
        owner_id: FileId | None = None,
    ) -> UploadedFile | None:
        record = await self._lookup_or_none(db, file_id, owner_id)
        if record is None:
            return None
        with _store_errors("update alt text"):
            return await crud_uploaded_file.update(
                db, db_obj=record, obj_in={"alt_text": alt_text}
            )

    # ── Attachment ────────────────────────────────────────────────────────────

    async def attach_to_entity(
        self,
        db: AsyncSession,
        file_id: FileId,
        *,
        attachable_type: AttachableType,
        attachable_id: str,
        owner_id: FileId | None = None,
    ) -> UploadedFile | None:
        """
        Bind a file to an entity and make it permanent.
        Returns None when the file does not exist or, with owner_id given,
        was uploaded by someone else.
        """
        record = await self._lookup_or_none(db, file_id, owner_id)
        if record is None:
            return None

        record.attach_to(attachable_type, attachable_id)
        saved = await self._persist(db, record, "attach file")
        logger.info(
            "Attached file %s to %s %s",
            saved.id,
            AttachableType(attachable_type).value,
            attachable_id,
        )
        return saved

    async def detach_file(
        self,
        db: AsyncSession,
        file_id: FileId,
        *,
        owner_id: FileId | None = None,
    ) -> UploadedFile | None:
        record = await self._lookup_or_none(db, file_id, owner_id)
        if record is None:
            return None

        record.detach()
        saved = await self._persist(db, record, "detach file")
        logger.info("Detached file %s", saved.id)
        return saved

    async def attach_all_to_entity(
        self,
        db: AsyncSession,
        file_ids: Iterable[FileId],
        *,
        attachable_type: AttachableType,
        attachable_id: str,
        owner_id: FileId,
    ) -> AttachAllResult:
        """
        Best-effort attach of many files, typically the images embedded in an
        article that is being saved. Each id runs in its own savepoint, so a
        write the store rejects undoes only that id. Failures are returned,
        not raised.
        """
        result = AttachAllResult()
        for file_id in file_ids:
            key = str(file_id)
            try:
                async with db.begin_nested():
                    record = await self.attach_to_entity(
                        db,
                        file_id,
                        attachable_type=attachable_type,
                        attachable_id=attachable_id,
                        owner_id=owner_id,
                    )
            except (BlogFilesException, SQLAlchemyError) as exc:
                logger.warning("Could not attach file %s: %s", key, exc)
                record = None

            if record is None:
                result.failed.append(key)
            else:
                result.attached.append(key)

        logger.info(
            "Batch attach to %s %s: %d attached, %d failed",
            AttachableType(attachable_type).value,
            attachable_id,
            len(result.attached),
            len(result.failed),
        )
        return result

    # ── Archive ───────────────────────────────────────────────────────────────

    async def delete_file(
        self,
        db: AsyncSession,
        file_id: FileId,
        *,
        owner_id: FileId | None = None,
    ) -> bool:
        """Soft-delete one file by archiving it. Returns False if it was not found."""
        record = await self._lookup_or_none(db, file_id, owner_id)
        if record is None:
            return False

        if record.is_archived:
            logger.debug("File %s is already archived", record.id)
            return True

        record.mark_as_archived()
        await self._persist(db, record, "archive file")
        logger.info("Archived file %s", record.id)
        return True

    async def delete_files(
        self,
        db: AsyncSession,
        file_ids: Iterable[FileId],
        *,
        owner_id: FileId | None = None,
    ) -> DeleteFilesResult:
        """
        Archive many files. Malformed, unknown and foreign ids are reported
        in `failed` (as supplied) instead of failing the whole request. Each id
        is archived in its own savepoint.
        """
        result = DeleteFilesResult()
        for file_id in file_ids:
            try:
                async with db.begin_nested():
                    archived = await self.delete_file(db, file_id, owner_id=owner_id)
            except (BlogFilesException, SQLAlchemyError) as exc:
                logger.warning("Could not archive file %s: %s", file_id, exc)
                archived = False

            if archived:
                result.deleted += 1
            else:
                result.failed.append(str(file_id))
        return result


uploaded_file_service = UploadedFileService()
