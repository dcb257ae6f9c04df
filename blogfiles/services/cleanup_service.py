"""
Orphan reconciliation sweep.
Archives TEMPORARY, unattached uploads older than the retention window and
reclaims their bytes. Interrupted uploads (records whose bytes were never
written) are swept the same way; they simply have nothing to delete.
"""
from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from blogfiles.core.config import settings
from blogfiles.core.exceptions import BlogFilesException
from blogfiles.db.base import utcnow
from blogfiles.schemas.uploaded_file import CleanupFailure, CleanupResult
from blogfiles.services.byte_store import ByteStore
from blogfiles.services.file_utils import storage_location
from blogfiles.services.uploaded_file_service import uploaded_file_service

logger = logging.getLogger(__name__)


def retention_cutoff(now: datetime | None = None, hours: int | None = None) -> datetime:
    """Uploads older than this instant are eligible for the sweep."""
    if hours is None:
        hours = settings.ORPHAN_RETENTION_HOURS
    return (now or utcnow()) - timedelta(hours=hours)


class OrphanCleanupService:

    async def sweep(
        self,
        db: AsyncSession,
        *,
        byte_store: ByteStore,
        older_than: datetime | None = None,
    ) -> CleanupResult:
        """
        Delete the bytes of each stale orphan, then archive its record.
        A file whose bytes cannot be removed, or whose record the store
        refuses to update, stays TEMPORARY so the next sweep retries it. Each
        archive runs in its own savepoint.
        """
        cutoff = older_than or retention_cutoff()
        orphans = await uploaded_file_service.find_orphaned_files(db, older_than=cutoff)
        result = CleanupResult()

        for record in orphans:
            record_id = record.id
            file_id = str(record_id)
            try:
                if record.path:
                    await self._delete_bytes(byte_store, record_id, record.filename)
                async with db.begin_nested():
                    archived = await uploaded_file_service.delete_file(db, record_id)
            except (OSError, BlogFilesException, SQLAlchemyError) as exc:
                logger.error("Failed to clean up orphaned file %s: %s", file_id, exc)
                result.failed.append(CleanupFailure(id=file_id, error=str(exc)))
                continue

            if archived:
                result.deleted.append(file_id)
            else:
                result.failed.append(CleanupFailure(id=file_id, error="File not found"))

        logger.info(
            "Orphan sweep (cutoff %s): %d archived, %d failed",
            cutoff.isoformat(),
            len(result.deleted),
            len(result.failed),
        )
        return result

    @staticmethod
    async def _delete_bytes(byte_store: ByteStore, file_id: uuid.UUID, filename: str) -> None:
        try:
            await byte_store.delete(storage_location(file_id, filename))
        except FileNotFoundError:
            logger.warning("Bytes for orphaned file %s were already gone", file_id)


orphan_cleanup_service = OrphanCleanupService()
