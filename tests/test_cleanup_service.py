"""
Orphan sweep tests.
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from blogfiles.models.uploaded_file import FileStatus
from blogfiles.services.byte_store import LocalByteStore
from blogfiles.services.cleanup_service import orphan_cleanup_service, retention_cutoff
from blogfiles.services.file_utils import storage_location
from blogfiles.services.uploaded_file_service import uploaded_file_service

pytestmark = pytest.mark.asyncio


async def _stale_orphan(db: AsyncSession, make_file, byte_store: LocalByteStore | None = None):
    record = await make_file()
    if byte_store is not None:
        path = await byte_store.write(b"bytes", storage_location(record.id, record.filename))
        record = await uploaded_file_service.update_file_path_and_url(
            db, record.id, path=path, url=f"/api/v1/files/{record.id}/content"
        )
    record.uploaded_at = datetime.now(timezone.utc) - timedelta(hours=30)
    await db.flush()
    return record


class TestRetentionCutoff:
    def test_default_window(self) -> None:
        now = datetime(2024, 5, 2, 12, 0, tzinfo=timezone.utc)
        assert retention_cutoff(now) == datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

    def test_custom_window(self) -> None:
        now = datetime(2024, 5, 2, 12, 0, tzinfo=timezone.utc)
        assert retention_cutoff(now, hours=2) == datetime(2024, 5, 2, 10, 0, tzinfo=timezone.utc)


class TestSweep:
    async def test_archives_stale_orphan_and_deletes_bytes(
        self, db: AsyncSession, make_file, byte_store: LocalByteStore
    ) -> None:
        record = await _stale_orphan(db, make_file, byte_store)
        assert Path(record.path).exists()

        result = await orphan_cleanup_service.sweep(db, byte_store=byte_store)

        assert result.deleted == [str(record.id)]
        assert result.failed == []
        assert not Path(record.path).exists()
        found = await uploaded_file_service.find_file(db, record.id)
        assert found.status == FileStatus.ARCHIVED

    async def test_interrupted_upload_is_archived(
        self, db: AsyncSession, make_file, byte_store: LocalByteStore
    ) -> None:
        record = await _stale_orphan(db, make_file)
        assert record.path == ""

        result = await orphan_cleanup_service.sweep(db, byte_store=byte_store)

        assert result.deleted == [str(record.id)]
        found = await uploaded_file_service.find_file(db, record.id)
        assert found.status == FileStatus.ARCHIVED

    async def test_missing_bytes_still_archived(
        self, db: AsyncSession, make_file, byte_store: LocalByteStore
    ) -> None:
        record = await _stale_orphan(db, make_file, byte_store)
        await byte_store.delete(storage_location(record.id, record.filename))

        result = await orphan_cleanup_service.sweep(db, byte_store=byte_store)

        assert result.deleted == [str(record.id)]

    async def test_recent_and_attached_files_are_kept(
        self, db: AsyncSession, make_file, byte_store: LocalByteStore
    ) -> None:
        recent = await make_file()
        attached = await make_file(attachable_type="article", attachable_id="art1")
        attached.uploaded_at = datetime.now(timezone.utc) - timedelta(days=10)
        await db.flush()

        result = await orphan_cleanup_service.sweep(db, byte_store=byte_store)

        assert result.deleted == []
        for record in (recent, attached):
            found = await uploaded_file_service.find_file(db, record.id)
            assert found.status != FileStatus.ARCHIVED

    async def test_byte_store_failure_leaves_record_for_retry(
        self, db: AsyncSession, make_file, byte_store: LocalByteStore, monkeypatch
    ) -> None:
        record = await _stale_orphan(db, make_file, byte_store)

        async def _denied(location: str) -> None:
            raise PermissionError("read-only filesystem")

        monkeypatch.setattr(byte_store, "delete", _denied)
        result = await orphan_cleanup_service.sweep(db, byte_store=byte_store)

        assert result.deleted == []
        assert [f.id for f in result.failed] == [str(record.id)]
        assert "read-only" in result.failed[0].error
        found = await uploaded_file_service.find_file(db, record.id)
        assert found.status == FileStatus.TEMPORARY

    async def test_rejected_archive_does_not_fail_later_orphans(
        self, db: AsyncSession, make_file, byte_store: LocalByteStore, reject_updates
    ) -> None:
        good = await _stale_orphan(db, make_file, byte_store)
        good.uploaded_at = datetime.now(timezone.utc) - timedelta(hours=40)
        await db.flush()
        bad = await _stale_orphan(db, make_file, byte_store)
        good_id, bad_id, good_path = str(good.id), str(bad.id), good.path
        await reject_updates(bad)

        result = await orphan_cleanup_service.sweep(db, byte_store=byte_store)

        assert result.deleted == [good_id]
        assert [f.id for f in result.failed] == [bad_id]
        assert not Path(good_path).exists()
        assert (await uploaded_file_service.find_file(db, good_id)).status == FileStatus.ARCHIVED
        assert (await uploaded_file_service.find_file(db, bad_id)).status == FileStatus.TEMPORARY

    async def test_explicit_cutoff(
        self, db: AsyncSession, make_file, byte_store: LocalByteStore
    ) -> None:
        record = await make_file()
        record.uploaded_at = datetime.now(timezone.utc) - timedelta(hours=2)
        await db.flush()

        result = await orphan_cleanup_service.sweep(
            db, byte_store=byte_store, older_than=retention_cutoff(hours=1)
        )
        assert result.deleted == [str(record.id)]
