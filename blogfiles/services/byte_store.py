"""Byte storage for uploaded files.

Provides a ``ByteStore`` Protocol and a ``LocalByteStore`` implementation that
writes to the local filesystem with async I/O. Locations are caller-supplied
relative paths, conventionally ``{file_id}/{filename}``.
"""
from __future__ import annotations

from pathlib import Path
from typing import Protocol

import aiofiles

from blogfiles.core.config import settings


class ByteStore(Protocol):
    """Durable write/read/delete of raw bytes at a caller-supplied location."""

    async def write(self, content: bytes, location: str) -> str:
        """Store content and return the physical path (or URL) it was written to."""
        ...

    async def read(self, location: str) -> bytes:
        """Return stored bytes. Raises FileNotFoundError if nothing is stored."""
        ...

    async def delete(self, location: str) -> None:
        """Remove stored bytes. Raises FileNotFoundError if nothing is stored."""
        ...


class LocalByteStore:
    """Local filesystem implementation of ByteStore.

    Args:
        base_dir: Root directory; every location resolves inside it.
    """

    def __init__(self, base_dir: str | Path) -> None:
        self._base_dir = Path(base_dir).resolve()

    def _resolve(self, location: str) -> Path:
        path = (self._base_dir / location).resolve()
        if not path.is_relative_to(self._base_dir):
            raise ValueError(f"Location escapes the storage root: {location!r}")
        return path

    async def write(self, content: bytes, location: str) -> str:
        path = self._resolve(location)
        path.parent.mkdir(parents=True, exist_ok=True)
        async with aiofiles.open(path, "wb") as f:
            await f.write(content)
        return str(path)

    async def read(self, location: str) -> bytes:
        path = self._resolve(location)
        if not path.exists():
            raise FileNotFoundError(f"File not found: {location}")
        async with aiofiles.open(path, "rb") as f:
            return await f.read()

    async def delete(self, location: str) -> None:
        path = self._resolve(location)
        if not path.exists():
            raise FileNotFoundError(f"File not found: {location}")
        path.unlink()
        # Drop the per-file directory once it is empty
        parent = path.parent
        if parent != self._base_dir and not any(parent.iterdir()):
            parent.rmdir()


def get_byte_store() -> ByteStore:
    """FastAPI dependency returning the configured byte store."""
    if settings.FILE_STORAGE_TYPE == "local":
        return LocalByteStore(settings.UPLOAD_DIR)
    raise ValueError(f"Unknown storage type: {settings.FILE_STORAGE_TYPE}")
