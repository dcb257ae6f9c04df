"""
Test configuration and shared fixtures.
Uses an in-memory SQLite database (fresh per test) and a temporary byte store.
"""
from __future__ import annotations

import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")

from collections.abc import AsyncGenerator, Iterator
from pathlib import Path
from typing import Any

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event, text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from blogfiles.core.rate_limit import limiter
from blogfiles.core.security import create_access_token
from blogfiles.db.base import Base
from blogfiles.db.session import get_db
from blogfiles.main import app
from blogfiles.models.user import User
from blogfiles.services.byte_store import LocalByteStore, get_byte_store

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

limiter.enabled = False


# ── Test database ─────────────────────────────────────────────────────────────

@pytest_asyncio.fixture
async def test_engine() -> AsyncGenerator[AsyncEngine, None]:
    """A private in-memory database with all tables created."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    # Let SQLAlchemy issue BEGIN itself so SAVEPOINTs behave as on Postgres
    @event.listens_for(engine.sync_engine, "connect")
    def _disable_driver_transactions(dbapi_connection: Any, connection_record: Any) -> None:
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _begin(conn: Any) -> None:
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture
async def db(test_engine: AsyncEngine) -> AsyncGenerator[AsyncSession, None]:
    session_factory = async_sessionmaker(
        bind=test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )
    async with session_factory() as session:
        yield session


@pytest.fixture
def statements(test_engine: AsyncEngine) -> Iterator[list[str]]:
    """Collects every SQL statement sent to the test database."""
    executed: list[str] = []

    def _record(conn: Any, cursor: Any, statement: str, *args: Any) -> None:
        executed.append(statement)

    event.listen(test_engine.sync_engine, "before_cursor_execute", _record)
    yield executed
    event.remove(test_engine.sync_engine, "before_cursor_execute", _record)


@pytest.fixture
def byte_store(tmp_path: Path) -> LocalByteStore:
    return LocalByteStore(tmp_path / "uploads")


@pytest_asyncio.fixture
async def client(
    db: AsyncSession, byte_store: LocalByteStore
) -> AsyncGenerator[AsyncClient, None]:
    """Provide an async HTTP test client with the test DB and byte store injected."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        yield db

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_byte_store] = lambda: byte_store

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


# ── Helper fixtures ───────────────────────────────────────────────────────────

async def _make_user(db: AsyncSession, username: str, role: str = "user") -> User:
    user = User(
        email=f"{username}@example.com",
        username=username,
        full_name=username.title(),
        role=role,
        is_active=True,
    )
    db.add(user)
    await db.flush()
    await db.refresh(user)
    return user


def _headers_for(user: User) -> dict[str, str]:
    token = create_access_token(str(user.id), user.role)
    return {"Authorization": f"Bearer {token}"}


@pytest_asyncio.fixture
async def user(db: AsyncSession) -> User:
    return await _make_user(db, "writer")


@pytest_asyncio.fixture
async def other_user(db: AsyncSession) -> User:
    return await _make_user(db, "someoneelse")


@pytest_asyncio.fixture
async def admin(db: AsyncSession) -> User:
    return await _make_user(db, "editor", role="admin")


@pytest.fixture
def auth_headers(user: User) -> dict[str, str]:
    return _headers_for(user)


@pytest.fixture
def other_headers(other_user: User) -> dict[str, str]:
    return _headers_for(other_user)


@pytest.fixture
def admin_headers(admin: User) -> dict[str, str]:
    return _headers_for(admin)


@pytest.fixture
def make_file(db: AsyncSession, user: User):
    """Factory creating file records through the service, TEMPORARY unless attached."""
    from blogfiles.schemas.uploaded_file import UploadedFileCreate
    from blogfiles.services.uploaded_file_service import uploaded_file_service

    async def _make(**overrides: Any):
        fields: dict[str, Any] = {
            "filename": "4f1c.png",
            "original_name": "header.png",
            "file_type": "image",
            "mime_type": "image/png",
            "size": 1024,
            "checksum": "d41d8cd98f00b204e9800998ecf8427e",
            "uploaded_by": user.id,
            **overrides,
        }
        return await uploaded_file_service.upload_file(
            db, file_in=UploadedFileCreate(**fields)
        )

    return _make


@pytest.fixture
def reject_updates(db: AsyncSession):
    """Installs a trigger that makes the database refuse any UPDATE of one record."""

    async def _reject(record) -> None:
        key = record.id.hex
        await db.execute(
            text(
                f"CREATE TRIGGER reject_{key} BEFORE UPDATE ON uploaded_files "
                f"WHEN OLD.id = '{key}' "
                "BEGIN SELECT RAISE(ABORT, 'rejected by store'); END"
            )
        )

    return _reject
