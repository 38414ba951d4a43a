"""Shared fixtures for unit and feature tests."""

from __future__ import annotations

import typing as typ

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from cisync.store.database import DatabaseImageSetStore, init_imageset_storage
from tests.helpers.fakes import FakeSourceProvider, RecordingImageSetStore

if typ.TYPE_CHECKING:
    from pathlib import Path


@pytest_asyncio.fixture
async def session_factory(
    tmp_path: Path,
) -> typ.AsyncIterator[async_sessionmaker[AsyncSession]]:
    """Yield a fresh async session factory backed by sqlite."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'cisync_test.db'}")
    await init_imageset_storage(engine)
    try:
        yield async_sessionmaker(engine, expire_on_commit=False)
    finally:
        await engine.dispose()


@pytest.fixture
def database_store(
    session_factory: async_sessionmaker[AsyncSession],
) -> DatabaseImageSetStore:
    """Return a database store bound to the sqlite session factory."""
    return DatabaseImageSetStore(session_factory)


@pytest.fixture
def memory_store() -> RecordingImageSetStore:
    """Return an empty in-memory store that records every call."""
    return RecordingImageSetStore()


@pytest.fixture
def snapshot_root(tmp_path: Path) -> Path:
    """Return an empty directory standing in for a repository checkout."""
    root = tmp_path / "checkout"
    root.mkdir()
    return root


@pytest.fixture
def fake_source(snapshot_root: Path) -> FakeSourceProvider:
    """Return a source provider serving ``snapshot_root`` at revision ``r1``."""
    return FakeSourceProvider(snapshot_root, revision="r1")
