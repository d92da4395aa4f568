"""Shared pytest fixtures for deploystore tests."""

from __future__ import annotations

import io
import zipfile
from collections.abc import AsyncGenerator, Mapping
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

import pytest

from deploystore.db import create_engine, drop_db, init_db
from deploystore.errors import BlobNotFound, BlobStoreUnavailable
from deploystore.services import CatalogStore

if TYPE_CHECKING:
    from pathlib import Path

    from sqlalchemy.ext.asyncio import AsyncEngine


T0 = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """Deterministic clock for catalog timestamps."""

    def __init__(self, start: datetime = T0) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


class MemoryBlobStore:
    """In-memory blob store that records calls and can inject failures."""

    def __init__(self) -> None:
        self.data: dict[str, bytes] = {}
        self.content_types: dict[str, str] = {}
        self.puts: list[str] = []
        self.deletes: list[str] = []
        self.fail_puts: set[str] = set()
        self.fail_deletes: set[str] = set()

    async def put(self, key: str, data: bytes, content_type: str = "") -> None:
        if key in self.fail_puts:
            raise BlobStoreUnavailable("injected put failure", path=key)
        self.puts.append(key)
        self.data[key] = data
        self.content_types[key] = content_type

    async def get(self, key: str) -> bytes:
        try:
            return self.data[key]
        except KeyError:
            raise BlobNotFound("no such blob", path=key) from None

    async def delete(self, key: str) -> None:
        if key in self.fail_deletes:
            raise BlobStoreUnavailable("injected delete failure", path=key)
        self.deletes.append(key)
        self.data.pop(key, None)


def make_zip(entries: Mapping[str, bytes | None], *, stored: bool = False) -> bytes:
    """Build a ZIP archive in memory. ``None`` content marks a directory entry."""
    buffer = io.BytesIO()
    compression = zipfile.ZIP_STORED if stored else zipfile.ZIP_DEFLATED
    with zipfile.ZipFile(buffer, "w", compression=compression) as archive:
        for name, content in entries.items():
            if content is None:
                archive.writestr(zipfile.ZipInfo(name.rstrip("/") + "/"), b"")
            else:
                archive.writestr(name, content)
    return buffer.getvalue()


@pytest.fixture
async def test_engine(tmp_path: Path) -> AsyncGenerator[AsyncEngine, None]:
    """Create a catalog engine on a throwaway SQLite database.

    A file-backed database gives every session its own connection, so
    concurrent transactions behave like they do against a server.
    """
    engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'catalog.db'}", echo=False)
    await init_db(engine)

    yield engine

    await drop_db(engine)
    await engine.dispose()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def catalog(test_engine: AsyncEngine, clock: FakeClock) -> CatalogStore:
    return CatalogStore(test_engine, clock=clock)


@pytest.fixture
def blobs() -> MemoryBlobStore:
    return MemoryBlobStore()
