"""Database connection and session management."""

from __future__ import annotations

from typing import Any

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from deploystore.config import settings
from deploystore.models import Base


def create_engine(
    url: str | None = None, *, echo: bool | None = None, **kwargs: Any
) -> AsyncEngine:
    """Create an async engine for the catalog.

    SQLite connections get foreign key enforcement switched on so link rows
    cannot reference missing file records, matching PostgreSQL.
    """
    new_engine = create_async_engine(
        url or settings.database_url,
        echo=settings.database_echo if echo is None else echo,
        **kwargs,
    )
    if new_engine.dialect.name == "sqlite":
        event.listen(new_engine.sync_engine, "connect", _enable_sqlite_foreign_keys)
    return new_engine


def _enable_sqlite_foreign_keys(dbapi_connection: Any, _connection_record: Any) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


engine = create_engine()


async def init_db(target: AsyncEngine | None = None) -> None:
    """Create catalog tables if they do not exist."""
    async with (target or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def drop_db(target: AsyncEngine | None = None) -> None:
    """Drop all catalog tables."""
    async with (target or engine).begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
