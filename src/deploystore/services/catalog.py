"""Catalog service: relational bookkeeping for deployments and their files.

The catalog tracks three things:
- Deployments (append-only)
- File records, one per distinct content hash
- Links from a deployment's paths to file records

Each public operation runs in its own transaction. The unique constraint on
``files.content_hash`` is the only mutual exclusion between concurrent
ingestors uploading identical content.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator, Callable, Iterable, Sequence
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

from sqlalchemy import and_, delete, exists, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import DBAPIError, IntegrityError, InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from deploystore.errors import (
    CatalogConflict,
    CatalogUnavailable,
    DeploymentNotFound,
    DuplicatePath,
)
from deploystore.models import Deployment, DeploymentFile, FileRecord

logger = logging.getLogger(__name__)

# Keeps IN (...) lists under driver parameter limits
_DELETE_BATCH_SIZE = 500

_INSERT_BY_DIALECT = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Normalize a timestamp to UTC; naive values are taken to be UTC already."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def new_deployment_id() -> str:
    return uuid4().hex


@dataclass(frozen=True)
class UpsertResult:
    """Outcome of ``upsert_file_by_hash``.

    ``created`` is True for exactly one caller per content hash. ``pending``
    is True when the record exists but its bytes were never confirmed stored,
    in which case the caller must (re)write the blob.
    """

    file_id: int
    created: bool
    pending: bool = False

    @property
    def needs_upload(self) -> bool:
        return self.created or self.pending


@dataclass(frozen=True)
class FileLink:
    """A path to be linked into a deployment."""

    file_id: int
    path: str
    mime_type: str = ""


@dataclass(frozen=True)
class DeploymentFileEntry:
    """A file served by a deployment, joined with its content record."""

    path: str
    file_id: int
    mime_type: str
    byte_size: int
    content_hash: str


class CatalogStore:
    """Persistence for deployments, file records and deployment links.

    Usage:
        catalog = CatalogStore(engine)
        deployment = await catalog.create_deployment("site_1")
        result = await catalog.upsert_file_by_hash(digest, 42)
    """

    def __init__(
        self,
        engine: AsyncEngine,
        *,
        clock: Callable[[], datetime] = utcnow,
        id_factory: Callable[[], str] = new_deployment_id,
    ) -> None:
        dialect = engine.dialect.name
        if dialect not in _INSERT_BY_DIALECT:
            raise ValueError(f"Unsupported catalog dialect: {dialect}")
        self._insert = _INSERT_BY_DIALECT[dialect]
        self._session_factory = async_sessionmaker(
            engine, class_=AsyncSession, expire_on_commit=False
        )
        self._clock = clock
        self._id_factory = id_factory

    @asynccontextmanager
    async def _transaction(self) -> AsyncIterator[AsyncSession]:
        """Open a session with a transaction, translating connectivity errors."""
        try:
            async with self._session_factory() as session, session.begin():
                yield session
        except (OperationalError, InterfaceError) as exc:
            raise CatalogUnavailable(f"catalog unavailable: {exc.orig or exc}") from exc
        except DBAPIError as exc:
            if exc.connection_invalidated:
                raise CatalogUnavailable(f"catalog connection lost: {exc.orig or exc}") from exc
            raise
        except (ConnectionError, TimeoutError) as exc:
            raise CatalogUnavailable(f"catalog unreachable: {exc}") from exc

    # ── Deployments ──────────────────────────────────────────────────────────

    async def create_deployment(
        self,
        site_id: str,
        context: str | None = None,
        *,
        created_at: datetime | None = None,
    ) -> Deployment:
        """Create a deployment row. Deployments are never updated afterwards."""
        deployment = Deployment(
            deployment_id=self._id_factory(),
            site_id=site_id,
            context=context,
            created_at=as_utc(created_at) if created_at else self._clock(),
        )
        async with self._transaction() as session:
            session.add(deployment)
        logger.info("Created deployment %s for site %s", deployment.deployment_id, site_id)
        return deployment

    async def get_deployment(self, deployment_id: str) -> Deployment:
        """Fetch a deployment.

        Raises:
            DeploymentNotFound: If no deployment has this id.
        """
        async with self._transaction() as session:
            deployment = await session.get(Deployment, deployment_id)
        if deployment is None:
            raise DeploymentNotFound("no such deployment", path=deployment_id)
        return deployment

    # ── File records ─────────────────────────────────────────────────────────

    async def upsert_file_by_hash(self, content_hash: str, byte_size: int) -> UpsertResult:
        """Insert a file record for ``content_hash`` or fetch the existing one.

        ``INSERT ... ON CONFLICT DO NOTHING RETURNING`` decides the race: the
        caller whose insert returns a row created the record. Losers read the
        winner's row afterwards; the read is a separate statement so it sees
        rows committed while the insert waited on the unique index.
        """
        insert_stmt = (
            self._insert(FileRecord)
            .values(
                content_hash=content_hash,
                byte_size=byte_size,
                stored=False,
                created_at=self._clock(),
            )
            .on_conflict_do_nothing(index_elements=[FileRecord.content_hash])
            .returning(FileRecord.file_id)
        )
        async with self._transaction() as session:
            file_id = (await session.execute(insert_stmt)).scalar_one_or_none()
            if file_id is not None:
                return UpsertResult(file_id=file_id, created=True)

            row = (
                await session.execute(
                    select(FileRecord.file_id, FileRecord.stored).where(
                        FileRecord.content_hash == content_hash
                    )
                )
            ).one_or_none()

        if row is None:
            # Deleted by GC between our insert and read
            raise CatalogConflict("file record vanished during upsert", path=content_hash)
        return UpsertResult(file_id=row.file_id, created=False, pending=not row.stored)

    async def set_stored(self, file_ids: Iterable[int], stored: bool = True) -> None:
        """Record whether the blobs for ``file_ids`` are durably stored."""
        ids = list(file_ids)
        if not ids:
            return
        async with self._transaction() as session:
            await session.execute(
                update(FileRecord).where(FileRecord.file_id.in_(ids)).values(stored=stored)
            )

    async def get_file_by_hash(self, content_hash: str) -> FileRecord | None:
        async with self._transaction() as session:
            return (
                await session.execute(
                    select(FileRecord).where(FileRecord.content_hash == content_hash)
                )
            ).scalar_one_or_none()

    # ── Links ────────────────────────────────────────────────────────────────

    async def link_file(
        self, deployment_id: str, file_id: int, path: str, mime_type: str = ""
    ) -> None:
        """Link one path of a deployment to a file record.

        Raises:
            DuplicatePath: If the deployment already serves ``path``.
            CatalogConflict: If the file record no longer exists.
        """
        await self.link_files(deployment_id, [FileLink(file_id, path, mime_type)])

    async def link_files(self, deployment_id: str, links: Sequence[FileLink]) -> None:
        """Link many paths of a deployment in a single transaction.

        Either every link is written or none is, so readers never see a
        partially linked deployment.

        Raises:
            DuplicatePath: If a path repeats in ``links`` or is already linked.
            CatalogConflict: If a referenced file record no longer exists.
        """
        if not links:
            return

        seen: set[str] = set()
        for link in links:
            if link.path in seen:
                raise DuplicatePath("duplicate path in deployment", path=link.path)
            seen.add(link.path)

        try:
            async with self._transaction() as session:
                session.add_all(
                    DeploymentFile(
                        deployment_id=deployment_id,
                        file_id=link.file_id,
                        path=link.path,
                        mime_type=link.mime_type,
                    )
                    for link in links
                )
        except IntegrityError as exc:
            raise await self._explain_link_failure(deployment_id, links) from exc

    async def _explain_link_failure(
        self, deployment_id: str, links: Sequence[FileLink]
    ) -> Exception:
        """Work out which constraint a failed link insert hit."""
        paths = [link.path for link in links]
        file_ids = {link.file_id for link in links}
        async with self._transaction() as session:
            existing_path = (
                await session.execute(
                    select(DeploymentFile.path)
                    .where(
                        DeploymentFile.deployment_id == deployment_id,
                        DeploymentFile.path.in_(paths),
                    )
                    .limit(1)
                )
            ).scalar_one_or_none()
            if existing_path is not None:
                return DuplicatePath("path already linked in deployment", path=existing_path)

            if await session.get(Deployment, deployment_id) is None:
                return DeploymentNotFound("no such deployment", path=deployment_id)

            present = set(
                (
                    await session.execute(
                        select(FileRecord.file_id).where(FileRecord.file_id.in_(file_ids))
                    )
                ).scalars()
            )
        missing = sorted(file_ids - present)
        return CatalogConflict(f"file records removed concurrently: {missing}")

    async def list_deployment_files(self, deployment_id: str) -> list[DeploymentFileEntry]:
        """List every path a deployment serves, ordered by path."""
        stmt = (
            select(
                DeploymentFile.path,
                DeploymentFile.file_id,
                DeploymentFile.mime_type,
                FileRecord.byte_size,
                FileRecord.content_hash,
            )
            .join(FileRecord, DeploymentFile.file_id == FileRecord.file_id)
            .where(DeploymentFile.deployment_id == deployment_id)
            .order_by(DeploymentFile.path)
        )
        async with self._transaction() as session:
            rows = (await session.execute(stmt)).all()
        return [_entry_from_row(row) for row in rows]

    async def get_deployment_file(
        self, deployment_id: str, path: str
    ) -> DeploymentFileEntry | None:
        """Resolve one path of a deployment to its content record."""
        stmt = (
            select(
                DeploymentFile.path,
                DeploymentFile.file_id,
                DeploymentFile.mime_type,
                FileRecord.byte_size,
                FileRecord.content_hash,
            )
            .join(FileRecord, DeploymentFile.file_id == FileRecord.file_id)
            .where(DeploymentFile.deployment_id == deployment_id, DeploymentFile.path == path)
        )
        async with self._transaction() as session:
            row = (await session.execute(stmt)).one_or_none()
        return _entry_from_row(row) if row is not None else None

    # ── Garbage collection support ───────────────────────────────────────────

    async def list_orphan_files(self, cutoff: datetime) -> list[FileRecord]:
        """List file records not linked by any deployment created after ``cutoff``.

        Records created after the cutoff are excluded as well: they belong to
        ingestions that may still be in flight and not yet linked.
        """
        cutoff = as_utc(cutoff)
        async with self._transaction() as session:
            result = await session.execute(
                select(FileRecord)
                .where(~_recently_linked(cutoff), FileRecord.created_at <= cutoff)
                .order_by(FileRecord.file_id)
            )
            return list(result.scalars())

    async def delete_files(
        self, file_ids: Iterable[int], *, cutoff: datetime | None = None
    ) -> list[int]:
        """Delete file records and their links in one transaction.

        With ``cutoff``, a record is only deleted if it is still an orphan
        relative to that cutoff; records re-linked in the meantime survive.

        Returns:
            Ids of the records actually deleted.
        """
        ids = sorted(set(file_ids))
        if not ids:
            return []

        deleted: list[int] = []
        async with self._transaction() as session:
            for start in range(0, len(ids), _DELETE_BATCH_SIZE):
                batch = ids[start : start + _DELETE_BATCH_SIZE]
                conditions: list[Any] = [FileRecord.file_id.in_(batch)]
                if cutoff is not None:
                    conditions.append(~_recently_linked(as_utc(cutoff)))
                deletable = list(
                    (await session.execute(select(FileRecord.file_id).where(*conditions))).scalars()
                )
                if not deletable:
                    continue
                await session.execute(
                    delete(DeploymentFile).where(DeploymentFile.file_id.in_(deletable))
                )
                await session.execute(delete(FileRecord).where(FileRecord.file_id.in_(deletable)))
                deleted.extend(deletable)

        logger.debug("Deleted %d of %d file records", len(deleted), len(ids))
        return deleted


def _recently_linked(cutoff: datetime) -> Any:
    """EXISTS clause: the file is linked by a deployment created after ``cutoff``."""
    return exists().where(
        and_(
            DeploymentFile.file_id == FileRecord.file_id,
            DeploymentFile.deployment_id == Deployment.deployment_id,
            Deployment.created_at > cutoff,
        )
    )


def _entry_from_row(row: Any) -> DeploymentFileEntry:
    return DeploymentFileEntry(
        path=row.path,
        file_id=row.file_id,
        mime_type=row.mime_type,
        byte_size=row.byte_size,
        content_hash=row.content_hash,
    )
