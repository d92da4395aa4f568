"""Deployment ingestion: archive → content-addressed catalog + blob store.

For each file entry of an archive:
1. Read the bytes and fingerprint them (SHA-256, size, sniffed MIME type)
2. Upsert the file record by hash; exactly one ingestor ever creates it
3. Write the blob if the record is new (or was left pending by a failed
   writer), then mark it stored
4. Collect the link ``(deployment, path) → file``

Links are written in one transaction after every entry succeeded, so a
failed ingestion never exposes a partially linked deployment. File records
and blobs created before a failure are left in place: they are keyed by
content, so a retry reuses them, and GC reclaims them if nothing links them.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Sequence
from dataclasses import dataclass

from deploystore.errors import (
    BlobStoreError,
    BlobWriteInconsistency,
    DeployStoreError,
    DuplicatePath,
)
from deploystore.extraction import ArchiveEntry, ArchiveExtractor, ZipArchiveExtractor, read_entry
from deploystore.models import Deployment
from deploystore.services.catalog import CatalogStore, FileLink
from deploystore.storage import BlobStore
from deploystore.utils.hashing import ContentDigest, ContentHasher

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IngestReport:
    """Summary of one successful ingestion."""

    deployment_id: str
    files: int  # links created
    stored: int  # blobs written by this ingestion
    deduplicated: int  # entries whose content was already stored
    directories: int  # directory entries skipped
    elapsed_ms: float = 0.0


@dataclass(frozen=True)
class _Resolved:
    file_id: int
    uploaded: bool


class DeploymentIngestor:
    """Ingests deployment archives into the catalog and blob store.

    Usage:
        ingestor = DeploymentIngestor(catalog, blobs, concurrency=4)
        report = await ingestor.ingest(deployment, archive_bytes)
    """

    def __init__(
        self,
        catalog: CatalogStore,
        blobs: BlobStore,
        *,
        extractor: ArchiveExtractor | None = None,
        hasher: ContentHasher | None = None,
        concurrency: int = 1,
    ) -> None:
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self._catalog = catalog
        self._blobs = blobs
        self._extractor = extractor or ZipArchiveExtractor()
        self._hasher = hasher or ContentHasher()
        self._concurrency = concurrency

    async def ingest(self, deployment: Deployment, archive: bytes) -> IngestReport:
        """Ingest an archive into ``deployment``.

        Raises:
            ArchiveCorrupt: The archive is malformed (before any write).
            DuplicatePath: Two entries share a path (before any write).
            BlobWriteInconsistency: A new file's blob could not be written.
            CatalogUnavailable, CatalogConflict, BlobStoreUnavailable:
                Transient failures; retry the whole ingestion.
        """
        start_time = time.time()
        entries = list(self._extractor.open(archive))
        files = [entry for entry in entries if not entry.is_directory]
        directories = len(entries) - len(files)
        _check_unique_paths(files)

        by_hash: dict[str, asyncio.Task[_Resolved]] = {}
        links: list[FileLink] = []
        for batch in _batches(files, self._concurrency):
            results = await asyncio.gather(
                *(self._process(entry, by_hash) for entry in batch), return_exceptions=True
            )
            for entry, result in zip(batch, results, strict=True):
                if isinstance(result, BaseException):
                    _annotate(result, entry.path)
                    logger.warning(
                        "Ingestion of deployment %s failed at %s: %s",
                        deployment.deployment_id,
                        entry.path,
                        result,
                    )
                    raise result
                links.append(result)

        await self._catalog.link_files(deployment.deployment_id, links)

        stored = sum(task.result().uploaded for task in by_hash.values())
        report = IngestReport(
            deployment_id=deployment.deployment_id,
            files=len(links),
            stored=stored,
            deduplicated=len(links) - stored,
            directories=directories,
            elapsed_ms=(time.time() - start_time) * 1000,
        )
        logger.info(
            "[INGEST] deployment=%s entries=%d stored=%d deduplicated=%d directories=%d (%.0fms)",
            report.deployment_id,
            len(entries),
            report.stored,
            report.deduplicated,
            report.directories,
            report.elapsed_ms,
        )
        return report

    async def _process(
        self, entry: ArchiveEntry, by_hash: dict[str, asyncio.Task[_Resolved]]
    ) -> FileLink:
        """Fingerprint one entry and resolve it to a stored file record.

        Entries with the same content share one resolution task.
        """
        data = read_entry(entry)
        digest = self._hasher.digest(data)
        logger.debug("Hashed %s → %s (%d bytes)", entry.path, digest.content_hash, digest.byte_size)

        task = by_hash.get(digest.content_hash)
        if task is None:
            task = asyncio.ensure_future(self._store(digest, data))
            by_hash[digest.content_hash] = task
        resolved = await task
        return FileLink(file_id=resolved.file_id, path=entry.path, mime_type=digest.mime_type)

    async def _store(self, digest: ContentDigest, data: bytes) -> _Resolved:
        """Upsert the file record for ``digest`` and write its blob if needed."""
        result = await self._catalog.upsert_file_by_hash(digest.content_hash, digest.byte_size)
        if not result.needs_upload:
            logger.debug("Content %s already stored", digest.content_hash)
            return _Resolved(result.file_id, uploaded=False)

        try:
            await self._blobs.put(digest.content_hash, data, digest.mime_type)
        except BlobStoreError as exc:
            # The record stays stored=False; the next upsert of this hash rewrites it
            raise BlobWriteInconsistency(
                f"blob write failed for new file {digest.content_hash}: {exc}"
            ) from exc

        await self._catalog.set_stored([result.file_id])
        return _Resolved(result.file_id, uploaded=True)


def _check_unique_paths(files: Sequence[ArchiveEntry]) -> None:
    seen: set[str] = set()
    for entry in files:
        if entry.path in seen:
            raise DuplicatePath("duplicate path in archive", path=entry.path)
        seen.add(entry.path)


def _batches(items: Sequence[ArchiveEntry], size: int) -> list[Sequence[ArchiveEntry]]:
    return [items[i : i + size] for i in range(0, len(items), size)]


def _annotate(exc: BaseException, path: str) -> None:
    if isinstance(exc, DeployStoreError) and exc.path is None:
        exc.path = path
