"""Garbage collection of content no longer referenced by recent deployments.

A file record is an orphan when no deployment created after the cutoff links
it (older deployments do not protect it). Collection marks every candidate
unstored, deletes its blob, and deletes the catalog row last. A blob that
could not be deleted keeps its row, so the content stays tracked and the next
run retries it; a row left behind by an interrupted run is unstored, so the
next ingestion of that content rewrites the blob.

Runs are restartable. Re-running after a crash re-detects the remaining
orphans; deleting an already-deleted blob succeeds.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from deploystore.errors import BlobStoreError, OrphanDeletePartialFailure
from deploystore.models import FileRecord
from deploystore.services.catalog import CatalogStore, as_utc, utcnow
from deploystore.storage import BlobStore

logger = logging.getLogger(__name__)


@dataclass
class GcReport:
    """Outcome of a collection run."""

    cutoff: datetime
    candidates: list[FileRecord] = field(default_factory=list)
    deleted: list[FileRecord] = field(default_factory=list)
    failures: list[OrphanDeletePartialFailure] = field(default_factory=list)
    dry_run: bool = False

    @property
    def reclaimed_bytes(self) -> int:
        return sum(record.byte_size for record in self.deleted)


def cutoff_for_retention(retention: timedelta, *, now: datetime | None = None) -> datetime:
    """Cutoff that keeps content used by deployments newer than ``retention``."""
    return as_utc(now or utcnow()) - retention


class GarbageCollector:
    """Reclaims blobs and file records no recent deployment references.

    Usage:
        collector = GarbageCollector(catalog, blobs)
        report = await collector.collect(cutoff_for_retention(timedelta(days=7)))
    """

    def __init__(self, catalog: CatalogStore, blobs: BlobStore) -> None:
        self._catalog = catalog
        self._blobs = blobs

    async def collect(self, cutoff: datetime, *, dry_run: bool = False) -> GcReport:
        """Delete every orphan relative to ``cutoff``.

        The cutoff should trail the current time by more than the longest
        ingestion, so an in-flight deployment is never older than it.

        Args:
            cutoff: Deployments created after this instant protect their files.
            dry_run: Only report the candidates.

        Returns:
            Report listing deleted records and per-file failures. Blob delete
            failures do not abort the run.

        Raises:
            CatalogUnavailable: The orphan query or catalog delete failed.
        """
        cutoff = as_utc(cutoff)
        candidates = await self._catalog.list_orphan_files(cutoff)
        report = GcReport(cutoff=cutoff, candidates=candidates, dry_run=dry_run)
        logger.info("Found %d unused files before %s", len(candidates), cutoff.isoformat())
        if dry_run or not candidates:
            return report

        # Unmark first: if the run stops after a blob delete, any ingestion of
        # that content must rewrite the blob instead of trusting the row
        await self._catalog.set_stored([record.file_id for record in candidates], stored=False)

        blob_deleted: list[FileRecord] = []
        for record in candidates:
            try:
                await self._blobs.delete(record.content_hash)
            except BlobStoreError as exc:
                logger.warning("Could not delete blob %s: %s", record.content_hash, exc)
                report.failures.append(
                    OrphanDeletePartialFailure(
                        f"blob delete failed: {exc}",
                        file_id=record.file_id,
                        content_hash=record.content_hash,
                    )
                )
                continue
            blob_deleted.append(record)

        deleted_ids = set(
            await self._catalog.delete_files(
                [record.file_id for record in blob_deleted], cutoff=cutoff
            )
        )
        report.deleted = [record for record in blob_deleted if record.file_id in deleted_ids]

        relinked = [record for record in blob_deleted if record.file_id not in deleted_ids]
        if relinked:
            # Linked by a new deployment after detection; the next ingestion of
            # this content must rewrite the blob
            await self._catalog.set_stored([record.file_id for record in relinked], stored=False)
            for record in relinked:
                logger.error(
                    "File %s was re-linked during collection; its blob was deleted",
                    record.content_hash,
                )
                report.failures.append(
                    OrphanDeletePartialFailure(
                        "re-linked after blob deletion; re-upload required",
                        file_id=record.file_id,
                        content_hash=record.content_hash,
                    )
                )

        logger.info(
            "[GC] cutoff=%s candidates=%d deleted=%d failed=%d reclaimed=%dB",
            cutoff.isoformat(),
            len(candidates),
            len(report.deleted),
            len(report.failures),
            report.reclaimed_bytes,
        )
        return report
