"""Error taxonomy for ingestion, catalog, blob storage and garbage collection.

Every error carries a ``retryable`` flag. Retryable errors are transient
(availability, lost races) and the caller may repeat the whole operation;
ingestion is idempotent by content hash, so retrying a deployment is safe.
"""

from __future__ import annotations


class DeployStoreError(Exception):
    """Base class for all deploystore errors."""

    retryable: bool = False

    def __init__(self, message: str, *, path: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.path = path

    def __str__(self) -> str:
        if self.path is not None:
            return f"{self.path}: {self.message}"
        return self.message


# ── Ingestion ────────────────────────────────────────────────────────────────


class IngestError(DeployStoreError):
    """A deployment ingestion was aborted."""


class ArchiveCorrupt(IngestError):
    """The archive cannot be decoded, or contains an unsafe entry."""


class DuplicatePath(IngestError):
    """Two entries map to the same path within one deployment."""


class BlobWriteInconsistency(IngestError):
    """A file record needs its bytes stored but the blob write failed.

    The record stays marked as not stored; re-running the ingestion rewrites
    the blob.
    """

    retryable = True


# ── Catalog ──────────────────────────────────────────────────────────────────


class CatalogError(DeployStoreError):
    """Catalog (relational store) failure."""


class CatalogUnavailable(CatalogError):
    """The catalog database could not be reached or dropped the connection."""

    retryable = True


class CatalogConflict(CatalogError):
    """A referenced file record was removed concurrently (e.g. by GC)."""

    retryable = True


class DeploymentNotFound(CatalogError):
    """No deployment exists with the requested id."""


# ── Blob store ───────────────────────────────────────────────────────────────


class BlobStoreError(DeployStoreError):
    """Blob store failure."""


class BlobStoreUnavailable(BlobStoreError):
    """Transient network or availability failure."""

    retryable = True


class BlobStoreRejected(BlobStoreError):
    """Permanent failure: permission denied, quota exhausted, or key collision."""


class BlobNotFound(BlobStoreError):
    """No blob exists under the requested key."""


# ── Garbage collection ───────────────────────────────────────────────────────


class GcError(DeployStoreError):
    """Garbage collection failure."""


class OrphanDeletePartialFailure(GcError):
    """One orphan could not be fully reclaimed.

    Collected in ``GcReport.failures``; never raised by a collection run.
    """

    def __init__(self, message: str, *, file_id: int, content_hash: str) -> None:
        super().__init__(message, path=content_hash)
        self.file_id = file_id
        self.content_hash = content_hash
