"""Ingestion, catalog and garbage collection services."""

from deploystore.services.catalog import (
    CatalogStore,
    DeploymentFileEntry,
    FileLink,
    UpsertResult,
)
from deploystore.services.gc import GarbageCollector, GcReport, cutoff_for_retention
from deploystore.services.ingest import DeploymentIngestor, IngestReport

__all__ = [
    "CatalogStore",
    "DeploymentFileEntry",
    "DeploymentIngestor",
    "FileLink",
    "GarbageCollector",
    "GcReport",
    "IngestReport",
    "UpsertResult",
    "cutoff_for_retention",
]
