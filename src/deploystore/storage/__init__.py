"""Blob store backends."""

from __future__ import annotations

from deploystore.config import Settings
from deploystore.storage.base import BlobStore, validate_key
from deploystore.storage.filesystem import FilesystemBlobStore
from deploystore.storage.s3 import S3BlobStore


def build_blob_store(config: Settings) -> BlobStore:
    """Create the blob store selected by ``config.blob_backend``."""
    if config.blob_backend == "s3":
        return S3BlobStore(
            config.s3_bucket,
            prefix=config.s3_prefix,
            region=config.s3_region,
            endpoint_url=config.s3_endpoint_url,
        )
    return FilesystemBlobStore(config.blob_root)


__all__ = [
    "BlobStore",
    "FilesystemBlobStore",
    "S3BlobStore",
    "build_blob_store",
    "validate_key",
]
