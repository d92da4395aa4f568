"""Blob store interface."""

from __future__ import annotations

import re
from typing import Final, Protocol

_KEY_PATTERN: Final = re.compile(r"^[0-9a-f]{16,128}$")


def validate_key(key: str) -> str:
    """Check that a blob key is a lowercase hex content hash."""
    if not _KEY_PATTERN.match(key):
        raise ValueError(f"Invalid blob key {key!r}: expected lowercase hex digest")
    return key


class BlobStore(Protocol):
    """Durable object store keyed by content hash.

    Contract:
    - ``put`` is idempotent: writing identical bytes under an existing key
      succeeds without change. Different bytes under an existing key raise
      ``BlobStoreRejected`` rather than overwrite.
    - ``get`` raises ``BlobNotFound`` for an absent key.
    - ``delete`` of an absent key succeeds.
    - Transient failures raise ``BlobStoreUnavailable`` (retryable);
      permission and quota failures raise ``BlobStoreRejected``.
    """

    async def put(self, key: str, data: bytes, content_type: str = "") -> None: ...

    async def get(self, key: str) -> bytes: ...

    async def delete(self, key: str) -> None: ...
