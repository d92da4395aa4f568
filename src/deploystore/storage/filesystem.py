"""Local filesystem blob store."""

from __future__ import annotations

import asyncio
import errno
import logging
import os
import tempfile
from pathlib import Path

from deploystore.errors import (
    BlobNotFound,
    BlobStoreError,
    BlobStoreRejected,
    BlobStoreUnavailable,
)
from deploystore.storage.base import validate_key

logger = logging.getLogger(__name__)

# Errors that will not go away by retrying
_PERMANENT_ERRNOS = frozenset({errno.EACCES, errno.EPERM, errno.ENOSPC, errno.EDQUOT, errno.EROFS})


class FilesystemBlobStore:
    """Stores blobs as files under ``root/<key[:2]>/<key>``.

    Writes go to a temporary file in the target directory and are renamed
    into place, so readers never observe partial content.
    """

    def __init__(self, root: str | Path) -> None:
        self._root = Path(root)

    @property
    def root(self) -> Path:
        return self._root

    def path_for(self, key: str) -> Path:
        validate_key(key)
        return self._root / key[:2] / key

    async def put(self, key: str, data: bytes, content_type: str = "") -> None:
        await asyncio.to_thread(self._put, key, data)

    async def get(self, key: str) -> bytes:
        return await asyncio.to_thread(self._get, key)

    async def delete(self, key: str) -> None:
        await asyncio.to_thread(self._delete, key)

    def _put(self, key: str, data: bytes) -> None:
        target = self.path_for(key)
        try:
            if target.exists():
                if target.read_bytes() == data:
                    logger.debug("Blob %s already present", key)
                    return
                raise BlobStoreRejected("existing blob has different content", path=key)

            target.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=target.parent, prefix=f".{key}.")
            try:
                with os.fdopen(fd, "wb") as handle:
                    handle.write(data)
                    handle.flush()
                    os.fsync(handle.fileno())
                os.replace(tmp_name, target)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as exc:
            raise _translate_os_error(exc, key) from exc

    def _get(self, key: str) -> bytes:
        try:
            return self.path_for(key).read_bytes()
        except FileNotFoundError as exc:
            raise BlobNotFound("no such blob", path=key) from exc
        except OSError as exc:
            raise _translate_os_error(exc, key) from exc

    def _delete(self, key: str) -> None:
        try:
            self.path_for(key).unlink(missing_ok=True)
        except OSError as exc:
            raise _translate_os_error(exc, key) from exc


def _translate_os_error(exc: OSError, key: str) -> BlobStoreError:
    if exc.errno in _PERMANENT_ERRNOS:
        return BlobStoreRejected(exc.strerror or str(exc), path=key)
    return BlobStoreUnavailable(exc.strerror or str(exc), path=key)
