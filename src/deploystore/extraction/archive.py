"""ZIP archive extraction."""

from __future__ import annotations

import io
import logging
import posixpath
import zipfile
import zlib
from collections.abc import Iterator
from functools import partial

from deploystore.errors import ArchiveCorrupt
from deploystore.extraction.base import ArchiveEntry

logger = logging.getLogger(__name__)

# Raised by zipfile for malformed data, unsupported compression and encrypted
# members (RuntimeError: password required)
_READ_ERRORS = (
    zipfile.BadZipFile,
    zlib.error,
    EOFError,
    NotImplementedError,
    ValueError,
    RuntimeError,
)


def normalize_entry_path(name: str) -> str:
    """Normalize an archive member name to a relative POSIX path.

    Backslashes become slashes, ``.`` segments and duplicate separators are
    dropped, and a trailing slash is removed.

    Raises:
        ArchiveCorrupt: If the name is empty, absolute, or escapes the root.
    """
    candidate = name.replace("\\", "/")
    if candidate.startswith("/") or (len(candidate) > 1 and candidate[1] == ":"):
        raise ArchiveCorrupt("absolute path in archive", path=name)

    normalized = posixpath.normpath(candidate)
    if normalized in ("", "."):
        raise ArchiveCorrupt("empty path in archive", path=name)
    if normalized == ".." or normalized.startswith("../"):
        raise ArchiveCorrupt("path escapes archive root", path=name)
    return normalized


class ZipArchiveExtractor:
    """Decodes ZIP archives held in memory.

    Usage:
        for entry in ZipArchiveExtractor().open(data):
            if not entry.is_directory:
                with entry.open() as stream:
                    content = stream.read()
    """

    def __init__(self, *, verify_crc: bool = True) -> None:
        self._verify_crc = verify_crc

    def open(self, data: bytes) -> Iterator[ArchiveEntry]:
        archive = self._load(data)
        # Validate every member name before handing anything out
        members = [
            (info, normalize_entry_path(info.filename)) for info in archive.infolist()
        ]
        return self._iter_entries(archive, members)

    def _load(self, data: bytes) -> zipfile.ZipFile:
        try:
            archive = zipfile.ZipFile(io.BytesIO(data))
            bad_member = archive.testzip() if self._verify_crc else None
        except _READ_ERRORS as exc:
            raise ArchiveCorrupt(f"cannot read archive: {exc}") from exc
        if bad_member is not None:
            raise ArchiveCorrupt("checksum mismatch", path=bad_member)
        return archive

    def _iter_entries(
        self,
        archive: zipfile.ZipFile,
        members: list[tuple[zipfile.ZipInfo, str]],
    ) -> Iterator[ArchiveEntry]:
        for info, path in members:
            if info.is_dir():
                yield ArchiveEntry(path=path, is_directory=True)
                continue
            yield ArchiveEntry(
                path=path,
                is_directory=False,
                size=info.file_size,
                _opener=partial(archive.open, info),
            )


def read_entry(entry: ArchiveEntry) -> bytes:
    """Read an entry's content fully.

    Raises:
        ArchiveCorrupt: If the entry's compressed data cannot be decoded.
    """
    try:
        with entry.open() as stream:
            return stream.read()
    except _READ_ERRORS as exc:
        raise ArchiveCorrupt(f"cannot read entry: {exc}", path=entry.path) from exc
