"""Archive extraction for deployment uploads."""

from deploystore.extraction.archive import ZipArchiveExtractor, normalize_entry_path, read_entry
from deploystore.extraction.base import ArchiveEntry, ArchiveExtractor

__all__ = [
    "ArchiveEntry",
    "ArchiveExtractor",
    "ZipArchiveExtractor",
    "normalize_entry_path",
    "read_entry",
]
