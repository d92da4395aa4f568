"""Utility modules for deploystore."""

from deploystore.utils.hashing import ContentDigest, ContentHasher
from deploystore.utils.mime import UNKNOWN_MIME_TYPE, sniff_mime_type

__all__ = [
    "UNKNOWN_MIME_TYPE",
    "ContentDigest",
    "ContentHasher",
    "sniff_mime_type",
]
