"""Content fingerprinting."""

from __future__ import annotations

import hashlib
from dataclasses import dataclass

from deploystore.utils.mime import sniff_mime_type


@dataclass(frozen=True)
class ContentDigest:
    """Fingerprint of a byte buffer.

    ``content_hash`` is the lowercase hex SHA-256 and doubles as the blob key.
    """

    content_hash: str
    byte_size: int
    mime_type: str


class ContentHasher:
    """Computes content hashes and sniffs content types."""

    algorithm = "sha256"

    def hash(self, data: bytes) -> str:
        return hashlib.new(self.algorithm, data).hexdigest()

    def digest(self, data: bytes) -> ContentDigest:
        return ContentDigest(
            content_hash=self.hash(data),
            byte_size=len(data),
            mime_type=sniff_mime_type(data),
        )
