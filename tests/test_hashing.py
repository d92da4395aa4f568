"""Tests for content fingerprinting."""

import hashlib

from deploystore.utils.hashing import ContentHasher


def test_digest_uses_lowercase_sha256() -> None:
    digest = ContentHasher().digest(b"hi")
    assert digest.content_hash == hashlib.sha256(b"hi").hexdigest()
    assert digest.content_hash == digest.content_hash.lower()
    assert len(digest.content_hash) == 64


def test_digest_reports_size_and_mime_type() -> None:
    data = b"\x89PNG\r\n\x1a\n" + b"\x00" * 100
    digest = ContentHasher().digest(data)
    assert digest.byte_size == 108
    assert digest.mime_type == "image/png"


def test_identical_content_identical_digest() -> None:
    hasher = ContentHasher()
    assert hasher.digest(b"same bytes") == hasher.digest(b"same bytes")
    assert hasher.hash(b"a") != hasher.hash(b"b")


def test_empty_content() -> None:
    digest = ContentHasher().digest(b"")
    assert digest.byte_size == 0
    assert digest.content_hash == hashlib.sha256(b"").hexdigest()
    assert digest.mime_type == ""
