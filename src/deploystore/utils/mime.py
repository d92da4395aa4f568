"""Content-type sniffing from magic bytes.

Detects a MIME type from the leading bytes of a file. Only the content is
inspected; paths are not consulted, so two entries with identical bytes
always sniff identically. Unrecognised content yields ``UNKNOWN_MIME_TYPE``.
"""

from __future__ import annotations

from typing import Final

UNKNOWN_MIME_TYPE: Final[str] = ""

# Format: (magic_bytes, offset, mime_type)
_MAGIC_SIGNATURES: Final[list[tuple[bytes, int, str]]] = [
    # Images
    (b"\xff\xd8\xff", 0, "image/jpeg"),
    (b"\x89PNG\r\n\x1a\n", 0, "image/png"),
    (b"GIF87a", 0, "image/gif"),
    (b"GIF89a", 0, "image/gif"),
    (b"BM", 0, "image/bmp"),
    (b"II*\x00", 0, "image/tiff"),
    (b"MM\x00*", 0, "image/tiff"),
    (b"\x00\x00\x01\x00", 0, "image/x-icon"),
    # Fonts
    (b"wOFF", 0, "font/woff"),
    (b"wOF2", 0, "font/woff2"),
    (b"\x00\x01\x00\x00\x00", 0, "font/ttf"),
    (b"OTTO", 0, "font/otf"),
    # Video
    (b"\x1aE\xdf\xa3", 0, "video/webm"),
    # Audio
    (b"ID3", 0, "audio/mpeg"),
    (b"\xff\xfb", 0, "audio/mpeg"),
    (b"\xff\xf3", 0, "audio/mpeg"),
    (b"\xff\xf2", 0, "audio/mpeg"),
    (b"fLaC", 0, "audio/x-flac"),
    (b"OggS", 0, "audio/ogg"),
    # Archives and documents
    (b"%PDF-", 0, "application/pdf"),
    (b"PK\x03\x04", 0, "application/zip"),
    (b"\x1f\x8b", 0, "application/gzip"),
    (b"\x00asm", 0, "application/wasm"),
]

# Text formats recognised by a leading marker, compared case-insensitively
# after leading whitespace is stripped.
_TEXT_MARKERS: Final[list[tuple[bytes, str]]] = [
    (b"<!doctype html", "text/html"),
    (b"<html", "text/html"),
    (b"<?xml", "text/xml"),
    (b"#!", "text/x-shellscript"),
]

_ISO_BRANDS: Final[dict[bytes, str]] = {
    b"avif": "image/avif",
    b"heic": "image/heif",
    b"heix": "image/heif",
    b"mif1": "image/heif",
    b"msf1": "image/heif",
    b"M4A ": "audio/mp4",
    b"M4B ": "audio/mp4",
    b"qt  ": "video/quicktime",
    b"M4V ": "video/x-m4v",
}

# Minimum bytes needed for reliable magic byte detection
MIN_HEADER_SIZE: Final[int] = 32

# Leading bytes scanned for text markers (leading whitespace included)
_TEXT_SNIFF_BYTES: Final[int] = 256


def sniff_mime_type(data: bytes) -> str:
    """Detect a MIME type from content bytes.

    Args:
        data: File content, or at least its first ``MIN_HEADER_SIZE`` bytes.

    Returns:
        The detected MIME type, or ``UNKNOWN_MIME_TYPE`` when nothing matches.
    """
    if not data:
        return UNKNOWN_MIME_TYPE

    # RIFF container (WebP, WAV, AVI)
    if data.startswith(b"RIFF") and len(data) >= 12:
        riff_type = data[8:12]
        if riff_type == b"WEBP":
            return "image/webp"
        if riff_type == b"WAVE":
            return "audio/x-wav"
        if riff_type == b"AVI ":
            return "video/x-msvideo"

    ftyp_mime = _check_ftyp(data)
    if ftyp_mime is not None:
        return ftyp_mime

    for magic, offset, mime_type in _MAGIC_SIGNATURES:
        if data[offset : offset + len(magic)] == magic:
            return mime_type

    head = data[:_TEXT_SNIFF_BYTES].lstrip().lower()
    for marker, mime_type in _TEXT_MARKERS:
        if head.startswith(marker):
            return mime_type

    return UNKNOWN_MIME_TYPE


def _check_ftyp(data: bytes) -> str | None:
    """Check for an ISO Base Media File Format ``ftyp`` box (MP4, MOV, HEIC...)."""
    if len(data) < 12 or data[4:8] != b"ftyp":
        return None

    brand = data[8:12]
    # Unknown brands are overwhelmingly MP4 variants
    return _ISO_BRANDS.get(brand, "video/mp4")
