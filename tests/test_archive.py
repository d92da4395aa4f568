"""Tests for ZIP archive extraction."""

from __future__ import annotations

import pytest
from conftest import make_zip

from deploystore.errors import ArchiveCorrupt
from deploystore.extraction import ZipArchiveExtractor, normalize_entry_path, read_entry


class TestNormalizeEntryPath:
    def test_plain(self) -> None:
        assert normalize_entry_path("css/site.css") == "css/site.css"

    def test_dot_segments_and_trailing_slash(self) -> None:
        assert normalize_entry_path("./assets//img/") == "assets/img"

    def test_backslashes(self) -> None:
        assert normalize_entry_path("assets\\app.js") == "assets/app.js"

    @pytest.mark.parametrize("name", ["../etc/passwd", "a/../../b", "/abs/path", "C:/x"])
    def test_unsafe_paths_rejected(self, name: str) -> None:
        with pytest.raises(ArchiveCorrupt):
            normalize_entry_path(name)


class TestZipArchiveExtractor:
    def test_entries_in_archive_order(self) -> None:
        data = make_zip({"index.html": b"<html></html>", "assets/": None, "assets/a.js": b"x"})
        entries = list(ZipArchiveExtractor().open(data))

        assert [(e.path, e.is_directory) for e in entries] == [
            ("index.html", False),
            ("assets", True),
            ("assets/a.js", False),
        ]

    def test_read_file_entry(self) -> None:
        data = make_zip({"nested/deep/file.txt": b"hello"})
        (entry,) = ZipArchiveExtractor().open(data)
        assert entry.size == 5
        assert read_entry(entry) == b"hello"

    def test_directory_entry_has_no_reader(self) -> None:
        (entry,) = ZipArchiveExtractor().open(make_zip({"dir/": None}))
        assert entry.is_directory
        with pytest.raises(IsADirectoryError):
            entry.open()

    def test_empty_archive(self) -> None:
        assert list(ZipArchiveExtractor().open(make_zip({}))) == []

    def test_not_a_zip(self) -> None:
        with pytest.raises(ArchiveCorrupt):
            ZipArchiveExtractor().open(b"definitely not a zip file")

    def test_truncated_zip(self) -> None:
        data = make_zip({"a.txt": b"a" * 1000})
        with pytest.raises(ArchiveCorrupt):
            ZipArchiveExtractor().open(data[: len(data) // 2])

    def test_checksum_mismatch_fails_before_any_entry(self) -> None:
        data = make_zip({"good.txt": b"fine", "bad.txt": b"hello world"}, stored=True)
        corrupted = data.replace(b"hello world", b"hellO world")

        with pytest.raises(ArchiveCorrupt) as exc_info:
            ZipArchiveExtractor().open(corrupted)
        assert exc_info.value.path == "bad.txt"

    def test_unsafe_member_fails_on_open(self) -> None:
        data = make_zip({"ok.txt": b"x", "../escape.txt": b"y"})
        with pytest.raises(ArchiveCorrupt):
            ZipArchiveExtractor().open(data)


def encrypted_zip() -> bytes:
    """Archive whose only member carries the encryption flag."""
    data = bytearray(make_zip({"secret.txt": b"classified"}, stored=True))
    for signature, flag_offset in ((b"PK\x03\x04", 6), (b"PK\x01\x02", 8)):
        data[data.index(signature) + flag_offset] |= 0x01
    return bytes(data)


class TestEncryptedMembers:
    def test_rejected_on_open(self) -> None:
        with pytest.raises(ArchiveCorrupt):
            ZipArchiveExtractor().open(encrypted_zip())

    def test_rejected_on_read_without_crc_check(self) -> None:
        (entry,) = ZipArchiveExtractor(verify_crc=False).open(encrypted_zip())

        with pytest.raises(ArchiveCorrupt) as exc_info:
            read_entry(entry)
        assert exc_info.value.path == "secret.txt"
