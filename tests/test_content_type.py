"""Tests for filekit.core.content_type — extension lookup and magic sniffing."""
from __future__ import annotations

import pytest

from filekit.core.content_type import (
    DEFAULT_CONTENT_TYPE,
    content_type_from_extension,
    detect_content_type,
    sniff_content_type,
)


class TestExtension:
    """content_type_from_extension — last path segment decides."""

    @pytest.mark.parametrize("key, expected", [
        ("photo.jpg", "image/jpeg"),
        ("photo.JPEG", "image/jpeg"),
        ("docs/report.pdf", "application/pdf"),
        ("notes.txt", "text/plain"),
        ("data/export.csv", "text/csv"),
        ("archive.tar.gz", "application/gzip"),
        ("fonts/inter.woff2", "font/woff2"),
    ])
    def test_known_extensions(self, key: str, expected: str):
        assert content_type_from_extension(key) == expected

    @pytest.mark.parametrize("key", [
        "README",
        "folder.d/noext",
        "file.unknownext",
    ])
    def test_unknown_or_missing(self, key: str):
        assert content_type_from_extension(key) is None


class TestSniff:
    """sniff_content_type — leading-byte signatures."""

    @pytest.mark.parametrize("payload, expected", [
        (b"\xff\xd8\xff\xe0rest", "image/jpeg"),
        (b"\x89PNG\r\n\x1a\n", "image/png"),
        (b"GIF89a...", "image/gif"),
        (b"%PDF-1.7", "application/pdf"),
        (b"PK\x03\x04zipdata", "application/zip"),
    ])
    def test_signatures(self, payload: bytes, expected: str):
        assert sniff_content_type(payload) == expected

    def test_unrecognized(self):
        assert sniff_content_type(b"plain old text") is None

    def test_short_payload(self):
        assert sniff_content_type(b"\xff") is None
        assert sniff_content_type(b"") is None


class TestDetect:
    """detect_content_type — extension, then sniffing, then fallback."""

    def test_extension_wins_over_bytes(self):
        assert detect_content_type("a.txt", b"%PDF-1.4") == "text/plain"

    def test_sniffs_when_no_extension(self):
        assert detect_content_type("uploads/blob", b"\x89PNG\r\n") == "image/png"

    def test_falls_back_to_octet_stream(self):
        assert detect_content_type("uploads/blob", b"????") == DEFAULT_CONTENT_TYPE
