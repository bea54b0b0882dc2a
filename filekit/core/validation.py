"""Key, payload, and bucket-name checks.

Pure functions. They run before any backend call, so a rejected request
never costs backend quota.
"""
from __future__ import annotations

import re
from typing import Iterable

from filekit.core.errors import (
    InvalidKeyError,
    PayloadTooLargeError,
    UnsupportedTypeError,
)
from filekit.core.types import Payload

MAX_KEY_LENGTH = 1024

_RE_BUCKET = re.compile(r"^[a-z0-9.-]+$")


def validate_key(key: str) -> None:
    """Raise InvalidKeyError unless *key* is a safe, forward-slash object key."""
    if not isinstance(key, str) or not key:
        raise InvalidKeyError("Storage key must be a non-empty string")
    if len(key) > MAX_KEY_LENGTH:
        raise InvalidKeyError(
            f"Storage key too long ({len(key)} characters, max {MAX_KEY_LENGTH})",
            key=key[:64] + "...",
        )
    if ".." in key or "//" in key:
        raise InvalidKeyError("Storage key contains invalid path components", key=key)
    if "\\" in key:
        raise InvalidKeyError(
            "Storage key must use forward slashes (/) as separators", key=key
        )
    if key.startswith("/"):
        raise InvalidKeyError("Storage key must not start with a forward slash", key=key)


def validate_size(size: int, max_bytes: int) -> None:
    """Raise PayloadTooLargeError when *size* exceeds *max_bytes*."""
    if size > max_bytes:
        raise PayloadTooLargeError(size=size, limit=max_bytes)


def validate_type(content_type: str, allowed: Iterable[str]) -> None:
    """Raise UnsupportedTypeError unless *content_type* matches *allowed*.

    Matches ``*``, an exact type, or a ``major/*`` wildcard. MIME parameters
    (``; charset=utf-8``) are ignored.
    """
    allowed = tuple(allowed)
    if "*" in allowed:
        return
    bare = content_type.split(";", 1)[0].strip().lower()
    major = bare.split("/", 1)[0]
    for pattern in allowed:
        pattern = pattern.strip().lower()
        if pattern == bare:
            return
        if pattern.endswith("/*") and pattern[:-2] == major:
            return
    raise UnsupportedTypeError(content_type, allowed)


def normalize_payload(data: Payload) -> bytes:
    """Coerce bytes-like or text input into bytes (text as UTF-8)."""
    if isinstance(data, bytes):
        return data
    if isinstance(data, (bytearray, memoryview)):
        return bytes(data)
    if isinstance(data, str):
        return data.encode("utf-8")
    raise TypeError(
        f"Payload must be bytes, bytearray, memoryview or str, not {type(data).__name__}"
    )


def is_valid_bucket_name(name: str) -> bool:
    """S3/R2 bucket naming: 3-63 chars, lowercase, no edge or adjacent dots/hyphens."""
    if not 3 <= len(name) <= 63:
        return False
    if not _RE_BUCKET.match(name):
        return False
    if ".." in name or ".-" in name or "-." in name:
        return False
    if name[0] in ".-" or name[-1] in ".-":
        return False
    return True
