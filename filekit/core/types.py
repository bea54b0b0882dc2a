"""Value types shared by the facade and every strategy."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Mapping, Union

# Bytes-like or UTF-8 text. Normalized to bytes once, at the facade boundary.
Payload = Union[bytes, bytearray, memoryview, str]

# Receives an integer percentage (0-100).
ProgressCallback = Callable[[int], None]


@dataclass(frozen=True)
class StorageFile:
    """Snapshot of one stored object, as returned by list()."""

    key: str
    size: int
    last_modified: datetime
    etag: str | None = None
    content_type: str | None = None

    def to_dict(self) -> dict:
        return {
            "key": self.key,
            "size": self.size,
            "last_modified": self.last_modified.isoformat(),
            "etag": self.etag,
            "content_type": self.content_type,
        }


@dataclass(frozen=True)
class PutOptions:
    """Optional write parameters. Never mutated; derive with dataclasses.replace()."""

    content_type: str | None = None
    metadata: Mapping[str, str] = field(default_factory=dict)
    cache_control: str | None = None
    expires: datetime | None = None


@dataclass(frozen=True)
class MultipartResult:
    """Terminal success of a chunked upload."""

    key: str
    size: int
    etag: str | None
    parts: int
