"""Strategy protocols: the contract every storage backend implements.

Implementations:
- LocalStorage (always available)
- S3Storage, R2Storage (boto3)

Keys are validated by the facade before they reach a strategy.
"""
from __future__ import annotations

import asyncio
from typing import Protocol, runtime_checkable

from filekit.core.types import ProgressCallback, PutOptions, StorageFile


@runtime_checkable
class StorageStrategy(Protocol):
    """Common capability set of Local, S3-compatible and R2 backends.

    ``name`` is the strategy tag ("local", "s3", "r2").
    """

    name: str

    @property
    def connected(self) -> bool:
        ...

    async def connect(self) -> None:
        """Establish the backend handle. Idempotent; runs at most once."""
        ...

    async def put(
        self,
        key: str,
        data: bytes,
        options: PutOptions,
        *,
        on_progress: ProgressCallback | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> str:
        """Store *data* under *key*. Returns the stored key."""
        ...

    async def get(self, key: str) -> bytes:
        """Read an object. Raises ObjectNotFoundError if missing."""
        ...

    async def delete(self, key: str) -> bool:
        """Delete an object. Returns False if it did not exist."""
        ...

    async def list(self, prefix: str = "") -> list[StorageFile]:
        """List objects whose key starts with *prefix*."""
        ...

    def url(self, key: str) -> str:
        """Public URL for *key*. Pure: no I/O."""
        ...

    async def exists(self, key: str) -> bool:
        ...

    async def disconnect(self) -> None:
        ...


@runtime_checkable
class CopyCapable(Protocol):
    """Backends with a native copy; the facade falls back to get + put otherwise."""

    async def copy(self, source_key: str, dest_key: str) -> str:
        """Returns the destination key."""
        ...


@runtime_checkable
class SignedUrlCapable(Protocol):
    """Backends that can mint time-limited GET URLs."""

    async def signed_url(self, key: str, expires_in: int) -> str:
        ...
