"""Storage strategies for filekit.

Public API::

    from filekit.core.storage import StorageStrategy, LocalStorage
    from filekit.core.storage.s3 import S3Storage
    from filekit.core.storage.r2 import R2Storage
"""
from __future__ import annotations

from filekit.core.storage.base import CopyCapable, SignedUrlCapable, StorageStrategy
from filekit.core.storage.filesystem import LocalStorage

__all__ = ["CopyCapable", "LocalStorage", "SignedUrlCapable", "StorageStrategy"]
