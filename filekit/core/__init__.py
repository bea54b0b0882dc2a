"""filekit core — embeddable file storage.

Public API::

    from filekit.core import Storage, StorageConfig
    from filekit.core.config import S3Config

    config = StorageConfig(
        strategy="s3",
        s3=S3Config(bucket="my-uploads", region="eu-west-1"),
    )
    storage = Storage(config)
    key = await storage.put("reports/q3.pdf", pdf_bytes)
    url = storage.url(key)
"""
from __future__ import annotations

from filekit.core.config import (
    EnvironmentInfo,
    LocalConfig,
    R2Config,
    S3Config,
    StorageConfig,
)
from filekit.core.errors import (
    BackendUnavailableError,
    CapabilityUnsupportedError,
    InvalidKeyError,
    MultipartAbortedError,
    ObjectNotFoundError,
    PayloadTooLargeError,
    StorageBackendError,
    StorageConfigError,
    StorageError,
    UnsupportedTypeError,
    UploadCancelledError,
)
from filekit.core.facade import Storage, create_strategy, get_storage, reset_storage
from filekit.core.types import PutOptions, StorageFile

__all__ = [
    "BackendUnavailableError",
    "CapabilityUnsupportedError",
    "EnvironmentInfo",
    "InvalidKeyError",
    "LocalConfig",
    "MultipartAbortedError",
    "ObjectNotFoundError",
    "PayloadTooLargeError",
    "PutOptions",
    "R2Config",
    "S3Config",
    "Storage",
    "StorageBackendError",
    "StorageConfig",
    "StorageConfigError",
    "StorageError",
    "StorageFile",
    "UnsupportedTypeError",
    "UploadCancelledError",
    "create_strategy",
    "get_storage",
    "reset_storage",
]
