"""Storage facade: one API over whichever backend the configuration selects.

Build once per configuration, share across tasks. Every call validates the
key first; put() also normalizes the payload, enforces the size limit and
checks the content type before the strategy sees anything.

Usage::

    from filekit.core import Storage, StorageConfig

    storage = Storage(StorageConfig())          # local ./uploads
    await storage.put("avatars/42.png", png_bytes)
    data = await storage.get("avatars/42.png")

Concurrency:
    No locking here. Operations on different keys are independent; two puts
    to the same key race at the backend and the last write wins. The only
    shared mutable state is the strategy's client handle, which the strategy
    initializes under its own lock.
"""
from __future__ import annotations

import asyncio
import contextlib
import logging
import secrets
import time
from dataclasses import replace
from typing import Any, Iterator

from filekit.core.config import (
    MAX_SIGNED_URL_EXPIRY,
    MIN_SIGNED_URL_EXPIRY,
    StorageConfig,
)
from filekit.core.content_type import (
    content_type_from_extension,
    detect_content_type,
    sniff_content_type,
)
from filekit.core.errors import (
    CapabilityUnsupportedError,
    InvalidKeyError,
    ObjectNotFoundError,
    PayloadTooLargeError,
    StorageBackendError,
    StorageConfigError,
    StorageError,
    UnsupportedTypeError,
)
from filekit.core.storage.base import CopyCapable, SignedUrlCapable, StorageStrategy
from filekit.core.storage.filesystem import LocalStorage
from filekit.core.types import Payload, ProgressCallback, PutOptions, StorageFile
from filekit.core.validation import (
    normalize_payload,
    validate_key,
    validate_size,
    validate_type,
)

logger = logging.getLogger(__name__)

# Caller mistakes: logged quietly, never wrapped.
_EXPECTED_ERRORS = (
    InvalidKeyError,
    PayloadTooLargeError,
    UnsupportedTypeError,
    ObjectNotFoundError,
    CapabilityUnsupportedError,
)


def create_strategy(config: StorageConfig) -> StorageStrategy:
    """Instantiate the strategy named by ``config.strategy``."""
    if config.strategy == "local":
        return LocalStorage(config.local)
    if config.strategy == "s3" and config.s3 is not None:
        from filekit.core.storage.s3 import S3Storage
        return S3Storage(config.s3)
    if config.strategy == "r2" and config.r2 is not None:
        from filekit.core.storage.r2 import R2Storage
        return R2Storage(config.r2)
    raise StorageConfigError(f"Unknown or unconfigured storage strategy: {config.strategy!r}")


class Storage:
    """Unified file storage over Local, S3-compatible or R2 backends.

    Args:
        config: Resolved StorageConfig. Validated on construction.
        strategy: Pre-built strategy (tests, custom backends). Defaults to
            create_strategy(config).
    """

    def __init__(self, config: StorageConfig, strategy: StorageStrategy | None = None) -> None:
        config.validate()
        self.config = config
        self._strategy = strategy if strategy is not None else create_strategy(config)
        logger.debug("Storage created with %s strategy", self._strategy.name)

    # --- Introspection ---

    @property
    def strategy(self) -> StorageStrategy:
        return self._strategy

    @property
    def strategy_name(self) -> str:
        return self._strategy.name

    @property
    def connected(self) -> bool:
        return self._strategy.connected

    def is_local(self) -> bool:
        return self.strategy_name == "local"

    def has_cloud_storage(self) -> bool:
        return self.strategy_name in ("s3", "r2")

    def get_config(self) -> dict[str, Any]:
        """Diagnostics view of the active configuration. Never includes credentials."""
        return {
            "strategy": self.strategy_name,
            "connected": self.connected,
            "max_file_size": self.config.max_file_size,
            "allowed_types": list(self.config.allowed_types),
        }

    def get_stats(self) -> dict[str, Any]:
        return {
            "strategy": self.strategy_name,
            "connected": self.connected,
            "max_file_size": f"{round(self.config.max_file_size / 1_048_576)}MB",
            "environment": self.config.environment.name,
        }

    # --- Error wrapping ---

    @contextlib.contextmanager
    def _operation(self, operation: str, key: str | None) -> Iterator[None]:
        """Annotate storage errors with context; wrap anything else."""
        try:
            yield
        except StorageError as e:
            e.annotate(operation, key)
            if isinstance(e, _EXPECTED_ERRORS):
                logger.debug("%s", e)
            else:
                logger.warning("%s", e)
            raise
        except Exception as e:
            wrapped = StorageBackendError(str(e) or type(e).__name__, key=key)
            wrapped.annotate(operation, key)
            logger.warning("%s", wrapped)
            raise wrapped from e

    # --- Lifecycle ---

    async def _ensure_connected(self) -> None:
        if not self._strategy.connected:
            await self._strategy.connect()

    async def connect(self) -> None:
        with self._operation("connect", None):
            await self._strategy.connect()

    async def disconnect(self) -> None:
        with self._operation("disconnect", None):
            await self._strategy.disconnect()

    # --- Core operations ---

    async def put(
        self,
        key: str,
        data: Payload,
        options: PutOptions | None = None,
        *,
        on_progress: ProgressCallback | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> str:
        """Store *data* under *key*. Returns the stored key.

        Text is stored as UTF-8. The content type comes from *options* or is
        detected from the key's extension and the payload's leading bytes.
        ``on_progress`` receives percentages (chunked uploads report after
        every part); setting ``cancel_event`` stops a chunked upload between
        parts and aborts it.
        """
        options = options or PutOptions()
        with self._operation("put", key):
            validate_key(key)
        # Caller bug, not a storage failure: TypeError propagates as-is.
        payload = normalize_payload(data)
        with self._operation("put", key):
            validate_size(len(payload), self.config.max_file_size)
            content_type = options.content_type or detect_content_type(key, payload)
            validate_type(content_type, self.config.allowed_types)
            await self._ensure_connected()
            result = await self._strategy.put(
                key, payload, replace(options, content_type=content_type),
                on_progress=on_progress, cancel_event=cancel_event,
            )
        logger.debug("Stored %s (%d bytes, %s)", key, len(payload), content_type)
        return result

    async def get(self, key: str) -> bytes:
        with self._operation("get", key):
            validate_key(key)
            await self._ensure_connected()
            data = await self._strategy.get(key)
        logger.debug("Retrieved %s (%d bytes)", key, len(data))
        return data

    async def delete(self, key: str) -> bool:
        """Delete *key*. Returns False when nothing was stored there."""
        with self._operation("delete", key):
            validate_key(key)
            await self._ensure_connected()
            deleted = await self._strategy.delete(key)
        logger.debug("Deleted %s (existed: %s)", key, deleted)
        return deleted

    async def list(self, prefix: str = "", limit: int | None = None) -> list[StorageFile]:
        with self._operation("list", prefix or None):
            if prefix:
                validate_key(prefix)
            await self._ensure_connected()
            files = await self._strategy.list(prefix)
        return files[:limit] if limit else files

    def url(self, key: str) -> str:
        """Public URL for *key*. Deterministic, no I/O."""
        with self._operation("url", key):
            validate_key(key)
            return self._strategy.url(key)

    async def signed_url(self, key: str, expires_in: int | None = None) -> str:
        """Time-limited GET URL. Not available with the local strategy."""
        if expires_in is None:
            expires_in = getattr(self.config.active, "signed_url_expiry", 3600)
        if not MIN_SIGNED_URL_EXPIRY <= expires_in <= MAX_SIGNED_URL_EXPIRY:
            raise ValueError(
                f"expires_in must be between {MIN_SIGNED_URL_EXPIRY} and "
                f"{MAX_SIGNED_URL_EXPIRY} seconds, got {expires_in}"
            )
        with self._operation("signed_url", key):
            validate_key(key)
            if not isinstance(self._strategy, SignedUrlCapable):
                raise CapabilityUnsupportedError(
                    f"Signed URLs not supported with {self.strategy_name} strategy"
                )
            await self._ensure_connected()
            return await self._strategy.signed_url(key, expires_in)

    async def exists(self, key: str) -> bool:
        with self._operation("exists", key):
            validate_key(key)
            await self._ensure_connected()
            return await self._strategy.exists(key)

    async def copy(self, source_key: str, dest_key: str) -> str:
        """Copy an object. Native backend copy when available, else get + put."""
        with self._operation("copy", source_key):
            validate_key(source_key)
            validate_key(dest_key)
            if isinstance(self._strategy, CopyCapable):
                await self._ensure_connected()
                return await self._strategy.copy(source_key, dest_key)
        data = await self.get(source_key)
        return await self.put(dest_key, data)

    # --- Convenience helpers ---

    async def upload(
        self,
        data: Payload,
        *,
        folder: str | None = None,
        filename: str | None = None,
        content_type: str | None = None,
    ) -> dict[str, str]:
        """Store *data* under a generated key. Returns ``{"key", "url"}``."""
        if not filename:
            filename = f"file-{int(time.time() * 1000)}-{secrets.token_hex(3)}"
        key = f"{folder.strip('/')}/{filename}" if folder else filename
        stored = await self.put(key, data, PutOptions(content_type=content_type))
        return {"key": stored, "url": self.url(stored)}

    async def download(self, key: str) -> tuple[bytes, str | None]:
        """Fetch an object together with its best-guess content type."""
        data = await self.get(key)
        return data, content_type_from_extension(key) or sniff_content_type(data)

    def __repr__(self) -> str:
        return f"<Storage strategy={self.strategy_name} connected={self.connected}>"


# --- Process-wide accessor ---

_instances: dict[StorageConfig, Storage] = {}
_env_config: StorageConfig | None = None


def get_storage(config: StorageConfig | None = None) -> Storage:
    """Return the shared Storage for *config* (environment config when omitted)."""
    global _env_config
    if config is None:
        if _env_config is None:
            from filekit.config import load_storage_config
            _env_config = load_storage_config()
        config = _env_config
    storage = _instances.get(config)
    if storage is None:
        storage = _instances[config] = Storage(config)
    return storage


async def reset_storage() -> None:
    """Disconnect and forget every shared instance. For tests and shutdown."""
    global _env_config
    instances = list(_instances.values())
    _instances.clear()
    _env_config = None
    first_error: Exception | None = None
    for storage in instances:
        try:
            await storage.disconnect()
        except Exception as e:
            logger.warning("Disconnect of %r failed: %s", storage, e)
            if first_error is None:
                first_error = e
    if first_error is not None:
        raise first_error
