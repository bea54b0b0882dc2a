"""Local filesystem storage strategy: the default when no cloud bucket is configured.

Maps keys to files under a root directory. Writes go to a temp file in the
target directory and are moved into place with os.replace(), so readers see
either the old or the new content, never a partial file. Concurrent writers
to the same key: last rename wins.
"""
from __future__ import annotations

import asyncio
import contextlib
import logging
import os
import shutil
import tempfile
from datetime import datetime, timezone
from pathlib import Path

from filekit.core.config import LocalConfig
from filekit.core.content_type import content_type_from_extension
from filekit.core.errors import (
    BackendUnavailableError,
    InvalidKeyError,
    ObjectNotFoundError,
    UploadCancelledError,
)
from filekit.core.types import ProgressCallback, PutOptions, StorageFile

logger = logging.getLogger(__name__)

_TMP_SUFFIX = ".filekit-tmp"


class LocalStorage:
    """Local filesystem storage backend.

    Args:
        config: LocalConfig with the root directory, URL base and limits.
    """

    name = "local"

    def __init__(self, config: LocalConfig) -> None:
        self.config = config
        self.root = Path(config.directory).expanduser().resolve()
        self.base_url = config.base_url
        self._connected = False
        if config.create_dirs:
            self.root.mkdir(parents=True, exist_ok=True)

    @property
    def connected(self) -> bool:
        return self._connected

    async def connect(self) -> None:
        if self._connected:
            return
        if not self.root.is_dir():
            if not self.config.create_dirs:
                raise BackendUnavailableError(
                    f"Storage directory does not exist: {self.root}"
                )
            self.root.mkdir(parents=True, exist_ok=True)
        self._connected = True
        logger.info(
            "Local storage ready (dir=%s, max_size=%dMB)",
            self.root, self.config.max_file_size // 1_048_576,
        )

    def _resolve(self, key: str) -> Path:
        """Resolve a key against root, refusing anything that escapes it."""
        resolved = (self.root / key).resolve()
        if resolved == self.root:
            raise InvalidKeyError(f"Key names the storage root: {key}", key=key)
        if self.root not in resolved.parents:
            raise InvalidKeyError(f"Path traversal detected: {key}", key=key)
        return resolved

    def _require_root(self) -> None:
        """Writes may create sub-directories, but never the root unless create_dirs."""
        if not self.config.create_dirs and not self.root.is_dir():
            raise BackendUnavailableError(f"Storage directory does not exist: {self.root}")

    # --- Sync implementations (run in thread pool) ---

    def _write_atomic(self, path: Path, data: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(
            dir=path.parent, prefix=f".{path.name}.", suffix=_TMP_SUFFIX,
        )
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
            os.replace(tmp, path)
        except BaseException:
            with contextlib.suppress(FileNotFoundError):
                os.unlink(tmp)
            raise

    def _copy_atomic(self, src: Path, dest: Path) -> None:
        dest.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(
            dir=dest.parent, prefix=f".{dest.name}.", suffix=_TMP_SUFFIX,
        )
        os.close(fd)
        try:
            shutil.copyfile(src, tmp)
            os.replace(tmp, dest)
        except BaseException:
            with contextlib.suppress(FileNotFoundError):
                os.unlink(tmp)
            raise

    def _delete_sync(self, path: Path) -> bool:
        if not path.is_file():
            return False
        path.unlink()
        self._prune_empty_dirs(path.parent)
        return True

    def _prune_empty_dirs(self, directory: Path) -> None:
        """Remove now-empty parents up to (never including) root."""
        while directory != self.root and self.root in directory.parents:
            try:
                directory.rmdir()
            except OSError:
                # not empty, or raced with a writer
                return
            directory = directory.parent

    def _list_sync(self, prefix: str) -> list[StorageFile]:
        # Start the walk at the deepest directory the prefix names.
        start = self.root
        if "/" in prefix:
            start = self.root / prefix.rsplit("/", 1)[0]
        if not start.is_dir():
            return []

        results: list[StorageFile] = []
        for dirpath, _dirnames, filenames in os.walk(start):
            for filename in filenames:
                if filename.endswith(_TMP_SUFFIX):
                    continue
                full = Path(dirpath) / filename
                key = full.relative_to(self.root).as_posix()
                if not key.startswith(prefix):
                    continue
                try:
                    st = full.stat()
                except FileNotFoundError:
                    continue  # deleted mid-walk
                results.append(StorageFile(
                    key=key,
                    size=st.st_size,
                    last_modified=datetime.fromtimestamp(st.st_mtime, tz=timezone.utc),
                    content_type=content_type_from_extension(key),
                ))
        results.sort(key=lambda f: f.key)
        return results

    # --- Async API ---

    async def put(
        self,
        key: str,
        data: bytes,
        options: PutOptions,
        *,
        on_progress: ProgressCallback | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> str:
        """Write the whole file at once. Metadata and cache headers are not persisted."""
        if cancel_event is not None and cancel_event.is_set():
            raise UploadCancelledError("Upload cancelled before write", key=key)
        path = self._resolve(key)
        self._require_root()
        await asyncio.to_thread(self._write_atomic, path, data)
        if options.metadata or options.cache_control:
            logger.debug("Local storage ignores metadata/cache-control for %s", key)
        if on_progress is not None:
            on_progress(100)
        logger.debug("Local file stored: %s (%d bytes)", key, len(data))
        return key

    async def get(self, key: str) -> bytes:
        path = self._resolve(key)
        if not path.is_file():
            raise ObjectNotFoundError(f"File not found: {key}", key=key)
        try:
            return await asyncio.to_thread(path.read_bytes)
        except FileNotFoundError:
            raise ObjectNotFoundError(f"File not found: {key}", key=key) from None

    async def delete(self, key: str) -> bool:
        deleted = await asyncio.to_thread(self._delete_sync, self._resolve(key))
        logger.debug("Local delete %s -> %s", key, deleted)
        return deleted

    async def list(self, prefix: str = "") -> list[StorageFile]:
        return await asyncio.to_thread(self._list_sync, prefix)

    def url(self, key: str) -> str:
        return f"{self.base_url.rstrip('/')}/{key}"

    async def exists(self, key: str) -> bool:
        return self._resolve(key).is_file()

    async def copy(self, source_key: str, dest_key: str) -> str:
        src = self._resolve(source_key)
        if not src.is_file():
            raise ObjectNotFoundError(f"Source file not found: {source_key}", key=source_key)
        self._require_root()
        await asyncio.to_thread(self._copy_atomic, src, self._resolve(dest_key))
        logger.debug("Local file copied: %s -> %s", source_key, dest_key)
        return dest_key

    async def disconnect(self) -> None:
        if self._connected:
            self._connected = False
            logger.info("Local storage disconnected")

    def __repr__(self) -> str:
        return f"LocalStorage(root={str(self.root)!r})"
