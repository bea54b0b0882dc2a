"""S3-compatible storage strategy.

Works with AWS S3, MinIO, Wasabi, DigitalOcean Spaces, Backblaze B2 and any
other S3-compatible service (custom endpoint + optional path-style addressing).

All boto3 calls are wrapped in asyncio.to_thread() to avoid blocking
the event loop (boto3 is synchronous). The client is created lazily on first
use, under a lock, so concurrent first calls build it exactly once.
"""
from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Any, Iterator
from urllib.parse import quote, urlparse

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from filekit.core.config import S3Config
from filekit.core.content_type import content_type_from_extension
from filekit.core.errors import (
    BackendUnavailableError,
    ObjectNotFoundError,
    StorageBackendError,
    StorageError,
    UploadCancelledError,
)
from filekit.core.storage.multipart import MultipartUploader
from filekit.core.types import ProgressCallback, PutOptions, StorageFile

logger = logging.getLogger(__name__)

_NOT_FOUND_CODES = {"NoSuchKey", "404", "NotFound"}
_AUTH_CODES = {
    "AccessDenied", "403", "Forbidden", "InvalidAccessKeyId",
    "SignatureDoesNotMatch", "ExpiredToken", "InvalidToken",
}


def _error_code(exc: ClientError) -> str:
    return str(exc.response.get("Error", {}).get("Code", ""))


def _strip_etag(etag: str | None) -> str | None:
    return etag.strip('"') if etag else None


class S3Storage:
    """S3-compatible object storage backend.

    Args:
        config: S3Config (bucket, region, endpoint, credentials, CDN, limits).
        client: Pre-built boto3 S3 client. Skips client construction; used by
            tests and by callers that share one client across components.
    """

    name = "s3"
    label = "S3"

    def __init__(self, config: S3Config, client: Any | None = None) -> None:
        self.config = config
        self.bucket = config.bucket
        self.cdn_url = config.cdn_url
        self._client = client
        self._owns_client = client is None
        self._connected = False
        self._lock = asyncio.Lock()

    # --- Connection ---

    @property
    def connected(self) -> bool:
        return self._connected

    def _client_kwargs(self) -> dict[str, Any]:
        cfg = self.config
        addressing = "path" if cfg.force_path_style else "virtual"
        kwargs: dict[str, Any] = {
            "region_name": cfg.region,
            "config": Config(
                signature_version="s3v4",
                retries={"max_attempts": 3, "mode": "standard"},
                s3={"addressing_style": addressing},
            ),
        }
        if cfg.endpoint:
            kwargs["endpoint_url"] = cfg.endpoint
        if cfg.access_key_id:
            kwargs["aws_access_key_id"] = cfg.access_key_id
        if cfg.secret_access_key:
            kwargs["aws_secret_access_key"] = cfg.secret_access_key
        return kwargs

    def _build_client(self) -> Any:
        return boto3.client("s3", **self._client_kwargs())

    async def connect(self) -> None:
        """Create the client and verify bucket access. Runs at most once."""
        if self._connected:
            return
        async with self._lock:
            if self._connected:
                return
            client = self._client
            try:
                if client is None:
                    client = await asyncio.to_thread(self._build_client)
                await asyncio.to_thread(client.head_bucket, Bucket=self.bucket)
            except ClientError as e:
                code = _error_code(e)
                if code in _NOT_FOUND_CODES or code == "NoSuchBucket":
                    msg = f"{self.label} bucket not found: {self.bucket}"
                elif code in _AUTH_CODES:
                    msg = f"{self.label} bucket access denied: {self.bucket}. Check credentials."
                else:
                    msg = f"{self.label} storage connection failed: {e}"
                raise BackendUnavailableError(msg) from e
            except BotoCoreError as e:
                raise BackendUnavailableError(
                    f"{self.label} storage connection failed: {e}"
                ) from e
            self._client = client
            self._connected = True
            logger.info(
                "%s storage connected (provider=%s, bucket=%s)",
                self.label, self.provider, self.bucket,
            )

    async def disconnect(self) -> None:
        async with self._lock:
            if not self._connected:
                return
            if self._owns_client and self._client is not None:
                with contextlib.suppress(AttributeError):
                    self._client.close()
                self._client = None
            self._connected = False
            logger.info("%s storage disconnected", self.label)

    @contextlib.contextmanager
    def _translate_errors(self, key: str | None) -> Iterator[None]:
        """Map botocore failures onto the storage error vocabulary."""
        try:
            yield
        except StorageError:
            raise
        except ClientError as e:
            code = _error_code(e)
            if code in _NOT_FOUND_CODES:
                raise ObjectNotFoundError(f"File not found: {key}", key=key) from e
            if code == "NoSuchBucket":
                raise BackendUnavailableError(
                    f"{self.label} bucket not found: {self.bucket}", key=key,
                ) from e
            if code in _AUTH_CODES:
                raise BackendUnavailableError(
                    f"{self.label} access denied ({code})", key=key,
                ) from e
            raise StorageBackendError(f"{self.label} request failed: {e}", key=key) from e
        except BotoCoreError as e:
            raise BackendUnavailableError(f"{self.label} unreachable: {e}", key=key) from e

    # --- Sync implementations (run in thread pool) ---

    def _get_sync(self, key: str) -> bytes:
        response = self._client.get_object(Bucket=self.bucket, Key=key)
        return response["Body"].read()

    def _exists_sync(self, key: str) -> bool:
        try:
            self._client.head_object(Bucket=self.bucket, Key=key)
            return True
        except ClientError as e:
            if _error_code(e) in _NOT_FOUND_CODES:
                return False
            raise

    def _delete_sync(self, key: str) -> bool:
        # DeleteObject succeeds for missing keys; check first to report it.
        if not self._exists_sync(key):
            return False
        self._client.delete_object(Bucket=self.bucket, Key=key)
        return True

    def _list_sync(self, prefix: str) -> list[StorageFile]:
        paginator = self._client.get_paginator("list_objects_v2")
        params: dict[str, Any] = {"Bucket": self.bucket}
        if prefix:
            params["Prefix"] = prefix
        results = []
        for page in paginator.paginate(**params):
            for obj in page.get("Contents", []):
                key = obj["Key"]
                results.append(StorageFile(
                    key=key,
                    size=obj.get("Size", 0),
                    last_modified=obj["LastModified"],
                    etag=_strip_etag(obj.get("ETag")),
                    content_type=content_type_from_extension(key),
                ))
        return results

    def _put_args(self, options: PutOptions) -> dict[str, Any]:
        args: dict[str, Any] = {}
        if options.content_type:
            args["ContentType"] = options.content_type
        if options.cache_control:
            args["CacheControl"] = options.cache_control
        if options.expires is not None:
            args["Expires"] = options.expires
        if options.metadata:
            args["Metadata"] = dict(options.metadata)
        return args

    # --- Async API (delegates to thread pool) ---

    async def put(
        self,
        key: str,
        data: bytes,
        options: PutOptions,
        *,
        on_progress: ProgressCallback | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> str:
        """Single PUT below the multipart threshold, chunked upload at or above it."""
        await self.connect()
        extra = self._put_args(options)

        if len(data) >= self.config.multipart_threshold:
            uploader = MultipartUploader(
                self._client, self.bucket, self.config.multipart_chunk_size,
            )
            await uploader.upload(
                key, data, extra_args=extra,
                on_progress=on_progress, cancel_event=cancel_event,
            )
            return key

        if cancel_event is not None and cancel_event.is_set():
            raise UploadCancelledError("Upload cancelled before PUT", key=key)
        with self._translate_errors(key):
            await asyncio.to_thread(
                self._client.put_object,
                Bucket=self.bucket, Key=key, Body=data, **extra,
            )
        if on_progress is not None:
            on_progress(100)
        logger.debug("%s object uploaded: %s (%d bytes)", self.label, key, len(data))
        return key

    async def get(self, key: str) -> bytes:
        await self.connect()
        with self._translate_errors(key):
            return await asyncio.to_thread(self._get_sync, key)

    async def delete(self, key: str) -> bool:
        await self.connect()
        with self._translate_errors(key):
            return await asyncio.to_thread(self._delete_sync, key)

    async def list(self, prefix: str = "") -> list[StorageFile]:
        await self.connect()
        with self._translate_errors(None):
            return await asyncio.to_thread(self._list_sync, prefix)

    async def exists(self, key: str) -> bool:
        await self.connect()
        with self._translate_errors(key):
            return await asyncio.to_thread(self._exists_sync, key)

    async def copy(self, source_key: str, dest_key: str) -> str:
        """Server-side copy; the payload never leaves the backend."""
        await self.connect()
        with self._translate_errors(source_key):
            await asyncio.to_thread(
                self._client.copy_object,
                Bucket=self.bucket,
                Key=dest_key,
                CopySource={"Bucket": self.bucket, "Key": source_key},
            )
        logger.debug("%s object copied: %s -> %s", self.label, source_key, dest_key)
        return dest_key

    async def signed_url(self, key: str, expires_in: int) -> str:
        """Pre-signed GET URL valid for *expires_in* seconds."""
        await self.connect()
        with self._translate_errors(key):
            return await asyncio.to_thread(
                self._client.generate_presigned_url,
                "get_object",
                Params={"Bucket": self.bucket, "Key": key},
                ExpiresIn=expires_in,
            )

    # --- Addressing ---

    def url(self, key: str) -> str:
        path = quote(key, safe="/")
        if self.cdn_url:
            return f"{self.cdn_url.rstrip('/')}/{path}"
        return self._native_url(path)

    def _native_url(self, path: str) -> str:
        endpoint = self.config.endpoint
        if not endpoint:
            return f"https://{self.bucket}.s3.{self.config.region}.amazonaws.com/{path}"
        if self.config.force_path_style:
            return f"{endpoint.rstrip('/')}/{self.bucket}/{path}"
        parsed = urlparse(endpoint)
        return f"{parsed.scheme}://{self.bucket}.{parsed.netloc}/{path}"

    @property
    def provider(self) -> str:
        endpoint = self.config.endpoint
        if not endpoint:
            return "AWS S3"
        host = (urlparse(endpoint).hostname or "").lower()
        if "wasabi" in host:
            return "Wasabi"
        if "digitalocean" in host:
            return "DigitalOcean Spaces"
        if "minio" in host or host in ("localhost", "127.0.0.1"):
            return "MinIO"
        if "backblaze" in host:
            return "Backblaze B2"
        return "S3-Compatible"

    def connection_info(self) -> dict[str, Any]:
        """Diagnostics. Never includes credentials."""
        return {
            "connected": self._connected,
            "bucket": self.bucket,
            "region": self.config.region,
            "endpoint": self.config.endpoint or None,
            "provider": self.provider,
            "cdn_enabled": bool(self.cdn_url),
        }

    def __repr__(self) -> str:
        return f"{type(self).__name__}(bucket={self.bucket!r}, provider={self.provider!r})"
