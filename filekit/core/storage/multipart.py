"""Chunked multipart upload engine for S3-compatible backends.

A session moves through explicit states::

    CREATED -> PARTS_UPLOADING -> COMPLETING -> COMPLETED
          \\____________\\_____________\\____> ABORTING -> ABORTED

Parts go up one at a time in ascending order. Any failure (or a set cancel
event) aborts the backend session before the error reaches the caller, so no
orphaned uploads are left behind. There are no retries here; botocore's own
retry config and the caller's policy cover that.

The session object is owned by a single upload() call and never escapes it.
"""
from __future__ import annotations

import asyncio
import logging
import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterator

from filekit.core.config import DEFAULT_CHUNK_SIZE, MIN_PART_SIZE
from filekit.core.errors import MultipartAbortedError, UploadCancelledError
from filekit.core.types import MultipartResult, ProgressCallback

logger = logging.getLogger(__name__)


class UploadState(str, Enum):
    CREATED = "created"
    PARTS_UPLOADING = "parts_uploading"
    COMPLETING = "completing"
    COMPLETED = "completed"
    ABORTING = "aborting"
    ABORTED = "aborted"


_TERMINAL = {UploadState.COMPLETED, UploadState.ABORTED}


@dataclass
class MultipartSession:
    """Transient state of one chunked upload."""

    key: str
    upload_id: str
    total_bytes: int
    parts: list[dict[str, Any]] = field(default_factory=list)
    bytes_uploaded: int = 0
    state: UploadState = UploadState.CREATED

    def transition(self, state: UploadState) -> None:
        if self.state in _TERMINAL:
            raise RuntimeError(f"Multipart session {self.upload_id} already {self.state.value}")
        logger.debug("Multipart %s: %s -> %s", self.upload_id, self.state.value, state.value)
        self.state = state

    def record_part(self, part_number: int, etag: str, size: int) -> None:
        expected = len(self.parts) + 1
        if part_number != expected:
            raise RuntimeError(f"Part {part_number} out of order (expected {expected})")
        self.parts.append({"PartNumber": part_number, "ETag": etag})
        self.bytes_uploaded += size

    @property
    def progress(self) -> int:
        """Percent uploaded, capped at 99 until the backend assembles the object."""
        if self.total_bytes <= 0:
            return 99
        return min(round(self.bytes_uploaded / self.total_bytes * 100), 99)


def effective_chunk_size(chunk_size: int | None) -> int:
    return max(MIN_PART_SIZE, chunk_size or DEFAULT_CHUNK_SIZE)


def part_count(total_bytes: int, chunk_size: int) -> int:
    return math.ceil(total_bytes / chunk_size)


def iter_parts(total_bytes: int, chunk_size: int) -> Iterator[tuple[int, int, int]]:
    """Yield (part_number, start, end) with part numbers contiguous from 1."""
    for index in range(part_count(total_bytes, chunk_size)):
        start = index * chunk_size
        yield index + 1, start, min(start + chunk_size, total_bytes)


class MultipartUploader:
    """Drives one or more multipart uploads against a boto3 S3 client.

    Args:
        client: Synchronous boto3 S3 client. Calls run in asyncio.to_thread().
        bucket: Target bucket.
        chunk_size: Bytes per part (clamped to at least 5 MiB).
    """

    def __init__(self, client: Any, bucket: str, chunk_size: int | None = None) -> None:
        self._client = client
        self.bucket = bucket
        self.chunk_size = effective_chunk_size(chunk_size)

    async def upload(
        self,
        key: str,
        data: bytes,
        *,
        extra_args: dict[str, Any] | None = None,
        on_progress: ProgressCallback | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> MultipartResult:
        """Upload *data* in parts and return the assembled object's details.

        Raises:
            MultipartAbortedError: a part or the completion failed.
            UploadCancelledError: *cancel_event* was set between parts.
        """
        session = await self._create(key, len(data), extra_args or {})
        try:
            session.transition(UploadState.PARTS_UPLOADING)
            for part_number, start, end in iter_parts(len(data), self.chunk_size):
                if cancel_event is not None and cancel_event.is_set():
                    raise UploadCancelledError("Upload cancelled", key=key)
                response = await asyncio.to_thread(
                    self._client.upload_part,
                    Bucket=self.bucket,
                    Key=key,
                    UploadId=session.upload_id,
                    PartNumber=part_number,
                    Body=data[start:end],
                )
                session.record_part(part_number, response["ETag"], end - start)
                if on_progress is not None:
                    on_progress(session.progress)

            session.transition(UploadState.COMPLETING)
            response = await asyncio.to_thread(
                self._client.complete_multipart_upload,
                Bucket=self.bucket,
                Key=key,
                UploadId=session.upload_id,
                MultipartUpload={"Parts": list(session.parts)},
            )
        except UploadCancelledError as exc:
            abort_error = await self._abort(session)
            raise UploadCancelledError(
                "Upload cancelled", key=key,
                upload_id=session.upload_id, abort_error=abort_error,
            ) from exc
        except asyncio.CancelledError:
            await asyncio.shield(self._abort(session))
            raise
        except Exception as exc:
            failed_at = session.state
            abort_error = await self._abort(session)
            raise MultipartAbortedError(
                f"Multipart upload failed at {failed_at.value} "
                f"({len(session.parts)} part(s) done): {exc}",
                key=key, upload_id=session.upload_id, abort_error=abort_error,
            ) from exc

        session.transition(UploadState.COMPLETED)
        if on_progress is not None:
            on_progress(100)
        etag = (response.get("ETag") or "").strip('"') or None
        logger.info(
            "Multipart upload complete: %s (%d bytes, %d parts)",
            key, session.total_bytes, len(session.parts),
        )
        return MultipartResult(key=key, size=session.total_bytes, etag=etag, parts=len(session.parts))

    async def _create(self, key: str, total: int, extra_args: dict[str, Any]) -> MultipartSession:
        try:
            response = await asyncio.to_thread(
                self._client.create_multipart_upload,
                Bucket=self.bucket, Key=key, **extra_args,
            )
        except Exception as exc:
            raise MultipartAbortedError(
                f"Could not start multipart upload: {exc}", key=key,
            ) from exc
        session = MultipartSession(key=key, upload_id=response["UploadId"], total_bytes=total)
        logger.debug(
            "Multipart %s created for %s (%d bytes, %d parts)",
            session.upload_id, key, total, part_count(total, self.chunk_size),
        )
        return session

    async def _abort(self, session: MultipartSession) -> Exception | None:
        """Best-effort abort. Returns the abort failure, if any."""
        session.transition(UploadState.ABORTING)
        try:
            await asyncio.to_thread(
                self._client.abort_multipart_upload,
                Bucket=self.bucket,
                Key=session.key,
                UploadId=session.upload_id,
            )
        except Exception as exc:
            logger.warning(
                "Abort of multipart upload %s for %s failed: %s",
                session.upload_id, session.key, exc,
            )
            return exc
        session.transition(UploadState.ABORTED)
        return None
