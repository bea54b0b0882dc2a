"""Storage error vocabulary.

Every failure that leaves the storage layer is one of these types. Backend
libraries (boto3, OSError) never leak through the facade.
"""
from __future__ import annotations


class StorageConfigError(ValueError):
    """Raised when a StorageConfig (or the environment behind it) is invalid."""


class StorageError(Exception):
    """Base class for storage failures.

    The facade annotates errors with the operation and key that failed, so
    ``str(err)`` reads ``put failed for key "a.txt": <cause>``.
    """

    def __init__(self, message: str, *, key: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.key = key
        self.operation: str | None = None

    def annotate(self, operation: str, key: str | None) -> None:
        """Attach operation context. The first annotation wins."""
        if self.operation is None:
            self.operation = operation
            if key is not None:
                self.key = key

    def __str__(self) -> str:
        if self.operation is None:
            return self.message
        if self.key is None:
            return f"{self.operation} failed: {self.message}"
        return f'{self.operation} failed for key "{self.key}": {self.message}'


class InvalidKeyError(StorageError):
    """Key is empty, too long, or contains a forbidden path component."""


class PayloadTooLargeError(StorageError):
    """Payload exceeds the active strategy's size limit."""

    def __init__(self, size: int, limit: int) -> None:
        self.size = size
        self.limit = limit
        super().__init__(
            f"File too large: {_human_size(size)} (max: {_human_size(limit)})"
        )


class UnsupportedTypeError(StorageError):
    """Content type is not in the allowed list."""

    def __init__(self, content_type: str, allowed: tuple[str, ...] | list[str]) -> None:
        self.content_type = content_type
        self.allowed = tuple(allowed)
        super().__init__(
            f"File type not allowed: {content_type}. "
            f"Allowed types: {', '.join(self.allowed)}"
        )


class ObjectNotFoundError(StorageError):
    """No object stored under the key."""


class BackendUnavailableError(StorageError):
    """Backend could not be reached or rejected the credentials."""


class CapabilityUnsupportedError(StorageError):
    """The active strategy cannot perform the requested operation."""


class StorageBackendError(StorageError):
    """Any other backend failure, wrapped with the original as __cause__."""


class MultipartAbortedError(StorageError):
    """A chunked upload failed and was aborted.

    ``upload_id`` identifies the backend session for operator diagnostics.
    ``abort_error`` is set when the abort call itself failed as well.
    """

    def __init__(
        self,
        message: str,
        *,
        key: str | None = None,
        upload_id: str | None = None,
        abort_error: BaseException | None = None,
    ) -> None:
        self.upload_id = upload_id
        self.abort_error = abort_error
        if upload_id:
            message = f"{message} (upload_id={upload_id})"
        if abort_error is not None:
            message = f"{message}; abort also failed: {abort_error}"
        super().__init__(message, key=key)


class UploadCancelledError(MultipartAbortedError):
    """A chunked upload was cancelled by the caller and aborted."""


def _human_size(n: int) -> str:
    if n >= 1_048_576:
        return f"{round(n / 1_048_576)}MB"
    return f"{n} bytes"
