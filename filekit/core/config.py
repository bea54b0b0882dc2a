"""StorageConfig: resolved storage configuration.

Pure data. No env vars, no dotenv, no side effects at import time. The
environment loader (filekit.config) builds a StorageConfig from os.environ;
embedding services construct one directly.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Union
from urllib.parse import urlparse

from filekit.core.errors import StorageConfigError
from filekit.core.validation import is_valid_bucket_name

VALID_STRATEGIES = ("local", "s3", "r2")

MIB = 1024 * 1024
GIB = 1024 * MIB

MIN_FILE_SIZE = MIB
MAX_FILE_SIZE = GIB
DEFAULT_LOCAL_MAX_SIZE = 50 * MIB
DEFAULT_CLOUD_MAX_SIZE = GIB

MIN_SIGNED_URL_EXPIRY = 60
MAX_SIGNED_URL_EXPIRY = 604_800  # 7 days
DEFAULT_SIGNED_URL_EXPIRY = 3600

MULTIPART_THRESHOLD = 100 * MIB
DEFAULT_CHUNK_SIZE = 10 * MIB
MIN_PART_SIZE = 5 * MIB  # S3 minimum for every part but the last

DEFAULT_ALLOWED_TYPES: tuple[str, ...] = (
    "image/jpeg", "image/png", "image/gif", "image/webp", "image/svg+xml",
    "text/plain", "text/csv", "application/json",
    "application/pdf", "application/zip",
    "video/mp4", "video/webm", "audio/mpeg", "audio/wav",
)


@dataclass(frozen=True)
class EnvironmentInfo:
    name: str = "development"

    @property
    def is_development(self) -> bool:
        return self.name == "development"

    @property
    def is_production(self) -> bool:
        return self.name == "production"

    @property
    def is_test(self) -> bool:
        return self.name == "test"


@dataclass(frozen=True)
class LocalConfig:
    directory: str = "./uploads"
    base_url: str = "/uploads"
    max_file_size: int = DEFAULT_LOCAL_MAX_SIZE
    allowed_types: tuple[str, ...] = DEFAULT_ALLOWED_TYPES
    create_dirs: bool = True


@dataclass(frozen=True)
class S3Config:
    bucket: str
    region: str = "us-east-1"
    endpoint: str = ""  # empty = AWS
    access_key_id: str = field(default="", repr=False)
    secret_access_key: str = field(default="", repr=False)
    force_path_style: bool = False
    signed_url_expiry: int = DEFAULT_SIGNED_URL_EXPIRY
    cdn_url: str = ""
    max_file_size: int = DEFAULT_CLOUD_MAX_SIZE
    allowed_types: tuple[str, ...] = ("*",)
    multipart_threshold: int = MULTIPART_THRESHOLD
    multipart_chunk_size: int = DEFAULT_CHUNK_SIZE


@dataclass(frozen=True)
class R2Config:
    bucket: str
    account_id: str
    access_key_id: str = field(default="", repr=False)
    secret_access_key: str = field(default="", repr=False)
    cdn_url: str = ""
    signed_url_expiry: int = DEFAULT_SIGNED_URL_EXPIRY
    max_file_size: int = DEFAULT_CLOUD_MAX_SIZE
    allowed_types: tuple[str, ...] = ("*",)
    multipart_threshold: int = MULTIPART_THRESHOLD
    multipart_chunk_size: int = DEFAULT_CHUNK_SIZE

    @property
    def endpoint(self) -> str:
        return f"https://{self.account_id}.r2.cloudflarestorage.com"


StrategyConfig = Union[LocalConfig, S3Config, R2Config]


@dataclass(frozen=True)
class StorageConfig:
    """Storage configuration. Only the sub-config named by ``strategy`` is used.

    Frozen and hashable, so it doubles as the cache key for
    filekit.core.facade.get_storage().
    """

    strategy: str = "local"  # "local" | "s3" | "r2"
    local: LocalConfig = field(default_factory=LocalConfig)
    s3: S3Config | None = None
    r2: R2Config | None = None
    environment: EnvironmentInfo = field(default_factory=EnvironmentInfo)

    @property
    def active(self) -> StrategyConfig:
        """The sub-config for the selected strategy."""
        if self.strategy == "s3" and self.s3 is not None:
            return self.s3
        if self.strategy == "r2" and self.r2 is not None:
            return self.r2
        if self.strategy == "local":
            return self.local
        raise StorageConfigError(f"No '{self.strategy}' configuration present")

    @property
    def max_file_size(self) -> int:
        return self.active.max_file_size

    @property
    def allowed_types(self) -> tuple[str, ...]:
        return tuple(self.active.allowed_types)

    def validate(self) -> None:
        """Validate configuration. Raises StorageConfigError listing every problem."""
        errors: list[str] = []

        if self.strategy not in VALID_STRATEGIES:
            errors.append(
                f"strategy '{self.strategy}' not recognized. "
                f"Valid: {', '.join(VALID_STRATEGIES)}"
            )
        elif self.strategy == "local":
            _check_local(self.local, errors)
        elif self.strategy == "s3":
            if self.s3 is None:
                errors.append("s3 strategy selected but no S3 configuration given")
            else:
                _check_s3(self.s3, errors)
        elif self.strategy == "r2":
            if self.r2 is None:
                errors.append("r2 strategy selected but no R2 configuration given")
            else:
                _check_r2(self.r2, errors)

        if errors:
            raise StorageConfigError(
                f"StorageConfig validation failed ({len(errors)} error(s)):\n"
                + "\n".join(f"  - {e}" for e in errors)
            )


def _check_local(cfg: LocalConfig, errors: list[str]) -> None:
    if not cfg.directory:
        errors.append("local.directory is required")
    if cfg.base_url and not cfg.base_url.startswith("/") and not _is_url(cfg.base_url):
        errors.append(f"local.base_url '{cfg.base_url}' must be a path or a valid URL")
    _check_common(cfg.max_file_size, cfg.allowed_types, "local", errors)


def _check_s3(cfg: S3Config, errors: list[str]) -> None:
    if not is_valid_bucket_name(cfg.bucket):
        errors.append(
            f"s3.bucket '{cfg.bucket}' is invalid: 3-63 lowercase characters, "
            "no leading, trailing or adjacent dots/hyphens"
        )
    if cfg.endpoint and not _is_url(cfg.endpoint):
        errors.append(f"s3.endpoint '{cfg.endpoint}' must be a valid URL")
    if cfg.cdn_url and not _is_url(cfg.cdn_url):
        errors.append(f"s3.cdn_url '{cfg.cdn_url}' must be a valid URL")
    _check_expiry(cfg.signed_url_expiry, "s3", errors)
    _check_multipart(cfg.multipart_threshold, cfg.multipart_chunk_size, "s3", errors)
    _check_common(cfg.max_file_size, cfg.allowed_types, "s3", errors)


def _check_r2(cfg: R2Config, errors: list[str]) -> None:
    if not is_valid_bucket_name(cfg.bucket):
        errors.append(
            f"r2.bucket '{cfg.bucket}' is invalid: 3-63 lowercase characters, "
            "no leading, trailing or adjacent dots/hyphens"
        )
    if not cfg.account_id:
        errors.append("r2.account_id is required")
    if cfg.cdn_url and not _is_url(cfg.cdn_url):
        errors.append(f"r2.cdn_url '{cfg.cdn_url}' must be a valid URL")
    _check_expiry(cfg.signed_url_expiry, "r2", errors)
    _check_multipart(cfg.multipart_threshold, cfg.multipart_chunk_size, "r2", errors)
    _check_common(cfg.max_file_size, cfg.allowed_types, "r2", errors)


def _check_common(max_size: int, allowed: tuple[str, ...], prefix: str, errors: list[str]) -> None:
    if max_size <= 0:
        errors.append(f"{prefix}.max_file_size must be positive")
    if not allowed:
        errors.append(f"{prefix}.allowed_types must not be empty (use '*' to allow all)")


def _check_expiry(expiry: int, prefix: str, errors: list[str]) -> None:
    if not MIN_SIGNED_URL_EXPIRY <= expiry <= MAX_SIGNED_URL_EXPIRY:
        errors.append(
            f"{prefix}.signed_url_expiry must be between {MIN_SIGNED_URL_EXPIRY} "
            f"and {MAX_SIGNED_URL_EXPIRY} seconds"
        )


def _check_multipart(threshold: int, chunk: int, prefix: str, errors: list[str]) -> None:
    if threshold <= 0:
        errors.append(f"{prefix}.multipart_threshold must be positive")
    if chunk <= 0:
        errors.append(f"{prefix}.multipart_chunk_size must be positive")


def _is_url(value: str) -> bool:
    parsed = urlparse(value)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)
