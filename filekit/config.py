"""Configuration — loads .env, resolves the storage strategy from the environment."""
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Mapping

from dotenv import load_dotenv

from filekit.core.config import (
    DEFAULT_ALLOWED_TYPES,
    DEFAULT_CLOUD_MAX_SIZE,
    DEFAULT_LOCAL_MAX_SIZE,
    DEFAULT_SIGNED_URL_EXPIRY,
    MAX_FILE_SIZE,
    MAX_SIGNED_URL_EXPIRY,
    MIN_FILE_SIZE,
    MIN_SIGNED_URL_EXPIRY,
    VALID_STRATEGIES,
    EnvironmentInfo,
    LocalConfig,
    R2Config,
    S3Config,
    StorageConfig,
)
from filekit.core.errors import StorageConfigError

logger = logging.getLogger(__name__)

KNOWN_ENVIRONMENTS = ("development", "production", "test", "staging")


def _get(env: Mapping[str, str], *names: str) -> str:
    """First non-empty value among *names* (stripped), or ""."""
    for name in names:
        value = (env.get(name) or "").strip()
        if value:
            return value
    return ""


def _int(env: Mapping[str, str], name: str, default: int, lo: int, hi: int,
         errors: list[str]) -> int:
    raw = _get(env, name)
    if not raw:
        return default
    try:
        value = int(raw)
    except ValueError:
        errors.append(f"{name} must be an integer, got '{raw}'")
        return default
    if not lo <= value <= hi:
        errors.append(f"{name} must be between {lo} and {hi}, got {value}")
        return default
    return value


def _flag(env: Mapping[str, str], name: str, default: bool) -> bool:
    raw = _get(env, name).lower()
    if not raw:
        return default
    return raw in ("1", "true", "yes", "on")


def detect_strategy(env: Mapping[str, str]) -> str:
    """Explicit FILEKIT_STORAGE_STRATEGY, else R2 bucket, else S3, else local."""
    explicit = _get(env, "FILEKIT_STORAGE_STRATEGY").lower()
    if explicit:
        return explicit
    if _get(env, "CLOUDFLARE_R2_BUCKET"):
        return "r2"
    if _get(env, "AWS_S3_BUCKET", "S3_BUCKET", "S3_ENDPOINT"):
        return "s3"
    return "local"


def parse_allowed_types(raw: str, default: tuple[str, ...]) -> tuple[str, ...]:
    """``*`` allows everything; otherwise a comma-separated MIME list."""
    raw = raw.strip()
    if not raw:
        return default
    if raw == "*":
        return ("*",)
    return tuple(t.strip().lower() for t in raw.split(",") if t.strip())


def load_storage_config(environ: Mapping[str, str] | None = None) -> StorageConfig:
    """Build a validated StorageConfig from environment variables.

    When *environ* is omitted, ``.env`` in the working directory is loaded
    first (real environment variables win) and ``os.environ`` is read.

    Raises:
        StorageConfigError: listing every problem found.
    """
    if environ is None:
        load_dotenv(Path.cwd() / ".env")
        environ = os.environ
    env = environ
    errors: list[str] = []

    environment = EnvironmentInfo(
        name=_get(env, "FILEKIT_ENV", "APP_ENV").lower() or "development"
    )
    if environment.name not in KNOWN_ENVIRONMENTS:
        logger.warning(
            "Unusual environment '%s'. Expected: %s",
            environment.name, ", ".join(KNOWN_ENVIRONMENTS),
        )

    strategy = detect_strategy(env)
    if strategy not in VALID_STRATEGIES:
        errors.append(
            f"FILEKIT_STORAGE_STRATEGY '{strategy}' not recognized. "
            f"Valid: {', '.join(VALID_STRATEGIES)}"
        )

    default_max = DEFAULT_LOCAL_MAX_SIZE if strategy == "local" else DEFAULT_CLOUD_MAX_SIZE
    max_size = _int(env, "FILEKIT_STORAGE_MAX_SIZE", default_max,
                    MIN_FILE_SIZE, MAX_FILE_SIZE, errors)
    expiry = _int(env, "FILEKIT_STORAGE_SIGNED_EXPIRY", DEFAULT_SIGNED_URL_EXPIRY,
                  MIN_SIGNED_URL_EXPIRY, MAX_SIGNED_URL_EXPIRY, errors)
    raw_types = _get(env, "FILEKIT_STORAGE_ALLOWED_TYPES")

    local = LocalConfig(
        directory=_get(env, "FILEKIT_STORAGE_DIR") or "./uploads",
        base_url=_get(env, "FILEKIT_STORAGE_BASE_URL") or "/uploads",
        max_file_size=max_size if strategy == "local" else DEFAULT_LOCAL_MAX_SIZE,
        allowed_types=parse_allowed_types(raw_types, DEFAULT_ALLOWED_TYPES),
        create_dirs=_flag(env, "FILEKIT_STORAGE_CREATE_DIRS", True),
    )
    s3 = r2 = None

    if strategy == "s3":
        bucket = _get(env, "AWS_S3_BUCKET", "S3_BUCKET")
        access = _get(env, "AWS_ACCESS_KEY_ID", "S3_ACCESS_KEY_ID")
        secret = _get(env, "AWS_SECRET_ACCESS_KEY", "S3_SECRET_ACCESS_KEY")
        if not bucket:
            errors.append("S3 bucket name required. Set AWS_S3_BUCKET or S3_BUCKET")
        if not access or not secret:
            errors.append(
                "S3 credentials required. Set AWS_ACCESS_KEY_ID and AWS_SECRET_ACCESS_KEY"
            )
        s3 = S3Config(
            bucket=bucket,
            region=_get(env, "AWS_REGION", "S3_REGION") or "us-east-1",
            endpoint=_get(env, "S3_ENDPOINT"),
            access_key_id=access,
            secret_access_key=secret,
            force_path_style=_flag(env, "S3_FORCE_PATH_STYLE", False),
            signed_url_expiry=expiry,
            cdn_url=_get(env, "FILEKIT_STORAGE_CDN_URL"),
            max_file_size=max_size,
            allowed_types=parse_allowed_types(raw_types, ("*",)),
        )
    elif strategy == "r2":
        bucket = _get(env, "CLOUDFLARE_R2_BUCKET")
        account = _get(env, "CLOUDFLARE_ACCOUNT_ID")
        access = _get(env, "CLOUDFLARE_R2_ACCESS_KEY_ID")
        secret = _get(env, "CLOUDFLARE_R2_SECRET_ACCESS_KEY")
        if not bucket:
            errors.append("R2 bucket name required. Set CLOUDFLARE_R2_BUCKET")
        if not account or not access or not secret:
            errors.append(
                "R2 credentials required. Set CLOUDFLARE_ACCOUNT_ID, "
                "CLOUDFLARE_R2_ACCESS_KEY_ID and CLOUDFLARE_R2_SECRET_ACCESS_KEY"
            )
        r2 = R2Config(
            bucket=bucket,
            account_id=account,
            access_key_id=access,
            secret_access_key=secret,
            cdn_url=_get(env, "CLOUDFLARE_R2_CDN_URL"),
            signed_url_expiry=expiry,
            max_file_size=max_size,
            allowed_types=parse_allowed_types(raw_types, ("*",)),
        )

    if errors:
        raise StorageConfigError(
            f"Storage environment validation failed ({len(errors)} error(s)):\n"
            + "\n".join(f"  - {e}" for e in errors)
        )

    config = StorageConfig(
        strategy=strategy, local=local, s3=s3, r2=r2, environment=environment,
    )
    config.validate()
    _warn_production(config)
    logger.debug("Storage config resolved: strategy=%s env=%s", strategy, environment.name)
    return config


def _warn_production(config: StorageConfig) -> None:
    if config.strategy == "local":
        directory = config.local.directory
        if ".." in directory or (directory.startswith("/") and config.environment.is_production):
            logger.warning(
                "Potentially unsafe storage directory '%s'. Prefer a relative path.", directory,
            )
    if not config.environment.is_production:
        return
    if config.strategy == "local":
        logger.warning(
            "Local filesystem storage in production may not scale. "
            "Set AWS_S3_BUCKET or CLOUDFLARE_R2_BUCKET for cloud storage."
        )
    if "*" in config.allowed_types:
        logger.warning(
            "All file types allowed in production. "
            "Set FILEKIT_STORAGE_ALLOWED_TYPES to specific types."
        )
    if config.strategy in ("s3", "r2") and not getattr(config.active, "cdn_url", ""):
        logger.warning(
            "No CDN configured for %s storage in production. "
            "Set a CDN URL for better delivery performance.", config.strategy,
        )
