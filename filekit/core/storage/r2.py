"""Cloudflare R2 storage strategy.

R2 speaks the S3 API, so this reuses S3Storage and changes only what differs:
the account-scoped endpoint, the "auto" region, a long default Cache-Control
for CDN delivery, and URL construction.
"""
from __future__ import annotations

from typing import Any

from botocore.config import Config

from filekit.core.config import R2Config
from filekit.core.storage.s3 import S3Storage
from filekit.core.types import PutOptions

DEFAULT_CACHE_CONTROL = "public, max-age=31536000"


class R2Storage(S3Storage):
    """Cloudflare R2 backend (zero egress fees).

    Args:
        config: R2Config (bucket, account id, credentials, CDN, limits).
        client: Pre-built boto3 client pointed at the R2 endpoint.
    """

    name = "r2"
    label = "R2"

    def __init__(self, config: R2Config, client: Any | None = None) -> None:
        super().__init__(config, client=client)  # type: ignore[arg-type]
        self.account_id = config.account_id
        self.endpoint = config.endpoint

    def _client_kwargs(self) -> dict[str, Any]:
        cfg = self.config
        return {
            "region_name": "auto",
            "endpoint_url": self.endpoint,
            "aws_access_key_id": cfg.access_key_id or None,
            "aws_secret_access_key": cfg.secret_access_key or None,
            "config": Config(
                signature_version="s3v4",
                retries={"max_attempts": 3, "mode": "standard"},
                s3={"addressing_style": "virtual"},
            ),
        }

    def _put_args(self, options: PutOptions) -> dict[str, Any]:
        args = super()._put_args(options)
        args.setdefault("CacheControl", DEFAULT_CACHE_CONTROL)
        return args

    def _native_url(self, path: str) -> str:
        return f"{self.endpoint}/{self.bucket}/{path}"

    @property
    def provider(self) -> str:
        return "Cloudflare R2"

    def connection_info(self) -> dict[str, Any]:
        return {
            "connected": self.connected,
            "bucket": self.bucket,
            "account_id": self.account_id,
            "endpoint": self.endpoint,
            "provider": self.provider,
            "cdn_enabled": bool(self.cdn_url),
            "zero_egress_fees": True,
        }
