from __future__ import annotations

from pathlib import Path

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError


class S3StorageClient:
    """Publishes finished invitation videos to an S3-compatible bucket."""

    def __init__(
        self,
        bucket: str,
        access_key: str | None,
        secret_key: str | None,
        endpoint_url: str | None = None,
        region_name: str | None = None,
        public_url: str | None = None,
        addressing_style: str | None = None,
    ) -> None:
        self.bucket = (bucket or "").strip()
        self.access_key = (access_key or "").strip()
        self.secret_key = (secret_key or "").strip()
        self.endpoint_url = (endpoint_url or "").rstrip("/") or None
        self.region_name = (region_name or "").strip() or None
        self.public_url_base = (public_url or "").rstrip("/")
        self._client = None
        if self.is_configured():
            session = boto3.session.Session(
                aws_access_key_id=self.access_key,
                aws_secret_access_key=self.secret_key,
                region_name=self.region_name,
            )
            config = BotoConfig(
                s3={"addressing_style": (addressing_style or "virtual").lower()}
            )
            self._client = session.client("s3", endpoint_url=self.endpoint_url, config=config)

    def is_configured(self) -> bool:
        return bool(self.bucket and self.access_key and self.secret_key)

    def upload_file(self, source: Path, key: str, content_type: str = "video/mp4") -> str:
        if self._client is None:
            raise ValueError("object storage is not configured")
        clean = self._normalize_path(key)
        try:
            self._client.upload_file(
                str(source),
                self.bucket,
                clean,
                ExtraArgs={"ContentType": content_type},
            )
        except (BotoCoreError, ClientError) as exc:  # pragma: no cover - AWS error surface
            raise ValueError(f"S3 upload failed: {exc}") from exc
        return self.public_url(clean)

    def public_url(self, path: str) -> str:
        clean = self._normalize_path(path)
        if self.public_url_base:
            return f"{self.public_url_base}/{clean}"
        if self.endpoint_url:
            return f"{self.endpoint_url}/{self.bucket}/{clean}"
        return f"/{self.bucket}/{clean}"

    def _normalize_path(self, path: str | None) -> str:
        if not path:
            return ""
        return "/".join(part for part in path.strip().split("/") if part)
