"""
Durable object storage for thumbnails.

S3-compatible buckets (Cloudflare R2, AWS S3, MinIO) are reached through boto3
with a custom endpoint. Objects must be publicly readable under
STORAGE_PUBLIC_URL; the returned URL is what gets persisted on a Video.
"""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from viewtrack.errors import ConfigurationError, ThumbnailUploadError

logger = logging.getLogger(__name__)


class StorageProvider(ABC):
    """Blocking object storage interface; callers run it in a worker thread."""

    @abstractmethod
    def upload_bytes(self, object_key: str, data: bytes, content_type: str) -> str:
        """Store ``data`` at ``object_key`` and return its public URL."""

    @abstractmethod
    def public_url(self, object_key: str) -> str:
        pass

    @property
    @abstractmethod
    def public_base_url(self) -> str:
        pass


class S3StorageProvider(StorageProvider):
    def __init__(
        self,
        *,
        bucket_name: str | None,
        access_key_id: str | None,
        secret_access_key: str | None,
        public_url: str | None,
        endpoint_url: str | None = None,
        region: str = "auto",
    ):
        if not all([bucket_name, access_key_id, secret_access_key, public_url]):
            raise ConfigurationError(
                "Missing storage configuration. Required: STORAGE_BUCKET, STORAGE_ACCESS_KEY_ID, "
                "STORAGE_SECRET_ACCESS_KEY, STORAGE_PUBLIC_URL"
            )
        self.bucket_name = bucket_name
        self._public_base_url = public_url.rstrip("/")
        self._client = boto3.client(
            "s3",
            endpoint_url=endpoint_url,
            aws_access_key_id=access_key_id,
            aws_secret_access_key=secret_access_key,
            config=Config(
                signature_version="s3v4",
                retries={"max_attempts": 3, "mode": "adaptive"},
            ),
            region_name=region,
        )
        logger.info("S3StorageProvider initialized: bucket=%s, endpoint=%s", bucket_name, endpoint_url)

    @property
    def public_base_url(self) -> str:
        return self._public_base_url

    def public_url(self, object_key: str) -> str:
        return f"{self._public_base_url}/{object_key}"

    def upload_bytes(self, object_key: str, data: bytes, content_type: str) -> str:
        try:
            self._client.put_object(
                Bucket=self.bucket_name,
                Key=object_key,
                Body=data,
                ContentType=content_type,
                CacheControl="public, max-age=31536000",
            )
        except (ClientError, BotoCoreError) as e:
            logger.error("Failed to upload %s: %s", object_key, e)
            raise ThumbnailUploadError(f"Failed to upload {object_key}: {e}") from e
        logger.debug("Uploaded %s (%d bytes, %s)", object_key, len(data), content_type)
        return self.public_url(object_key)
