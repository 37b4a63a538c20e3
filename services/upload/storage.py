"""
services/upload/storage.py
S3-compatible object storage (R2 / S3 / Supabase S3 endpoint) for blog images.
"""

import logging
from typing import Optional

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError
from starlette.concurrency import run_in_threadpool

from config.settings import settings
from shared.utils.exceptions import UpstreamError

logger = logging.getLogger(__name__)


class ObjectStorage:
    """Puts, deletes and resolves public URLs for objects in one bucket."""

    def __init__(self, bucket: str, public_base_url: str = "", client=None):
        self.bucket = bucket
        self.public_base_url = public_base_url.rstrip("/")
        self._client = client

    @property
    def client(self):
        if self._client is None:
            self._client = boto3.client(
                "s3",
                endpoint_url=settings.S3_ENDPOINT_URL or None,
                aws_access_key_id=settings.S3_ACCESS_KEY_ID or None,
                aws_secret_access_key=settings.S3_SECRET_ACCESS_KEY or None,
                region_name=settings.S3_REGION,
                config=Config(
                    signature_version="s3v4",
                    connect_timeout=settings.STORAGE_TIMEOUT_SECONDS,
                    read_timeout=settings.STORAGE_TIMEOUT_SECONDS,
                    retries={"max_attempts": 1},
                ),
            )
        return self._client

    def public_url(self, key: str) -> str:
        if self.public_base_url:
            return f"{self.public_base_url}/{key}"
        endpoint = (settings.S3_ENDPOINT_URL or "").rstrip("/")
        return f"{endpoint}/{self.bucket}/{key}"

    async def put(self, key: str, body: bytes, content_type: str) -> str:
        """Upload `body` under `key` and return its public URL."""
        try:
            await run_in_threadpool(
                self.client.put_object,
                Bucket=self.bucket,
                Key=key,
                Body=body,
                ContentType=content_type,
                CacheControl="public, max-age=3600",
            )
        except (BotoCoreError, ClientError) as e:
            logger.error(f"Upload of {key} to bucket {self.bucket} failed: {e}")
            raise UpstreamError("Failed to upload image to storage")
        logger.info(f"Uploaded {key} ({len(body)} bytes)")
        return self.public_url(key)

    async def delete(self, key: str) -> None:
        try:
            await run_in_threadpool(self.client.delete_object, Bucket=self.bucket, Key=key)
        except (BotoCoreError, ClientError) as e:
            logger.error(f"Delete of {key} from bucket {self.bucket} failed: {e}")
            raise UpstreamError("Failed to delete image")
        logger.info(f"Deleted {key}")


_storage: Optional[ObjectStorage] = None


def get_object_storage() -> ObjectStorage:
    """FastAPI dependency. One client per process; tests override this."""
    global _storage
    if _storage is None:
        _storage = ObjectStorage(settings.STORAGE_BUCKET, settings.STORAGE_PUBLIC_BASE_URL)
    return _storage
