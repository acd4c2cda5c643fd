"""Object store client - presigned URLs and deletes against S3.

boto3 is synchronous; calls run in a worker thread via ``asyncio.to_thread``
so the event loop never blocks on the network.
"""

import asyncio
import logging
from typing import Any, Protocol

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from gateway.app.config import Settings

logger = logging.getLogger(__name__)


class ObjectStoreError(Exception):
    """Object store request failed."""


class ObjectStore(Protocol):
    """Protocol for object store implementations."""

    async def presign_upload(self, key: str, ttl_seconds: int, content_type: str | None = None) -> str:
        """Issue a time-limited PUT URL for ``key``.

        Raises:
            ObjectStoreError: If the URL cannot be issued
        """
        ...

    async def presign_download(self, key: str, ttl_seconds: int) -> str:
        """Issue a time-limited GET URL for ``key``."""
        ...

    async def delete(self, key: str) -> None:
        """Delete the object stored under ``key``."""
        ...


class S3ObjectStore:
    """S3-backed object store (works with S3-compatible endpoints such as MinIO)."""

    def __init__(self, client: Any, bucket: str) -> None:
        """Initialize object store.

        Args:
            client: boto3 S3 client, shared across requests
            bucket: Target bucket name
        """
        self._client = client
        self._bucket = bucket

    @classmethod
    def from_settings(cls, settings: Settings) -> "S3ObjectStore":
        """Build a client from settings."""
        secret = settings.s3_secret_access_key
        client = boto3.client(
            "s3",
            region_name=settings.s3_region,
            endpoint_url=settings.s3_endpoint or None,
            aws_access_key_id=settings.s3_access_key_id or None,
            aws_secret_access_key=secret.get_secret_value() if secret else None,
            config=Config(signature_version="s3v4", max_pool_connections=20),
        )
        return cls(client, settings.s3_bucket)

    async def presign_upload(self, key: str, ttl_seconds: int, content_type: str | None = None) -> str:
        """Issue a time-limited PUT URL for ``key``."""
        params: dict[str, str] = {"Bucket": self._bucket, "Key": key}
        if content_type:
            params["ContentType"] = content_type

        return await self._call(
            "presign_upload",
            self._client.generate_presigned_url,
            "put_object",
            Params=params,
            ExpiresIn=ttl_seconds,
        )

    async def presign_download(self, key: str, ttl_seconds: int) -> str:
        """Issue a time-limited GET URL for ``key``."""
        return await self._call(
            "presign_download",
            self._client.generate_presigned_url,
            "get_object",
            Params={"Bucket": self._bucket, "Key": key},
            ExpiresIn=ttl_seconds,
        )

    async def delete(self, key: str) -> None:
        """Delete the object stored under ``key``."""
        await self._call("delete", self._client.delete_object, Bucket=self._bucket, Key=key)

    async def _call(self, operation: str, fn: Any, *args: Any, **kwargs: Any) -> Any:
        try:
            return await asyncio.to_thread(fn, *args, **kwargs)
        except (BotoCoreError, ClientError) as e:
            logger.warning(f"S3 {operation} failed: {type(e).__name__}: {e}")
            raise ObjectStoreError(f"{operation} failed: {e}") from e
