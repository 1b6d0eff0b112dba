"""Object Storage - uploads, signed download URLs and deletes for generated media."""

import asyncio
import time
import uuid
from pathlib import Path
from typing import Any, Iterable, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from media_pipeline.core.config import Settings
from media_pipeline.core.errors import StorageError

IMAGE_PREFIX = "videos/images"
AUDIO_PREFIX = "videos/audio"
RENDERED_PREFIX = "videos/rendered"
THUMBNAIL_PREFIX = "videos/thumbnails"


def generate_key(prefix: str, video_id: str, extension: str) -> str:
    """
    Build a unique object key: ``<prefix>/<video_id>/<millis>-<random>.<ext>``.

    Args:
        prefix: Key prefix (e.g., videos/images)
        video_id: Owning video
        extension: File extension without the dot

    Returns:
        Object key
    """
    return f"{prefix}/{video_id}/{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}.{extension.lstrip('.')}"


class ObjectStorage:
    """Base class for the object store holding generated and rendered media."""

    def __init__(self, settings: Settings, logger: Any):
        """
        Initialize the storage backend.

        Args:
            settings: Application settings
            logger: Logger instance
        """
        self.settings = settings
        self.logger = logger

    async def upload(self, data: bytes, key: str, content_type: str, metadata: Optional[dict] = None) -> str:
        """
        Store ``data`` under ``key``.

        Returns:
            URL of the stored object

        Raises:
            NotImplementedError: Must be implemented by subclass
        """
        raise NotImplementedError("Subclass must implement upload()")

    async def get_download_url(self, key: str, ttl_seconds: int = 3600) -> str:
        """Time-limited URL for downloading ``key``."""
        raise NotImplementedError("Subclass must implement get_download_url()")

    async def delete(self, keys: Iterable[str]) -> None:
        """Remove objects; missing keys are ignored."""
        raise NotImplementedError("Subclass must implement delete()")

    def generate_key(self, prefix: str, video_id: str, extension: str) -> str:
        return generate_key(prefix, video_id, extension)


class S3ObjectStorage(ObjectStorage):
    """Amazon S3 backend (boto3, calls run in worker threads)."""

    def __init__(self, settings: Settings, logger: Any, client: Any = None):
        """
        Initialize the S3 backend.

        Args:
            settings: Application settings
            logger: Logger instance
            client: Optional preconfigured boto3 S3 client
        """
        if not settings.aws_s3_bucket:
            raise StorageError("AWS_S3_BUCKET is not configured")
        super().__init__(settings, logger)
        self.bucket = settings.aws_s3_bucket
        self.region = settings.aws_region
        self.client = client or boto3.client(
            "s3",
            region_name=settings.aws_region,
            aws_access_key_id=settings.aws_access_key_id,
            aws_secret_access_key=settings.aws_secret_access_key,
        )

    def object_url(self, key: str) -> str:
        return f"https://{self.bucket}.s3.{self.region}.amazonaws.com/{key}"

    async def upload(self, data: bytes, key: str, content_type: str, metadata: Optional[dict] = None) -> str:
        extra = {"Metadata": {k: str(v) for k, v in (metadata or {}).items()}}
        try:
            await asyncio.to_thread(
                self.client.put_object,
                Bucket=self.bucket,
                Key=key,
                Body=data,
                ContentType=content_type,
                **extra,
            )
        except (ClientError, BotoCoreError) as e:
            raise StorageError(f"S3 upload failed for {key}: {e}") from e
        self.logger.info(f"Uploaded to S3: {key} ({len(data)} bytes)")
        return self.object_url(key)

    async def get_download_url(self, key: str, ttl_seconds: int = 3600) -> str:
        try:
            return await asyncio.to_thread(
                self.client.generate_presigned_url,
                "get_object",
                Params={"Bucket": self.bucket, "Key": key},
                ExpiresIn=ttl_seconds,
            )
        except (ClientError, BotoCoreError) as e:
            raise StorageError(f"Could not sign URL for {key}: {e}") from e

    async def delete(self, keys: Iterable[str]) -> None:
        keys = [k for k in keys if k]
        # delete_objects accepts at most 1000 keys per call
        for start in range(0, len(keys), 1000):
            batch = keys[start : start + 1000]
            try:
                await asyncio.to_thread(
                    self.client.delete_objects,
                    Bucket=self.bucket,
                    Delete={"Objects": [{"Key": k} for k in batch], "Quiet": True},
                )
            except (ClientError, BotoCoreError) as e:
                raise StorageError(f"S3 delete failed: {e}") from e
        self.logger.info(f"Deleted {len(keys)} objects from S3")


class LocalObjectStorage(ObjectStorage):
    """Filesystem backend for development and tests; URLs are file:// URIs."""

    def __init__(self, settings: Settings, logger: Any):
        super().__init__(settings, logger)
        self.root = Path(settings.local_storage_path).resolve()
        self.root.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        path = (self.root / key).resolve()
        if self.root not in path.parents:
            raise StorageError(f"Key escapes storage root: {key}")
        return path

    async def upload(self, data: bytes, key: str, content_type: str, metadata: Optional[dict] = None) -> str:
        path = self._path(key)
        try:
            await asyncio.to_thread(self._write, path, data)
        except OSError as e:
            raise StorageError(f"Local upload failed for {key}: {e}") from e
        self.logger.info(f"Stored object: {key} ({len(data)} bytes)")
        return path.as_uri()

    async def get_download_url(self, key: str, ttl_seconds: int = 3600) -> str:
        path = self._path(key)
        if not path.exists():
            raise StorageError(f"Object not found: {key}")
        return path.as_uri()

    async def delete(self, keys: Iterable[str]) -> None:
        paths = [self._path(key) for key in keys if key]
        try:
            await asyncio.to_thread(self._unlink_all, paths)
        except OSError as e:
            raise StorageError(f"Local delete failed: {e}") from e
        self.logger.info(f"Deleted {len(paths)} local objects")

    @staticmethod
    def _write(path: Path, data: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)

    @staticmethod
    def _unlink_all(paths: list[Path]) -> None:
        for path in paths:
            path.unlink(missing_ok=True)


def create_object_storage(settings: Settings, logger: Any) -> ObjectStorage:
    """Backend selected by ``settings.storage_backend``."""
    backend = settings.storage_backend.lower()
    if backend == "s3":
        return S3ObjectStorage(settings, logger)
    if backend == "local":
        return LocalObjectStorage(settings, logger)
    raise StorageError(f"Unknown storage backend: {settings.storage_backend}")
