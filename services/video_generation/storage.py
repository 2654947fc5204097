"""
Blob storage for finished videos.

Cached videos live under ``videos/{user_id}/{job_id}.mp4`` and are served back
through the API at ``{serve_prefix}/{key}``. R2 (S3-compatible, via boto3) is
used when configured, otherwise a local directory.
"""

import asyncio
import logging
import os
from abc import ABC, abstractmethod
from functools import partial
from pathlib import Path
from typing import Optional

import aiofiles
import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from core.config import Config, StorageConfig

from .errors import StorageError
from .models import Job

logger = logging.getLogger(__name__)

VIDEO_CONTENT_TYPE = "video/mp4"


def video_blob_key(job: Job) -> str:
    """Deterministic storage key for a job's video."""
    return f"videos/{job.user_id}/{job.id}.mp4"


def key_owner(key: str) -> Optional[str]:
    """User id segment of a video key, or None if the key is not a video key."""
    parts = key.split("/")
    if len(parts) != 3 or parts[0] != "videos" or not parts[1]:
        return None
    return parts[1]


class BlobStore(ABC):
    """Durable storage for cached artifacts."""

    def __init__(self, serve_prefix: str = "/api/video/file"):
        self.serve_prefix = serve_prefix.rstrip("/")

    def public_url(self, key: str) -> str:
        """Path under which the API serves this key."""
        return f"{self.serve_prefix}/{key}"

    @abstractmethod
    async def put(self, key: str, data: bytes, content_type: str = VIDEO_CONTENT_TYPE):
        """Store ``data`` at ``key``, replacing any existing object."""

    @abstractmethod
    async def get(self, key: str) -> Optional[bytes]:
        """Object bytes, or None when the key does not exist."""


class LocalBlobStore(BlobStore):
    """Stores blobs as files below ``base_dir``."""

    def __init__(self, base_dir: str, serve_prefix: str = "/api/video/file"):
        super().__init__(serve_prefix)
        self.base_dir = Path(base_dir).resolve()

    def _path(self, key: str) -> Path:
        path = (self.base_dir / key).resolve()
        if self.base_dir not in path.parents:
            raise StorageError(f"Invalid storage key: {key}", key=key)
        return path

    async def put(self, key: str, data: bytes, content_type: str = VIDEO_CONTENT_TYPE):
        path = self._path(key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(path, "wb") as f:
                await f.write(data)
        except OSError as e:
            raise StorageError(f"Failed to write {key}: {e}", key=key) from e

        logger.info(f"Stored {key} ({len(data) / 1024 / 1024:.1f} MB) in {self.base_dir}")

    async def get(self, key: str) -> Optional[bytes]:
        path = self._path(key)
        try:
            async with aiofiles.open(path, "rb") as f:
                return await f.read()
        except FileNotFoundError:
            return None
        except OSError as e:
            raise StorageError(f"Failed to read {key}: {e}", key=key) from e


class S3BlobStore(BlobStore):
    """
    Stores blobs in an S3-compatible bucket (Cloudflare R2).

    boto3 is blocking, so calls run in the default executor.
    """

    def __init__(self, client, bucket: str, serve_prefix: str = "/api/video/file"):
        super().__init__(serve_prefix)
        self.client = client
        self.bucket = bucket

    @classmethod
    def from_config(cls, storage: StorageConfig) -> "S3BlobStore":
        client = boto3.client(
            "s3",
            endpoint_url=storage.endpoint_url,
            aws_access_key_id=storage.r2_access_key,
            aws_secret_access_key=storage.r2_secret_key,
            region_name="auto",
            config=BotoConfig(signature_version="s3v4"),
        )
        return cls(client, storage.r2_bucket, storage.serve_prefix)

    async def _run(self, func, *args, **kwargs):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, partial(func, *args, **kwargs))

    async def put(self, key: str, data: bytes, content_type: str = VIDEO_CONTENT_TYPE):
        try:
            await self._run(
                self.client.put_object,
                Bucket=self.bucket,
                Key=key,
                Body=data,
                ContentType=content_type,
            )
        except (BotoCoreError, ClientError) as e:
            raise StorageError(f"Failed to upload {key}: {e}", key=key) from e

        logger.info(f"Uploaded {key} ({len(data) / 1024 / 1024:.1f} MB) to bucket {self.bucket}")

    async def get(self, key: str) -> Optional[bytes]:
        try:
            response = await self._run(self.client.get_object, Bucket=self.bucket, Key=key)
            return await self._run(response["Body"].read)
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code")
            if code in ("NoSuchKey", "404"):
                return None
            raise StorageError(f"Failed to read {key}: {code}", key=key) from e
        except BotoCoreError as e:
            raise StorageError(f"Failed to read {key}: {e}", key=key) from e


def create_blob_store(config: Config) -> BlobStore:
    storage = config.storage
    if storage.r2_enabled:
        logger.info(f"Caching videos in R2 bucket {storage.r2_bucket}")
        return S3BlobStore.from_config(storage)

    logger.info(f"R2 not configured, caching videos in {os.path.abspath(storage.local_dir)}")
    return LocalBlobStore(storage.local_dir, storage.serve_prefix)
