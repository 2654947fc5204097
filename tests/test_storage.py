"""
Blob Storage Tests

Covers:
1. Video key layout and ownership
2. Local directory storage
3. S3/R2 storage through a mocked boto3 client
4. Backend selection from config

Run with:
    python -m pytest tests/test_storage.py -v
"""

import io
import os
import sys
from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from core.config import Config, StorageConfig  # noqa: E402
from services.video_generation import (  # noqa: E402
    Job,
    LocalBlobStore,
    S3BlobStore,
    StorageError,
    create_blob_store,
    video_blob_key,
)
from services.video_generation.storage import key_owner  # noqa: E402


def client_error(code: str, operation: str = "GetObject") -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": code}}, operation)


class TestKeys:
    """Test key layout."""

    def test_video_blob_key(self):
        job = Job(id="job-1", user_id="user-1", prompt="p", provider="openai", model="sora-2")
        assert video_blob_key(job) == "videos/user-1/job-1.mp4"

    def test_key_owner(self):
        assert key_owner("videos/user-1/job-1.mp4") == "user-1"
        assert key_owner("videos//job-1.mp4") is None
        assert key_owner("thumbnails/user-1/job-1.jpg") is None
        assert key_owner("videos/user-1/nested/job-1.mp4") is None


class TestLocalBlobStore:
    """Test the local directory backend."""

    @pytest.mark.asyncio
    async def test_put_and_get(self, tmp_path):
        store = LocalBlobStore(str(tmp_path))

        await store.put("videos/user-1/job-1.mp4", b"mp4-bytes")

        assert (tmp_path / "videos" / "user-1" / "job-1.mp4").read_bytes() == b"mp4-bytes"
        assert await store.get("videos/user-1/job-1.mp4") == b"mp4-bytes"

    @pytest.mark.asyncio
    async def test_put_overwrites(self, tmp_path):
        store = LocalBlobStore(str(tmp_path))
        await store.put("videos/u/j.mp4", b"first")
        await store.put("videos/u/j.mp4", b"second")
        assert await store.get("videos/u/j.mp4") == b"second"

    @pytest.mark.asyncio
    async def test_missing_key(self, tmp_path):
        assert await LocalBlobStore(str(tmp_path)).get("videos/u/missing.mp4") is None

    @pytest.mark.asyncio
    async def test_path_traversal_rejected(self, tmp_path):
        store = LocalBlobStore(str(tmp_path / "blobs"))
        with pytest.raises(StorageError):
            await store.put("../escape.mp4", b"x")
        with pytest.raises(StorageError):
            await store.get("videos/../../escape.mp4")

    def test_public_url(self, tmp_path):
        store = LocalBlobStore(str(tmp_path), serve_prefix="/api/video/file/")
        assert store.public_url("videos/u/j.mp4") == "/api/video/file/videos/u/j.mp4"


class TestS3BlobStore:
    """Test the S3-compatible backend with a mocked client."""

    @pytest.mark.asyncio
    async def test_put(self):
        client = MagicMock()
        store = S3BlobStore(client, "video-generations")

        await store.put("videos/u/j.mp4", b"mp4-bytes")

        client.put_object.assert_called_once_with(
            Bucket="video-generations",
            Key="videos/u/j.mp4",
            Body=b"mp4-bytes",
            ContentType="video/mp4",
        )

    @pytest.mark.asyncio
    async def test_put_failure(self):
        client = MagicMock()
        client.put_object.side_effect = client_error("AccessDenied", "PutObject")
        store = S3BlobStore(client, "video-generations")

        with pytest.raises(StorageError) as exc_info:
            await store.put("videos/u/j.mp4", b"mp4-bytes")
        assert exc_info.value.key == "videos/u/j.mp4"

    @pytest.mark.asyncio
    async def test_get(self):
        client = MagicMock()
        client.get_object.return_value = {"Body": io.BytesIO(b"mp4-bytes")}
        store = S3BlobStore(client, "video-generations")

        assert await store.get("videos/u/j.mp4") == b"mp4-bytes"
        client.get_object.assert_called_once_with(Bucket="video-generations", Key="videos/u/j.mp4")

    @pytest.mark.asyncio
    async def test_get_missing(self):
        client = MagicMock()
        client.get_object.side_effect = client_error("NoSuchKey")
        assert await S3BlobStore(client, "video-generations").get("videos/u/j.mp4") is None

    @pytest.mark.asyncio
    async def test_get_other_error(self):
        client = MagicMock()
        client.get_object.side_effect = client_error("AccessDenied")
        with pytest.raises(StorageError):
            await S3BlobStore(client, "video-generations").get("videos/u/j.mp4")


class TestCreateBlobStore:
    """Test backend selection."""

    def test_local_when_r2_not_configured(self, tmp_path):
        config = Config(storage=StorageConfig(
            r2_account_id="",
            r2_access_key="",
            r2_secret_key="",
            r2_endpoint_url="",
            local_dir=str(tmp_path),
        ))
        store = create_blob_store(config)
        assert isinstance(store, LocalBlobStore)

    def test_r2_when_configured(self):
        config = Config(storage=StorageConfig(
            r2_account_id="acct",
            r2_access_key="key",
            r2_secret_key="secret",
            r2_bucket="clips",
            r2_endpoint_url="",
        ))
        store = create_blob_store(config)

        assert isinstance(store, S3BlobStore)
        assert store.bucket == "clips"
        assert config.storage.endpoint_url == "https://acct.r2.cloudflarestorage.com"
