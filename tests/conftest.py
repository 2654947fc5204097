"""
Shared fixtures for the video job tests.

The scripted provider stands in for a real rendering service: tests queue up
submit/poll results and inspect the calls it received.
"""

import os
import sys
from unittest.mock import AsyncMock, MagicMock

import pytest

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from services.video_generation import (  # noqa: E402
    Credential,
    InMemoryJobStore,
    LocalBlobStore,
    ProviderRegistry,
    ProviderStatus,
    StatusResult,
    SubmitResult,
)
from services.video_generation.credentials import StaticCredentialSource  # noqa: E402
from services.video_generation.providers import VideoProvider  # noqa: E402
from services.video_generation.providers.openai_video import OPENAI_VIDEO_MODELS  # noqa: E402


class ScriptedProvider(VideoProvider):
    """Provider adapter whose responses are queued up by the test."""

    name = "openai"

    def __init__(self):
        super().__init__(api_base="https://provider.test")
        self.submit_results: list[SubmitResult] = []
        self.poll_results: list[StatusResult] = []
        self.download_errors: list[Exception] = []
        self.download_data = b"fake-mp4-bytes"

        self.submit_calls = []
        self.poll_calls = []
        self.download_calls = []

    def list_models(self):
        return OPENAI_VIDEO_MODELS

    async def submit(self, credential, request):
        self.submit_calls.append(request)
        if self.submit_results:
            return self.submit_results.pop(0)
        return SubmitResult(status=ProviderStatus.QUEUED, provider_job_id=f"video_{len(self.submit_calls)}")

    async def poll(self, credential, provider_job_id):
        self.poll_calls.append(provider_job_id)
        if self.poll_results:
            return self.poll_results.pop(0)
        return StatusResult(status=ProviderStatus.PROCESSING, progress=50)

    async def download(self, credential, url):
        self.download_calls.append(url)
        if self.download_errors:
            raise self.download_errors.pop(0)
        return self.download_data


async def no_sleep(_seconds):
    return None


@pytest.fixture
def credential():
    return Credential(
        id="key-1",
        name="Sora key",
        provider="openai",
        api_key="sk-test",
        video_enabled=True,
    )


@pytest.fixture
def scripted_provider():
    return ScriptedProvider()


@pytest.fixture
def registry(scripted_provider, credential):
    return ProviderRegistry({"openai": scripted_provider}, StaticCredentialSource([credential]))


@pytest.fixture
def job_store():
    return InMemoryJobStore()


@pytest.fixture
def blob_store(tmp_path):
    return LocalBlobStore(str(tmp_path / "blobs"))


@pytest.fixture
def mock_conn():
    """Mock asyncpg connection."""
    conn = AsyncMock()
    conn.execute = AsyncMock(return_value="UPDATE 1")
    conn.fetchrow = AsyncMock(return_value=None)
    conn.fetch = AsyncMock(return_value=[])
    conn.fetchval = AsyncMock(return_value=None)
    return conn


@pytest.fixture
def mock_pool(mock_conn):
    """Mock asyncpg pool whose acquire() yields ``mock_conn``."""
    pool = MagicMock()
    pool.acquire = MagicMock(return_value=AsyncMock(
        __aenter__=AsyncMock(return_value=mock_conn),
        __aexit__=AsyncMock(return_value=None),
    ))
    return pool
