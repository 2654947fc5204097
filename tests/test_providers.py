"""
Provider Adapter Tests

HTTP traffic is served by httpx.MockTransport, so no network is needed.

Covers:
1. Size resolution for OpenAI models
2. OpenAI submit/poll normalization and error messages
3. WaveSpeed submit/poll normalization
4. Transient vs permanent status failures
5. Artifact downloads

Run with:
    python -m pytest tests/test_providers.py -v
"""

import json
import os
import sys

import httpx
import pytest

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from services.video_generation import (  # noqa: E402
    Credential,
    DownloadError,
    GenerationRequest,
    ProviderStatus,
)
from services.video_generation.providers import (  # noqa: E402
    PROVIDER_CLASSES,
    OpenAIVideoProvider,
    WaveSpeedVideoProvider,
)
from services.video_generation.providers.base import is_transient_status  # noqa: E402
from services.video_generation.providers.wavespeed_video import model_path  # noqa: E402


OPENAI_BASE = "https://api.openai.com/v1"
WAVESPEED_BASE = "https://api.wavespeed.ai/api/v3"


def openai_provider(handler) -> OpenAIVideoProvider:
    return OpenAIVideoProvider(transport=httpx.MockTransport(handler))


def wavespeed_provider(handler) -> WaveSpeedVideoProvider:
    return WaveSpeedVideoProvider(transport=httpx.MockTransport(handler))


@pytest.fixture
def openai_credential():
    return Credential(id="k1", provider="openai", api_key="sk-openai", video_enabled=True)


@pytest.fixture
def wavespeed_credential():
    return Credential(id="k2", provider="wavespeed", api_key="ws-key", video_enabled=True)


class TestProviderClasses:
    def test_registered_by_tag(self):
        assert PROVIDER_CLASSES["openai"] is OpenAIVideoProvider
        assert PROVIDER_CLASSES["wavespeed"] is WaveSpeedVideoProvider

    def test_transient_status_codes(self):
        assert is_transient_status(429)
        assert is_transient_status(500)
        assert is_transient_status(503)
        assert not is_transient_status(400)
        assert not is_transient_status(404)


class TestOpenAISizeResolution:
    """Test aspect ratio / resolution -> size mapping."""

    def setup_method(self):
        self.provider = OpenAIVideoProvider()

    def test_exact_pair(self):
        assert self.provider.resolve_size("sora-2", "9:16", "720p") == "720x1280"
        assert self.provider.resolve_size("sora-2-pro", "16:9", "1080p") == "1792x1024"

    def test_defaults(self):
        assert self.provider.resolve_size("sora-2", None, None) == "1280x720"

    def test_unsupported_resolution_uses_first_size_for_ratio(self):
        assert self.provider.resolve_size("sora-2", "16:9", "480p") == "1280x720"
        assert self.provider.resolve_size("sora-2", "16:9", "1080p") == "1280x720"

    def test_unsupported_ratio_uses_fallback_table(self):
        assert self.provider.resolve_size("sora-2", "1:1", None) == "1280x720"

    def test_unknown_model_uses_fallback_table(self):
        assert self.provider.resolve_size("sora-3", "9:16", "1080p") == "1024x1792"

    def test_unknown_ratio_and_model(self):
        assert self.provider.resolve_size("sora-3", "4:3", "1080p") == "1792x1024"
        assert self.provider.resolve_size("sora-3", "4:3", "4k") == "1280x720"


class TestOpenAISubmit:
    """Test OpenAI job creation."""

    @pytest.mark.asyncio
    async def test_submit_payload_and_headers(self, openai_credential):
        captured = {}

        def handler(request: httpx.Request) -> httpx.Response:
            captured["url"] = str(request.url)
            captured["auth"] = request.headers.get("Authorization")
            captured["body"] = json.loads(request.content)
            return httpx.Response(200, json={"id": "video_abc", "status": "queued"})

        provider = openai_provider(handler)
        result = await provider.submit(
            openai_credential,
            GenerationRequest(prompt="A lighthouse at dusk", model="sora-2", aspect_ratio="9:16", duration=8),
        )
        await provider.close()

        assert result.ok
        assert result.status == ProviderStatus.QUEUED
        assert result.provider_job_id == "video_abc"
        assert captured["url"] == f"{OPENAI_BASE}/videos"
        assert captured["auth"] == "Bearer sk-openai"
        assert captured["body"] == {
            "model": "sora-2",
            "prompt": "A lighthouse at dusk",
            "size": "720x1280",
            "seconds": "8",
        }

    @pytest.mark.asyncio
    async def test_in_progress_status(self, openai_credential):
        provider = openai_provider(lambda request: httpx.Response(200, json={"id": "v1", "status": "in_progress"}))
        result = await provider.submit(openai_credential, GenerationRequest(prompt="x", model="sora-2"))
        assert result.status == ProviderStatus.PROCESSING

    @pytest.mark.asyncio
    async def test_provider_error_message_is_kept(self, openai_credential):
        def handler(request):
            return httpx.Response(400, json={"error": {"message": "Your prompt was flagged"}})

        provider = openai_provider(handler)
        result = await provider.submit(openai_credential, GenerationRequest(prompt="x", model="sora-2"))

        assert not result.ok
        assert result.status == ProviderStatus.ERROR
        assert result.error == "Your prompt was flagged"

    @pytest.mark.asyncio
    async def test_error_without_body(self, openai_credential):
        provider = openai_provider(lambda request: httpx.Response(500, text="upstream exploded"))
        result = await provider.submit(openai_credential, GenerationRequest(prompt="x", model="sora-2"))

        assert result.status == ProviderStatus.ERROR
        assert result.error == "OpenAI API error: 500"

    @pytest.mark.asyncio
    async def test_network_failure(self, openai_credential):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        provider = openai_provider(handler)
        result = await provider.submit(openai_credential, GenerationRequest(prompt="x", model="sora-2"))

        assert result.status == ProviderStatus.ERROR
        assert "connection refused" in result.error

    @pytest.mark.asyncio
    async def test_missing_job_id(self, openai_credential):
        provider = openai_provider(lambda request: httpx.Response(200, json={"status": "queued"}))
        result = await provider.submit(openai_credential, GenerationRequest(prompt="x", model="sora-2"))

        assert not result.ok
        assert result.status == ProviderStatus.ERROR


class TestOpenAIPoll:
    """Test OpenAI status normalization."""

    @pytest.mark.asyncio
    async def test_in_progress_with_progress(self, openai_credential):
        provider = openai_provider(
            lambda request: httpx.Response(200, json={"id": "v1", "status": "in_progress", "progress": 42})
        )
        status = await provider.poll(openai_credential, "v1")

        assert status.status == ProviderStatus.PROCESSING
        assert status.progress == 42
        assert not status.transient

    @pytest.mark.asyncio
    async def test_completed_points_at_content_endpoint(self, openai_credential):
        captured = {}

        def handler(request):
            captured["url"] = str(request.url)
            return httpx.Response(200, json={"id": "v1", "status": "completed", "seconds": "8"})

        provider = openai_provider(handler)
        status = await provider.poll(openai_credential, "v1")

        assert captured["url"] == f"{OPENAI_BASE}/videos/v1"
        assert status.status == ProviderStatus.COMPLETE
        assert status.video_url == f"{OPENAI_BASE}/videos/v1/content"
        assert status.duration_seconds == 8.0
        assert status.progress == 100

    @pytest.mark.asyncio
    async def test_failed_job(self, openai_credential):
        provider = openai_provider(lambda request: httpx.Response(
            200, json={"id": "v1", "status": "failed", "error": {"message": "Content policy violation"}},
        ))
        status = await provider.poll(openai_credential, "v1")

        assert status.status == ProviderStatus.ERROR
        assert status.error == "Content policy violation"
        assert not status.transient

    @pytest.mark.asyncio
    async def test_failed_job_without_message(self, openai_credential):
        provider = openai_provider(lambda request: httpx.Response(200, json={"id": "v1", "status": "failed"}))
        status = await provider.poll(openai_credential, "v1")

        assert status.error == "Video generation failed"

    @pytest.mark.asyncio
    async def test_unknown_status_is_processing(self, openai_credential):
        provider = openai_provider(lambda request: httpx.Response(200, json={"id": "v1", "status": "warming_up"}))
        status = await provider.poll(openai_credential, "v1")

        assert status.status == ProviderStatus.PROCESSING

    @pytest.mark.asyncio
    async def test_server_error_is_transient(self, openai_credential):
        provider = openai_provider(lambda request: httpx.Response(503, text="unavailable"))
        status = await provider.poll(openai_credential, "v1")

        assert status.status == ProviderStatus.ERROR
        assert status.transient
        assert status.error == "Status check failed: 503"

    @pytest.mark.asyncio
    async def test_rate_limit_is_transient(self, openai_credential):
        provider = openai_provider(lambda request: httpx.Response(429, json={"error": {"message": "Slow down"}}))
        status = await provider.poll(openai_credential, "v1")

        assert status.transient
        assert status.error == "Slow down"

    @pytest.mark.asyncio
    async def test_not_found_is_permanent(self, openai_credential):
        provider = openai_provider(lambda request: httpx.Response(404, json={"error": {"message": "No such video"}}))
        status = await provider.poll(openai_credential, "v1")

        assert status.status == ProviderStatus.ERROR
        assert not status.transient

    @pytest.mark.asyncio
    async def test_unparseable_body_is_transient(self, openai_credential):
        provider = openai_provider(lambda request: httpx.Response(200, text="<html>gateway</html>"))
        status = await provider.poll(openai_credential, "v1")

        assert status.status == ProviderStatus.ERROR
        assert status.transient

    @pytest.mark.asyncio
    async def test_network_failure_is_transient(self, openai_credential):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        provider = openai_provider(handler)
        status = await provider.poll(openai_credential, "v1")

        assert status.status == ProviderStatus.ERROR
        assert status.transient


class TestDownload:
    """Test artifact downloads."""

    @pytest.mark.asyncio
    async def test_openai_download_sends_credential(self, openai_credential):
        captured = {}

        def handler(request):
            captured["auth"] = request.headers.get("Authorization")
            return httpx.Response(200, content=b"mp4-bytes")

        provider = openai_provider(handler)
        data = await provider.download(openai_credential, f"{OPENAI_BASE}/videos/v1/content")

        assert data == b"mp4-bytes"
        assert captured["auth"] == "Bearer sk-openai"

    @pytest.mark.asyncio
    async def test_wavespeed_download_is_anonymous(self, wavespeed_credential):
        captured = {}

        def handler(request):
            captured["auth"] = request.headers.get("Authorization")
            return httpx.Response(200, content=b"mp4-bytes")

        provider = wavespeed_provider(handler)
        data = await provider.download(wavespeed_credential, "https://cdn.wavespeed.ai/out/123.mp4")

        assert data == b"mp4-bytes"
        assert captured["auth"] is None

    @pytest.mark.asyncio
    async def test_download_http_error(self, openai_credential):
        provider = openai_provider(lambda request: httpx.Response(404))

        with pytest.raises(DownloadError) as exc_info:
            await provider.download(openai_credential, f"{OPENAI_BASE}/videos/v1/content")
        assert "404" in str(exc_info.value)
        assert exc_info.value.provider == "openai"

    @pytest.mark.asyncio
    async def test_download_network_error(self, openai_credential):
        def handler(request):
            raise httpx.ConnectError("reset by peer", request=request)

        provider = openai_provider(handler)
        with pytest.raises(DownloadError):
            await provider.download(openai_credential, f"{OPENAI_BASE}/videos/v1/content")


class TestWaveSpeed:
    """Test WaveSpeed submit/poll normalization."""

    def test_model_path_prefix(self):
        assert model_path("wan-2.1/t2v") == "wavespeed-ai/wan-2.1/t2v"
        assert model_path("wavespeed-ai/wan-2.1/t2v") == "wavespeed-ai/wan-2.1/t2v"

    @pytest.mark.asyncio
    async def test_submit(self, wavespeed_credential):
        captured = {}

        def handler(request):
            captured["url"] = str(request.url)
            captured["body"] = json.loads(request.content)
            return httpx.Response(200, json={"data": {"id": "task-1", "status": "created"}})

        provider = wavespeed_provider(handler)
        result = await provider.submit(
            wavespeed_credential,
            GenerationRequest(prompt="Waves", model="wan-2.1/t2v", resolution="480p"),
        )

        assert result.ok
        assert result.status == ProviderStatus.QUEUED
        assert result.provider_job_id == "task-1"
        assert captured["url"] == f"{WAVESPEED_BASE}/wavespeed-ai/wan-2.1/t2v"
        assert captured["body"] == {"prompt": "Waves", "resolution": "480p"}

    @pytest.mark.asyncio
    async def test_submit_error_includes_body(self, wavespeed_credential):
        provider = wavespeed_provider(lambda request: httpx.Response(401, text="invalid api key"))
        result = await provider.submit(wavespeed_credential, GenerationRequest(prompt="x", model="wan-2.1/t2v"))

        assert result.status == ProviderStatus.ERROR
        assert result.error == "WaveSpeed API error 401: invalid api key"

    @pytest.mark.asyncio
    async def test_poll_status_mapping(self, wavespeed_credential):
        expected = {
            "created": ProviderStatus.QUEUED,
            "pending": ProviderStatus.QUEUED,
            "processing": ProviderStatus.PROCESSING,
            "mystery": ProviderStatus.PROCESSING,
        }
        for raw, normalized in expected.items():
            provider = wavespeed_provider(
                lambda request, raw=raw: httpx.Response(200, json={"data": {"id": "t", "status": raw}})
            )
            status = await provider.poll(wavespeed_credential, "t")
            assert status.status == normalized, raw

    @pytest.mark.asyncio
    async def test_poll_completed_uses_first_output(self, wavespeed_credential):
        captured = {}

        def handler(request):
            captured["url"] = str(request.url)
            return httpx.Response(200, json={"data": {
                "id": "task-1",
                "status": "completed",
                "outputs": ["https://cdn.wavespeed.ai/a.mp4", "https://cdn.wavespeed.ai/b.mp4"],
            }})

        provider = wavespeed_provider(handler)
        status = await provider.poll(wavespeed_credential, "task-1")

        assert captured["url"] == f"{WAVESPEED_BASE}/predictions/task-1/result"
        assert status.status == ProviderStatus.COMPLETE
        assert status.video_url == "https://cdn.wavespeed.ai/a.mp4"

    @pytest.mark.asyncio
    async def test_poll_failed(self, wavespeed_credential):
        provider = wavespeed_provider(
            lambda request: httpx.Response(200, json={"data": {"id": "t", "status": "failed", "error": "NSFW"}})
        )
        status = await provider.poll(wavespeed_credential, "t")

        assert status.status == ProviderStatus.ERROR
        assert status.error == "NSFW"
        assert not status.transient

    @pytest.mark.asyncio
    async def test_poll_failed_without_message(self, wavespeed_credential):
        provider = wavespeed_provider(
            lambda request: httpx.Response(200, json={"data": {"id": "t", "status": "failed"}})
        )
        status = await provider.poll(wavespeed_credential, "t")

        assert status.error == "Unknown error"

    @pytest.mark.asyncio
    async def test_poll_server_error_is_transient(self, wavespeed_credential):
        provider = wavespeed_provider(lambda request: httpx.Response(502, text="bad gateway"))
        status = await provider.poll(wavespeed_credential, "t")

        assert status.transient

    def test_catalog_is_consolidated(self):
        ids = [model.id for model in WaveSpeedVideoProvider().list_models()]
        assert "wan-2.1/t2v" in ids
        assert "wan-2.1/t2v-480p" not in ids
        assert len(ids) == len(set(ids))
