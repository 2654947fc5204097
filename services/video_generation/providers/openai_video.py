"""
OpenAI Sora video provider.

Flow: POST /videos -> poll GET /videos/{id} -> GET /videos/{id}/content
Auth: Bearer token, also required for the content download.
"""

import logging
from typing import Optional

import httpx

from ..models import (
    Credential,
    GenerationRequest,
    ModelType,
    ProviderStatus,
    ResolutionPricing,
    StatusResult,
    SubmitResult,
    VideoModelDescriptor,
    VideoModelPricing,
)
from .base import VideoProvider, is_transient_status, resolve_size

logger = logging.getLogger(__name__)


OPENAI_STATUS_MAP = {
    "queued": ProviderStatus.QUEUED,
    "in_progress": ProviderStatus.PROCESSING,
    "completed": ProviderStatus.COMPLETE,
    "failed": ProviderStatus.ERROR,
}

# Used when a model has no size for the requested pair
OPENAI_FALLBACK_SIZES = {
    "16:9": {"720p": "1280x720", "1080p": "1792x1024"},
    "9:16": {"720p": "720x1280", "1080p": "1024x1792"},
}

OPENAI_VIDEO_MODELS = [
    VideoModelDescriptor(
        id="sora-2",
        display_name="Sora 2",
        provider="openai",
        type=ModelType.TEXT_TO_VIDEO,
        description="Fast generation with synced audio",
        max_duration=12,
        supported_durations=[4, 8, 12],
        supported_aspect_ratios=["16:9", "9:16"],
        supported_resolutions=["720p"],
        valid_sizes={
            "16:9": {"720p": "1280x720"},
            "9:16": {"720p": "720x1280"},
        },
        pricing=VideoModelPricing(
            estimated_cost_per_second=0.10,
            pricing_by_resolution={"720p": ResolutionPricing(estimated_cost_per_second=0.10)},
        ),
    ),
    VideoModelDescriptor(
        id="sora-2-pro",
        display_name="Sora 2 Pro",
        provider="openai",
        type=ModelType.TEXT_TO_VIDEO,
        description="Higher fidelity output, up to 1080p",
        max_duration=12,
        supported_durations=[4, 8, 12],
        supported_aspect_ratios=["16:9", "9:16"],
        supported_resolutions=["720p", "1080p"],
        valid_sizes={
            "16:9": {"720p": "1280x720", "1080p": "1792x1024"},
            "9:16": {"720p": "720x1280", "1080p": "1024x1792"},
        },
        pricing=VideoModelPricing(
            estimated_cost_per_second=0.30,
            pricing_by_resolution={
                "720p": ResolutionPricing(estimated_cost_per_second=0.30),
                "1080p": ResolutionPricing(estimated_cost_per_second=0.50),
            },
        ),
    ),
]


def _error_message(response: httpx.Response, fallback: str) -> str:
    """Provider-supplied ``error.message`` when present, otherwise ``fallback``."""
    try:
        data = response.json()
    except ValueError:
        return fallback
    if isinstance(data, dict):
        error = data.get("error")
        if isinstance(error, dict) and error.get("message"):
            return error["message"]
    return fallback


def _parse_seconds(value) -> Optional[float]:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


class OpenAIVideoProvider(VideoProvider):
    """Adapter for OpenAI's /v1/videos API."""

    name = "openai"
    default_api_base = "https://api.openai.com/v1"
    download_requires_auth = True

    def list_models(self) -> list[VideoModelDescriptor]:
        return OPENAI_VIDEO_MODELS

    def resolve_size(self, model_id: str, aspect_ratio: Optional[str], resolution: Optional[str]) -> str:
        model = self.get_model(model_id)
        valid_sizes = model.valid_sizes if model else None
        return resolve_size(valid_sizes, aspect_ratio, resolution, OPENAI_FALLBACK_SIZES)

    async def submit(self, credential: Credential, request: GenerationRequest) -> SubmitResult:
        model_id = request.model or OPENAI_VIDEO_MODELS[0].id
        payload = {
            "model": model_id,
            "prompt": request.prompt,
            "size": self.resolve_size(model_id, request.aspect_ratio, request.resolution),
        }
        if request.duration:
            payload["seconds"] = str(request.duration)

        logger.info(f"OpenAI video request: model={model_id}, size={payload['size']}, prompt={request.prompt[:50]}...")

        client = await self._get_client()
        try:
            response = await client.post(
                f"{self.api_base}/videos",
                json=payload,
                headers=self._headers(credential),
            )
        except httpx.RequestError as e:
            logger.warning(f"OpenAI submit failed: {type(e).__name__}: {e}")
            return SubmitResult(
                status=ProviderStatus.ERROR,
                error=str(e) or "Failed to start video generation",
            )

        if not response.is_success:
            return SubmitResult(
                status=ProviderStatus.ERROR,
                error=_error_message(response, f"OpenAI API error: {response.status_code}"),
            )

        try:
            data = response.json()
        except ValueError:
            data = None
        if not isinstance(data, dict):
            return SubmitResult(status=ProviderStatus.ERROR, error="Failed to start video generation")

        job_id = data.get("id")
        if not job_id:
            return SubmitResult(status=ProviderStatus.ERROR, error="OpenAI response did not include a job id")

        status = OPENAI_STATUS_MAP.get(data.get("status"), ProviderStatus.PROCESSING)
        logger.info(f"OpenAI video job created: {job_id} ({status.value})")
        return SubmitResult(status=status, provider_job_id=job_id)

    async def poll(self, credential: Credential, provider_job_id: str) -> StatusResult:
        client = await self._get_client()
        try:
            response = await client.get(
                f"{self.api_base}/videos/{provider_job_id}",
                headers=self._headers(credential),
            )
        except httpx.RequestError as e:
            return StatusResult(
                status=ProviderStatus.ERROR,
                error=str(e) or "Failed to check video status",
                transient=True,
            )

        if not response.is_success:
            return StatusResult(
                status=ProviderStatus.ERROR,
                error=_error_message(response, f"Status check failed: {response.status_code}"),
                transient=is_transient_status(response.status_code),
            )

        try:
            data = response.json()
        except ValueError:
            data = None
        if not isinstance(data, dict):
            return StatusResult(status=ProviderStatus.ERROR, error="Failed to check video status", transient=True)

        status = OPENAI_STATUS_MAP.get(data.get("status"), ProviderStatus.PROCESSING)

        if status == ProviderStatus.COMPLETE:
            return StatusResult(
                status=status,
                video_url=f"{self.api_base}/videos/{provider_job_id}/content",
                duration_seconds=_parse_seconds(data.get("seconds")),
                progress=100,
            )

        if status == ProviderStatus.ERROR:
            error = data.get("error") or {}
            message = error.get("message") if isinstance(error, dict) else None
            return StatusResult(status=status, error=message or "Video generation failed")

        return StatusResult(status=status, progress=data.get("progress") or 0)
