"""
WaveSpeed AI video provider.

API Base URL: https://api.wavespeed.ai/api/v3
Flow: POST /wavespeed-ai/{model} -> poll GET /predictions/{id}/result
Auth: Bearer token. Output URLs are signed and download without auth.
"""

import logging

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
from .base import VideoProvider, is_transient_status

logger = logging.getLogger(__name__)


WAVESPEED_STATUS_MAP = {
    "created": ProviderStatus.QUEUED,
    "pending": ProviderStatus.QUEUED,
    "processing": ProviderStatus.PROCESSING,
    "completed": ProviderStatus.COMPLETE,
    "failed": ProviderStatus.ERROR,
}

MODEL_PREFIX = "wavespeed-ai/"

_VIDEO_DURATIONS = [5, 8]
_ASPECT_RATIOS = ["16:9", "9:16", "1:1"]


def _flat(amount: float) -> VideoModelPricing:
    return VideoModelPricing(estimated_cost_per_generation=amount)


def _tiered(rate_480p: float, rate_720p: float) -> VideoModelPricing:
    return VideoModelPricing(
        estimated_cost_per_generation=rate_720p,
        pricing_by_resolution={
            "480p": ResolutionPricing(estimated_cost_per_generation=rate_480p),
            "720p": ResolutionPricing(estimated_cost_per_generation=rate_720p),
        },
    )


def _wan(model_id: str, display_name: str, model_type: ModelType, pricing: VideoModelPricing) -> VideoModelDescriptor:
    return VideoModelDescriptor(
        id=model_id,
        display_name=display_name,
        provider="wavespeed",
        type=model_type,
        max_duration=max(_VIDEO_DURATIONS),
        supported_durations=list(_VIDEO_DURATIONS),
        supported_aspect_ratios=list(_ASPECT_RATIOS),
        supported_resolutions=["480p", "720p"],
        pricing=pricing,
    )


# Fallback estimates; see https://wavespeed.ai/pricing
WAVESPEED_VIDEO_MODELS = [
    _wan("wan-2.1/t2v", "Wan 2.1 Text-to-Video", ModelType.TEXT_TO_VIDEO, _tiered(0.02, 0.03)),
    _wan("wan-2.1/i2v", "Wan 2.1 Image-to-Video", ModelType.IMAGE_TO_VIDEO, _tiered(0.03, 0.04)),
    _wan("wan-2.2/t2v", "Wan 2.2 Text-to-Video", ModelType.TEXT_TO_VIDEO, _tiered(0.03, 0.04)),
    _wan("wan-2.2/i2v", "Wan 2.2 Image-to-Video", ModelType.IMAGE_TO_VIDEO, _tiered(0.03, 0.04)),
    VideoModelDescriptor(
        id="flux-dev",
        display_name="FLUX Dev",
        provider="wavespeed",
        type=ModelType.IMAGE,
        supported_aspect_ratios=list(_ASPECT_RATIOS),
        pricing=_flat(0.025),
    ),
    VideoModelDescriptor(
        id="flux-schnell",
        display_name="FLUX Schnell",
        provider="wavespeed",
        type=ModelType.IMAGE,
        supported_aspect_ratios=list(_ASPECT_RATIOS),
        pricing=_flat(0.015),
    ),
    VideoModelDescriptor(
        id="hunyuan-video/t2v",
        display_name="Hunyuan Video Text-to-Video",
        provider="wavespeed",
        type=ModelType.TEXT_TO_VIDEO,
        max_duration=8,
        supported_durations=list(_VIDEO_DURATIONS),
        supported_aspect_ratios=list(_ASPECT_RATIOS),
        pricing=_flat(0.05),
    ),
    VideoModelDescriptor(
        id="ltx-video/ltx-2-19b-text-to-video",
        display_name="LTX 2 Text-to-Video",
        provider="wavespeed",
        type=ModelType.TEXT_TO_VIDEO,
        max_duration=8,
        supported_durations=list(_VIDEO_DURATIONS),
        supported_aspect_ratios=list(_ASPECT_RATIOS),
        pricing=_flat(0.03),
    ),
    VideoModelDescriptor(
        id="ltx-video/ltx-2-19b-image-to-video",
        display_name="LTX 2 Image-to-Video",
        provider="wavespeed",
        type=ModelType.IMAGE_TO_VIDEO,
        max_duration=8,
        supported_durations=list(_VIDEO_DURATIONS),
        supported_aspect_ratios=list(_ASPECT_RATIOS),
        pricing=_flat(0.035),
    ),
    VideoModelDescriptor(
        id="framepack/framepack-f1",
        display_name="Framepack",
        provider="wavespeed",
        type=ModelType.IMAGE_TO_VIDEO,
        max_duration=8,
        supported_durations=list(_VIDEO_DURATIONS),
        supported_aspect_ratios=list(_ASPECT_RATIOS),
        pricing=_flat(0.04),
    ),
]


def model_path(model_id: str) -> str:
    """API path for a model; ids may already carry the vendor prefix."""
    if model_id.startswith(MODEL_PREFIX):
        return model_id
    return f"{MODEL_PREFIX}{model_id}"


class WaveSpeedVideoProvider(VideoProvider):
    """Adapter for WaveSpeed AI's task API."""

    name = "wavespeed"
    default_api_base = "https://api.wavespeed.ai/api/v3"
    download_requires_auth = False

    def list_models(self) -> list[VideoModelDescriptor]:
        return WAVESPEED_VIDEO_MODELS

    async def submit(self, credential: Credential, request: GenerationRequest) -> SubmitResult:
        model_id = request.model or WAVESPEED_VIDEO_MODELS[0].id
        payload = {"prompt": request.prompt}
        if request.aspect_ratio:
            payload["aspect_ratio"] = request.aspect_ratio
        if request.duration:
            payload["duration"] = request.duration
        if request.resolution:
            payload["resolution"] = request.resolution

        logger.info(f"WaveSpeed request: model={model_id}, prompt={request.prompt[:50]}...")

        client = await self._get_client()
        try:
            response = await client.post(
                f"{self.api_base}/{model_path(model_id)}",
                json=payload,
                headers=self._headers(credential),
            )
        except httpx.RequestError as e:
            logger.warning(f"WaveSpeed submit failed: {type(e).__name__}: {e}")
            return SubmitResult(
                status=ProviderStatus.ERROR,
                error=str(e) or "Failed to start video generation",
            )

        if not response.is_success:
            return SubmitResult(
                status=ProviderStatus.ERROR,
                error=f"WaveSpeed API error {response.status_code}: {response.text or 'Unknown error'}",
            )

        task = self._task_data(response)
        if task is None or not task.get("id"):
            return SubmitResult(status=ProviderStatus.ERROR, error="WaveSpeed response did not include a task id")

        status = WAVESPEED_STATUS_MAP.get(task.get("status"), ProviderStatus.PROCESSING)
        logger.info(f"WaveSpeed task created: {task['id']} ({status.value})")
        return SubmitResult(status=status, provider_job_id=task["id"])

    async def poll(self, credential: Credential, provider_job_id: str) -> StatusResult:
        client = await self._get_client()
        try:
            response = await client.get(
                f"{self.api_base}/predictions/{provider_job_id}/result",
                headers={"Authorization": f"Bearer {credential.api_key}"},
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
                error=f"WaveSpeed API error {response.status_code}: {response.text or 'Unknown error'}",
                transient=is_transient_status(response.status_code),
            )

        task = self._task_data(response)
        if task is None:
            return StatusResult(status=ProviderStatus.ERROR, error="Failed to check video status", transient=True)

        status = WAVESPEED_STATUS_MAP.get(task.get("status"), ProviderStatus.PROCESSING)

        if status == ProviderStatus.COMPLETE:
            outputs = task.get("outputs") or []
            return StatusResult(status=status, video_url=outputs[0] if outputs else None, progress=100)

        if status == ProviderStatus.ERROR:
            return StatusResult(status=status, error=task.get("error") or "Unknown error")

        return StatusResult(status=status)

    @staticmethod
    def _task_data(response: httpx.Response):
        """The ``data`` envelope of a WaveSpeed response, or None if unparseable."""
        try:
            body = response.json()
        except ValueError:
            return None
        if not isinstance(body, dict) or not isinstance(body.get("data"), dict):
            return None
        return body["data"]
