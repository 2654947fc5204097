"""
Provider adapter interface.

Each rendering service gets one ``VideoProvider`` subclass. Adapters never
raise for provider-side failures during ``submit``/``poll``; they return a
normalized result with ``status=error`` instead. Retries are the poller's
job, never the adapter's.
"""

import logging
from abc import ABC, abstractmethod
from typing import Optional

import httpx

from ..errors import DownloadError
from ..models import (
    Credential,
    GenerationRequest,
    StatusResult,
    SubmitResult,
    VideoModelDescriptor,
)

logger = logging.getLogger(__name__)

DEFAULT_ASPECT_RATIO = "16:9"
DEFAULT_RESOLUTION = "720p"


def resolve_size(
    valid_sizes: Optional[dict[str, dict[str, str]]],
    aspect_ratio: Optional[str],
    resolution: Optional[str],
    fallback_sizes: dict[str, dict[str, str]],
) -> str:
    """
    Pick the provider size token for an aspect ratio / resolution pair.

    Order:
    1. Exact pair in the model's ``valid_sizes``
    2. First size the model defines for that aspect ratio
    3. ``fallback_sizes``; an unknown aspect ratio uses the 16:9 row and an
       unknown resolution uses the 720p column
    """
    aspect_ratio = aspect_ratio or DEFAULT_ASPECT_RATIO
    resolution = resolution or DEFAULT_RESOLUTION

    if valid_sizes:
        sizes_for_ratio = valid_sizes.get(aspect_ratio)
        if sizes_for_ratio:
            if resolution in sizes_for_ratio:
                return sizes_for_ratio[resolution]
            return next(iter(sizes_for_ratio.values()))

    row = fallback_sizes.get(aspect_ratio) or fallback_sizes[DEFAULT_ASPECT_RATIO]
    return row.get(resolution) or row[DEFAULT_RESOLUTION]


def is_transient_status(status_code: int) -> bool:
    """Rate limits and server errors are worth polling again."""
    return status_code == 429 or status_code >= 500


class VideoProvider(ABC):
    """
    Base class for video generation provider adapters.

    Usage:
        provider = OpenAIVideoProvider()
        submitted = await provider.submit(credential, request)
        status = await provider.poll(credential, submitted.provider_job_id)
        data = await provider.download(credential, status.video_url)
        await provider.close()
    """

    name: str = ""
    default_api_base: str = ""
    max_prompt_length: int = 4000
    # Whether artifact downloads need the bearer credential
    download_requires_auth: bool = False

    def __init__(
        self,
        api_base: Optional[str] = None,
        timeout: float = 60.0,
        download_timeout: float = 600.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_base = (api_base or self.default_api_base).rstrip("/")
        self.timeout = timeout
        self.download_timeout = download_timeout
        self._transport = transport
        self._http_client: Optional[httpx.AsyncClient] = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self.timeout, transport=self._transport)
        return self._http_client

    async def close(self):
        """Close the HTTP client."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None

    def _headers(self, credential: Credential) -> dict:
        return {
            "Authorization": f"Bearer {credential.api_key}",
            "Content-Type": "application/json",
        }

    @abstractmethod
    async def submit(self, credential: Credential, request: GenerationRequest) -> SubmitResult:
        """Start a generation job with the provider."""

    @abstractmethod
    async def poll(self, credential: Credential, provider_job_id: str) -> StatusResult:
        """Fetch and normalize the status of a provider job."""

    @abstractmethod
    def list_models(self) -> list[VideoModelDescriptor]:
        """Static model catalog. Never touches the network."""

    def get_model(self, model_id: str) -> Optional[VideoModelDescriptor]:
        for model in self.list_models():
            if model.id == model_id:
                return model
        return None

    async def download(self, credential: Credential, url: str) -> bytes:
        """
        Fetch a finished artifact.

        Raises:
            DownloadError: On network failure or a non-2xx response
        """
        headers = {}
        if self.download_requires_auth:
            headers["Authorization"] = f"Bearer {credential.api_key}"

        client = await self._get_client()
        try:
            response = await client.get(
                url,
                headers=headers,
                follow_redirects=True,
                timeout=self.download_timeout,
            )
        except httpx.RequestError as e:
            raise DownloadError(
                f"Failed to download video: {type(e).__name__}: {e}",
                provider=self.name,
            ) from e

        if not response.is_success:
            raise DownloadError(
                f"Failed to download video: {response.status_code}",
                provider=self.name,
            )

        logger.info(f"{self.name}: downloaded {len(response.content) / 1024 / 1024:.1f} MB from provider")
        return response.content
