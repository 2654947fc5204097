"""
Data types shared by providers, the job store, the poller and the API.

Python attributes are snake_case; ``to_dict`` produces the camelCase
projection returned to HTTP clients.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


class JobStatus(str, Enum):
    """Lifecycle of a persisted video job. Moves forward only."""
    QUEUED = "queued"
    GENERATING = "generating"
    COMPLETE = "complete"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETE, JobStatus.ERROR)


class ProviderStatus(str, Enum):
    """Canonical status vocabulary every provider adapter normalizes to."""
    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETE = "complete"
    ERROR = "error"


class ModelType(str, Enum):
    TEXT_TO_VIDEO = "text-to-video"
    IMAGE_TO_VIDEO = "image-to-video"
    IMAGE = "image"


@dataclass
class ResolutionPricing:
    """Pricing tier for a single output resolution."""
    estimated_cost_per_second: Optional[float] = None
    estimated_cost_per_generation: Optional[float] = None

    def to_dict(self) -> dict:
        data = {}
        if self.estimated_cost_per_second is not None:
            data["estimatedCostPerSecond"] = self.estimated_cost_per_second
        if self.estimated_cost_per_generation is not None:
            data["estimatedCostPerGeneration"] = self.estimated_cost_per_generation
        return data


@dataclass
class VideoModelPricing:
    """Pricing descriptor attached to a model catalog entry."""
    estimated_cost_per_second: Optional[float] = None
    estimated_cost_per_generation: Optional[float] = None
    pricing_by_resolution: dict[str, ResolutionPricing] = field(default_factory=dict)
    currency: str = "USD"

    def to_dict(self) -> dict:
        data: dict[str, Any] = {"currency": self.currency}
        if self.estimated_cost_per_second is not None:
            data["estimatedCostPerSecond"] = self.estimated_cost_per_second
        if self.estimated_cost_per_generation is not None:
            data["estimatedCostPerGeneration"] = self.estimated_cost_per_generation
        if self.pricing_by_resolution:
            data["pricingByResolution"] = {
                resolution: tier.to_dict()
                for resolution, tier in self.pricing_by_resolution.items()
            }
        return data


@dataclass
class VideoModelDescriptor:
    """Static catalog entry advertised by a provider adapter."""
    id: str
    display_name: str
    provider: str
    type: ModelType = ModelType.TEXT_TO_VIDEO
    max_duration: Optional[int] = None
    supported_durations: list[int] = field(default_factory=list)
    supported_aspect_ratios: list[str] = field(default_factory=list)
    supported_resolutions: list[str] = field(default_factory=list)
    # aspect ratio -> resolution -> provider size token
    valid_sizes: Optional[dict[str, dict[str, str]]] = None
    pricing: Optional[VideoModelPricing] = None
    description: str = ""

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "displayName": self.display_name,
            "provider": self.provider,
            "type": self.type.value,
            "description": self.description,
            "maxDuration": self.max_duration,
            "supportedDurations": list(self.supported_durations),
            "supportedAspectRatios": list(self.supported_aspect_ratios),
            "supportedResolutions": list(self.supported_resolutions),
            "validSizes": self.valid_sizes,
            "pricing": self.pricing.to_dict() if self.pricing else None,
        }


@dataclass
class Credential:
    """
    A stored provider API key plus its capability flags.

    Owned by an external credential store; the orchestrator only reads it.
    """
    id: str
    provider: str
    api_key: str
    name: str = ""
    enabled: bool = True
    video_enabled: bool = False
    video_models: list[str] = field(default_factory=list)

    @property
    def usable_for_video(self) -> bool:
        return self.enabled and self.video_enabled

    @classmethod
    def from_dict(cls, data: dict) -> "Credential":
        """Build from a stored record. Accepts camelCase or snake_case keys."""
        def pick(*keys, default=None):
            for key in keys:
                if key in data and data[key] is not None:
                    return data[key]
            return default

        return cls(
            id=str(pick("id", default="")),
            provider=pick("provider", default=""),
            api_key=pick("apiKey", "api_key", default=""),
            name=pick("name", default=""),
            enabled=pick("enabled", default=True) is not False,
            video_enabled=pick("videoEnabled", "video_enabled", default=False) is True,
            video_models=list(pick("videoModels", "video_models", default=[]) or []),
        )

    def __repr__(self) -> str:
        return f"Credential(id={self.id!r}, provider={self.provider!r}, name={self.name!r})"


@dataclass
class GenerationRequest:
    """Request for video generation."""
    prompt: str
    model: Optional[str] = None
    provider: Optional[str] = None
    aspect_ratio: Optional[str] = None
    duration: Optional[int] = None
    resolution: Optional[str] = None

    # Opaque display links owned by the chat collaborator
    conversation_id: Optional[str] = None
    message_id: Optional[str] = None


@dataclass
class SubmitResult:
    """Normalized outcome of a provider create-job call."""
    status: ProviderStatus
    provider_job_id: Optional[str] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status != ProviderStatus.ERROR and bool(self.provider_job_id)


@dataclass
class StatusResult:
    """
    Normalized outcome of a provider status call.

    ``transient`` marks failures of the call itself (network, 429/5xx,
    unparseable body) as opposed to the provider reporting a failed job.
    """
    status: ProviderStatus
    video_url: Optional[str] = None
    thumbnail_url: Optional[str] = None
    duration_seconds: Optional[float] = None
    progress: Optional[int] = None
    error: Optional[str] = None
    transient: bool = False


@dataclass
class Job:
    """One rendering attempt, as persisted in ``video_generations``."""
    id: str
    user_id: str
    prompt: str
    provider: str
    model: str
    status: JobStatus = JobStatus.QUEUED
    provider_job_id: Optional[str] = None
    video_url: Optional[str] = None
    thumbnail_url: Optional[str] = None
    blob_key: Optional[str] = None
    duration_seconds: Optional[float] = None
    aspect_ratio: Optional[str] = None
    resolution: Optional[str] = None
    cost: Optional[float] = None
    error: Optional[str] = None
    conversation_id: Optional[str] = None
    message_id: Optional[str] = None
    created_at: datetime = field(default_factory=utcnow)
    completed_at: Optional[datetime] = None

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @classmethod
    def from_row(cls, row: dict) -> "Job":
        """Build from a database row (``dict(record)``)."""
        cost = row.get("cost")
        duration = row.get("duration_seconds")
        return cls(
            id=str(row["id"]),
            user_id=str(row["user_id"]),
            prompt=row["prompt"],
            provider=row["provider"],
            model=row["model"],
            status=JobStatus(row["status"]),
            provider_job_id=row.get("provider_job_id"),
            video_url=row.get("video_url"),
            thumbnail_url=row.get("thumbnail_url"),
            blob_key=row.get("blob_key"),
            duration_seconds=float(duration) if duration is not None else None,
            aspect_ratio=row.get("aspect_ratio"),
            resolution=row.get("resolution"),
            cost=float(cost) if isinstance(cost, (Decimal, int, float)) else cost,
            error=row.get("error"),
            conversation_id=row.get("conversation_id"),
            message_id=row.get("message_id"),
            created_at=row.get("created_at") or utcnow(),
            completed_at=row.get("completed_at"),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "prompt": self.prompt,
            "provider": self.provider,
            "providerJobId": self.provider_job_id,
            "model": self.model,
            "status": self.status.value,
            "videoUrl": self.video_url,
            "thumbnailUrl": self.thumbnail_url,
            "blobKey": self.blob_key,
            "durationSeconds": self.duration_seconds,
            "aspectRatio": self.aspect_ratio,
            "resolution": self.resolution,
            "cost": self.cost,
            "error": self.error,
            "conversationId": self.conversation_id,
            "messageId": self.message_id,
            "createdAt": _iso(self.created_at),
            "completedAt": _iso(self.completed_at),
        }
