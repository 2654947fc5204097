"""
Video Generation Service

Provider adapters (OpenAI Sora, WaveSpeed), the credential-aware provider
registry, job persistence, blob caching, pricing and submission.
"""

from .errors import (
    AccessDenied,
    DownloadError,
    JobNotFound,
    PollingError,
    ProviderUnavailable,
    ScheduleNotFound,
    StorageError,
    SubmissionError,
    ValidationError,
    VideoGenerationError,
)
from .job_store import InMemoryJobStore, JobStore, PostgresJobStore
from .models import (
    Credential,
    GenerationRequest,
    Job,
    JobStatus,
    ModelType,
    ProviderStatus,
    ResolutionPricing,
    StatusResult,
    SubmitResult,
    VideoModelDescriptor,
    VideoModelPricing,
)
from .pricing import calculate_video_cost, format_cost, lookup_video_model_cost
from .registry import LEGACY_MODEL_ALIASES, ProviderRegistry, canonical_model_id
from .storage import BlobStore, LocalBlobStore, S3BlobStore, create_blob_store, video_blob_key
from .submission import JobSubmitter

__all__ = [
    "AccessDenied",
    "DownloadError",
    "JobNotFound",
    "PollingError",
    "ProviderUnavailable",
    "ScheduleNotFound",
    "StorageError",
    "SubmissionError",
    "ValidationError",
    "VideoGenerationError",
    "InMemoryJobStore",
    "JobStore",
    "PostgresJobStore",
    "Credential",
    "GenerationRequest",
    "Job",
    "JobStatus",
    "ModelType",
    "ProviderStatus",
    "ResolutionPricing",
    "StatusResult",
    "SubmitResult",
    "VideoModelDescriptor",
    "VideoModelPricing",
    "calculate_video_cost",
    "format_cost",
    "lookup_video_model_cost",
    "LEGACY_MODEL_ALIASES",
    "ProviderRegistry",
    "canonical_model_id",
    "BlobStore",
    "LocalBlobStore",
    "S3BlobStore",
    "create_blob_store",
    "video_blob_key",
    "JobSubmitter",
]
