"""
Error taxonomy for video generation jobs.

Every error carries an optional machine-readable ``error_code`` and the
``provider`` tag it relates to, so API handlers and logs can report both.
"""

from typing import Optional


class VideoGenerationError(Exception):
    """Base class for all video generation failures."""

    def __init__(self, message: str, error_code: str = None, provider: str = None):
        self.error_code = error_code
        self.provider = provider
        super().__init__(message)

    @property
    def message(self) -> str:
        return str(self)


class ValidationError(VideoGenerationError):
    """Malformed submission or schedule input. Raised before anything is persisted."""

    def __init__(self, message: str, field_name: str = None, provider: str = None):
        self.field_name = field_name
        super().__init__(message, error_code="VALIDATION_ERROR", provider=provider)


class ProviderUnavailable(VideoGenerationError):
    """No enabled, video-capable credential for the requested provider."""

    def __init__(self, message: str = "No video provider is configured", provider: str = None):
        super().__init__(message, error_code="PROVIDER_UNAVAILABLE", provider=provider)


class SubmissionError(VideoGenerationError):
    """The provider rejected the create-job call. The job row is already in ``error``."""

    def __init__(self, message: str, provider: str = None, job_id: Optional[str] = None):
        self.job_id = job_id
        super().__init__(message, error_code="SUBMISSION_FAILED", provider=provider)


class PollingError(VideoGenerationError):
    """Status polling kept failing past the consecutive error budget."""

    def __init__(self, message: str, provider: str = None, provider_job_id: Optional[str] = None):
        self.provider_job_id = provider_job_id
        super().__init__(message, error_code="POLLING_FAILED", provider=provider)


class DownloadError(VideoGenerationError):
    """Fetching the finished artifact from the provider failed."""

    def __init__(self, message: str, provider: str = None):
        super().__init__(message, error_code="DOWNLOAD_FAILED", provider=provider)


class StorageError(VideoGenerationError):
    """Writing or reading a cached artifact in blob storage failed."""

    def __init__(self, message: str, key: Optional[str] = None):
        self.key = key
        super().__init__(message, error_code="STORAGE_FAILED")


class JobNotFound(VideoGenerationError):
    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Video job not found: {job_id}", error_code="NOT_FOUND")


class ScheduleNotFound(VideoGenerationError):
    def __init__(self, schedule_id: str):
        self.schedule_id = schedule_id
        super().__init__(f"Schedule not found: {schedule_id}", error_code="NOT_FOUND")


class AccessDenied(VideoGenerationError):
    """The caller does not own the requested job or schedule."""

    def __init__(self, message: str = "Access denied"):
        super().__init__(message, error_code="FORBIDDEN")
