"""
Streaming job poller.

One poller run per client connection. It relays provider progress for a
single job and, when the provider reports completion, runs the completion
sequence (download -> cache -> price -> persist) before emitting the final
event, so a client that re-fetches the job right after the last event always
sees the cached URL and the cost.

Every loop iteration makes at most one job write, and a disconnect between
iterations stops polling without touching the row. A connection gives up
after a fixed number of polls with a non-terminal timeout event. A reconnecting client
starts over: terminal jobs are answered from the stored row without calling
the provider.
"""

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import AsyncIterator, Awaitable, Callable, Optional

from services.video_generation.errors import (
    AccessDenied,
    DownloadError,
    JobNotFound,
    PollingError,
    ProviderUnavailable,
    StorageError,
)
from services.video_generation.job_store import JobStore
from services.video_generation.models import (
    Credential,
    Job,
    JobStatus,
    ProviderStatus,
    StatusResult,
    utcnow,
)
from services.video_generation.pricing import lookup_video_model_cost
from services.video_generation.providers import VideoProvider
from services.video_generation.registry import ProviderRegistry
from services.video_generation.storage import BlobStore, video_blob_key

logger = logging.getLogger(__name__)

DisconnectCheck = Callable[[], Awaitable[bool]]


@dataclass
class ProgressEvent:
    """A job progress event for SSE streaming."""

    job_id: str
    status: JobStatus
    progress: int = 0
    video_url: Optional[str] = None
    thumbnail_url: Optional[str] = None
    duration: Optional[float] = None
    cost: Optional[float] = None
    error: Optional[str] = None

    @property
    def is_final(self) -> bool:
        return self.status.is_terminal

    @classmethod
    def from_job(cls, job: Job) -> "ProgressEvent":
        return cls(
            job_id=job.id,
            status=job.status,
            progress=100 if job.status == JobStatus.COMPLETE else 0,
            video_url=job.video_url,
            thumbnail_url=job.thumbnail_url,
            duration=job.duration_seconds,
            cost=job.cost,
            error=job.error,
        )

    def to_dict(self) -> dict:
        data = {
            "id": self.job_id,
            "status": self.status.value,
            "progress": self.progress,
        }
        if self.video_url:
            data["videoUrl"] = self.video_url
        if self.thumbnail_url:
            data["thumbnailUrl"] = self.thumbnail_url
        if self.duration is not None:
            data["duration"] = self.duration
        if self.cost is not None:
            data["cost"] = self.cost
        if self.error:
            data["error"] = self.error
        return data

    def to_sse(self) -> str:
        """Format as SSE message."""
        return f"data: {json.dumps(self.to_dict())}\n\n"


class JobPoller:
    """
    Polls a provider for one job and relays progress.

    Usage:
        poller = JobPoller(registry, job_store, blob_store)

        events = await poller.open(job_id, user_id=user_id)
        async for event in events:
            yield event.to_sse()
    """

    def __init__(
        self,
        registry: ProviderRegistry,
        job_store: JobStore,
        blob_store: BlobStore,
        poll_interval: float = 5.0,
        max_consecutive_errors: int = 5,
        max_poll_attempts: int = 120,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.registry = registry
        self.job_store = job_store
        self.blob_store = blob_store
        self.poll_interval = poll_interval
        self.max_consecutive_errors = max_consecutive_errors
        self.max_poll_attempts = max_poll_attempts
        self._sleep = sleep

    async def open(
        self,
        job_id: str,
        user_id: Optional[str] = None,
        is_disconnected: Optional[DisconnectCheck] = None,
    ) -> AsyncIterator[ProgressEvent]:
        """
        Check access and prepare the event stream for a job.

        The checks run before any event is produced so HTTP handlers can still
        answer with a plain error status.

        Raises:
            JobNotFound: Unknown job id
            AccessDenied: Job belongs to another user
            ProviderUnavailable: Job is still running but no credential can poll it
        """
        job = await self.job_store.get_job(job_id)
        if job is None:
            raise JobNotFound(job_id)
        if user_id is not None and job.user_id != user_id:
            raise AccessDenied("Job belongs to another user")

        if job.is_terminal:
            return self._replay(job)

        credential = await self.registry.resolve(job.provider)
        provider = self.registry.get(job.provider)
        if credential is None or provider is None:
            raise ProviderUnavailable(
                f"No enabled video credential for provider '{job.provider}'",
                provider=job.provider,
            )

        return self._poll(job, credential, provider, is_disconnected)

    async def _replay(self, job: Job) -> AsyncIterator[ProgressEvent]:
        logger.debug(f"Job {job.id} already {job.status.value}, replaying stored state")
        yield ProgressEvent.from_job(job)

    async def _poll(
        self,
        job: Job,
        credential: Credential,
        provider: VideoProvider,
        is_disconnected: Optional[DisconnectCheck],
    ) -> AsyncIterator[ProgressEvent]:
        if not job.provider_job_id:
            yield await self._fail(job, "Job has no provider job id")
            return

        consecutive_errors = 0
        completion_failures = 0
        progress = 0

        for _attempt in range(self.max_poll_attempts):
            await self._sleep(self.poll_interval)

            if is_disconnected is not None and await is_disconnected():
                logger.info(f"Client disconnected from job {job.id}, stopping poll")
                return

            try:
                status = await self._poll_once(provider, credential, job)
                consecutive_errors = 0  # Reset on success

            except PollingError as e:
                consecutive_errors += 1
                logger.warning(
                    f"Poll failed for job {job.id} (provider={job.provider}, "
                    f"provider_job_id={job.provider_job_id}, attempt {consecutive_errors}): {e}"
                )
                if consecutive_errors >= self.max_consecutive_errors:
                    yield await self._fail(
                        job,
                        f"Status check failed {consecutive_errors} times in a row: {e}",
                    )
                    return
                yield ProgressEvent(job.id, job.status, progress=progress, error=str(e))
                continue

            if status.status == ProviderStatus.ERROR:
                yield await self._fail(job, status.error or "Video generation failed")
                return

            if status.status == ProviderStatus.COMPLETE:
                try:
                    yield await self._complete(job, credential, provider, status)
                    return

                except (DownloadError, StorageError) as e:
                    completion_failures += 1
                    logger.error(
                        f"Completion failed for job {job.id} (provider={job.provider}, "
                        f"provider_job_id={job.provider_job_id}, attempt {completion_failures}): {e}"
                    )
                    if job.status == JobStatus.QUEUED:
                        await self.job_store.mark_generating(job.id)
                        job.status = JobStatus.GENERATING
                    yield ProgressEvent(job.id, job.status, progress=progress, error=str(e))
                    if completion_failures >= self.max_consecutive_errors:
                        # Row stays generating; a later connection retries
                        return
                    continue

            if status.status == ProviderStatus.PROCESSING and job.status == JobStatus.QUEUED:
                await self.job_store.mark_generating(job.id)
                job.status = JobStatus.GENERATING

            if status.progress is not None:
                progress = status.progress
            yield ProgressEvent(job.id, job.status, progress=progress)

        # Row is left as is so a reconnect resumes polling
        logger.warning(
            f"Job {job.id} still {job.status.value} after {self.max_poll_attempts} polls "
            f"(provider={job.provider}, provider_job_id={job.provider_job_id}), closing stream"
        )
        yield ProgressEvent(job.id, job.status, progress=progress, error="Video generation timed out")

    async def _poll_once(self, provider: VideoProvider, credential: Credential, job: Job) -> StatusResult:
        status = await provider.poll(credential, job.provider_job_id)
        if status.status == ProviderStatus.ERROR and status.transient:
            raise PollingError(
                status.error or "Failed to check video status",
                provider=job.provider,
                provider_job_id=job.provider_job_id,
            )
        return status

    async def _complete(
        self,
        job: Job,
        credential: Credential,
        provider: VideoProvider,
        status: StatusResult,
    ) -> ProgressEvent:
        """Download, cache, price and persist in one write, then build the final event."""
        if not status.video_url:
            raise DownloadError("Provider reported completion without a video URL", provider=job.provider)

        data = await provider.download(credential, status.video_url)

        key = video_blob_key(job)
        await self.blob_store.put(key, data)
        video_url = self.blob_store.public_url(key)

        duration = status.duration_seconds or job.duration_seconds
        cost = lookup_video_model_cost(self.registry, job.provider, job.model, duration, job.resolution)

        written = await self.job_store.complete_job(
            job.id,
            video_url=video_url,
            blob_key=key,
            cost=cost,
            duration_seconds=duration,
            thumbnail_url=status.thumbnail_url,
            completed_at=utcnow(),
        )
        if not written:
            return await self._stored_event(job)

        logger.info(f"Video job {job.id} complete: {key} (cost={cost})")
        return ProgressEvent(
            job.id,
            JobStatus.COMPLETE,
            progress=100,
            video_url=video_url,
            thumbnail_url=status.thumbnail_url,
            duration=duration,
            cost=cost,
        )

    async def _fail(self, job: Job, message: str) -> ProgressEvent:
        logger.error(
            f"Video job {job.id} failed (provider={job.provider}, "
            f"provider_job_id={job.provider_job_id}): {message}"
        )
        written = await self.job_store.fail_job(job.id, message)
        if not written:
            return await self._stored_event(job)
        return ProgressEvent(job.id, JobStatus.ERROR, progress=0, error=message)

    async def _stored_event(self, job: Job) -> ProgressEvent:
        """Another writer got there first; report what is stored."""
        stored = await self.job_store.get_job(job.id)
        logger.info(f"Job {job.id} was finished by another poller ({stored.status.value if stored else 'missing'})")
        return ProgressEvent.from_job(stored or job)
