"""
Job submission: validate, pick a credential, start the provider job and
record it.

A provider that rejects the job still gets a row, written directly in
``error``. Nothing is retried; the caller resubmits explicitly.
"""

import logging
import uuid
from dataclasses import replace
from typing import Optional

from .errors import ProviderUnavailable, SubmissionError, ValidationError
from .job_store import JobStore
from .models import (
    Credential,
    GenerationRequest,
    Job,
    JobStatus,
    ProviderStatus,
    VideoModelDescriptor,
)
from .providers import VideoProvider
from .registry import ProviderRegistry, canonical_model_id

logger = logging.getLogger(__name__)


class JobSubmitter:
    """
    Turns a generation request into a persisted job.

    Usage:
        submitter = JobSubmitter(registry, job_store)
        job = await submitter.submit(
            GenerationRequest(prompt="A lighthouse at dusk", model="sora-2", duration=8),
            user_id="user-1",
        )
    """

    def __init__(self, registry: ProviderRegistry, job_store: JobStore):
        self.registry = registry
        self.job_store = job_store

    async def submit(self, request: GenerationRequest, user_id: str) -> Job:
        """
        Submit a generation request.

        Returns:
            The persisted job, ``queued`` or ``generating``

        Raises:
            ValidationError: Bad parameters (nothing persisted)
            ProviderUnavailable: No usable credential (nothing persisted)
            SubmissionError: Provider rejected the job (row persisted as ``error``)
        """
        prompt = (request.prompt or "").strip()
        if not prompt:
            raise ValidationError("Prompt is required", field_name="prompt")

        credential, provider = await self._resolve(request.provider)
        model = self._select_model(credential, provider, request.model)

        if len(prompt) > provider.max_prompt_length:
            raise ValidationError(
                f"Prompt must be {provider.max_prompt_length} characters or less",
                field_name="prompt",
                provider=provider.name,
            )

        duration = self._validate_duration(model, request.duration)
        self._validate_resolution(model, request.resolution)

        provider_request = replace(request, prompt=prompt, model=model.id, duration=duration)
        result = await provider.submit(credential, provider_request)

        job = Job(
            id=str(uuid.uuid4()),
            user_id=user_id,
            prompt=prompt,
            provider=provider.name,
            model=model.id,
            provider_job_id=result.provider_job_id,
            duration_seconds=duration,
            aspect_ratio=request.aspect_ratio,
            resolution=request.resolution,
            conversation_id=request.conversation_id,
            message_id=request.message_id,
        )

        if not result.ok:
            job.status = JobStatus.ERROR
            job.error = result.error or "Failed to start video generation"
            await self.job_store.create_job(job)
            logger.error(
                f"Video submission rejected: job={job.id} provider={provider.name} "
                f"model={model.id} provider_job_id={result.provider_job_id}: {job.error}"
            )
            raise SubmissionError(job.error, provider=provider.name, job_id=job.id)

        # A provider that is already done still goes through the poller's completion sequence
        if result.status == ProviderStatus.QUEUED:
            job.status = JobStatus.QUEUED
        else:
            job.status = JobStatus.GENERATING

        job = await self.job_store.create_job(job)
        logger.info(
            f"Video job {job.id} submitted to {provider.name} "
            f"(model={model.id}, provider_job_id={job.provider_job_id})"
        )
        return job

    async def _resolve(self, preferred_provider: Optional[str]) -> tuple[Credential, VideoProvider]:
        credential = await self.registry.resolve(preferred_provider)
        if credential is None:
            if preferred_provider:
                raise ProviderUnavailable(
                    f"No enabled video credential for provider '{preferred_provider}'",
                    provider=preferred_provider,
                )
            raise ProviderUnavailable()

        provider = self.registry.get(credential.provider)
        if provider is None:
            raise ProviderUnavailable(
                f"Video provider '{credential.provider}' is not supported",
                provider=credential.provider,
            )
        return credential, provider

    def _select_model(
        self,
        credential: Credential,
        provider: VideoProvider,
        requested: Optional[str],
    ) -> VideoModelDescriptor:
        allowed = self.registry.models_for(credential)
        if not allowed:
            raise ValidationError(
                f"No video models are enabled for credential '{credential.name or credential.id}'",
                field_name="model",
                provider=provider.name,
            )

        if not requested:
            return allowed[0]

        model_id = canonical_model_id(requested)
        model = provider.get_model(model_id)
        if model is None:
            raise ValidationError(
                f"Unknown model '{requested}' for provider '{provider.name}'",
                field_name="model",
                provider=provider.name,
            )
        if model.id not in {m.id for m in allowed}:
            raise ValidationError(
                f"Model '{model.id}' is not enabled for this credential",
                field_name="model",
                provider=provider.name,
            )
        return model

    @staticmethod
    def _validate_duration(model: VideoModelDescriptor, duration: Optional[int]) -> Optional[int]:
        if duration is not None and duration <= 0:
            raise ValidationError("Duration must be a positive number of seconds", field_name="duration")

        if model.supported_durations:
            if duration is None:
                return model.supported_durations[0]
            if duration not in model.supported_durations:
                supported = ", ".join(str(d) for d in model.supported_durations)
                raise ValidationError(
                    f"Duration {duration}s is not supported by {model.id} (supported: {supported})",
                    field_name="duration",
                    provider=model.provider,
                )
        elif duration is not None and model.max_duration and duration > model.max_duration:
            raise ValidationError(
                f"Duration {duration}s exceeds the {model.max_duration}s maximum for {model.id}",
                field_name="duration",
                provider=model.provider,
            )
        return duration

    @staticmethod
    def _validate_resolution(model: VideoModelDescriptor, resolution: Optional[str]):
        if resolution and model.supported_resolutions and resolution not in model.supported_resolutions:
            supported = ", ".join(model.supported_resolutions)
            raise ValidationError(
                f"Resolution {resolution} is not supported by {model.id} (supported: {supported})",
                field_name="resolution",
                provider=model.provider,
            )
