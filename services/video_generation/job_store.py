"""
Job Store - persistence for video generation jobs.

The job row is the only synchronization point between concurrent pollers,
so every transition is a single guarded UPDATE:
- ``mark_generating`` only moves a job out of ``queued``
- ``complete_job`` writes the whole completion result at once and never
  touches a job that already failed
- ``fail_job`` only fails a job that is not yet terminal

``PostgresJobStore`` is used when DATABASE_URL is set; ``InMemoryJobStore``
backs development runs and tests.
"""

import asyncio
import dataclasses
import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional

import asyncpg

from core.db import rows_affected

from .models import Job, JobStatus, utcnow

logger = logging.getLogger(__name__)


JOB_SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS video_generations (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    conversation_id TEXT,
    message_id TEXT,
    prompt TEXT NOT NULL,
    provider TEXT NOT NULL,
    provider_job_id TEXT,
    model TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'queued'
        CHECK (status IN ('queued', 'generating', 'complete', 'error')),
    video_url TEXT,
    thumbnail_url TEXT,
    blob_key TEXT,
    duration_seconds DOUBLE PRECISION,
    aspect_ratio TEXT,
    resolution TEXT,
    cost DOUBLE PRECISION,
    error TEXT,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    completed_at TIMESTAMPTZ,
    CHECK (status <> 'complete' OR cost IS NOT NULL)
);

CREATE INDEX IF NOT EXISTS idx_video_generations_user
    ON video_generations (user_id, created_at DESC);
CREATE INDEX IF NOT EXISTS idx_video_generations_status
    ON video_generations (status);
"""


class JobStore(ABC):
    """Persistence interface for video jobs."""

    async def ensure_schema(self):
        """Create tables if the backend needs them."""

    @abstractmethod
    async def create_job(self, job: Job) -> Job:
        """Insert a new job row."""

    @abstractmethod
    async def get_job(self, job_id: str) -> Optional[Job]:
        """Get a single job by ID."""

    @abstractmethod
    async def list_jobs(
        self,
        user_id: str,
        status: Optional[JobStatus] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Job]:
        """A user's jobs, newest first."""

    @abstractmethod
    async def count_jobs(self, user_id: str, status: Optional[JobStatus] = None) -> int:
        """Number of a user's jobs under the same filters as ``list_jobs``."""

    @abstractmethod
    async def mark_generating(self, job_id: str) -> bool:
        """Move ``queued`` to ``generating``. False if the job was not queued."""

    @abstractmethod
    async def complete_job(
        self,
        job_id: str,
        video_url: str,
        blob_key: Optional[str],
        cost: float,
        duration_seconds: Optional[float] = None,
        thumbnail_url: Optional[str] = None,
        completed_at: Optional[datetime] = None,
    ) -> bool:
        """Persist the completion result in one write. False if the job already failed."""

    @abstractmethod
    async def fail_job(self, job_id: str, error: str) -> bool:
        """Move a non-terminal job to ``error``. False if it was already terminal."""


class PostgresJobStore(JobStore):
    """
    Persists video jobs to PostgreSQL.

    Usage:
        store = PostgresJobStore(db_pool)
        await store.ensure_schema()

        job = await store.create_job(job)
        await store.mark_generating(job.id)
        await store.complete_job(job.id, video_url, blob_key, cost)
    """

    def __init__(self, db_pool: asyncpg.Pool):
        self.db_pool = db_pool

    async def ensure_schema(self):
        async with self.db_pool.acquire() as conn:
            await conn.execute(JOB_SCHEMA_SQL)

    async def create_job(self, job: Job) -> Job:
        async with self.db_pool.acquire() as conn:
            row = await conn.fetchrow(
                """
                INSERT INTO video_generations (
                    id,
                    user_id,
                    conversation_id,
                    message_id,
                    prompt,
                    provider,
                    provider_job_id,
                    model,
                    status,
                    duration_seconds,
                    aspect_ratio,
                    resolution,
                    error,
                    created_at
                ) VALUES (
                    $1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13, $14
                )
                RETURNING *
                """,
                job.id,
                job.user_id,
                job.conversation_id,
                job.message_id,
                job.prompt,
                job.provider,
                job.provider_job_id,
                job.model,
                job.status.value,
                job.duration_seconds,
                job.aspect_ratio,
                job.resolution,
                job.error,
                job.created_at,
            )

        logger.info(f"Created video job {job.id} ({job.provider}/{job.model}, status={job.status.value})")
        return Job.from_row(dict(row)) if row else job

    async def get_job(self, job_id: str) -> Optional[Job]:
        async with self.db_pool.acquire() as conn:
            row = await conn.fetchrow(
                "SELECT * FROM video_generations WHERE id = $1",
                job_id,
            )
            return Job.from_row(dict(row)) if row else None

    async def list_jobs(
        self,
        user_id: str,
        status: Optional[JobStatus] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Job]:
        async with self.db_pool.acquire() as conn:
            if status:
                rows = await conn.fetch(
                    """
                    SELECT * FROM video_generations
                    WHERE user_id = $1 AND status = $2
                    ORDER BY created_at DESC
                    LIMIT $3 OFFSET $4
                    """,
                    user_id,
                    status.value,
                    limit,
                    offset,
                )
            else:
                rows = await conn.fetch(
                    """
                    SELECT * FROM video_generations
                    WHERE user_id = $1
                    ORDER BY created_at DESC
                    LIMIT $2 OFFSET $3
                    """,
                    user_id,
                    limit,
                    offset,
                )

            return [Job.from_row(dict(row)) for row in rows]

    async def count_jobs(self, user_id: str, status: Optional[JobStatus] = None) -> int:
        async with self.db_pool.acquire() as conn:
            if status:
                return await conn.fetchval(
                    "SELECT COUNT(*) FROM video_generations WHERE user_id = $1 AND status = $2",
                    user_id,
                    status.value,
                )
            return await conn.fetchval(
                "SELECT COUNT(*) FROM video_generations WHERE user_id = $1",
                user_id,
            )

    async def mark_generating(self, job_id: str) -> bool:
        async with self.db_pool.acquire() as conn:
            result = await conn.execute(
                """
                UPDATE video_generations SET status = 'generating'
                WHERE id = $1 AND status = 'queued'
                """,
                job_id,
            )

        updated = rows_affected(result) > 0
        if updated:
            logger.info(f"Job {job_id} is generating")
        return updated

    async def complete_job(
        self,
        job_id: str,
        video_url: str,
        blob_key: Optional[str],
        cost: float,
        duration_seconds: Optional[float] = None,
        thumbnail_url: Optional[str] = None,
        completed_at: Optional[datetime] = None,
    ) -> bool:
        async with self.db_pool.acquire() as conn:
            result = await conn.execute(
                """
                UPDATE video_generations SET
                    status = 'complete',
                    video_url = $2,
                    blob_key = $3,
                    cost = $4,
                    duration_seconds = COALESCE($5, duration_seconds),
                    thumbnail_url = COALESCE($6, thumbnail_url),
                    completed_at = $7,
                    error = NULL
                WHERE id = $1 AND status <> 'error'
                """,
                job_id,
                video_url,
                blob_key,
                cost,
                duration_seconds,
                thumbnail_url,
                completed_at or utcnow(),
            )

        updated = rows_affected(result) > 0
        if updated:
            logger.info(f"Job {job_id} complete (cost={cost})")
        return updated

    async def fail_job(self, job_id: str, error: str) -> bool:
        async with self.db_pool.acquire() as conn:
            result = await conn.execute(
                """
                UPDATE video_generations SET status = 'error', error = $2
                WHERE id = $1 AND status IN ('queued', 'generating')
                """,
                job_id,
                error,
            )

        updated = rows_affected(result) > 0
        if updated:
            logger.info(f"Job {job_id} failed: {error}")
        return updated


class InMemoryJobStore(JobStore):
    """Process-local job store with the same transition guards as PostgreSQL."""

    def __init__(self):
        self._jobs: dict[str, Job] = {}
        self._lock = asyncio.Lock()

    async def create_job(self, job: Job) -> Job:
        async with self._lock:
            self._jobs[job.id] = dataclasses.replace(job)
        logger.info(f"Created video job {job.id} ({job.provider}/{job.model}, status={job.status.value})")
        return dataclasses.replace(job)

    async def get_job(self, job_id: str) -> Optional[Job]:
        async with self._lock:
            job = self._jobs.get(job_id)
            return dataclasses.replace(job) if job else None

    async def list_jobs(
        self,
        user_id: str,
        status: Optional[JobStatus] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Job]:
        async with self._lock:
            jobs = [
                job for job in self._jobs.values()
                if job.user_id == user_id and (status is None or job.status == status)
            ]
        jobs.sort(key=lambda job: job.created_at, reverse=True)
        return [dataclasses.replace(job) for job in jobs[offset:offset + limit]]

    async def count_jobs(self, user_id: str, status: Optional[JobStatus] = None) -> int:
        async with self._lock:
            return sum(
                1 for job in self._jobs.values()
                if job.user_id == user_id and (status is None or job.status == status)
            )

    async def mark_generating(self, job_id: str) -> bool:
        async with self._lock:
            job = self._jobs.get(job_id)
            if job is None or job.status != JobStatus.QUEUED:
                return False
            job.status = JobStatus.GENERATING
        logger.info(f"Job {job_id} is generating")
        return True

    async def complete_job(
        self,
        job_id: str,
        video_url: str,
        blob_key: Optional[str],
        cost: float,
        duration_seconds: Optional[float] = None,
        thumbnail_url: Optional[str] = None,
        completed_at: Optional[datetime] = None,
    ) -> bool:
        async with self._lock:
            job = self._jobs.get(job_id)
            if job is None or job.status == JobStatus.ERROR:
                return False
            self._jobs[job_id] = dataclasses.replace(
                job,
                status=JobStatus.COMPLETE,
                video_url=video_url,
                blob_key=blob_key,
                cost=cost,
                duration_seconds=duration_seconds if duration_seconds is not None else job.duration_seconds,
                thumbnail_url=thumbnail_url or job.thumbnail_url,
                completed_at=completed_at or utcnow(),
                error=None,
            )
        logger.info(f"Job {job_id} complete (cost={cost})")
        return True

    async def fail_job(self, job_id: str, error: str) -> bool:
        async with self._lock:
            job = self._jobs.get(job_id)
            if job is None or job.is_terminal:
                return False
            self._jobs[job_id] = dataclasses.replace(job, status=JobStatus.ERROR, error=error)
        logger.info(f"Job {job_id} failed: {error}")
        return True
