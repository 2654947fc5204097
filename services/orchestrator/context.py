"""
Application wiring.

Builds the provider registry, stores, poller and scheduler once per process
and hands them to the HTTP layer and the CLI. Jobs and schedules live in
PostgreSQL when DATABASE_URL is set and in memory otherwise.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

import asyncpg

from core.config import Config, get_config
from core.db import create_pool
from services.scheduler import InMemoryScheduleStore, PostgresScheduleStore, ScheduleStore, VideoScheduler
from services.streaming import JobPoller
from services.video_generation import (
    BlobStore,
    InMemoryJobStore,
    JobStore,
    JobSubmitter,
    PostgresJobStore,
    ProviderRegistry,
    create_blob_store,
)

logger = logging.getLogger(__name__)


@dataclass
class AppContext:
    """Everything a request handler or CLI command needs."""

    config: Config
    registry: ProviderRegistry
    job_store: JobStore
    schedule_store: ScheduleStore
    blob_store: BlobStore
    submitter: JobSubmitter
    poller: JobPoller
    scheduler: VideoScheduler
    db_pool: Optional[asyncpg.Pool] = None

    async def close(self):
        await self.registry.close()
        if self.db_pool is not None:
            await self.db_pool.close()
            self.db_pool = None
        logger.info("Application context closed")


def build_context(
    config: Optional[Config] = None,
    registry: Optional[ProviderRegistry] = None,
    job_store: Optional[JobStore] = None,
    schedule_store: Optional[ScheduleStore] = None,
    blob_store: Optional[BlobStore] = None,
    db_pool: Optional[asyncpg.Pool] = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> AppContext:
    """Assemble a context from parts, defaulting to in-memory stores."""
    config = config or get_config()
    registry = registry or ProviderRegistry.from_config(config)
    job_store = job_store or InMemoryJobStore()
    schedule_store = schedule_store or InMemoryScheduleStore()
    blob_store = blob_store or create_blob_store(config)

    submitter = JobSubmitter(registry, job_store)
    poller = JobPoller(
        registry,
        job_store,
        blob_store,
        poll_interval=config.polling.interval_seconds,
        max_consecutive_errors=config.polling.max_consecutive_errors,
        max_poll_attempts=config.polling.max_attempts,
        sleep=sleep,
    )
    scheduler = VideoScheduler(schedule_store, submitter, config.scheduler)

    return AppContext(
        config=config,
        registry=registry,
        job_store=job_store,
        schedule_store=schedule_store,
        blob_store=blob_store,
        submitter=submitter,
        poller=poller,
        scheduler=scheduler,
        db_pool=db_pool,
    )


async def create_context(config: Optional[Config] = None) -> AppContext:
    """Build the production context, connecting to PostgreSQL when configured."""
    config = config or get_config()

    for issue in config.validate():
        logger.warning(f"Config: {issue}")

    if not config.use_database:
        logger.info("DATABASE_URL not set, using in-memory job and schedule stores")
        return build_context(config)

    pool = await create_pool(config.database)
    job_store = PostgresJobStore(pool)
    schedule_store = PostgresScheduleStore(pool)
    await job_store.ensure_schema()
    await schedule_store.ensure_schema()

    return build_context(
        config,
        job_store=job_store,
        schedule_store=schedule_store,
        db_pool=pool,
    )
