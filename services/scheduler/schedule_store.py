"""
Schedule Store - persistence for recurring video schedules.

``record_run`` advances the run bookkeeping in one UPDATE: the counter is
incremented in SQL and the schedule disables itself when the increment
reaches ``max_runs``.
"""

import asyncio
import dataclasses
import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Optional

import asyncpg

from core.db import rows_affected
from services.video_generation.models import utcnow

from .models import Frequency, Schedule

logger = logging.getLogger(__name__)


SCHEDULE_SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS video_schedules (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    name TEXT NOT NULL,
    prompt TEXT NOT NULL,
    provider TEXT NOT NULL DEFAULT 'openai',
    model TEXT NOT NULL DEFAULT 'sora',
    aspect_ratio TEXT NOT NULL DEFAULT '16:9',
    frequency TEXT NOT NULL DEFAULT 'daily'
        CHECK (frequency IN ('hourly', 'daily', 'weekly', 'monthly')),
    enabled BOOLEAN NOT NULL DEFAULT TRUE,
    last_run_at TIMESTAMPTZ,
    next_run_at TIMESTAMPTZ,
    total_runs INTEGER NOT NULL DEFAULT 0,
    max_runs INTEGER CHECK (max_runs IS NULL OR max_runs > 0),
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    updated_at TIMESTAMPTZ NOT NULL DEFAULT NOW()
);

CREATE INDEX IF NOT EXISTS idx_video_schedules_user_id ON video_schedules (user_id);
CREATE INDEX IF NOT EXISTS idx_video_schedules_due ON video_schedules (enabled, next_run_at);
"""

# Columns a caller may change through ``update``
UPDATABLE_COLUMNS = (
    "name",
    "prompt",
    "provider",
    "model",
    "aspect_ratio",
    "frequency",
    "enabled",
    "max_runs",
    "next_run_at",
)


def _column_value(value: Any) -> Any:
    return value.value if isinstance(value, Frequency) else value


class ScheduleStore(ABC):
    """Persistence interface for schedules."""

    async def ensure_schema(self):
        """Create tables if the backend needs them."""

    @abstractmethod
    async def create(self, schedule: Schedule) -> Schedule:
        """Insert a new schedule."""

    @abstractmethod
    async def get(self, schedule_id: str) -> Optional[Schedule]:
        """Get a single schedule by ID."""

    @abstractmethod
    async def list_for_user(self, user_id: str) -> list[Schedule]:
        """A user's schedules, newest first."""

    @abstractmethod
    async def update(self, schedule_id: str, fields: dict[str, Any]) -> Optional[Schedule]:
        """Apply column updates; returns the updated schedule or None if missing."""

    @abstractmethod
    async def delete(self, schedule_id: str) -> bool:
        """Delete a schedule. False if it did not exist."""

    @abstractmethod
    async def due(self, now: datetime) -> list[Schedule]:
        """Enabled schedules whose ``next_run_at`` is at or before ``now``."""

    @abstractmethod
    async def record_run(self, schedule_id: str, ran_at: datetime, next_run_at: datetime) -> Optional[Schedule]:
        """Bookkeeping after a successful submission."""

    @abstractmethod
    async def disable(self, schedule_id: str) -> bool:
        """Turn a schedule off."""


class PostgresScheduleStore(ScheduleStore):
    """
    Persists schedules to PostgreSQL.

    Usage:
        store = PostgresScheduleStore(db_pool)
        due = await store.due(utcnow())
    """

    def __init__(self, db_pool: asyncpg.Pool):
        self.db_pool = db_pool

    async def ensure_schema(self):
        async with self.db_pool.acquire() as conn:
            await conn.execute(SCHEDULE_SCHEMA_SQL)

    async def create(self, schedule: Schedule) -> Schedule:
        async with self.db_pool.acquire() as conn:
            row = await conn.fetchrow(
                """
                INSERT INTO video_schedules (
                    id,
                    user_id,
                    name,
                    prompt,
                    provider,
                    model,
                    aspect_ratio,
                    frequency,
                    enabled,
                    next_run_at,
                    max_runs,
                    created_at,
                    updated_at
                ) VALUES (
                    $1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12, $13
                )
                RETURNING *
                """,
                schedule.id,
                schedule.user_id,
                schedule.name,
                schedule.prompt,
                schedule.provider,
                schedule.model,
                schedule.aspect_ratio,
                schedule.frequency.value,
                schedule.enabled,
                schedule.next_run_at,
                schedule.max_runs,
                schedule.created_at,
                schedule.updated_at,
            )

        logger.info(f"Created schedule {schedule.id} ({schedule.frequency.value}) for user {schedule.user_id}")
        return Schedule.from_row(dict(row)) if row else schedule

    async def get(self, schedule_id: str) -> Optional[Schedule]:
        async with self.db_pool.acquire() as conn:
            row = await conn.fetchrow(
                "SELECT * FROM video_schedules WHERE id = $1",
                schedule_id,
            )
            return Schedule.from_row(dict(row)) if row else None

    async def list_for_user(self, user_id: str) -> list[Schedule]:
        async with self.db_pool.acquire() as conn:
            rows = await conn.fetch(
                """
                SELECT * FROM video_schedules
                WHERE user_id = $1
                ORDER BY created_at DESC
                """,
                user_id,
            )
            return [Schedule.from_row(dict(row)) for row in rows]

    async def update(self, schedule_id: str, fields: dict[str, Any]) -> Optional[Schedule]:
        unknown = set(fields) - set(UPDATABLE_COLUMNS)
        if unknown:
            raise ValueError(f"Cannot update schedule columns: {', '.join(sorted(unknown))}")

        columns = [column for column in UPDATABLE_COLUMNS if column in fields]
        assignments = [f"{column} = ${i}" for i, column in enumerate(columns, start=2)]
        assignments.append("updated_at = NOW()")
        values = [_column_value(fields[column]) for column in columns]

        async with self.db_pool.acquire() as conn:
            row = await conn.fetchrow(
                f"""
                UPDATE video_schedules SET {', '.join(assignments)}
                WHERE id = $1
                RETURNING *
                """,
                schedule_id,
                *values,
            )

        if row:
            logger.info(f"Updated schedule {schedule_id}: {', '.join(columns)}")
        return Schedule.from_row(dict(row)) if row else None

    async def delete(self, schedule_id: str) -> bool:
        async with self.db_pool.acquire() as conn:
            result = await conn.execute(
                "DELETE FROM video_schedules WHERE id = $1",
                schedule_id,
            )
        return rows_affected(result) > 0

    async def due(self, now: datetime) -> list[Schedule]:
        async with self.db_pool.acquire() as conn:
            rows = await conn.fetch(
                """
                SELECT * FROM video_schedules
                WHERE enabled = TRUE AND next_run_at IS NOT NULL AND next_run_at <= $1
                ORDER BY next_run_at ASC
                """,
                now,
            )
            return [Schedule.from_row(dict(row)) for row in rows]

    async def record_run(self, schedule_id: str, ran_at: datetime, next_run_at: datetime) -> Optional[Schedule]:
        async with self.db_pool.acquire() as conn:
            row = await conn.fetchrow(
                """
                UPDATE video_schedules SET
                    last_run_at = $2,
                    next_run_at = $3,
                    total_runs = total_runs + 1,
                    enabled = CASE
                        WHEN max_runs IS NOT NULL AND total_runs + 1 >= max_runs THEN FALSE
                        ELSE enabled
                    END,
                    updated_at = NOW()
                WHERE id = $1
                RETURNING *
                """,
                schedule_id,
                ran_at,
                next_run_at,
            )
            return Schedule.from_row(dict(row)) if row else None

    async def disable(self, schedule_id: str) -> bool:
        async with self.db_pool.acquire() as conn:
            result = await conn.execute(
                "UPDATE video_schedules SET enabled = FALSE, updated_at = NOW() WHERE id = $1",
                schedule_id,
            )
        return rows_affected(result) > 0


class InMemoryScheduleStore(ScheduleStore):
    """Process-local schedule store."""

    def __init__(self):
        self._schedules: dict[str, Schedule] = {}
        self._lock = asyncio.Lock()

    async def create(self, schedule: Schedule) -> Schedule:
        async with self._lock:
            self._schedules[schedule.id] = dataclasses.replace(schedule)
        logger.info(f"Created schedule {schedule.id} ({schedule.frequency.value}) for user {schedule.user_id}")
        return dataclasses.replace(schedule)

    async def get(self, schedule_id: str) -> Optional[Schedule]:
        async with self._lock:
            schedule = self._schedules.get(schedule_id)
            return dataclasses.replace(schedule) if schedule else None

    async def list_for_user(self, user_id: str) -> list[Schedule]:
        async with self._lock:
            schedules = [s for s in self._schedules.values() if s.user_id == user_id]
        schedules.sort(key=lambda s: s.created_at, reverse=True)
        return [dataclasses.replace(s) for s in schedules]

    async def update(self, schedule_id: str, fields: dict[str, Any]) -> Optional[Schedule]:
        unknown = set(fields) - set(UPDATABLE_COLUMNS)
        if unknown:
            raise ValueError(f"Cannot update schedule columns: {', '.join(sorted(unknown))}")

        async with self._lock:
            schedule = self._schedules.get(schedule_id)
            if schedule is None:
                return None
            changes = dict(fields)
            if "frequency" in changes:
                changes["frequency"] = Frequency(changes["frequency"])
            updated = dataclasses.replace(schedule, **changes, updated_at=utcnow())
            self._schedules[schedule_id] = updated
        logger.info(f"Updated schedule {schedule_id}: {', '.join(fields)}")
        return dataclasses.replace(updated)

    async def delete(self, schedule_id: str) -> bool:
        async with self._lock:
            return self._schedules.pop(schedule_id, None) is not None

    async def due(self, now: datetime) -> list[Schedule]:
        async with self._lock:
            due = [
                s for s in self._schedules.values()
                if s.enabled and s.next_run_at is not None and s.next_run_at <= now
            ]
        due.sort(key=lambda s: s.next_run_at)
        return [dataclasses.replace(s) for s in due]

    async def record_run(self, schedule_id: str, ran_at: datetime, next_run_at: datetime) -> Optional[Schedule]:
        async with self._lock:
            schedule = self._schedules.get(schedule_id)
            if schedule is None:
                return None
            total_runs = schedule.total_runs + 1
            enabled = schedule.enabled
            if schedule.max_runs is not None and total_runs >= schedule.max_runs:
                enabled = False
            updated = dataclasses.replace(
                schedule,
                last_run_at=ran_at,
                next_run_at=next_run_at,
                total_runs=total_runs,
                enabled=enabled,
                updated_at=utcnow(),
            )
            self._schedules[schedule_id] = updated
        return dataclasses.replace(updated)

    async def disable(self, schedule_id: str) -> bool:
        async with self._lock:
            schedule = self._schedules.get(schedule_id)
            if schedule is None:
                return False
            self._schedules[schedule_id] = dataclasses.replace(schedule, enabled=False, updated_at=utcnow())
        return True
