"""
Recurring video generation.

Each tick evaluates every enabled schedule whose ``next_run_at`` has passed
and submits a job with the schedule's stored parameters. A successful
submission advances ``last_run_at``, ``next_run_at`` and ``total_runs``; a
failed one leaves them alone so the schedule is picked up again next tick.

Run cap: the run that brings ``total_runs`` up to ``max_runs`` also disables
the schedule. A due schedule that is already at its cap is disabled without
submitting.

Ticks are at-least-once. Two overlapping ticks can both submit the same due
schedule; nothing claims a schedule before running it.
"""

import asyncio
import calendar
import logging
import uuid
from datetime import datetime, timedelta
from typing import Any, Callable, Optional

from core.config import SchedulerConfig
from services.video_generation.errors import ScheduleNotFound, ValidationError, VideoGenerationError
from services.video_generation.models import GenerationRequest, utcnow
from services.video_generation.submission import JobSubmitter

from .models import VALID_FREQUENCIES, Frequency, Schedule, ScheduleRun
from .schedule_store import ScheduleStore

logger = logging.getLogger(__name__)

MAX_PROMPT_LENGTH = 4000

# API field -> column
SCHEDULE_FIELDS = {
    "name": "name",
    "prompt": "prompt",
    "provider": "provider",
    "model": "model",
    "aspectRatio": "aspect_ratio",
    "frequency": "frequency",
    "enabled": "enabled",
    "maxRuns": "max_runs",
}


def _add_month(value: datetime) -> datetime:
    year = value.year + value.month // 12
    month = value.month % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def compute_next_run(frequency: str, from_time: datetime) -> datetime:
    """
    One frequency unit after ``from_time``.

    Monthly keeps the day of month, clamped to the length of the next month
    (Jan 31 -> Feb 28/29).
    """
    frequency = Frequency(frequency)
    if frequency == Frequency.HOURLY:
        return from_time + timedelta(hours=1)
    if frequency == Frequency.DAILY:
        return from_time + timedelta(days=1)
    if frequency == Frequency.WEEKLY:
        return from_time + timedelta(days=7)
    return _add_month(from_time)


def _require_text(data: dict, key: str, label: str) -> str:
    value = data.get(key)
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{label} is required", field_name=key)
    return value.strip()


def validate_schedule_fields(data: dict[str, Any], partial: bool = False) -> dict[str, Any]:
    """
    Validate schedule input and map it to column values.

    Args:
        data: API payload with camelCase keys
        partial: True for PATCH, where only supplied keys are checked

    Returns:
        Column name -> value for every supplied field

    Raises:
        ValidationError: On the first invalid field
    """
    unknown = set(data) - set(SCHEDULE_FIELDS)
    if unknown:
        raise ValidationError(f"Unknown schedule fields: {', '.join(sorted(unknown))}")

    fields: dict[str, Any] = {}

    if not partial or "name" in data:
        fields["name"] = _require_text(data, "name", "Name")

    if not partial or "prompt" in data:
        prompt = _require_text(data, "prompt", "Prompt")
        if len(prompt) > MAX_PROMPT_LENGTH:
            raise ValidationError(f"Prompt too long (max {MAX_PROMPT_LENGTH} characters)", field_name="prompt")
        fields["prompt"] = prompt

    if "frequency" in data:
        frequency = data["frequency"]
        if frequency not in VALID_FREQUENCIES:
            raise ValidationError(
                f"Invalid frequency. Must be one of: {', '.join(VALID_FREQUENCIES)}",
                field_name="frequency",
            )
        fields["frequency"] = Frequency(frequency)

    for key in ("provider", "model", "aspectRatio"):
        if key in data:
            fields[SCHEDULE_FIELDS[key]] = _require_text(data, key, key)

    if "enabled" in data:
        if not isinstance(data["enabled"], bool):
            raise ValidationError("enabled must be true or false", field_name="enabled")
        fields["enabled"] = data["enabled"]

    if "maxRuns" in data:
        max_runs = data["maxRuns"]
        if max_runs is not None and (isinstance(max_runs, bool) or not isinstance(max_runs, int) or max_runs < 1):
            raise ValidationError("maxRuns must be a positive integer or null", field_name="maxRuns")
        fields["max_runs"] = max_runs

    if partial and not fields:
        raise ValidationError("No valid fields to update")

    return fields


class VideoScheduler:
    """
    Schedule CRUD plus due-schedule evaluation.

    Usage:
        scheduler = VideoScheduler(schedule_store, submitter)

        schedule = await scheduler.create_schedule(user_id, {"name": "Daily", "prompt": "..."})
        runs = await scheduler.tick()

        # Long-running worker
        await scheduler.start(interval=60)
    """

    def __init__(
        self,
        schedule_store: ScheduleStore,
        submitter: JobSubmitter,
        config: Optional[SchedulerConfig] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = schedule_store
        self.submitter = submitter
        self.config = config or SchedulerConfig()
        self._clock = clock
        self._running = False

    # CRUD

    async def create_schedule(self, user_id: str, data: dict[str, Any]) -> Schedule:
        fields = validate_schedule_fields(data)
        now = self._clock()
        frequency = fields.get("frequency", Frequency(self.config.default_frequency))
        schedule = Schedule(
            id=str(uuid.uuid4()),
            user_id=user_id,
            name=fields["name"],
            prompt=fields["prompt"],
            provider=fields.get("provider", self.config.default_provider),
            model=fields.get("model", self.config.default_model),
            aspect_ratio=fields.get("aspect_ratio", "16:9"),
            frequency=frequency,
            enabled=fields.get("enabled", True),
            max_runs=fields.get("max_runs"),
            next_run_at=compute_next_run(frequency, now),
            created_at=now,
            updated_at=now,
        )
        return await self.store.create(schedule)

    async def list_schedules(self, user_id: str) -> list[Schedule]:
        return await self.store.list_for_user(user_id)

    async def get_schedule(self, user_id: str, schedule_id: str) -> Schedule:
        """Schedules owned by other users are reported as missing."""
        schedule = await self.store.get(schedule_id)
        if schedule is None or schedule.user_id != user_id:
            raise ScheduleNotFound(schedule_id)
        return schedule

    async def update_schedule(self, user_id: str, schedule_id: str, data: dict[str, Any]) -> Schedule:
        fields = validate_schedule_fields(data, partial=True)
        existing = await self.get_schedule(user_id, schedule_id)

        frequency = fields.get("frequency", existing.frequency)
        enabled = fields.get("enabled", existing.enabled)
        frequency_changed = "frequency" in fields and frequency != existing.frequency
        re_enabled = enabled and not existing.enabled
        if enabled and (frequency_changed or re_enabled):
            fields["next_run_at"] = compute_next_run(frequency, existing.last_run_at or existing.created_at)

        updated = await self.store.update(schedule_id, fields)
        if updated is None:
            raise ScheduleNotFound(schedule_id)
        return updated

    async def delete_schedule(self, user_id: str, schedule_id: str):
        await self.get_schedule(user_id, schedule_id)
        if not await self.store.delete(schedule_id):
            raise ScheduleNotFound(schedule_id)
        logger.info(f"Deleted schedule {schedule_id}")

    # Evaluation

    async def due_schedules(self, now: Optional[datetime] = None) -> list[Schedule]:
        return await self.store.due(now or self._clock())

    async def run_schedule(self, schedule: Schedule, now: Optional[datetime] = None) -> ScheduleRun:
        """Submit one job for a schedule and advance its bookkeeping on success."""
        now = now or self._clock()

        if schedule.runs_exhausted:
            await self.store.disable(schedule.id)
            logger.info(f"Schedule {schedule.id} reached max runs ({schedule.max_runs}), disabled")
            return ScheduleRun(schedule.id, disabled=True)

        request = GenerationRequest(
            prompt=schedule.prompt,
            model=schedule.model,
            provider=schedule.provider,
            aspect_ratio=schedule.aspect_ratio,
        )

        try:
            job = await self.submitter.submit(request, user_id=schedule.user_id)
        except VideoGenerationError as e:
            logger.warning(f"Scheduled run for {schedule.id} ({schedule.name}) failed, will retry next tick: {e}")
            return ScheduleRun(schedule.id, job_id=getattr(e, "job_id", None), error=str(e))

        updated = await self.store.record_run(
            schedule.id,
            ran_at=now,
            next_run_at=compute_next_run(schedule.frequency, now),
        )
        disabled = updated is not None and not updated.enabled
        logger.info(
            f"Schedule {schedule.id} submitted job {job.id} "
            f"(run {updated.total_runs if updated else '?'}{', now disabled' if disabled else ''})"
        )
        return ScheduleRun(schedule.id, job_id=job.id, disabled=disabled)

    async def tick(self, now: Optional[datetime] = None) -> list[ScheduleRun]:
        """Run every due schedule once, sequentially."""
        now = now or self._clock()
        due = await self.due_schedules(now)
        if due:
            logger.info(f"Found {len(due)} due schedules")

        runs = []
        for schedule in due:
            try:
                runs.append(await self.run_schedule(schedule, now))
            except Exception as e:
                # One broken schedule must not hold back the rest of the tick
                logger.error(f"Schedule {schedule.id} ({schedule.name}) errored during tick: {e}")
                runs.append(ScheduleRun(schedule.id, error=str(e)))
        return runs

    async def start(self, interval: Optional[float] = None):
        """Evaluate schedules until stopped."""
        interval = interval or self.config.tick_interval_seconds
        self._running = True
        logger.info(f"Video scheduler starting (every {interval:.0f}s)...")

        while self._running:
            try:
                await self.tick()
                await asyncio.sleep(interval)

            except asyncio.CancelledError:
                logger.info("Video scheduler cancelled")
                break
            except Exception as e:
                logger.error(f"Video scheduler error: {e}")
                await asyncio.sleep(interval)

    async def stop(self):
        """Stop the scheduler loop."""
        self._running = False
