"""
Recurring video generation schedules.
"""

from .models import Frequency, Schedule, ScheduleRun, VALID_FREQUENCIES
from .schedule_store import InMemoryScheduleStore, PostgresScheduleStore, ScheduleStore
from .scheduler import VideoScheduler, compute_next_run, validate_schedule_fields

__all__ = [
    "Frequency",
    "Schedule",
    "ScheduleRun",
    "VALID_FREQUENCIES",
    "InMemoryScheduleStore",
    "PostgresScheduleStore",
    "ScheduleStore",
    "VideoScheduler",
    "compute_next_run",
    "validate_schedule_fields",
]
