"""
Recurring video schedule types.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional

from services.video_generation.models import utcnow


class Frequency(str, Enum):
    """How often a schedule fires."""
    HOURLY = "hourly"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


VALID_FREQUENCIES = [f.value for f in Frequency]


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


@dataclass
class Schedule:
    """A recurring generation definition, as persisted in ``video_schedules``."""
    id: str
    user_id: str
    name: str
    prompt: str
    provider: str = "openai"
    model: str = "sora"
    aspect_ratio: str = "16:9"
    frequency: Frequency = Frequency.DAILY
    enabled: bool = True
    last_run_at: Optional[datetime] = None
    next_run_at: Optional[datetime] = None
    total_runs: int = 0
    max_runs: Optional[int] = None
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    @property
    def runs_exhausted(self) -> bool:
        return self.max_runs is not None and self.total_runs >= self.max_runs

    @classmethod
    def from_row(cls, row: dict) -> "Schedule":
        """Build from a database row (``dict(record)``)."""
        return cls(
            id=str(row["id"]),
            user_id=str(row["user_id"]),
            name=row["name"],
            prompt=row["prompt"],
            provider=row["provider"],
            model=row["model"],
            aspect_ratio=row["aspect_ratio"],
            frequency=Frequency(row["frequency"]),
            enabled=bool(row["enabled"]),
            last_run_at=row.get("last_run_at"),
            next_run_at=row.get("next_run_at"),
            total_runs=row.get("total_runs") or 0,
            max_runs=row.get("max_runs"),
            created_at=row.get("created_at") or utcnow(),
            updated_at=row.get("updated_at") or utcnow(),
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "prompt": self.prompt,
            "provider": self.provider,
            "model": self.model,
            "aspectRatio": self.aspect_ratio,
            "frequency": self.frequency.value,
            "enabled": self.enabled,
            "lastRunAt": _iso(self.last_run_at),
            "nextRunAt": _iso(self.next_run_at),
            "totalRuns": self.total_runs,
            "maxRuns": self.max_runs,
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
        }


@dataclass
class ScheduleRun:
    """Outcome of evaluating one due schedule."""
    schedule_id: str
    job_id: Optional[str] = None
    error: Optional[str] = None
    disabled: bool = False

    @property
    def submitted(self) -> bool:
        return self.job_id is not None and self.error is None

    def to_dict(self) -> dict:
        return {
            "scheduleId": self.schedule_id,
            "jobId": self.job_id,
            "error": self.error,
            "disabled": self.disabled,
        }
