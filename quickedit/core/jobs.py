"""
Job data model.

A Job is the unit of work tracked by the store. HistoryEntry is the
append-only audit record written once per stage transition.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Optional


class JobStatus(str, Enum):
    QUEUED = "queued"
    PROCESSING = "processing"
    COMPLETED = "completed"
    ERROR = "error"


TERMINAL_STATUSES = frozenset({JobStatus.COMPLETED, JobStatus.ERROR})


class Outcome(str, Enum):
    """History entry outcomes."""
    SUBMITTED = "submitted"
    STARTED = "started"
    SUCCESS = "success"
    DEGRADED = "degraded"
    SKIPPED = "skipped"
    RETRY = "retry"
    FALLBACK = "fallback"
    ERROR = "error"
    COMPLETED = "completed"


def utc_now() -> str:
    """ISO 8601 UTC timestamp."""
    return datetime.now(timezone.utc).isoformat()


def new_job_id() -> str:
    return uuid.uuid4().hex


@dataclass(frozen=True)
class StyleConfig:
    """
    Caller-requested style options.

    Values are stored as submitted; unknown values are resolved to defaults
    by the stage library, not rejected here.
    """
    style: str = "cinematic"
    intensity: str = "medium"
    quality: str = "1080p"

    @classmethod
    def from_dict(cls, data: Optional[Dict]) -> "StyleConfig":
        data = data or {}
        defaults = cls()
        return cls(
            style=str(data.get("style") or defaults.style),
            intensity=str(data.get("intensity") or defaults.intensity),
            quality=str(data.get("quality") or defaults.quality),
        )

    def to_dict(self) -> Dict:
        return {"style": self.style, "intensity": self.intensity, "quality": self.quality}


@dataclass
class Job:
    """Snapshot of one job's durable state."""
    source_ref: str
    style_config: StyleConfig = field(default_factory=StyleConfig)
    id: str = field(default_factory=new_job_id)
    status: JobStatus = JobStatus.QUEUED
    progress: int = 0
    current_step: str = "Queued"
    output_ref: Optional[str] = None
    message: str = ""
    created_at: str = field(default_factory=utc_now)
    updated_at: str = ""

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def to_dict(self) -> Dict:
        """Public view used by the HTTP API and CLI."""
        return {
            "id": self.id,
            "status": self.status.value,
            "progress": self.progress,
            "current_step": self.current_step,
            "style_config": self.style_config.to_dict(),
            "source_ref": self.source_ref,
            "output_ref": self.output_ref,
            "message": self.message,
            "created_at": self.created_at,
            "updated_at": self.updated_at or self.created_at,
        }


@dataclass(frozen=True)
class HistoryEntry:
    job_id: str
    step: str
    outcome: Outcome
    message: str = ""
    timestamp: str = field(default_factory=utc_now)

    def to_dict(self) -> Dict:
        return {
            "job_id": self.job_id,
            "step": self.step,
            "outcome": self.outcome.value,
            "message": self.message,
            "timestamp": self.timestamp,
        }
