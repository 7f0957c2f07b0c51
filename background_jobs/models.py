"""Data models for jobs."""

from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def type_tag(job_type: Any) -> str:
    """Normalize a job type (plain string or JobType member) to its string tag."""
    if isinstance(job_type, Enum):
        return str(job_type.value)
    return str(job_type)


class JobStatus(str, Enum):
    """Job status values."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


class JobType(str, Enum):
    """Job types known to the application.

    Submissions are not limited to these values; any string tag is accepted.
    """

    SEND_NOTIFICATION = "send_notification"
    SEND_EMAIL = "send_email"
    SEND_WHATSAPP = "send_whatsapp"
    PROCESS_COUPON = "process_coupon"
    UPDATE_STATS = "update_stats"
    CLEANUP_SESSIONS = "cleanup_sessions"
    SYNC_INVENTORY = "sync_inventory"
    GENERATE_REPORT = "generate_report"
    SEND_WEBHOOK = "send_webhook"


class JobOptions(BaseModel):
    """Options accepted by JobEngine.submit()."""

    priority: int = 0
    delay: float = Field(default=0, ge=0, allow_inf_nan=False)
    retries: int = Field(default=3, ge=0)
    tenant_tag: Optional[str] = None

    model_config = {"extra": "forbid"}

    @field_validator("delay", mode="before")
    @classmethod
    def _delay_to_seconds(cls, value: Any) -> Any:
        if isinstance(value, timedelta):
            return value.total_seconds()
        return value


class Job:
    """Represents a job record."""

    def __init__(
        self,
        id: UUID,
        type: str,
        payload: Any,
        run_at: datetime,
        priority: int = 0,
        retries: int = 3,
        tenant_tag: Optional[str] = None,
        status: JobStatus = JobStatus.PENDING,
        created_at: Optional[datetime] = None,
    ):
        self.id = id
        self.type = type
        self.payload = payload
        self.tenant_tag = tenant_tag
        self.priority = priority
        self.run_at = run_at
        self.retries = retries
        self.retries_left = retries
        self.attempts = 0
        self.status = JobStatus(status) if isinstance(status, str) else status
        self.created_at = created_at or utcnow()
        self.started_at: Optional[datetime] = None
        self.completed_at: Optional[datetime] = None
        self.failed_at: Optional[datetime] = None
        self.last_error: Optional[str] = None

    def is_ready(self, now: datetime) -> bool:
        """A job is ready when it is pending and its run_at has elapsed."""
        return self.status == JobStatus.PENDING and self.run_at <= now

    def sort_key(self) -> tuple:
        """Queue ordering: higher priority first, then earlier run_at."""
        return (-self.priority, self.run_at)

    def to_dict(self) -> Dict[str, Any]:
        """Convert job to dictionary for JSON serialization."""
        return {
            "id": str(self.id),
            "type": self.type,
            "payload": self.payload,
            "tenant_tag": self.tenant_tag,
            "priority": self.priority,
            "run_at": self.run_at.isoformat() if self.run_at else None,
            "retries": self.retries,
            "retries_left": self.retries_left,
            "attempts": self.attempts,
            "status": self.status.value,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "failed_at": self.failed_at.isoformat() if self.failed_at else None,
            "last_error": self.last_error,
        }

    def __repr__(self) -> str:
        return (
            f"Job(id={self.id}, type={self.type}, priority={self.priority}, "
            f"status={self.status.value})"
        )
