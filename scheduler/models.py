"""
Models for polling and change notification.

This module defines Pydantic models for:
- Poll cycle results
- Notification event kinds
- Alert configuration
- Scheduler configuration
"""

from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class EventKind(str, Enum):
    """Kinds of events forwarded to notification sinks."""
    NEW_ITEMS = "new_items"
    DEADLINES = "deadlines"


class CycleStatus(str, Enum):
    """Outcome of a single poll cycle."""
    COMPLETED = "completed"
    SKIPPED = "skipped"
    SAVE_FAILED = "save_failed"


class CycleResult(BaseModel):
    """Result of one poll cycle for one course."""
    course_id: int = Field(..., description="Polled course")
    course_name: str = Field(..., description="Polled course name")
    status: CycleStatus = Field(default=CycleStatus.COMPLETED)
    started_at: datetime = Field(default_factory=utcnow)

    new_items: int = Field(default=0, description="Leaves reported as new")
    deadline_items: int = Field(default=0, description="Leaves reported as due soon")
    bytes_fetched: int = Field(default=0, description="Bytes received from the source")
    duration_seconds: float = Field(default=0.0)

    notified: List[EventKind] = Field(default_factory=list, description="Events delivered successfully")
    errors: List[str] = Field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.status == CycleStatus.COMPLETED and not self.errors


class AlertConfig(BaseModel):
    """Configuration for notification delivery."""
    enabled: bool = Field(default=True)
    log_enabled: bool = Field(default=True)

    webhook_url: Optional[str] = Field(default=None, description="Chat webhook receiving embeds")
    notify_timeout_seconds: float = Field(default=30.0, gt=0, description="Per-sink delivery timeout")
    max_items_per_message: int = Field(default=25, ge=1, le=25)

    @property
    def delivery_timeout_seconds(self) -> float:
        """Bound for a whole event, leaving room for the per-sink timeouts to fire first."""
        return self.notify_timeout_seconds * 1.5


class SchedulerConfig(BaseModel):
    """Configuration for the polling scheduler."""
    poll_interval_seconds: int = Field(default=300, ge=10, description="Seconds between two polls of a course")
    deadline_window_hours: float = Field(default=16, gt=0, description="Deadline look-ahead window")
    fetch_timeout_seconds: float = Field(default=60.0, gt=0, description="Upper bound for one source fetch")
    timezone: str = Field(default="UTC", description="Timezone for scheduling")

    alert_config: AlertConfig = Field(default_factory=AlertConfig)

    @property
    def deadline_window(self) -> timedelta:
        return timedelta(hours=self.deadline_window_hours)
