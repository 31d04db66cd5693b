"""Job queue data models."""

from datetime import datetime
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field


class JobType(str, Enum):
    RECURRING = "recurring"
    IMMEDIATE = "immediate"


class JobState(str, Enum):
    WAITING = "waiting"
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"


class Job(BaseModel):
    """A unit of work in the job queue."""

    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    type: JobType
    state: JobState = JobState.WAITING
    data: dict[str, Any] = Field(default_factory=dict)
    priority: int = Field(default=10, ge=0)
    attempts: int = Field(default=0, ge=0, description="Attempts started so far")
    max_attempts: int = Field(default=3, ge=1)
    backoff_delay: float = Field(default=5.0, ge=0, description="Base retry delay (s)")
    result: Optional[dict[str, Any]] = None
    failed_reason: Optional[str] = None
    created_at: datetime = Field(default_factory=datetime.now)
    run_at: datetime = Field(default_factory=datetime.now)
    processed_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    model_config = {"frozen": True}


class QueueStats(BaseModel):
    """Job counts by state."""

    total_jobs: int = 0
    waiting_jobs: int = 0
    active_jobs: int = 0
    completed_jobs: int = 0
    failed_jobs: int = 0

    model_config = {"frozen": True}
