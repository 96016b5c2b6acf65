"""Schemas for series points and optimization jobs."""

import json
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .exceptions import InvalidJobTransitionError


class SeriesPoint(BaseModel):
    """One observation of a sales series."""
    model_config = ConfigDict(extra="allow")

    timestamp: Optional[datetime] = None
    value: Optional[float] = None
    division: Optional[str] = None
    cluster: Optional[str] = None
    lifecycle: Optional[str] = None


class JobStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES

    @property
    def is_active(self) -> bool:
        return self in (JobStatus.PENDING, JobStatus.RUNNING)


TERMINAL_STATUSES = frozenset({JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED})

_ALLOWED_TRANSITIONS = {
    JobStatus.PENDING: {JobStatus.RUNNING, JobStatus.CANCELLED},
    JobStatus.RUNNING: {JobStatus.COMPLETED, JobStatus.FAILED, JobStatus.CANCELLED},
}


class OptimizationMethod(str, Enum):
    GRID = "grid"
    AI = "ai"


class Job(BaseModel):
    """
    Optimization job record as exposed by the job status feed.

    Jobs are created pending, claimed into running by exactly one worker, and
    end in a terminal status. Terminal jobs are immutable.
    """
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: int
    sku: str = Field(default="", alias="entityKey")
    model_id: str = Field(default="", alias="modelId")
    method: OptimizationMethod = OptimizationMethod.GRID
    status: JobStatus = JobStatus.PENDING
    progress: float = 0
    error: Optional[str] = None
    result: Optional[Any] = None
    created_at: Optional[datetime] = Field(default=None, alias="createdAt")
    updated_at: Optional[datetime] = Field(default=None, alias="updatedAt")
    batch_id: Optional[str] = Field(default=None, alias="batchId")
    priority: int = 0
    payload: Dict[str, Any] = Field(default_factory=dict, alias="data")

    @field_validator("payload", mode="before")
    @classmethod
    def _decode_payload(cls, value: Any) -> Any:
        # the job store keeps the payload as a JSON string
        if value is None:
            return {}
        if isinstance(value, str):
            return json.loads(value) if value else {}
        return value

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def transition(self, new_status: JobStatus, **changes: Any) -> 'Job':
        """Return a copy of the job moved to ``new_status``."""
        if new_status not in _ALLOWED_TRANSITIONS.get(self.status, set()):
            raise InvalidJobTransitionError(
                f"Job {self.id}: cannot move from {self.status.value} to {new_status.value}"
            )
        changes.update(status=new_status, updated_at=datetime.now())
        return self.model_copy(update=changes)
