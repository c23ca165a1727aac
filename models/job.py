from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class JobStatus(str, Enum):
    PROCESSING = "processing"
    COMPLETED = "completed"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self is not JobStatus.PROCESSING


class Job(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    operation: str
    path: str
    status: JobStatus = JobStatus.PROCESSING
    progress: float = 0.0
    error: Optional[str] = None
    result: Optional[Dict[str, Any]] = None
    start_time: datetime = Field(default_factory=lambda: datetime.now(timezone.utc), alias="startTime")


class JobSummary(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    status: JobStatus
    progress: float
    start_time: datetime = Field(alias="startTime")


class JobEvent(BaseModel):
    """Push message for subscribers: progress | complete | error."""
    type: str
    data: Dict[str, Any]

    @classmethod
    def snapshot(cls, job: Job) -> "JobEvent":
        if job.status is JobStatus.COMPLETED:
            return cls(type="complete", data={"jobId": job.id, "result": job.result})
        if job.status is JobStatus.ERROR:
            return cls(type="error", data={"jobId": job.id, "error": job.error})
        return cls(type="progress", data={"jobId": job.id, "progress": job.progress})

    @property
    def is_terminal(self) -> bool:
        return self.type in ("complete", "error")
