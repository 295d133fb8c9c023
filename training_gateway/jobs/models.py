"""Job record data model for tracked training runs."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from pydantic import BaseModel, ConfigDict, Field
import uuid


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class JobStatus(str, Enum):
    UPLOADING = "uploading"
    TRAINING = "training"
    COMPLETED = "completed"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.ERROR)


ACTIVE_STATUSES = frozenset({JobStatus.UPLOADING, JobStatus.TRAINING})

# Progress checkpoints reported to pollers
PROGRESS_UPLOADING = 10
PROGRESS_TRAINING = 40
PROGRESS_DONE = 100


class JobResult(BaseModel):
    """Outcome reported by the external workflow on success."""
    display_metric: Any = None
    message: Any = None


class JobRecord(BaseModel):
    """Tracks one uploaded dataset from upload to its terminal outcome.

    Records are treated as immutable snapshots: the registry replaces a
    record wholesale on every update instead of mutating it in place.
    """
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    status: JobStatus = JobStatus.UPLOADING
    progress: int = PROGRESS_UPLOADING
    email: str
    filename: Optional[str] = None
    dataset_url: Optional[str] = Field(default=None, alias="datasetUrl")
    result: Optional[JobResult] = None
    error_message: Optional[str] = Field(default=None, alias="errorMessage")
    created_at: datetime = Field(default_factory=utcnow, alias="createdAt")
    updated_at: datetime = Field(default_factory=utcnow, alias="updatedAt")

    def to_response(self) -> dict:
        """Wire form returned by the status endpoint."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
