"""In-memory job registry with per-job write serialization."""

import logging
import threading
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional

from training_gateway.jobs.models import JobRecord, JobStatus, utcnow

logger = logging.getLogger(__name__)


class UpdateOutcome(str, Enum):
    APPLIED = "applied"
    NOT_FOUND = "not_found"
    REJECTED = "rejected"


class JobRegistry:
    """Owns every JobRecord for the lifetime of the process.

    - Records are frozen snapshots; updates swap in a new record, so a
      reader sees either the old or the new state, never a partial one.
    - Updates to the same job are serialized by a per-job lock.
      Updates to different jobs never wait on each other.
    - Nothing survives a restart.
    """

    def __init__(self):
        self._jobs: Dict[str, JobRecord] = {}
        self._job_locks: Dict[str, threading.Lock] = {}
        self._lock = threading.Lock()  # guards the two dicts' key sets

    def create(self, job: JobRecord) -> JobRecord:
        """Register a new job. Raises ValueError if the id is taken."""
        with self._lock:
            if job.id in self._jobs:
                raise ValueError(f"Job '{job.id}' already exists")
            self._job_locks[job.id] = threading.Lock()
            self._jobs[job.id] = job
        logger.debug("Created job %s", job.id)
        return job

    def get(self, job_id: str) -> Optional[JobRecord]:
        return self._jobs.get(job_id)

    def update(
        self,
        job_id: str,
        changes: Dict[str, Any],
        from_statuses: Optional[Iterable[JobStatus]] = None,
    ) -> UpdateOutcome:
        """Apply `changes` to a job.

        Never creates a record: a missing id yields NOT_FOUND. When
        `from_statuses` is given the change is applied only if the job is
        currently in one of those states, otherwise REJECTED.
        """
        job_lock = self._job_locks.get(job_id)
        if job_lock is None:
            return UpdateOutcome.NOT_FOUND

        allowed = frozenset(from_statuses) if from_statuses is not None else None
        with job_lock:
            current = self._jobs[job_id]
            if allowed is not None and current.status not in allowed:
                return UpdateOutcome.REJECTED
            self._jobs[job_id] = current.model_copy(
                update={**changes, "updated_at": utcnow()}
            )
        return UpdateOutcome.APPLIED

    def list_jobs(self) -> List[JobRecord]:
        """Snapshot of all jobs, in creation order."""
        with self._lock:
            return list(self._jobs.values())

    def __len__(self) -> int:
        return len(self._jobs)

    def __contains__(self, job_id: str) -> bool:
        return job_id in self._jobs
