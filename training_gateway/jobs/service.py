"""Job orchestration: upload hand-off, callback reconciliation, status reads.

Every write to the JobRegistry goes through this module.
"""

import asyncio
import logging
import os
from datetime import datetime, timedelta
from typing import Any, List, Optional, Set

from fastapi import UploadFile

from training_gateway.errors import DispatchError, StorageError, UploadValidationError
from training_gateway.jobs.models import (
    ACTIVE_STATUSES,
    PROGRESS_DONE,
    PROGRESS_TRAINING,
    JobRecord,
    JobResult,
    JobStatus,
    utcnow,
)
from training_gateway.jobs.registry import JobRegistry, UpdateOutcome
from training_gateway.storage.content_store import ContentStore
from training_gateway.storage.temp_uploads import TempUploadStore
from training_gateway.workflow.trigger import TriggerPayload, WorkflowTrigger

logger = logging.getLogger(__name__)

CSV_CONTENT_TYPES = frozenset({
    "text/csv",
    "application/csv",
    "text/comma-separated-values",
    "application/vnd.ms-excel",  # what Windows browsers send for .csv
})

_SUCCESS_WORDS = frozenset({"completed", "complete", "success", "succeeded", "done"})
_FAILURE_WORDS = frozenset({"error", "failed", "failure"})


def is_csv_upload(filename: Optional[str], content_type: Optional[str]) -> bool:
    if filename and filename.lower().endswith(".csv"):
        return True
    return (content_type or "").split(";")[0].strip().lower() in CSV_CONTENT_TYPES


def normalize_reported_status(reported: Optional[str]) -> JobStatus:
    """Map the workflow's free-form status onto a terminal JobStatus.

    A callback with no status counts as success.
    """
    if reported is None or not reported.strip():
        return JobStatus.COMPLETED
    value = reported.strip().lower()
    if value in _FAILURE_WORDS:
        return JobStatus.ERROR
    if value not in _SUCCESS_WORDS:
        logger.warning("Unrecognised callback status %r, treating as completed", reported)
    return JobStatus.COMPLETED


class JobService:
    """Creates jobs from uploads and reconciles workflow callbacks into them."""

    def __init__(
        self,
        registry: JobRegistry,
        content_store: ContentStore,
        trigger: WorkflowTrigger,
        temp_store: TempUploadStore,
    ):
        self.registry = registry
        self._content_store = content_store
        self._trigger = trigger
        self._temp_store = temp_store
        self._pending: Set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # Upload
    # ------------------------------------------------------------------

    async def submit_upload(
        self,
        upload: Optional[UploadFile],
        email: Optional[str],
        callback_url: str,
    ) -> JobRecord:
        """Validate, store and hand off a dataset. Returns the job snapshot.

        Raises UploadValidationError before any job exists, or StorageError
        after the job has been marked as failed.
        """
        if upload is None or not upload.filename:
            raise UploadValidationError("CSV file is required")
        if not email or not email.strip():
            raise UploadValidationError("Email is required")
        if not is_csv_upload(upload.filename, upload.content_type):
            raise UploadValidationError("File must be a CSV dataset")

        local_path = await self._temp_store.save(upload)
        if os.path.getsize(local_path) == 0:
            self._temp_store.remove(local_path)
            raise UploadValidationError("CSV file is empty")

        job = self.registry.create(JobRecord(email=email.strip(), filename=upload.filename))
        logger.info("Job %s created for %s (%s)", job.id, job.email, job.filename)

        loop = asyncio.get_running_loop()
        try:
            dataset_url = await loop.run_in_executor(
                None, self._store_dataset, local_path, upload.filename
            )
        except StorageError as e:
            self._mark_upload_failed(job.id, str(e))
            raise
        except Exception as e:
            detail = f"{type(e).__name__}: {e}"
            self._mark_upload_failed(job.id, detail)
            raise StorageError(detail) from e
        finally:
            self._temp_store.remove(local_path)

        self.registry.update(
            job.id,
            {"status": JobStatus.TRAINING, "progress": PROGRESS_TRAINING, "dataset_url": dataset_url},
            from_statuses={JobStatus.UPLOADING},
        )

        self._dispatch_in_background(TriggerPayload(
            dataset_url=dataset_url,
            email=job.email,
            job_id=job.id,
            callback_url=callback_url,
        ))
        return self.registry.get(job.id)

    def _store_dataset(self, local_path: str, filename: str) -> str:
        with open(local_path, "rb") as f:
            data = f.read()
        return self._content_store.put(data, filename, content_type="text/csv")

    def _mark_upload_failed(self, job_id: str, detail: str) -> None:
        logger.error("Storing dataset for job %s failed: %s", job_id, detail)
        self.registry.update(
            job_id,
            {"status": JobStatus.ERROR, "error_message": detail},
            from_statuses={JobStatus.UPLOADING},
        )

    # ------------------------------------------------------------------
    # Workflow dispatch (fire-and-forget)
    # ------------------------------------------------------------------

    def _dispatch_in_background(self, payload: TriggerPayload) -> None:
        task = asyncio.get_running_loop().create_task(self._dispatch(payload))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _dispatch(self, payload: TriggerPayload) -> None:
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, self._trigger.dispatch, payload)
        except DispatchError as e:
            # The client already has its response; the job stays in training.
            logger.error("Workflow dispatch for job %s failed: %s", payload.job_id, e)
        except Exception:
            logger.exception("Unexpected error dispatching job %s", payload.job_id)

    @property
    def pending_dispatches(self) -> int:
        return len(self._pending)

    async def drain(self, timeout: Optional[float] = None) -> None:
        """Wait for in-flight dispatches, up to `timeout` seconds."""
        if self._pending:
            await asyncio.wait(set(self._pending), timeout=timeout)

    # ------------------------------------------------------------------
    # Callback
    # ------------------------------------------------------------------

    def apply_callback(
        self,
        job_id: Optional[str],
        status: Optional[str] = None,
        display_metric: Any = None,
        message: Any = None,
    ) -> UpdateOutcome:
        """Record the workflow's reported outcome for a job.

        Unknown ids and jobs that already reached a terminal state are left
        untouched, so repeated or stray callbacks are harmless.
        """
        if not job_id:
            logger.warning("Callback without jobId ignored")
            return UpdateOutcome.NOT_FOUND

        outcome_status = normalize_reported_status(status)
        if outcome_status is JobStatus.COMPLETED:
            changes = {
                "status": JobStatus.COMPLETED,
                "progress": PROGRESS_DONE,
                "result": JobResult(display_metric=display_metric, message=message),
                "error_message": None,
            }
        else:
            changes = {
                "status": JobStatus.ERROR,
                "progress": PROGRESS_DONE,
                "result": None,
                "error_message": str(message) if message else "Training workflow reported an error",
            }

        outcome = self.registry.update(job_id, changes, from_statuses=ACTIVE_STATUSES)
        if outcome is UpdateOutcome.APPLIED:
            logger.info("Job %s finished with status %s", job_id, outcome_status.value)
        elif outcome is UpdateOutcome.NOT_FOUND:
            logger.warning("Callback for unknown job %s ignored", job_id)
        else:
            logger.info("Callback for already finished job %s ignored", job_id)
        return outcome

    # ------------------------------------------------------------------
    # Queries and housekeeping
    # ------------------------------------------------------------------

    def get_job(self, job_id: str) -> Optional[JobRecord]:
        return self.registry.get(job_id)

    def expire_stale_jobs(
        self, max_age: timedelta, now: Optional[datetime] = None
    ) -> List[str]:
        """Fail jobs that have sat in training longer than `max_age`.

        Returns the ids that were expired.
        """
        cutoff = (now or utcnow()) - max_age
        expired = []
        for job in self.registry.list_jobs():
            if job.status is not JobStatus.TRAINING or job.updated_at > cutoff:
                continue
            minutes = int(max_age.total_seconds() // 60)
            outcome = self.registry.update(
                job.id,
                {
                    "status": JobStatus.ERROR,
                    "progress": PROGRESS_DONE,
                    "error_message": f"Training timed out: no result received within {minutes} minutes",
                },
                from_statuses={JobStatus.TRAINING},
            )
            if outcome is UpdateOutcome.APPLIED:
                logger.warning("Job %s expired after %d minutes in training", job.id, minutes)
                expired.append(job.id)
        return expired
