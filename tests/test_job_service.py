import asyncio
import os
import threading
from datetime import timedelta

import pytest

from training_gateway.errors import StorageError, UploadTooLargeError, UploadValidationError
from training_gateway.jobs.models import JobStatus, utcnow
from training_gateway.jobs.registry import UpdateOutcome
from training_gateway.jobs.service import is_csv_upload, normalize_reported_status

from tests.fakes import CSV_BYTES, make_upload, storage_failure

CALLBACK_URL = "https://gateway.example.com/api/callback"


async def submit(service, **kwargs):
    upload = kwargs.pop("upload", None) or make_upload()
    email = kwargs.pop("email", "owner@example.com")
    return await service.submit_upload(upload, email, CALLBACK_URL)


# ---------------------------------------------------------------------------
# Upload
# ---------------------------------------------------------------------------

async def test_upload_moves_job_to_training(service, registry, content_store, trigger, temp_store):
    job = await submit(service)

    assert job.status == JobStatus.TRAINING
    assert job.progress == 40
    assert job.email == "owner@example.com"
    assert job.filename == "iris.csv"
    assert job.dataset_url.startswith("https://storage.example.com/ml-datasets/uploads/")
    assert job.dataset_url.endswith("_iris.csv")
    assert registry.get(job.id) == job
    assert list(content_store.stored.values()) == [CSV_BYTES]
    assert os.listdir(temp_store.base_dir) == []

    await service.drain(timeout=5)
    assert len(trigger.payloads) == 1
    payload = trigger.payloads[0]
    assert payload.job_id == job.id
    assert payload.email == "owner@example.com"
    assert payload.dataset_url == job.dataset_url
    assert payload.callback_url == CALLBACK_URL


async def test_same_named_uploads_get_distinct_jobs(service, registry):
    first = await submit(service)
    second = await submit(service)

    assert first.id != second.id
    assert len(registry) == 2


async def test_missing_email_creates_no_job(service, registry, content_store, trigger):
    with pytest.raises(UploadValidationError, match="Email is required"):
        await submit(service, email="   ")

    assert len(registry) == 0
    assert content_store.stored == {}
    assert trigger.payloads == []


async def test_missing_file_creates_no_job(service, registry):
    with pytest.raises(UploadValidationError, match="CSV file is required"):
        await service.submit_upload(None, "owner@example.com", CALLBACK_URL)
    assert len(registry) == 0


async def test_non_csv_rejected(service, registry):
    upload = make_upload(b"\x89PNG", filename="photo.png", content_type="image/png")
    with pytest.raises(UploadValidationError, match="CSV"):
        await submit(service, upload=upload)
    assert len(registry) == 0


async def test_empty_file_rejected(service, registry, temp_store):
    with pytest.raises(UploadValidationError, match="empty"):
        await submit(service, upload=make_upload(b""))
    assert len(registry) == 0
    assert os.listdir(temp_store.base_dir) == []


async def test_oversized_file_rejected(service, registry, temp_store):
    with pytest.raises(UploadTooLargeError):
        await submit(service, upload=make_upload(b"a,b\n" * 1000))
    assert len(registry) == 0
    assert os.listdir(temp_store.base_dir) == []


async def test_storage_failure_marks_job_error(service, registry, content_store, trigger, temp_store):
    content_store.error = storage_failure()

    with pytest.raises(StorageError):
        await submit(service)

    [job] = registry.list_jobs()
    assert job.status == JobStatus.ERROR
    assert job.error_message == "Supabase upload failed: Bucket not found"
    assert job.result is None
    assert os.listdir(temp_store.base_dir) == []
    await service.drain(timeout=5)
    assert trigger.payloads == []


async def test_unexpected_storage_exception_is_wrapped(service, registry, content_store):
    content_store.error = ConnectionResetError("peer reset")

    with pytest.raises(StorageError, match="ConnectionResetError: peer reset"):
        await submit(service)

    [job] = registry.list_jobs()
    assert job.status == JobStatus.ERROR
    assert "peer reset" in job.error_message


async def test_dispatch_failure_leaves_job_training(service, registry, trigger):
    trigger.fail = True

    job = await submit(service)
    await service.drain(timeout=5)

    assert len(trigger.payloads) == 1
    assert registry.get(job.id).status == JobStatus.TRAINING
    assert service.pending_dispatches == 0


async def test_upload_returns_while_trigger_is_still_running(service, registry, trigger):
    trigger.release = threading.Event()

    try:
        job = await asyncio.wait_for(submit(service), timeout=1)

        assert job.status == JobStatus.TRAINING
        assert registry.get(job.id).progress == 40
        assert service.pending_dispatches == 1
        assert await asyncio.to_thread(trigger.called.wait, 2)
    finally:
        trigger.release.set()

    await service.drain(timeout=5)
    assert service.pending_dispatches == 0
    assert registry.get(job.id).status == JobStatus.TRAINING


# ---------------------------------------------------------------------------
# Callback
# ---------------------------------------------------------------------------

async def test_completed_callback_attaches_result(service, registry):
    job = await submit(service)

    outcome = service.apply_callback(job.id, "completed", display_metric="0.92", message="done")

    assert outcome is UpdateOutcome.APPLIED
    record = registry.get(job.id)
    assert record.status == JobStatus.COMPLETED
    assert record.progress == 100
    assert record.result.display_metric == "0.92"
    assert record.result.message == "done"
    assert record.error_message is None


async def test_callback_without_status_counts_as_success(service, registry):
    job = await submit(service)

    service.apply_callback(job.id, None, display_metric=0.81)

    record = registry.get(job.id)
    assert record.status == JobStatus.COMPLETED
    assert record.result.display_metric == 0.81


async def test_error_callback_sets_message_without_result(service, registry):
    job = await submit(service)

    service.apply_callback(job.id, "failed", message="target column missing")

    record = registry.get(job.id)
    assert record.status == JobStatus.ERROR
    assert record.progress == 100
    assert record.result is None
    assert record.error_message == "target column missing"


async def test_structured_callback_fields_are_kept(service, registry):
    first = await submit(service)
    second = await submit(service)

    service.apply_callback(first.id, "completed", display_metric={"r2": 0.9}, message=["a", "b"])
    service.apply_callback(second.id, "error", message={"code": 7})

    assert registry.get(first.id).result.display_metric == {"r2": 0.9}
    assert registry.get(first.id).result.message == ["a", "b"]
    assert registry.get(second.id).error_message == "{'code': 7}"


async def test_callback_is_idempotent(service, registry):
    job = await submit(service)

    service.apply_callback(job.id, "completed", display_metric="0.92", message="done")
    once = registry.get(job.id)
    outcome = service.apply_callback(job.id, "completed", display_metric="0.92", message="done")

    assert outcome is UpdateOutcome.REJECTED
    assert registry.get(job.id) == once


async def test_no_transition_out_of_storage_error(service, registry, content_store):
    content_store.error = storage_failure()
    with pytest.raises(StorageError):
        await submit(service)
    [job] = registry.list_jobs()

    service.apply_callback(job.id, "completed", display_metric="0.5")

    assert registry.get(job.id).status == JobStatus.ERROR
    assert registry.get(job.id).result is None


async def test_unknown_job_callback_mutates_nothing(service, registry):
    job = await submit(service)
    before = registry.get(job.id)

    assert service.apply_callback("no-such-job", "completed") is UpdateOutcome.NOT_FOUND
    assert service.apply_callback(None, "completed") is UpdateOutcome.NOT_FOUND

    assert len(registry) == 1
    assert registry.get("no-such-job") is None
    assert registry.get(job.id) == before


async def test_progress_never_decreases(service, registry):
    job = await submit(service)
    seen = [10, registry.get(job.id).progress]
    service.apply_callback(job.id, "completed", message="done")
    seen.append(registry.get(job.id).progress)

    assert seen == [10, 40, 100]
    assert seen == sorted(seen)


@pytest.mark.parametrize("reported,expected", [
    (None, JobStatus.COMPLETED),
    ("", JobStatus.COMPLETED),
    ("completed", JobStatus.COMPLETED),
    ("SUCCESS", JobStatus.COMPLETED),
    ("error", JobStatus.ERROR),
    ("Failed", JobStatus.ERROR),
    ("something-else", JobStatus.COMPLETED),
])
def test_normalize_reported_status(reported, expected):
    assert normalize_reported_status(reported) is expected


@pytest.mark.parametrize("filename,content_type,expected", [
    ("data.csv", "text/csv", True),
    ("DATA.CSV", "application/octet-stream", True),
    ("export", "text/csv; charset=utf-8", True),
    ("data.xls", "application/vnd.ms-excel", True),
    ("notes.txt", "text/plain", False),
    ("photo.png", "image/png", False),
])
def test_is_csv_upload(filename, content_type, expected):
    assert is_csv_upload(filename, content_type) is expected


# ---------------------------------------------------------------------------
# Stale jobs
# ---------------------------------------------------------------------------

async def test_expire_stale_jobs(service, registry):
    stuck = await submit(service)
    done = await submit(service)
    service.apply_callback(done.id, "completed")

    expired = service.expire_stale_jobs(timedelta(minutes=30), now=utcnow() + timedelta(hours=1))

    assert expired == [stuck.id]
    record = registry.get(stuck.id)
    assert record.status == JobStatus.ERROR
    assert record.progress == 100
    assert "30 minutes" in record.error_message
    assert registry.get(done.id).status == JobStatus.COMPLETED


async def test_recent_jobs_are_not_expired(service, registry):
    job = await submit(service)

    assert service.expire_stale_jobs(timedelta(minutes=30)) == []
    assert registry.get(job.id).status == JobStatus.TRAINING
