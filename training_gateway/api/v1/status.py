"""Job status polling endpoint."""

from fastapi import APIRouter, Depends, HTTPException

from training_gateway.api.deps import get_job_service
from training_gateway.jobs.service import JobService

router = APIRouter()


@router.get("/status/{job_id}")
async def get_job_status(job_id: str, service: JobService = Depends(get_job_service)):
    """Return the full job record."""
    job = service.get_job(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail="Job not found")
    return job.to_response()
