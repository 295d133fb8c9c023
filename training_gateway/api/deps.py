"""FastAPI dependencies resolving components wired in by create_app()."""

from fastapi import HTTPException, Request

from training_gateway.config import Settings
from training_gateway.jobs.service import JobService


def get_job_service(request: Request) -> JobService:
    service = getattr(request.app.state, "job_service", None)
    if service is None:
        raise HTTPException(status_code=503, detail="Job service not initialized")
    return service


def get_settings(request: Request) -> Settings:
    return request.app.state.settings
