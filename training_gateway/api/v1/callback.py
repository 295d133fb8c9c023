"""Result callback from the external training workflow."""

import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, ConfigDict, Field, field_validator

from training_gateway.api.deps import get_job_service
from training_gateway.auth.callback_auth import verify_callback_secret
from training_gateway.jobs.service import JobService

logger = logging.getLogger(__name__)

router = APIRouter()


class CallbackPayload(BaseModel):
    """Whatever the workflow posts back. Every field is optional and loosely typed."""
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    job_id: Optional[str] = Field(default=None, alias="jobId")
    status: Optional[str] = None
    display_metric: Any = None
    message: Any = None

    @field_validator("job_id", "status", mode="before")
    @classmethod
    def _as_text(cls, value):
        if value is None or isinstance(value, str):
            return value
        return str(value)


async def read_callback_payload(request: Request) -> CallbackPayload:
    """Parse the body leniently; malformed or non-object bodies count as empty."""
    try:
        body = await request.json()
    except ValueError:
        body = None
    if not isinstance(body, dict):
        logger.warning("Callback body is not a JSON object, ignoring its content")
        body = {}
    return CallbackPayload.model_validate(body)


@router.post(
    "/callback",
    name="receive_callback",
    dependencies=[Depends(verify_callback_secret)],
)
async def receive_callback(
    payload: CallbackPayload = Depends(read_callback_payload),
    service: JobService = Depends(get_job_service),
):
    """Apply the workflow's outcome to its job.

    Always answers success, including for unknown jobs and odd payloads,
    so the workflow does not keep retrying.
    """
    logger.info("Callback received: %s", payload.model_dump(by_alias=True, exclude_none=True))
    service.apply_callback(
        payload.job_id,
        status=payload.status,
        display_metric=payload.display_metric,
        message=payload.message,
    )
    return {"status": "success", "message": "Callback processed"}


@router.get("/callback")
async def callback_info():
    """Browser-friendly check that the callback endpoint is reachable."""
    return {
        "status": "active",
        "message": "This endpoint is alive and waiting for POST data from the training workflow.",
        "instructions": "The workflow posts results here automatically when training is complete.",
    }
