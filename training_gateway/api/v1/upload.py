"""Dataset upload endpoint: store the CSV, open a job, trigger training."""

from typing import Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, Request, UploadFile
from pydantic import BaseModel, ConfigDict, Field

from training_gateway.api.deps import get_job_service, get_settings
from training_gateway.config import Settings
from training_gateway.errors import StorageError, UploadValidationError
from training_gateway.jobs.service import JobService

router = APIRouter()


class UploadResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    status: str = "success"
    message: str = "Upload complete. Results will be emailed."
    job_id: str = Field(alias="jobId")


@router.post("/upload", response_model=UploadResponse)
async def upload_dataset(
    request: Request,
    csv: Optional[UploadFile] = File(None),
    email: Optional[str] = Form(None),
    service: JobService = Depends(get_job_service),
    settings: Settings = Depends(get_settings),
):
    """Accept a CSV dataset and contact e-mail, and start a training job.

    Responds as soon as the dataset is stored; the training outcome arrives
    later through /api/callback and is visible via /api/status/{jobId}.
    """
    callback_url = settings.callback_url or str(request.url_for("receive_callback"))

    try:
        job = await service.submit_upload(csv, email, callback_url)
    except UploadValidationError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    except StorageError as e:
        raise HTTPException(status_code=500, detail=f"Upload process failed: {e}")

    return UploadResponse(job_id=job.id)
