"""
Ingestion API endpoints - trigger a health export run over HTTP.
"""

import uuid
from typing import Optional

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from ..config import settings
from ..exceptions import ConfigurationError, error_message
from ..handler import process_health_data
from ..jobs import StorageJobTracker
from ..storage import create_storage

router = APIRouter(tags=["ingest"])


class ProcessHealthDataRequest(BaseModel):
    """Body of a processing request."""
    model_config = ConfigDict(populate_by_name=True)

    job_id: Optional[str] = Field(default=None, alias="jobId")
    user_id: str = Field(default="", alias="userId")
    file_key: str = Field(default="", alias="fileKey")


@router.post("/process-health-data")
async def trigger_processing(request: ProcessHealthDataRequest):
    """
    Ingest an uploaded export for a user and wait for the result.

    A job record is created when the caller does not supply a jobId.

    Returns:
        The run's response body with status 200 on success or 500 on failure
    """
    try:
        storage = create_storage(settings)
    except ConfigurationError as e:
        return JSONResponse(status_code=500, content={"success": False, "error": error_message(e)})
    tracker = StorageJobTracker(storage, prefix=settings.jobs_prefix)

    job_id = request.job_id
    if not job_id:
        job_id = uuid.uuid4().hex
        await tracker.create(job_id, meta={"userId": request.user_id, "fileKey": request.file_key})

    response = await process_health_data(
        {"jobId": job_id, "userId": request.user_id, "fileKey": request.file_key},
        storage=storage,
        job_tracker=tracker,
    )
    return JSONResponse(status_code=response.status_code, content={**response.body, "jobId": job_id})
