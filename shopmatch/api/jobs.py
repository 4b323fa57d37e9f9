"""Job posting routes."""

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from shopmatch.api.deps import get_job_service, require_active_subscription
from shopmatch.core.auth import AuthContext
from shopmatch.features.jobs.models import JobCreate
from shopmatch.features.jobs.service import JobService


router = APIRouter(prefix="/jobs", tags=["jobs"])


@router.post("", status_code=201)
def create_job(
    payload: JobCreate,
    auth: AuthContext = Depends(require_active_subscription),
    service: JobService = Depends(get_job_service),
):
    """
    Create a job posting.

    A repeat submission (same owner and title) inside the duplicate window
    returns the stored job with 200 instead of creating another.
    """
    job, created = service.create_job(auth.uid, payload)
    if created:
        return JSONResponse(
            status_code=201,
            content={"message": "Job created successfully", "job": job.model_dump(mode="json")},
        )
    return JSONResponse(
        status_code=200,
        content={"message": "Job already exists", "job": job.model_dump(mode="json")},
    )
