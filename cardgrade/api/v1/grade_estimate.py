"""Grade estimate API: start a job, poll its status."""

from typing import List, Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel

from cardgrade.grading.models import CamelModel, CardInput
from cardgrade.io.image_resolver import ImageValidationError, validate_image_references
from cardgrade.jobs.models import JobInput

router = APIRouter(prefix="/grade-estimate")

# Set by main.py during lifespan
_dispatcher = None


def set_dispatcher(dispatcher):
    global _dispatcher
    _dispatcher = dispatcher


class StartRequest(CamelModel):
    image_urls: Optional[List[str]] = None
    image_url: Optional[str] = None
    card: Optional[CardInput] = None

    def references(self) -> List[str]:
        if self.image_urls:
            return [ref for ref in self.image_urls if ref]
        return [self.image_url] if self.image_url else []


class StartResponse(BaseModel):
    jobId: str


@router.post("/start", response_model=StartResponse)
async def start_grade_estimate(request: StartRequest):
    """Validate the images and start a grade estimate job."""
    if _dispatcher is None:
        raise HTTPException(status_code=503, detail="Job dispatcher not initialized")

    refs = request.references()
    try:
        validate_image_references(refs)
    except ImageValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc))

    job = await _dispatcher.submit(JobInput(image_urls=refs, card=request.card))
    return StartResponse(jobId=job.job_id)


@router.get("/status/{job_id}")
async def get_grade_estimate_status(job_id: str):
    """Current snapshot of a job, including partial results."""
    if _dispatcher is None:
        raise HTTPException(status_code=503, detail="Job dispatcher not initialized")

    job = await _dispatcher.get_status(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail="Job not found")
    return job.to_status_response()
