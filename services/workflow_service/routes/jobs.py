# jobs.py - Single-pass transcription jobs
# This file defines the API endpoints for the job-tracked transcription path.

from fastapi import APIRouter, HTTPException, Depends
import logging

from ..dependencies import get_job_manager, get_transcription_jobs
from ..errors import ValidationError
from ..job_manager import JobManager, JobStatus
from ..react_models import TranscriptionRequest
from ..transcription_jobs import TranscriptionJobService

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/jobs", tags=["jobs"])

@router.post("/transcription", status_code=202)
async def create_transcription_job(
    request: TranscriptionRequest,
    service: TranscriptionJobService = Depends(get_transcription_jobs)
):
    """Start a transcription job."""
    try:
        job_id = await service.start_transcription_job(request.source_url, request.options)
        return {
            "job_id": job_id,
            "status": "pending",
            "status_url": f"/jobs/{job_id}"
        }

    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Failed to create transcription job: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))

@router.get("/{job_id}", response_model=JobStatus)
async def get_job(
    job_id: str,
    job_manager: JobManager = Depends(get_job_manager)
):
    """Get job status and progress."""
    job = job_manager.get_job(job_id)
    if not job:
        raise HTTPException(status_code=404, detail="Job not found")
    return job

@router.get("/{job_id}/result")
async def get_job_result(
    job_id: str,
    job_manager: JobManager = Depends(get_job_manager),
    service: TranscriptionJobService = Depends(get_transcription_jobs)
):
    """Get the result of a completed job."""
    if not job_manager.has_job(job_id):
        raise HTTPException(status_code=404, detail="Job not found")

    ready, result = service.get_result(job_id)
    if not ready:
        raise HTTPException(status_code=400, detail=result)
    return {"job_id": job_id, "result": result}

@router.post("/{job_id}/cancel")
async def cancel_job(
    job_id: str,
    job_manager: JobManager = Depends(get_job_manager)
):
    """Cancel a pending or processing job."""
    try:
        job = job_manager.get_job(job_id)
        if not job:
            raise HTTPException(status_code=404, detail="Job not found")

        if not job_manager.is_cancellable(job_id):
            raise HTTPException(
                status_code=400,
                detail=f"Cannot cancel job with status: {job.status.value}"
            )

        await job_manager.cancel_job(job_id)
        return {"message": f"Job {job_id} cancelled successfully"}

    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Failed to cancel job {job_id}: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))
