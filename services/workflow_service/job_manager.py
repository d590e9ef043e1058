# job_manager.py - Single-stage job lifecycle tracking
# Used by the single-pass upload/transcription path. Jobs live in memory only.

import logging
import time
import uuid
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Dict, List, Optional, Set

from pydantic import BaseModel, Field

from .event_publisher import EventBus

logger = logging.getLogger(__name__)

class JobState(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

FINAL_JOB_STATES = {JobState.COMPLETED, JobState.FAILED, JobState.CANCELLED}

class JobStatus(BaseModel):
    job_id: str
    status: JobState = JobState.PENDING
    progress: float = 0
    message: Optional[str] = None
    start_time: datetime = Field(default_factory=datetime.utcnow)
    end_time: Optional[datetime] = None
    error: Optional[str] = None
    result: Optional[Dict[str, Any]] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)

class JobManager:
    def __init__(self, event_bus: EventBus):
        self.event_bus = event_bus
        self.jobs: Dict[str, JobStatus] = {}
        self.active_jobs: Set[str] = set()

    async def create_job(self, metadata: Optional[Dict[str, Any]] = None) -> str:
        job_id = f"job-{int(time.time() * 1000)}-{uuid.uuid4().hex[:9]}"
        self.jobs[job_id] = JobStatus(job_id=job_id, metadata=metadata or {})

        await self._notify("job.created", job_id)
        logger.info(f"Job {job_id} created")
        return job_id

    async def start_job(self, job_id: str) -> bool:
        """Move a pending job to processing."""
        job = self.jobs.get(job_id)
        if job is None:
            logger.error(f"Job {job_id} not found")
            return False

        if job.status != JobState.PENDING:
            logger.error(f"Job {job_id} not in pending state (status: {job.status.value})")
            return False

        job.status = JobState.PROCESSING
        job.start_time = datetime.utcnow()
        self.active_jobs.add(job_id)

        await self._notify("job.started", job_id)
        logger.info(f"Job {job_id} started")
        return True

    async def update_progress(self, job_id: str, progress: float, message: Optional[str] = None) -> bool:
        """Set progress of a processing job, clamped to [0, 100]."""
        job = self.jobs.get(job_id)
        if job is None:
            logger.error(f"Job {job_id} not found for progress update")
            return False

        if job.status != JobState.PROCESSING:
            logger.warning(f"Attempted to update progress for non-processing job {job_id} "
                           f"(status: {job.status.value})")
            return False

        job.progress = max(0, min(100, progress))
        job.message = message

        await self._notify("job.progress", job_id, progress=job.progress, message=message)
        logger.debug(f"Job {job_id} progress {job.progress}: {message}")
        return True

    async def complete_job(self, job_id: str, result: Optional[Dict[str, Any]]) -> bool:
        job = self.jobs.get(job_id)
        if job is None:
            logger.error(f"Job {job_id} not found for completion")
            return False

        if job.status in FINAL_JOB_STATES:
            logger.warning(f"Cannot complete job {job_id} in final state {job.status.value}")
            return False

        job.status = JobState.COMPLETED
        job.progress = 100
        job.end_time = datetime.utcnow()
        job.result = result
        self.active_jobs.discard(job_id)

        await self._notify("job.completed", job_id)
        logger.info(f"Job {job_id} completed in {(job.end_time - job.start_time).total_seconds():.2f}s")
        return True

    async def fail_job(self, job_id: str, error: str) -> bool:
        job = self.jobs.get(job_id)
        if job is None:
            logger.error(f"Job {job_id} not found for failure")
            return False

        if job.status in FINAL_JOB_STATES:
            logger.warning(f"Cannot fail job {job_id} in final state {job.status.value}")
            return False

        job.status = JobState.FAILED
        job.end_time = datetime.utcnow()
        job.error = error
        self.active_jobs.discard(job_id)

        await self._notify("job.failed", job_id, error=error)
        logger.error(f"Job {job_id} failed: {error}")
        return True

    async def cancel_job(self, job_id: str) -> bool:
        """Cancel a pending or processing job. Final jobs are never touched."""
        job = self.jobs.get(job_id)
        if job is None:
            logger.error(f"Job {job_id} not found for cancellation")
            return False

        if job.status in FINAL_JOB_STATES:
            logger.warning(f"Cannot cancel job {job_id} in final state {job.status.value}")
            return False

        job.status = JobState.CANCELLED
        job.end_time = datetime.utcnow()
        self.active_jobs.discard(job_id)

        await self._notify("job.cancelled", job_id)
        logger.info(f"Job {job_id} cancelled")
        return True

    def get_job(self, job_id: str) -> Optional[JobStatus]:
        return self.jobs.get(job_id)

    def has_job(self, job_id: str) -> bool:
        return job_id in self.jobs

    def is_cancellable(self, job_id: str) -> bool:
        job = self.jobs.get(job_id)
        return job is not None and job.status in (JobState.PENDING, JobState.PROCESSING)

    def get_all_jobs(self) -> List[JobStatus]:
        return list(self.jobs.values())

    def get_active_jobs(self) -> List[JobStatus]:
        return [self.jobs[job_id] for job_id in self.active_jobs if job_id in self.jobs]

    def cleanup_old_jobs(self, max_age: timedelta = timedelta(hours=24)) -> int:
        """Drop final jobs that ended before now - max_age."""
        cutoff = datetime.utcnow() - max_age
        stale = [
            job_id for job_id, job in self.jobs.items()
            if job.status in FINAL_JOB_STATES and job.end_time and job.end_time < cutoff
        ]
        for job_id in stale:
            del self.jobs[job_id]

        if stale:
            logger.info(f"Cleaned up {len(stale)} old jobs")
        return len(stale)

    async def _notify(self, event_type: str, job_id: str, **data: Any):
        job = self.jobs[job_id]
        await self.event_bus.emit(event_type, job_id, status=job.status.value, **data)
