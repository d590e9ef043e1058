# transcription_jobs.py - Single-pass transcription jobs
# Runs prepare -> transcribe -> (enhance) as one job, tracked by the JobManager.

import asyncio
import logging
from typing import Any, Dict, Optional, Tuple

from .errors import OrchestrationError, ValidationError
from .job_manager import JobManager, JobState
from .react_models import TranscriptionOptions
from .step_invoker import StepCall, StepInvoker

logger = logging.getLogger(__name__)

class TranscriptionJobService:
    def __init__(self, job_manager: JobManager, invoker: StepInvoker):
        self.job_manager = job_manager
        self.invoker = invoker
        self.running_jobs: Dict[str, asyncio.Task] = {}

    async def start_transcription_job(self, source_url: str,
                                      options: Optional[TranscriptionOptions] = None) -> str:
        """Create a job, start processing it in the background and return its id."""
        if not source_url or not source_url.startswith(("http://", "https://")):
            raise ValidationError("Invalid URL format")

        options = options or TranscriptionOptions()
        job_id = await self.job_manager.create_job({
            "source_url": source_url,
            "options": options.model_dump(),
        })
        task = asyncio.create_task(self._process(job_id, source_url, options))
        self.running_jobs[job_id] = task
        task.add_done_callback(lambda t: self.running_jobs.pop(job_id, None))
        return job_id

    async def _process(self, job_id: str, source_url: str, options: TranscriptionOptions):
        if not await self.job_manager.start_job(job_id):
            await self.job_manager.fail_job(job_id, "Failed to start job")
            return

        logger.info(f"Starting transcription job {job_id} for {source_url}")
        try:
            await self.job_manager.update_progress(job_id, 10, "Preparing media...")
            prepared = await self.invoker.invoke(StepCall(
                service="video-processor",
                endpoint="/api/video/process",
                payload={"url": source_url, "quality": options.quality, "format": options.format},
            ))
            if self._cancelled(job_id):
                return

            await self.job_manager.update_progress(job_id, 40, "Transcribing audio...")
            transcription = await self.invoker.invoke(StepCall(
                service="transcription-service",
                endpoint="/api/transcription/transcribe",
                payload={
                    "mediaFile": prepared.get("mediaFile") or prepared.get("media_file"),
                    "language": options.language,
                },
            ))
            if self._cancelled(job_id):
                return

            result: Dict[str, Any] = {"media": prepared, "transcription": transcription}
            if options.enhance_text:
                await self.job_manager.update_progress(job_id, 80, "Enhancing text...")
                result["enhancement"] = await self.invoker.invoke(StepCall(
                    service="llm-service",
                    endpoint="/api/llm/enhance",
                    payload={
                        "text": transcription.get("text", ""),
                        "options": {
                            "generateSummary": options.generate_summary,
                            "extractKeywords": options.extract_keywords,
                        },
                    },
                ))
                if self._cancelled(job_id):
                    return

            await self.job_manager.update_progress(job_id, 95, "Finalizing results...")
            await self.job_manager.complete_job(job_id, result)
        except OrchestrationError as e:
            logger.error(f"Transcription job {job_id} failed: {str(e)}")
            await self.job_manager.fail_job(job_id, str(e))

    def _cancelled(self, job_id: str) -> bool:
        job = self.job_manager.get_job(job_id)
        if job is None or job.status == JobState.CANCELLED:
            logger.info(f"Job {job_id} was cancelled during processing")
            return True
        return False

    def get_result(self, job_id: str) -> Tuple[bool, Any]:
        """(True, result) for a completed job, otherwise (False, reason)."""
        job = self.job_manager.get_job(job_id)
        if job is None:
            return False, "Job not found"
        if job.status != JobState.COMPLETED:
            return False, f"Job is not completed. Current status: {job.status.value}"
        return True, job.result

    async def wait_for_job(self, job_id: str):
        task = self.running_jobs.get(job_id)
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)

    async def shutdown(self):
        tasks = [task for task in self.running_jobs.values() if not task.done()]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self.running_jobs.clear()
