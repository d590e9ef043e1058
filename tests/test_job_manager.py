"""Tests for the job lifecycle manager and the single-pass transcription jobs."""

import asyncio
from datetime import datetime, timedelta

import httpx
import pytest

from services.workflow_service.errors import ValidationError
from services.workflow_service.job_manager import JobManager, JobState
from services.workflow_service.react_models import TranscriptionOptions
from services.workflow_service.transcription_jobs import TranscriptionJobService


@pytest.fixture
def job_manager(event_bus) -> JobManager:
    return JobManager(event_bus)


@pytest.fixture
def jobs(job_manager, invoker) -> TranscriptionJobService:
    return TranscriptionJobService(job_manager, invoker)


class TestJobManager:
    @pytest.mark.asyncio
    async def test_lifecycle(self, job_manager, events) -> None:
        job_id = await job_manager.create_job({"source_url": "http://u"})

        assert job_id.startswith("job-")
        assert job_manager.get_job(job_id).status == JobState.PENDING
        assert await job_manager.start_job(job_id) is True
        assert await job_manager.update_progress(job_id, 50, "halfway") is True
        assert await job_manager.complete_job(job_id, {"text": "hi"}) is True

        job = job_manager.get_job(job_id)
        assert job.status == JobState.COMPLETED
        assert job.progress == 100
        assert job.result == {"text": "hi"}
        assert [e.type for e in events] == ["job.created", "job.started", "job.progress", "job.completed"]

    @pytest.mark.asyncio
    async def test_start_requires_pending(self, job_manager) -> None:
        job_id = await job_manager.create_job()
        await job_manager.start_job(job_id)

        assert await job_manager.start_job(job_id) is False
        assert await job_manager.start_job("missing") is False

    @pytest.mark.asyncio
    async def test_progress_requires_processing_and_is_clamped(self, job_manager) -> None:
        job_id = await job_manager.create_job()

        assert await job_manager.update_progress(job_id, 10) is False

        await job_manager.start_job(job_id)
        await job_manager.update_progress(job_id, 150)
        assert job_manager.get_job(job_id).progress == 100

        await job_manager.update_progress(job_id, -5)
        assert job_manager.get_job(job_id).progress == 0

    @pytest.mark.asyncio
    async def test_cancel_only_from_pending_or_processing(self, job_manager) -> None:
        pending = await job_manager.create_job()
        processing = await job_manager.create_job()
        await job_manager.start_job(processing)

        assert await job_manager.cancel_job(pending) is True
        assert await job_manager.cancel_job(processing) is True
        assert await job_manager.cancel_job(pending) is False
        assert job_manager.is_cancellable(pending) is False

    @pytest.mark.asyncio
    async def test_final_states_are_sticky(self, job_manager) -> None:
        job_id = await job_manager.create_job()
        await job_manager.start_job(job_id)
        await job_manager.fail_job(job_id, "boom")

        assert await job_manager.complete_job(job_id, {}) is False
        assert await job_manager.cancel_job(job_id) is False
        assert job_manager.get_job(job_id).status == JobState.FAILED
        assert job_manager.get_active_jobs() == []

    @pytest.mark.asyncio
    async def test_cleanup_drops_old_final_jobs(self, job_manager) -> None:
        old = await job_manager.create_job()
        await job_manager.cancel_job(old)
        job_manager.get_job(old).end_time = datetime.utcnow() - timedelta(hours=25)
        active = await job_manager.create_job()

        assert job_manager.cleanup_old_jobs(timedelta(hours=24)) == 1
        assert job_manager.has_job(old) is False
        assert job_manager.has_job(active) is True


class TestTranscriptionJobs:
    @pytest.mark.asyncio
    async def test_single_pass_completes(self, jobs, job_manager, stub) -> None:
        stub.on("/api/video/process", {"mediaFile": "/tmp/a.mp3"})
        stub.on("/api/transcription/transcribe", {"text": "hello"})
        stub.on("/api/llm/enhance", {"enhancedText": "Hello."})

        job_id = await jobs.start_transcription_job("https://example.com/v", TranscriptionOptions(enhance_text=True))
        await jobs.wait_for_job(job_id)

        ready, result = jobs.get_result(job_id)
        assert ready is True
        assert result["transcription"] == {"text": "hello"}
        assert result["enhancement"] == {"enhancedText": "Hello."}
        assert stub.paths() == ["/api/video/process", "/api/transcription/transcribe", "/api/llm/enhance"]
        assert stub.bodies("/api/transcription/transcribe") == [{"mediaFile": "/tmp/a.mp3", "language": "en"}]

    @pytest.mark.asyncio
    async def test_finished_jobs_leave_no_tasks(self, jobs, stub) -> None:
        stub.on("/api/video/process", {"mediaFile": "/tmp/a.mp3"}, httpx.Response(500, json={"error": "down"}))
        stub.on("/api/transcription/transcribe", {"text": "hello"})

        for _ in range(3):
            job_id = await jobs.start_transcription_job("https://example.com/v")
            await jobs.wait_for_job(job_id)

        assert jobs.running_jobs == {}

    @pytest.mark.asyncio
    async def test_invalid_url_rejected(self, jobs) -> None:
        with pytest.raises(ValidationError, match="Invalid URL format"):
            await jobs.start_transcription_job("ftp://example.com/v")

    @pytest.mark.asyncio
    async def test_capability_failure_fails_job(self, jobs, job_manager, stub) -> None:
        stub.on("/api/video/process", httpx.Response(500, json={"error": "download failed"}))

        job_id = await jobs.start_transcription_job("https://example.com/v")
        await jobs.wait_for_job(job_id)

        job = job_manager.get_job(job_id)
        assert job.status == JobState.FAILED
        assert job.error == "download failed"
        assert jobs.get_result(job_id) == (False, "Job is not completed. Current status: failed")

    @pytest.mark.asyncio
    async def test_cancel_stops_processing(self, jobs, job_manager, stub) -> None:
        started = asyncio.Event()
        release = asyncio.Event()

        async def gated(request):
            started.set()
            await release.wait()
            return {"mediaFile": "/tmp/a.mp3"}

        stub.on("/api/video/process", gated)
        job_id = await jobs.start_transcription_job("https://example.com/v")
        await started.wait()

        assert await job_manager.cancel_job(job_id) is True
        release.set()
        await jobs.wait_for_job(job_id)

        assert job_manager.get_job(job_id).status == JobState.CANCELLED
        assert "/api/transcription/transcribe" not in stub.paths()

    def test_result_of_unknown_job(self, jobs) -> None:
        assert jobs.get_result("missing") == (False, "Job not found")
