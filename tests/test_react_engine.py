"""Tests for the goal-driven ReAct execution engine."""

import asyncio

import httpx
import pytest

from services.workflow_service.errors import ValidationError
from services.workflow_service.models import WorkflowStatus
from services.workflow_service.react_engine import REACT_WORKFLOW_ID, ReActEngine
from services.workflow_service.react_models import (
    ActionStepStatus, ActionType, GoalIntent, GoalKind, ReActStatus
)


SOURCE_URL = "https://www.youtube.com/watch?v=abc123"


@pytest.fixture
def engine(store, event_bus, invoker) -> ReActEngine:
    return ReActEngine(store, event_bus, invoker, max_iterations=20)


@pytest.fixture
def media_services(stub):
    stub.on("/api/video/validate", {"valid": True, "id": "abc123"})
    stub.on("/api/video/info", {"id": "abc123", "title": "Demo", "duration": 42})
    stub.on("/api/video/process", {"success": True, "data": {"mediaFile": "/tmp/abc123.mp3", "duration": 42}})
    stub.on("/api/transcription/transcribe", {"text": "hello world", "language": "en"})
    stub.on("/api/llm/enhance", {"enhancedText": "Hello, world.", "summary": "greeting"})
    return stub


async def run_goal(engine: ReActEngine, goal: str, context: dict, **kwargs):
    execution_id = await engine.execute_goal(goal, context, **kwargs)
    await engine.wait_for_execution(execution_id)
    return await engine.get_state(execution_id)


def action_types(state):
    return [step.action.type for step in state.action_history]


class TestTranscriptionGoal:
    @pytest.mark.asyncio
    async def test_checklist_sequence_reaches_goal(self, engine, media_services, store) -> None:
        state = await run_goal(
            engine, f"transcribe video from URL {SOURCE_URL}",
            {"sourceUrl": SOURCE_URL, "enhanceText": False},
        )

        assert state.status == ReActStatus.COMPLETED
        assert action_types(state) == [
            ActionType.VALIDATE, ActionType.METADATA, ActionType.PREPARE_MEDIA, ActionType.TRANSCRIBE
        ]
        assert state.final_result["achieved"] is True
        assert state.final_result["results"]["transcribe"] == {"text": "hello world", "language": "en"}
        assert state.final_result["actions_executed"] == 4
        assert len(state.reasoning_trace) == len(state.action_history) == len(state.observations)

        # Each action is planned by the reasoning step that precedes it
        for reasoning_step, action_step in zip(state.reasoning_trace, state.action_history):
            assert action_step.reasoning_step_id == reasoning_step.id
            assert action_step.action.type == reasoning_step.decision
        for action_step, observation in zip(state.action_history, state.observations):
            assert observation.action_id == action_step.id

        mirror = await store.get_execution(state.execution_id)
        assert mirror.workflow_id == REACT_WORKFLOW_ID
        assert mirror.status == WorkflowStatus.COMPLETED
        assert len(mirror.completed_steps) == 4

    @pytest.mark.asyncio
    async def test_prior_results_feed_later_payloads(self, engine, media_services) -> None:
        await run_goal(engine, "Transcribe this", {"source_url": SOURCE_URL, "language": "de"})

        assert media_services.bodies("/api/transcription/transcribe") == [
            {"mediaFile": "/tmp/abc123.mp3", "language": "de"}
        ]
        info_request = next(r for r in media_services.calls if r.url.path == "/api/video/info")
        assert info_request.method == "GET"
        assert info_request.url.params["url"] == SOURCE_URL

    @pytest.mark.asyncio
    async def test_enhancement_requested(self, engine, media_services, events) -> None:
        state = await run_goal(engine, "transcribe and enhance", {"url": SOURCE_URL, "enhance_text": True})

        assert state.status == ReActStatus.COMPLETED
        assert action_types(state)[-1] == ActionType.ENHANCE
        assert media_services.bodies("/api/llm/enhance")[0]["text"] == "hello world"
        assert state.final_result["results"]["enhance"]["enhancedText"] == "Hello, world."

        types = [e.type for e in events]
        assert types[0] == "workflow.started"
        assert types[-1] == "workflow.completed"
        assert types.count("react.reasoning") == 5

    @pytest.mark.asyncio
    async def test_transcribe_fallback_uses_auto_language(self, engine, media_services) -> None:
        media_services.on(
            "/api/transcription/transcribe",
            httpx.Response(500, json={"error": "language model unavailable"}),
            {"text": "bonjour", "language": "fr"},
        )

        state = await run_goal(engine, "transcribe it", {"sourceUrl": SOURCE_URL})

        assert state.status == ReActStatus.COMPLETED
        transcribe_steps = [s for s in state.action_history if s.action.type == ActionType.TRANSCRIBE]
        assert [s.status for s in transcribe_steps] == [ActionStepStatus.FAILED, ActionStepStatus.COMPLETED]
        assert transcribe_steps[0].id != transcribe_steps[1].id
        assert media_services.bodies("/api/transcription/transcribe")[1]["language"] == "auto"
        assert state.observations[3].impact == "negative"

    @pytest.mark.asyncio
    async def test_failed_action_without_fallback_fails_run(self, engine, media_services, events) -> None:
        media_services.on("/api/video/validate", {"valid": False, "error": "unsupported host"})

        state = await run_goal(engine, "transcribe it", {"sourceUrl": SOURCE_URL})

        assert state.status == ReActStatus.FAILED
        assert state.error == "Action failed: URL validation failed: unsupported host"
        assert action_types(state) == [ActionType.VALIDATE]
        assert [e.type for e in events][-1] == "workflow.failed"

    @pytest.mark.asyncio
    async def test_iteration_cap_bounds_the_loop(self, store, event_bus, invoker, media_services) -> None:
        engine = ReActEngine(store, event_bus, invoker, max_iterations=3)

        state = await run_goal(engine, "transcribe it", {"sourceUrl": SOURCE_URL})

        assert state.status == ReActStatus.FAILED
        assert state.error == "Workflow exceeded maximum iterations (3)"
        assert state.iteration == 3
        assert len(state.action_history) == 3


class TestGenericGoal:
    @pytest.mark.asyncio
    async def test_generic_goal_analyzes_and_completes(self, engine, stub) -> None:
        state = await run_goal(engine, "Summarize the quarterly numbers", {"team": "ops"})

        assert state.status == ReActStatus.COMPLETED
        assert action_types(state) == [ActionType.ANALYZE]
        assert state.intent.kind == GoalKind.GENERIC
        assert state.final_result["results"]["analyze"]["context"] == {"team": "ops"}
        assert stub.calls == []


class TestSubmission:
    @pytest.mark.asyncio
    async def test_empty_goal_rejected(self, engine) -> None:
        with pytest.raises(ValidationError):
            await engine.execute_goal("  ", {})

    @pytest.mark.asyncio
    async def test_transcription_intent_requires_source_url(self, engine) -> None:
        with pytest.raises(ValidationError):
            await engine.execute_goal("transcribe", {}, intent=GoalIntent(kind=GoalKind.TRANSCRIPTION))

    @pytest.mark.asyncio
    async def test_run_is_persisted_before_returning(self, engine, store, media_services) -> None:
        execution_id = await engine.execute_goal("transcribe it", {"sourceUrl": SOURCE_URL})

        assert await store.get_react_state(execution_id) is not None
        assert await store.get_execution(execution_id) is not None
        await engine.wait_for_execution(execution_id)


class TestTraceAndCancel:
    @pytest.mark.asyncio
    async def test_trace_reports_progress(self, engine, media_services) -> None:
        state = await run_goal(engine, "transcribe it", {"sourceUrl": SOURCE_URL})

        trace = await engine.get_trace(state.execution_id)

        assert trace.progress.reasoning_steps == 4
        assert trace.progress.actions_executed == 4
        assert trace.progress.successful_actions == 4
        assert trace.progress.failed_actions == 0
        assert trace.current_thought == state.current_thought

    @pytest.mark.asyncio
    async def test_trace_of_unknown_run_is_none(self, engine) -> None:
        assert await engine.get_trace("missing") is None

    @pytest.mark.asyncio
    async def test_cancel_mid_action(self, engine, media_services, events, store) -> None:
        started = asyncio.Event()
        release = asyncio.Event()

        async def gated(request):
            started.set()
            await release.wait()
            return {"valid": True}

        media_services.on("/api/video/validate", gated)
        execution_id = await engine.execute_goal("transcribe it", {"sourceUrl": SOURCE_URL})
        await started.wait()

        assert await engine.cancel_execution(execution_id) is True
        assert await engine.cancel_execution(execution_id) is False

        release.set()
        await engine.wait_for_execution(execution_id)
        state = await engine.get_state(execution_id)

        assert state.status == ReActStatus.CANCELLED
        assert state.action_history == []
        assert "/api/video/info" not in media_services.paths()
        assert [e.type for e in events].count("workflow.cancelled") == 1
        assert (await store.get_execution(execution_id)).status == WorkflowStatus.CANCELLED
        assert engine._locks == {}

    @pytest.mark.asyncio
    async def test_rejected_cancels_leave_no_locks(self, engine, media_services) -> None:
        state = await run_goal(engine, "transcribe it", {"sourceUrl": SOURCE_URL})

        for index in range(20):
            assert await engine.cancel_execution(state.execution_id) is False
            assert await engine.cancel_execution(f"missing-{index}") is False

        assert engine._locks == {}
