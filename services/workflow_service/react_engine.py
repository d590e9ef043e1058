# react_engine.py - Goal-driven ReAct execution engine
# Runs reason -> act -> observe iterations, one action at a time, until the goal is met or the run fails.

import logging
import time
from datetime import datetime
from typing import Any, Dict, Optional

from .action_executor import ActionExecutor
from .engine_base import ExecutionEngine
from .errors import CancellationRequested, IterationLimitExceeded, ValidationError
from .event_publisher import EventBus
from .execution_store import ExecutionStore
from .models import ExecutionMetadata, RetryPolicy, WorkflowExecution, WorkflowStatus
from .observation import ObservationProcessor
from .react_models import (
    ActionStepStatus, GoalIntent, GoalKind, ReActProgress, ReActState, ReActStatus, ReActTrace
)
from .reasoning import ReasoningEngine, resolve_goal_intent
from .step_invoker import StepInvoker

logger = logging.getLogger(__name__)

REACT_WORKFLOW_ID = "react-workflow"

_EXECUTION_STATUS = {
    ReActStatus.PENDING: WorkflowStatus.PENDING,
    ReActStatus.REASONING: WorkflowStatus.RUNNING,
    ReActStatus.ACTING: WorkflowStatus.RUNNING,
    ReActStatus.OBSERVING: WorkflowStatus.RUNNING,
    ReActStatus.COMPLETED: WorkflowStatus.COMPLETED,
    ReActStatus.FAILED: WorkflowStatus.FAILED,
    ReActStatus.CANCELLED: WorkflowStatus.CANCELLED,
}

def state_to_execution(state: ReActState, duration: Optional[float] = None) -> WorkflowExecution:
    """Mirror a ReAct run as a generic workflow execution record."""
    return WorkflowExecution(
        id=state.execution_id,
        workflow_id=REACT_WORKFLOW_ID,
        status=_EXECUTION_STATUS[state.status],
        input={"goal": state.goal, "context": state.context},
        output=state.final_result,
        current_step=state.next_action.id if state.next_action else None,
        completed_steps=[a.id for a in state.completed_actions()],
        failed_steps=[a.id for a in state.failed_actions()],
        step_results={a.id: a.result.data for a in state.action_history if a.result is not None},
        error=state.error,
        start_time=state.start_time,
        end_time=state.end_time,
        duration=duration,
        metadata=state.metadata,
    )

class ReActEngine(ExecutionEngine):
    """Executes a dynamically planned action sequence toward a goal."""

    def __init__(self, store: ExecutionStore, event_bus: EventBus, invoker: StepInvoker,
                 max_iterations: int = 20, retry_policy: Optional[RetryPolicy] = None,
                 reasoning_engine: Optional[ReasoningEngine] = None,
                 observation_processor: Optional[ObservationProcessor] = None):
        super().__init__(store, event_bus)
        self.max_iterations = max_iterations
        self.reasoning_engine = reasoning_engine or ReasoningEngine()
        self.action_executor = ActionExecutor(invoker, retry_policy)
        self.observation_processor = observation_processor or ObservationProcessor()

    async def execute_goal(self, goal: str, context: Dict[str, Any],
                           metadata: Optional[ExecutionMetadata] = None,
                           intent: Optional[GoalIntent] = None) -> str:
        """Persist a pending run, start the loop in the background and return its id."""
        if not goal or not goal.strip():
            raise ValidationError("Missing required field: goal")

        intent = intent or resolve_goal_intent(goal, context)
        if intent.kind == GoalKind.TRANSCRIPTION and not intent.source_url:
            raise ValidationError("Transcription goals require a source URL")

        state = ReActState(
            goal=goal,
            intent=intent,
            context=dict(context),
            metadata=metadata or ExecutionMetadata(),
        )
        await self.store.store_react_state(state)
        await self.store.store_execution(state_to_execution(state))
        await self.event_bus.emit("workflow.started", state.execution_id,
                                  workflow_id=REACT_WORKFLOW_ID, goal=goal, intent=intent.kind.value)

        self._start_background(state.execution_id, self._run_loop(state))
        logger.info(f"ReAct execution {state.execution_id} started for goal: {goal}")
        return state.execution_id

    async def get_state(self, execution_id: str) -> Optional[ReActState]:
        return await self.store.get_react_state(execution_id)

    async def get_trace(self, execution_id: str) -> Optional[ReActTrace]:
        state = await self.store.get_react_state(execution_id)
        if state is None:
            return None

        return ReActTrace(
            execution_id=state.execution_id,
            goal=state.goal,
            status=state.status,
            current_thought=state.current_thought,
            reasoning_trace=state.reasoning_trace,
            action_history=state.action_history,
            observations=state.observations,
            progress=ReActProgress(
                reasoning_steps=len(state.reasoning_trace),
                actions_executed=len(state.action_history),
                successful_actions=len(state.completed_actions()),
                failed_actions=len(state.failed_actions()),
            ),
        )

    async def cancel_execution(self, execution_id: str) -> bool:
        """Mark a run cancelled. An in-flight action is left to finish."""
        async with self._lock_for(execution_id):
            state = await self.store.get_react_state(execution_id)
            cancelled = state is not None and not state.is_terminal
            if cancelled:
                self._cancel_requested.add(execution_id)
                state.status = ReActStatus.CANCELLED
                state.end_time = datetime.utcnow()
                state.error = "Workflow cancelled by user"
                await self.store.store_react_state(state)
                await self.store.store_execution(state_to_execution(state))

        self._release_if_idle(execution_id)
        if not cancelled:
            return False

        await self.event_bus.emit("workflow.cancelled", execution_id, workflow_id=REACT_WORKFLOW_ID)
        logger.info(f"ReAct execution {execution_id} cancelled")
        return True

    # =========================
    # LOOP
    # =========================

    async def _run_loop(self, state: ReActState):
        started = time.monotonic()
        try:
            await self._loop(state, started)
        except CancellationRequested:
            logger.info(f"ReAct execution {state.execution_id} stopped after cancellation")
        except Exception as e:
            logger.error(f"ReAct execution {state.execution_id} crashed: {str(e)}")
            await self._fail(state, str(e) or type(e).__name__, started)

    async def _loop(self, state: ReActState, started: float):
        state.status = ReActStatus.REASONING
        await self._persist(state)

        while True:
            await self._checkpoint(state)
            if state.iteration >= self.max_iterations:
                await self._fail(state, str(IterationLimitExceeded(self.max_iterations)), started)
                return
            state.iteration += 1
            logger.info(f"ReAct iteration {state.iteration} starting for {state.execution_id}")

            # REASONING
            reasoning_step = self.reasoning_engine.reason(state)
            state.reasoning_trace.append(reasoning_step)
            state.current_thought = reasoning_step.thought
            state.next_action = self.reasoning_engine.plan_action(state, reasoning_step)
            state.status = ReActStatus.ACTING
            await self._persist(state)
            await self.event_bus.emit(
                "react.reasoning", state.execution_id,
                decision=reasoning_step.decision.value, confidence=reasoning_step.confidence,
                iteration=state.iteration,
            )

            # ACTING
            action_step = await self.action_executor.execute_action(
                state.next_action, state, reasoning_step.id
            )
            state.action_history.append(action_step)
            state.status = ReActStatus.OBSERVING
            await self._persist(state)
            await self.event_bus.emit(
                "react.acting", state.execution_id, action_step.id,
                action_type=action_step.action.type.value, status=action_step.status.value,
                duration=action_step.duration,
            )

            # OBSERVING
            observation = self.observation_processor.process_observation(action_step, state)
            state.observations.append(observation)
            await self._checkpoint(state)

            if self.reasoning_engine.evaluate_goal_completion(state):
                await self._complete(state, started)
                return

            if action_step.status == ActionStepStatus.FAILED and not action_step.action.fallback_actions:
                await self._fail(state, f"Action failed: {action_step.error}", started)
                return

            state.status = ReActStatus.REASONING
            await self._persist(state)
            await self.event_bus.emit(
                "react.observing", state.execution_id, action_step.id,
                impact=observation.impact, observation=observation.observation,
            )

    def build_final_result(self, state: ReActState) -> Dict[str, Any]:
        results = {
            a.action.type.value: a.result.data
            for a in state.completed_actions() if a.result is not None
        }
        return {
            "goal": state.goal,
            "achieved": True,
            "results": results,
            "reasoning_steps": len(state.reasoning_trace),
            "actions_executed": len(state.action_history),
            "observations": len(state.observations),
            "summary": (f'Completed workflow "{state.goal}" with {len(state.reasoning_trace)} reasoning steps, '
                        f"{len(state.completed_actions())} successful actions, and "
                        f"{len(state.failed_actions())} failed actions."),
        }

    async def _complete(self, state: ReActState, started: float):
        state.status = ReActStatus.COMPLETED
        state.final_result = self.build_final_result(state)
        state.end_time = datetime.utcnow()
        duration = (time.monotonic() - started) * 1000
        await self._persist(state, duration)

        await self.event_bus.emit(
            "workflow.completed", state.execution_id,
            duration=duration, iterations=state.iteration,
            reasoning_steps=len(state.reasoning_trace), result=state.final_result,
        )
        logger.info(f"ReAct execution {state.execution_id} completed after {state.iteration} iterations")

    async def _fail(self, state: ReActState, error: str, started: float):
        state.status = ReActStatus.FAILED
        state.error = error
        state.end_time = datetime.utcnow()
        duration = (time.monotonic() - started) * 1000

        try:
            await self._persist(state, duration)
        except CancellationRequested:
            logger.info(f"ReAct execution {state.execution_id} was cancelled before failing")
            return

        await self.event_bus.emit("workflow.failed", state.execution_id,
                                  error=error, duration=duration, iterations=state.iteration)
        logger.error(f"ReAct execution {state.execution_id} failed: {error}")

    async def _checkpoint(self, state: ReActState):
        """Stop the loop if a cancel was observed, in this process or in the store."""
        if self.is_cancel_requested(state.execution_id):
            raise CancellationRequested(state.execution_id)

        stored = await self.store.get_react_state(state.execution_id)
        if stored is not None and stored.status == ReActStatus.CANCELLED:
            self._cancel_requested.add(state.execution_id)
            raise CancellationRequested(state.execution_id)

    async def _persist(self, state: ReActState, duration: Optional[float] = None):
        async with self._lock_for(state.execution_id):
            if self.is_cancel_requested(state.execution_id):
                raise CancellationRequested(state.execution_id)
            await self.store.store_react_state(state)
            await self.store.store_execution(state_to_execution(state, duration))
