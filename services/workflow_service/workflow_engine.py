# workflow_engine.py - Core execution engine for workflows
# This file contains the dependency-graph scheduler that runs a static workflow definition batch by batch.

import asyncio
import logging
import time
from datetime import datetime
from typing import Any, Dict, List, Optional

from .engine_base import ExecutionEngine
from .errors import (
    CancellationRequested, CapabilityCallError, DependencyError, ValidationError
)
from .event_publisher import EventBus
from .execution_store import ExecutionStore
from .models import (
    ExecutionMetadata, RetryPolicy, StepExecution, StepStatus, WorkflowDefinition,
    WorkflowExecution, WorkflowStatus, WorkflowStep
)
from .step_invoker import StepCall, StepInvoker

logger = logging.getLogger(__name__)

# =========================
# DEFINITION CHECKS
# =========================

def validate_definition(definition: WorkflowDefinition):
    """Reject structurally malformed definitions at submission time."""
    if not definition.steps:
        raise ValidationError(f"Workflow {definition.id} has no steps")

    seen = set()
    for step in definition.steps:
        if step.id in seen:
            raise ValidationError(f"Duplicate step id: {step.id}")
        seen.add(step.id)

def build_dependency_graph(steps: List[WorkflowStep]) -> Dict[str, List[str]]:
    return {step.id: list(step.dependencies) for step in steps}

def check_dependencies(definition: WorkflowDefinition):
    """Raise DependencyError for unknown dependency ids or a dependency cycle."""
    graph = build_dependency_graph(definition.steps)

    for step_id, deps in graph.items():
        missing = [dep for dep in deps if dep not in graph]
        if missing:
            raise DependencyError(f"Step {step_id} depends on unknown steps: {', '.join(missing)}")

    # Kahn's algorithm: whatever cannot be peeled off sits on a cycle
    remaining = {step_id: set(deps) for step_id, deps in graph.items()}
    while True:
        free = [step_id for step_id, deps in remaining.items() if not deps]
        if not free:
            break
        for step_id in free:
            del remaining[step_id]
        for deps in remaining.values():
            deps.difference_update(free)

    if remaining:
        raise DependencyError(f"Circular dependency detected among steps: {', '.join(sorted(remaining))}")

# =========================
# INPUT / OUTPUT MAPPING
# =========================

_MISSING = object()

def resolve_path(data: Any, path: List[str]) -> Any:
    """Walk a list of keys through nested dicts. Returns _MISSING when a key is absent."""
    current = data
    for part in path:
        if isinstance(current, dict) and part in current:
            current = current[part]
        else:
            return _MISSING
    return current

def build_step_input(step: WorkflowStep, workflow_input: Dict[str, Any],
                     step_results: Dict[str, Any]) -> Dict[str, Any]:
    """Workflow input merged with values pulled out of completed steps' results."""
    mapped = {}
    for target_key, source in step.input_mapping.items():
        if "." in source:
            step_id, *path = source.split(".")
            value = resolve_path(step_results.get(step_id, _MISSING), path)
        elif source in step_results:
            value = step_results[source]
        else:
            value = workflow_input.get(source, _MISSING)

        if value is _MISSING:
            logger.warning(f"Input mapping '{source}' for step {step.id} did not resolve")
            continue
        mapped[target_key] = value

    return {**workflow_input, **mapped}

def map_step_output(step: WorkflowStep, raw_output: Dict[str, Any]) -> Dict[str, Any]:
    """Raw response plus the dotted-path extractions declared in output_mapping."""
    if not step.output_mapping:
        return raw_output

    mapped = {}
    for target_key, source in step.output_mapping.items():
        value = resolve_path(raw_output, source.split("."))
        if value is not _MISSING:
            mapped[target_key] = value
    return {**raw_output, **mapped}

def build_workflow_output(step_results: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "steps": step_results,
        "summary": {
            "total_steps": len(step_results),
            "completed_at": datetime.utcnow().isoformat(),
        },
    }

# =========================
# SCHEDULER
# =========================

class WorkflowEngine(ExecutionEngine):
    """Runs a workflow definition with maximal safe parallelism.

    Every step whose dependencies are complete is dispatched in one batch; the
    engine waits for the whole batch to settle before computing the next one.
    Any failed step fails the whole execution.
    """

    def __init__(self, store: ExecutionStore, event_bus: EventBus, invoker: StepInvoker):
        super().__init__(store, event_bus)
        self.invoker = invoker

    async def execute_workflow(self, definition: WorkflowDefinition, input_data: Dict[str, Any],
                               metadata: Optional[ExecutionMetadata] = None) -> str:
        """Persist a pending execution, start it in the background and return its id."""
        validate_definition(definition)

        execution = WorkflowExecution(
            workflow_id=definition.id,
            input=dict(input_data),
            metadata=metadata or ExecutionMetadata(),
        )
        await self.store.store_execution(execution)
        await self.event_bus.emit(
            "workflow.started", execution.id,
            workflow_id=definition.id, step_count=len(definition.steps), input=execution.input,
        )

        self._start_background(execution.id, self._run_with_timeout(definition, execution))
        logger.info(f"Workflow execution {execution.id} started for workflow {definition.id} "
                    f"({len(definition.steps)} steps)")
        return execution.id

    async def get_execution(self, execution_id: str) -> Optional[WorkflowExecution]:
        return await self.store.get_execution(execution_id)

    async def cancel_execution(self, execution_id: str) -> bool:
        """Mark an execution cancelled. In-flight calls are left to finish."""
        async with self._lock_for(execution_id):
            execution = await self.store.get_execution(execution_id)
            cancelled = execution is not None and not execution.is_terminal
            if cancelled:
                self._cancel_requested.add(execution_id)
                execution.status = WorkflowStatus.CANCELLED
                execution.end_time = datetime.utcnow()
                execution.error = "Workflow cancelled by user"
                await self.store.store_execution(execution)

        self._release_if_idle(execution_id)
        if not cancelled:
            return False

        await self.event_bus.emit("workflow.cancelled", execution_id, workflow_id=execution.workflow_id)
        logger.info(f"Workflow execution {execution_id} cancelled")
        return True

    async def _run_with_timeout(self, definition: WorkflowDefinition, execution: WorkflowExecution):
        """Run the batch loop under the workflow timeout, then record exactly one terminal outcome."""
        started = time.monotonic()
        try:
            failure = await asyncio.wait_for(self._run(definition, execution), timeout=definition.timeout)
        except asyncio.TimeoutError:
            failure = f"Workflow exceeded timeout of {definition.timeout}s"
        except CancellationRequested:
            logger.info(f"Workflow execution {execution.id} stopped after cancellation")
            return
        except Exception as e:
            logger.error(f"Workflow execution {execution.id} crashed: {str(e)}")
            failure = str(e) or type(e).__name__

        # The terminal write and its event run outside the timeout
        if failure:
            await self._fail(execution, failure, started)
        else:
            await self._complete(execution, started)

    async def _run(self, definition: WorkflowDefinition, execution: WorkflowExecution) -> Optional[str]:
        """Dispatch ready batches until every step completed. Returns the failure message, if any."""
        execution.status = WorkflowStatus.RUNNING
        await self._persist(execution)

        try:
            check_dependencies(definition)
        except DependencyError as e:
            return f"Dependency error: {str(e)}"

        pending = [step.id for step in definition.steps]
        while pending:
            completed = set(execution.completed_steps)
            ready = [
                step_id for step_id in pending
                if all(dep in completed for dep in definition.get_step(step_id).dependencies)
            ]
            if not ready:
                return ("Dependency error: circular dependency detected or missing dependencies "
                        f"for steps {', '.join(pending)}")

            # Dispatch the whole batch concurrently and wait for every step to settle
            outcomes = await asyncio.gather(
                *(self._execute_step(definition, definition.get_step(step_id), execution)
                  for step_id in ready),
                return_exceptions=True,
            )

            failure = None
            for step_id, outcome in zip(ready, outcomes):
                if isinstance(outcome, BaseException):
                    outcome = StepExecution(step_id=step_id, status=StepStatus.FAILED,
                                            error_message=str(outcome) or type(outcome).__name__)
                execution.step_executions[step_id] = outcome
                pending.remove(step_id)

                if outcome.status == StepStatus.COMPLETED:
                    execution.completed_steps.append(step_id)
                    execution.step_results[step_id] = outcome.output_data or {}
                else:
                    execution.failed_steps.append(step_id)
                    failure = failure or f"Step {step_id} failed: {outcome.error_message}"

            await self._checkpoint(execution)

            if failure:
                return failure

            await self._persist(execution)

        return None

    async def _complete(self, execution: WorkflowExecution, started: float):
        execution.status = WorkflowStatus.COMPLETED
        execution.end_time = datetime.utcnow()
        execution.duration = (time.monotonic() - started) * 1000
        execution.output = build_workflow_output(execution.step_results)

        try:
            await self._persist(execution)
        except CancellationRequested:
            logger.info(f"Workflow execution {execution.id} was cancelled before completing")
            return

        await self.event_bus.emit(
            "workflow.completed", execution.id,
            duration=execution.duration, step_count=len(execution.completed_steps), output=execution.output,
        )
        logger.info(f"Workflow execution {execution.id} completed in {execution.duration:.0f}ms "
                    f"({len(execution.completed_steps)} steps)")

    async def _execute_step(self, definition: WorkflowDefinition, step: WorkflowStep,
                            execution: WorkflowExecution) -> StepExecution:
        """Execute a single workflow step. Never raises for a remote failure."""
        record = StepExecution(
            step_id=step.id,
            status=StepStatus.RUNNING,
            start_time=datetime.utcnow(),
            input_data=build_step_input(step, execution.input, execution.step_results),
        )
        execution.current_step = step.id

        await self.event_bus.emit("step.started", execution.id, step.id,
                                  step_name=step.name, service=step.service)
        logger.info(f"Executing step {step.id} ({step.service}{step.endpoint}) in workflow {execution.id}")

        async def on_retry(attempt: int, error: CapabilityCallError):
            record.attempts = attempt
            await self.event_bus.emit("step.retrying", execution.id, step.id,
                                      attempt=attempt, error=str(error))

        started = time.monotonic()
        try:
            raw_output = await self.invoker.invoke_with_retry(
                StepCall(
                    service=step.service,
                    endpoint=step.endpoint,
                    method=step.method,
                    payload=record.input_data,
                    timeout=step.timeout,
                ),
                self._retry_policy_for(step, definition),
                on_retry,
            )
        except CapabilityCallError as e:
            record.status = StepStatus.FAILED
            record.error_message = str(e)
        else:
            record.status = StepStatus.COMPLETED
            record.output_data = map_step_output(step, raw_output)
        finally:
            record.attempts += 1
            record.end_time = datetime.utcnow()
            record.duration = (time.monotonic() - started) * 1000

        if record.status == StepStatus.COMPLETED:
            await self.event_bus.emit("step.completed", execution.id, step.id,
                                      duration=record.duration, attempts=record.attempts)
            logger.info(f"Step {step.id} completed in {record.duration:.0f}ms")
        else:
            await self.event_bus.emit("step.failed", execution.id, step.id,
                                      duration=record.duration, error=record.error_message)
            logger.error(f"Step {step.id} failed after {record.attempts} attempts: {record.error_message}")

        return record

    @staticmethod
    def _retry_policy_for(step: WorkflowStep, definition: WorkflowDefinition) -> RetryPolicy:
        """A step's own retry count overrides the workflow policy's max_retries."""
        if step.retries > 0:
            return definition.retry_policy.model_copy(update={"max_retries": step.retries})
        return definition.retry_policy

    async def _checkpoint(self, execution: WorkflowExecution):
        """Stop the loop if a cancel was observed, in this process or in the store."""
        if self.is_cancel_requested(execution.id):
            raise CancellationRequested(execution.id)

        stored = await self.store.get_execution(execution.id)
        if stored is not None and stored.status == WorkflowStatus.CANCELLED:
            self._cancel_requested.add(execution.id)
            raise CancellationRequested(execution.id)

    async def _persist(self, execution: WorkflowExecution):
        async with self._lock_for(execution.id):
            if self.is_cancel_requested(execution.id):
                raise CancellationRequested(execution.id)
            await self.store.store_execution(execution)

    async def _fail(self, execution: WorkflowExecution, error: str, started: float):
        execution.status = WorkflowStatus.FAILED
        execution.error = error
        execution.end_time = datetime.utcnow()
        execution.duration = (time.monotonic() - started) * 1000

        try:
            await self._persist(execution)
        except CancellationRequested:
            logger.info(f"Workflow execution {execution.id} was cancelled before failing")
            return

        await self.event_bus.emit(
            "workflow.failed", execution.id,
            error=error, duration=execution.duration,
            completed_steps=len(execution.completed_steps), failed_steps=len(execution.failed_steps),
        )
        logger.error(f"Workflow execution {execution.id} failed: {error}")
