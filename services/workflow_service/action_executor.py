# action_executor.py - Acting phase of the ReAct loop
# Executes exactly one planned action per iteration and records the outcome as an ActionStep.

import logging
import time
from datetime import datetime
from typing import Any, Dict, List, Optional

from .errors import CapabilityCallError
from .models import RetryPolicy
from .react_models import (
    ActionStep, ActionStepStatus, ActionType, GoalIntent, GoalKind, PlannedAction, ReActState,
    build_action_result
)
from .step_invoker import StepCall, StepInvoker

logger = logging.getLogger(__name__)

INTERNAL_SERVICE = "internal"

class ActionExecutor:
    def __init__(self, invoker: StepInvoker, retry_policy: Optional[RetryPolicy] = None):
        self.invoker = invoker
        self.retry_policy = retry_policy or RetryPolicy()

    async def execute_action(self, action: PlannedAction, state: ReActState,
                             reasoning_step_id: str) -> ActionStep:
        action_step = ActionStep(
            id=action.id,
            reasoning_step_id=reasoning_step_id,
            action=action,
            status=ActionStepStatus.EXECUTING,
        )

        async def on_retry(attempt: int, error: CapabilityCallError):
            action_step.attempts = attempt
            logger.warning(f"Retrying action {action.type.value} for {state.execution_id}: {str(error)}")

        started = time.monotonic()
        try:
            if action.service == INTERNAL_SERVICE:
                data = self._execute_internal(action, state)
            else:
                data = await self.invoker.invoke_with_retry(
                    StepCall(
                        service=action.service,
                        endpoint=action.endpoint,
                        method=action.method,
                        payload=action.payload,
                        timeout=action.timeout,
                    ),
                    self.retry_policy,
                    on_retry,
                )
                self._check_outcome(action, data)

            action_step.result = build_action_result(action.type, data)
            action_step.status = ActionStepStatus.COMPLETED
        except CapabilityCallError as e:
            action_step.status = ActionStepStatus.FAILED
            action_step.error = str(e)
        finally:
            action_step.attempts += 1
            action_step.end_time = datetime.utcnow()
            action_step.duration = (time.monotonic() - started) * 1000

        if action_step.status == ActionStepStatus.COMPLETED:
            logger.info(f"Action {action.type.value} for {state.execution_id} completed "
                        f"in {action_step.duration:.0f}ms")
        else:
            logger.error(f"Action {action.type.value} for {state.execution_id} failed: {action_step.error}")

        return action_step

    @staticmethod
    def _check_outcome(action: PlannedAction, data: Dict[str, Any]):
        # valid: false counts as a failed action
        if action.type == ActionType.VALIDATE and not data.get("valid"):
            reason = data.get("error") or "source URL is not valid"
            raise CapabilityCallError(f"URL validation failed: {reason}", service=action.service)

    def _execute_internal(self, action: PlannedAction, state: ReActState) -> Dict[str, Any]:
        return {
            "analysis": f"Analyzed goal: {state.goal}",
            "requirements": extract_requirements(state.intent),
            "context": state.context,
        }

def extract_requirements(intent: GoalIntent) -> List[str]:
    requirements = []
    if intent.source_url:
        requirements.append("Media source processing")
    if intent.kind == GoalKind.TRANSCRIPTION:
        requirements.append("Audio transcription")
    if intent.enhance_text:
        requirements.append("Text enhancement")
    return requirements
