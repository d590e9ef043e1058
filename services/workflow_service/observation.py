# observation.py - Observing phase of the ReAct loop
# Classifies an executed action into an Observation. Suggestions are advisory only.

from typing import Optional

from .react_models import (
    ActionStep, ActionStepStatus, ActionType, GoalKind, Impact, Observation, ReActState
)

_NEXT_STEP = {
    ActionType.VALIDATE: "Proceed to fetch media metadata",
    ActionType.METADATA: "Prepare the media for transcription",
    ActionType.PREPARE_MEDIA: "Transcribe the prepared media",
    ActionType.ENHANCE: "Workflow complete",
}

class ObservationProcessor:
    def process_observation(self, action_step: ActionStep, state: ReActState) -> Observation:
        return Observation(
            action_id=action_step.id,
            observation=self.generate_observation(action_step),
            analysis=self.analyze_action_result(action_step),
            impact=self.determine_impact(action_step),
            next_step_suggestion=self.suggest_next_step(action_step, state),
            data=action_step.result.data if action_step.result else None,
        )

    def generate_observation(self, action_step: ActionStep) -> str:
        action_type = action_step.action.type
        result = action_step.result

        if action_step.status == ActionStepStatus.FAILED:
            return f"Action {action_type.value} failed: {action_step.error}"

        if action_step.status != ActionStepStatus.COMPLETED:
            return f"Action {action_type.value} status: {action_step.status.value}"

        if action_type == ActionType.VALIDATE:
            return f"URL validation completed. Result: {'Valid' if result.valid else 'Invalid'}"
        if action_type == ActionType.METADATA:
            return f"Media information retrieved. Title: {result.title or 'Unknown'}"
        if action_type == ActionType.PREPARE_MEDIA:
            return f"Media preparation completed. Media file: {result.media_file or 'Generated'}"
        if action_type == ActionType.TRANSCRIBE:
            return f"Transcription completed. Length: {len(result.text)} characters"
        if action_type == ActionType.ENHANCE:
            return "Text enhancement completed. Enhanced text available."
        return f"Action {action_type.value} completed successfully"

    def analyze_action_result(self, action_step: ActionStep) -> str:
        analysis = f'Action "{action_step.action.type.value}" took {action_step.duration or 0:.0f}ms to complete. '

        if action_step.status != ActionStepStatus.COMPLETED:
            return analysis + (f"The action failed with error: {action_step.error}. "
                               "This may require a different approach or retry.")

        analysis += "The action was successful and produced the expected outcome. "
        action_type = action_step.action.type
        if action_type == ActionType.VALIDATE:
            analysis += "The URL is valid and can be processed."
        elif action_type == ActionType.PREPARE_MEDIA:
            analysis += "Media preparation was successful and the file is ready for transcription."
        elif action_type == ActionType.TRANSCRIBE:
            analysis += f"Transcription produced {len(action_step.result.text)} characters of text."
        return analysis

    @staticmethod
    def determine_impact(action_step: ActionStep) -> Impact:
        if action_step.status == ActionStepStatus.COMPLETED:
            return "positive"
        if action_step.status == ActionStepStatus.FAILED:
            return "negative"
        return "neutral"

    @staticmethod
    def suggest_next_step(action_step: ActionStep, state: ReActState) -> Optional[str]:
        action_type = action_step.action.type

        if action_step.status == ActionStepStatus.FAILED:
            if action_step.action.fallback_actions:
                return f"Try the fallback for {action_type.value}"
            return f"Consider retrying the action or using an alternative approach for {action_type.value}"

        if action_step.status != ActionStepStatus.COMPLETED or state.intent.kind != GoalKind.TRANSCRIPTION:
            return None

        if action_type == ActionType.TRANSCRIBE:
            return "Enhance the transcribed text" if state.intent.enhance_text else "Workflow complete"
        return _NEXT_STEP.get(action_type)
