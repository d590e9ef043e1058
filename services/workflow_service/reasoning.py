# reasoning.py - Reasoning and planning phase of the ReAct loop
# Turns the run's history into a thought, a symbolic decision and a concrete planned action.

import json
import logging
import uuid
from typing import Any, Dict, List, Optional

from .react_models import (
    ActionStepStatus, ActionType, GoalIntent, GoalKind, PlannedAction, ReActState, ReasoningStep
)

logger = logging.getLogger(__name__)

TRANSCRIPTION_CHECKLIST = [
    ActionType.VALIDATE,
    ActionType.METADATA,
    ActionType.PREPARE_MEDIA,
    ActionType.TRANSCRIBE,
    ActionType.ENHANCE,
]

AVAILABLE_SERVICES = ["video-processor", "transcription-service", "llm-service"]

_SOURCE_URL_KEYS = ("source_url", "sourceUrl", "youtube_url", "youtubeUrl", "video_url", "videoUrl", "url")

def resolve_goal_intent(goal: str, context: Dict[str, Any]) -> GoalIntent:
    """Classify a free-text goal once, when the run is submitted."""
    source_url = next((context[key] for key in _SOURCE_URL_KEYS if context.get(key)), None)
    goal_text = goal.lower()

    if "transcri" in goal_text and source_url:
        enhance = context.get("enhance_text", context.get("enhanceText"))
        return GoalIntent(
            kind=GoalKind.TRANSCRIPTION,
            source_url=source_url,
            enhance_text=bool(enhance) if enhance is not None else "enhance" in goal_text,
            language=context.get("language") or "en",
        )

    return GoalIntent(kind=GoalKind.GENERIC, source_url=source_url)

class ReasoningEngine:
    """Rule-based reasoner: a goal-to-capability checklist over the action history."""

    def reason(self, state: ReActState) -> ReasoningStep:
        context = self.analyze_context(state)
        thought = self.generate_thought(state)
        reasoning = self.perform_reasoning(state, thought, context)
        decision = self.make_decision(state)

        return ReasoningStep(
            thought=thought,
            reasoning=reasoning,
            decision=decision,
            confidence=self.calculate_confidence(state),
            alternatives=self.generate_alternatives(decision),
        )

    def analyze_context(self, state: ReActState) -> str:
        last_observation = state.observations[-1].observation if state.observations else "None"
        return (f"Goal: {state.goal}. Progress: {len(state.completed_actions())} completed actions, "
                f"{len(state.failed_actions())} failed actions. Last observation: {last_observation}")

    def generate_thought(self, state: ReActState) -> str:
        if not state.action_history:
            return f"I need to start working towards the goal: {state.goal}. Let me analyze what needs to be done first."

        last_action = state.action_history[-1]
        if last_action.status == ActionStepStatus.FAILED:
            return (f"The last action failed: {last_action.error}. "
                    "I need to think of an alternative approach or recovery strategy.")

        if state.observations and state.observations[-1].impact == "positive":
            return "The last action was successful. I should continue building on this progress towards the goal."

        return f"I need to evaluate the current progress and determine the next best step towards achieving: {state.goal}"

    def perform_reasoning(self, state: ReActState, thought: str, context: str) -> str:
        completed = [t.value for t in state.completed_action_types()]
        lines = [
            f'Given the thought: "{thought}", I need to consider:',
            f"1. Available services: {', '.join(AVAILABLE_SERVICES)}",
            f"2. Completed actions: {', '.join(completed) or 'None'}",
            f"3. Goal requirements: {self.describe_requirements(state.intent)}",
            f"4. Current context: {json.dumps(state.context, default=str)}",
            f"5. {context}",
        ]
        return "\n".join(lines)

    @staticmethod
    def describe_requirements(intent: GoalIntent) -> str:
        if intent.kind == GoalKind.TRANSCRIPTION:
            required = "media validation, metadata, media preparation, transcription"
            return f"Requires: {required}" + (", text enhancement" if intent.enhance_text else "")
        return "General workflow execution"

    def make_decision(self, state: ReActState) -> ActionType:
        pending_fallback = self._pending_fallback(state)
        if pending_fallback is not None:
            return pending_fallback.type

        if state.intent.kind == GoalKind.TRANSCRIPTION:
            completed = set(state.completed_action_types())
            for action_type in self.checklist(state.intent):
                if action_type not in completed:
                    return action_type

        return ActionType.ANALYZE

    @staticmethod
    def checklist(intent: GoalIntent) -> List[ActionType]:
        if intent.enhance_text:
            return list(TRANSCRIPTION_CHECKLIST)
        return [t for t in TRANSCRIPTION_CHECKLIST if t != ActionType.ENHANCE]

    def calculate_confidence(self, state: ReActState) -> float:
        """Observability only, never used to gate control flow."""
        if state.action_history:
            success_rate = len(state.completed_actions()) / len(state.action_history)
        else:
            success_rate = 0.5

        confidence = 0.5 + success_rate * 0.3
        if state.context:
            confidence += 0.2
        return max(0.0, min(confidence, 1.0))

    @staticmethod
    def generate_alternatives(decision: ActionType) -> List[str]:
        if decision == ActionType.PREPARE_MEDIA:
            return ["fetch_metadata_first", "validate_source_again"]
        if decision == ActionType.TRANSCRIBE:
            return ["enhance_audio_quality", "use_different_model"]
        return []

    # =========================
    # PLANNING
    # =========================

    def plan_action(self, state: ReActState, reasoning_step: ReasoningStep) -> PlannedAction:
        """Translate a decision into a concrete call."""
        pending_fallback = self._pending_fallback(state)
        if pending_fallback is not None and pending_fallback.type == reasoning_step.decision:
            remaining = state.action_history[-1].action.fallback_actions[1:]
            return pending_fallback.model_copy(update={
                "id": str(uuid.uuid4()),
                "fallback_actions": remaining + pending_fallback.fallback_actions,
            })

        intent = state.intent
        decision = reasoning_step.decision

        if decision == ActionType.VALIDATE:
            return PlannedAction(
                type=ActionType.VALIDATE,
                description="Validate the media source URL",
                service="video-processor",
                endpoint="/api/video/validate",
                payload={"url": intent.source_url},
                expected_outcome="URL validation result",
            )

        if decision == ActionType.METADATA:
            return PlannedAction(
                type=ActionType.METADATA,
                description="Retrieve media metadata",
                service="video-processor",
                endpoint="/api/video/info",
                method="GET",
                payload={"url": intent.source_url},
                expected_outcome="Media metadata including title, duration, author",
            )

        if decision == ActionType.PREPARE_MEDIA:
            return PlannedAction(
                type=ActionType.PREPARE_MEDIA,
                description="Extract and prepare audio from the media source",
                service="video-processor",
                endpoint="/api/video/process",
                payload={
                    "url": intent.source_url,
                    "quality": state.context.get("quality", "highestaudio"),
                    "format": state.context.get("format", "mp3"),
                },
                expected_outcome="Prepared media file",
            )

        if decision == ActionType.TRANSCRIBE:
            prepared = state.latest_result(ActionType.PREPARE_MEDIA)
            payload = {
                "mediaFile": prepared.media_file if prepared else None,
                "language": intent.language,
            }
            fallbacks = []
            if intent.language != "auto":
                fallbacks.append(PlannedAction(
                    type=ActionType.TRANSCRIBE,
                    description="Transcribe with automatic language detection",
                    service="transcription-service",
                    endpoint="/api/transcription/transcribe",
                    payload={**payload, "language": "auto"},
                    expected_outcome="Transcribed text",
                ))
            return PlannedAction(
                type=ActionType.TRANSCRIBE,
                description="Transcribe prepared media to text",
                service="transcription-service",
                endpoint="/api/transcription/transcribe",
                payload=payload,
                expected_outcome="Transcribed text",
                fallback_actions=fallbacks,
            )

        if decision == ActionType.ENHANCE:
            transcription = state.latest_result(ActionType.TRANSCRIBE)
            return PlannedAction(
                type=ActionType.ENHANCE,
                description="Enhance transcribed text",
                service="llm-service",
                endpoint="/api/llm/enhance",
                payload={
                    "text": transcription.text if transcription else "",
                    "options": {
                        "addPunctuation": True,
                        "fixGrammar": True,
                        "generateSummary": bool(state.context.get("generate_summary")),
                        "extractKeywords": bool(state.context.get("extract_keywords")),
                    },
                },
                expected_outcome="Enhanced and formatted text",
            )

        return PlannedAction(
            type=ActionType.ANALYZE,
            description="Analyze workflow requirements",
            service="internal",
            endpoint="/internal/analyze",
            payload={"goal": state.goal, "context": state.context},
            expected_outcome="Requirements analysis",
        )

    @staticmethod
    def _pending_fallback(state: ReActState) -> Optional[PlannedAction]:
        if not state.action_history:
            return None
        last_action = state.action_history[-1]
        if last_action.status == ActionStepStatus.FAILED and last_action.action.fallback_actions:
            return last_action.action.fallback_actions[0]
        return None

    # =========================
    # GOAL COMPLETION
    # =========================

    def evaluate_goal_completion(self, state: ReActState) -> bool:
        completed = set(state.completed_action_types())

        if state.intent.kind == GoalKind.TRANSCRIPTION:
            if ActionType.TRANSCRIBE not in completed:
                return False
            if state.intent.enhance_text:
                return ActionType.ENHANCE in completed
            return True

        return bool(completed)
