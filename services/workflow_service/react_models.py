# react_models.py - ReAct (reason -> act -> observe) state models
# This file defines the goal intent, reasoning trace, actions and observations of a ReAct run.

from pydantic import BaseModel, Field
from typing import Annotated, Dict, List, Optional, Any, Literal, Union
from datetime import datetime
from enum import Enum
import uuid

from .models import ExecutionMetadata

class ReActStatus(str, Enum):
    PENDING = "pending"
    REASONING = "reasoning"
    ACTING = "acting"
    OBSERVING = "observing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

REACT_TERMINAL_STATUSES = {ReActStatus.COMPLETED, ReActStatus.FAILED, ReActStatus.CANCELLED}

class ActionType(str, Enum):
    VALIDATE = "validate"
    METADATA = "metadata"
    PREPARE_MEDIA = "prepare_media"
    TRANSCRIBE = "transcribe"
    ENHANCE = "enhance"
    ANALYZE = "analyze"

class GoalKind(str, Enum):
    TRANSCRIPTION = "transcription"
    GENERIC = "generic"

class GoalIntent(BaseModel):
    """What a goal asks for, resolved once when the run is submitted."""
    kind: GoalKind = GoalKind.GENERIC
    source_url: Optional[str] = None
    enhance_text: bool = False
    language: str = "en"

class ReasoningStep(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: datetime = Field(default_factory=datetime.utcnow)
    thought: str
    reasoning: str
    decision: ActionType
    confidence: float = Field(ge=0.0, le=1.0)
    alternatives: List[str] = Field(default_factory=list)

class PlannedAction(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    type: ActionType
    description: str = ""
    service: str  # "internal" for actions handled in-process
    endpoint: str
    method: str = "POST"
    payload: Dict[str, Any] = Field(default_factory=dict)
    expected_outcome: str = ""
    timeout: Optional[float] = None
    fallback_actions: List["PlannedAction"] = Field(default_factory=list)

# Action results: a raw JSON envelope discriminated by action type

class _ActionResultBase(BaseModel):
    data: Dict[str, Any] = Field(default_factory=dict)

class ValidateResult(_ActionResultBase):
    action_type: Literal["validate"] = "validate"

    @property
    def valid(self) -> bool:
        return bool(self.data.get("valid"))

class MetadataResult(_ActionResultBase):
    action_type: Literal["metadata"] = "metadata"

    @property
    def title(self) -> Optional[str]:
        return self.data.get("title")

class PreparedMediaResult(_ActionResultBase):
    action_type: Literal["prepare_media"] = "prepare_media"

    @property
    def media_file(self) -> Optional[str]:
        return self.data.get("mediaFile") or self.data.get("media_file")

class TranscriptionResult(_ActionResultBase):
    action_type: Literal["transcribe"] = "transcribe"

    @property
    def text(self) -> str:
        return self.data.get("text") or ""

class EnhancementResult(_ActionResultBase):
    action_type: Literal["enhance"] = "enhance"

    @property
    def enhanced_text(self) -> str:
        return self.data.get("enhancedText") or self.data.get("enhanced_text") or ""

class AnalysisResult(_ActionResultBase):
    action_type: Literal["analyze"] = "analyze"

ActionResult = Annotated[
    Union[ValidateResult, MetadataResult, PreparedMediaResult, TranscriptionResult,
          EnhancementResult, AnalysisResult],
    Field(discriminator="action_type"),
]

_RESULT_TYPES = {
    ActionType.VALIDATE: ValidateResult,
    ActionType.METADATA: MetadataResult,
    ActionType.PREPARE_MEDIA: PreparedMediaResult,
    ActionType.TRANSCRIBE: TranscriptionResult,
    ActionType.ENHANCE: EnhancementResult,
    ActionType.ANALYZE: AnalysisResult,
}

def build_action_result(action_type: ActionType, data: Dict[str, Any]):
    """Wrap a raw response body in the result type for its action."""
    return _RESULT_TYPES[action_type](data=data or {})

class ActionStepStatus(str, Enum):
    PENDING = "pending"
    EXECUTING = "executing"
    COMPLETED = "completed"
    FAILED = "failed"

class ActionStep(BaseModel):
    id: str
    timestamp: datetime = Field(default_factory=datetime.utcnow)
    reasoning_step_id: str
    action: PlannedAction
    status: ActionStepStatus = ActionStepStatus.PENDING
    start_time: datetime = Field(default_factory=datetime.utcnow)
    end_time: Optional[datetime] = None
    duration: Optional[float] = None  # milliseconds
    attempts: int = 0
    result: Optional[ActionResult] = None
    error: Optional[str] = None

Impact = Literal["positive", "negative", "neutral"]

class Observation(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: datetime = Field(default_factory=datetime.utcnow)
    action_id: str
    observation: str
    analysis: str
    impact: Impact
    next_step_suggestion: Optional[str] = None
    data: Optional[Dict[str, Any]] = None

class ReActState(BaseModel):
    execution_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    goal: str
    intent: GoalIntent = Field(default_factory=GoalIntent)
    context: Dict[str, Any] = Field(default_factory=dict)
    reasoning_trace: List[ReasoningStep] = Field(default_factory=list)
    action_history: List[ActionStep] = Field(default_factory=list)
    observations: List[Observation] = Field(default_factory=list)
    current_thought: Optional[str] = None
    next_action: Optional[PlannedAction] = None
    status: ReActStatus = ReActStatus.PENDING
    iteration: int = 0
    final_result: Optional[Dict[str, Any]] = None
    metadata: ExecutionMetadata = Field(default_factory=ExecutionMetadata)
    start_time: datetime = Field(default_factory=datetime.utcnow)
    end_time: Optional[datetime] = None
    error: Optional[str] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in REACT_TERMINAL_STATUSES

    def completed_actions(self) -> List[ActionStep]:
        return [a for a in self.action_history if a.status == ActionStepStatus.COMPLETED]

    def failed_actions(self) -> List[ActionStep]:
        return [a for a in self.action_history if a.status == ActionStepStatus.FAILED]

    def completed_action_types(self) -> List[ActionType]:
        return [a.action.type for a in self.completed_actions()]

    def latest_result(self, action_type: ActionType):
        """Result of the most recent completed action of the given type."""
        for action in reversed(self.action_history):
            if action.action.type == action_type and action.status == ActionStepStatus.COMPLETED:
                return action.result
        return None

class ReActProgress(BaseModel):
    reasoning_steps: int
    actions_executed: int
    successful_actions: int
    failed_actions: int

class ReActTrace(BaseModel):
    execution_id: str
    goal: str
    status: ReActStatus
    current_thought: Optional[str] = None
    reasoning_trace: List[ReasoningStep]
    action_history: List[ActionStep]
    observations: List[Observation]
    progress: ReActProgress

# API request models

class ReActRequest(BaseModel):
    goal: str
    context: Dict[str, Any] = Field(default_factory=dict)
    metadata: ExecutionMetadata = Field(default_factory=ExecutionMetadata)

class TranscriptionOptions(BaseModel):
    language: str = "en"
    enhance_text: bool = False
    generate_summary: bool = False
    extract_keywords: bool = False
    quality: str = "highestaudio"
    format: str = "mp3"
    priority: Literal["low", "normal", "high"] = "normal"
    tags: List[str] = Field(default_factory=list)

class TranscriptionRequest(BaseModel):
    source_url: str
    options: TranscriptionOptions = Field(default_factory=TranscriptionOptions)
    user_id: Optional[str] = None
