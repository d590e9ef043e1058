# models.py - Workflow definitions and execution state
# This file defines the data models for workflows and their execution state.

from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Dict, List, Optional, Any, Literal
from datetime import datetime
from enum import Enum
import uuid

class WorkflowStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

TERMINAL_STATUSES = {WorkflowStatus.COMPLETED, WorkflowStatus.FAILED, WorkflowStatus.CANCELLED}

class BackoffStrategy(str, Enum):
    LINEAR = "linear"
    EXPONENTIAL = "exponential"

HttpMethod = Literal["GET", "POST", "PUT", "DELETE"]
Priority = Literal["low", "normal", "high"]

class RetryPolicy(BaseModel):
    model_config = ConfigDict(frozen=True)

    max_retries: int = Field(default=0, ge=0)
    backoff_strategy: BackoffStrategy = BackoffStrategy.EXPONENTIAL
    base_delay: float = Field(default=1.0, ge=0)  # seconds

    def delay_for(self, attempt: int) -> float:
        """Delay before retry number `attempt` (1-based)."""
        if self.backoff_strategy == BackoffStrategy.LINEAR:
            return self.base_delay * attempt
        return self.base_delay * (2 ** (attempt - 1))

class WorkflowStep(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str = ""
    service: str  # Named capability service
    endpoint: str
    method: HttpMethod = "POST"
    timeout: Optional[float] = Field(default=None, gt=0)  # seconds, falls back to the service default
    retries: int = Field(default=0, ge=0)
    dependencies: List[str] = Field(default_factory=list)
    input_mapping: Dict[str, str] = Field(default_factory=dict)  # target key -> "stepId.field" or input key
    output_mapping: Dict[str, str] = Field(default_factory=dict)  # target key -> dotted path into raw response

    @field_validator("id")
    @classmethod
    def validate_id(cls, v):
        if not v or not v.strip():
            raise ValueError("step id must not be empty")
        return v

class WorkflowDefinition(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    name: str
    description: Optional[str] = None
    version: str = "1.0"
    steps: List[WorkflowStep]
    timeout: float = Field(default=3600, gt=0)  # seconds, whole run
    retry_policy: RetryPolicy = Field(default_factory=RetryPolicy)

    def get_step(self, step_id: str) -> Optional[WorkflowStep]:
        for step in self.steps:
            if step.id == step_id:
                return step
        return None

class StepStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"

class StepExecution(BaseModel):
    step_id: str
    status: StepStatus = StepStatus.PENDING
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    duration: Optional[float] = None  # milliseconds
    input_data: Dict[str, Any] = Field(default_factory=dict)
    output_data: Optional[Dict[str, Any]] = None
    error_message: Optional[str] = None
    attempts: int = 0

class ExecutionMetadata(BaseModel):
    user_id: Optional[str] = None
    source: str = "api"
    priority: Priority = "normal"
    tags: List[str] = Field(default_factory=list)

class WorkflowExecution(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    workflow_id: str
    status: WorkflowStatus = WorkflowStatus.PENDING
    input: Dict[str, Any] = Field(default_factory=dict)
    output: Optional[Dict[str, Any]] = None  # Only set on completion
    current_step: Optional[str] = None
    completed_steps: List[str] = Field(default_factory=list)
    failed_steps: List[str] = Field(default_factory=list)
    step_results: Dict[str, Any] = Field(default_factory=dict)
    step_executions: Dict[str, StepExecution] = Field(default_factory=dict)
    error: Optional[str] = None
    start_time: datetime = Field(default_factory=datetime.utcnow)
    end_time: Optional[datetime] = None
    duration: Optional[float] = None  # milliseconds
    metadata: ExecutionMetadata = Field(default_factory=ExecutionMetadata)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

class WorkflowEvent(BaseModel):
    type: str  # e.g. "workflow.started", "step.failed"
    execution_id: str
    step_id: Optional[str] = None
    timestamp: datetime = Field(default_factory=datetime.utcnow)
    data: Dict[str, Any] = Field(default_factory=dict)

# API request models

class WorkflowCreateRequest(BaseModel):
    name: str
    description: Optional[str] = None
    version: str = "1.0"
    steps: List[WorkflowStep]
    timeout: float = Field(default=3600, gt=0)
    retry_policy: RetryPolicy = Field(default_factory=RetryPolicy)

class WorkflowExecutionRequest(BaseModel):
    input_data: Dict[str, Any] = Field(default_factory=dict)
    metadata: ExecutionMetadata = Field(default_factory=ExecutionMetadata)
