from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import Field, field_validator

from lifeagent.domain.models.base import WireModel, utc_now
from lifeagent.domain.tool.types import ToolResultKind


class StepStatus(str, Enum):
    """Execution status of a plan step"""
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"

    @property
    def terminal(self) -> bool:
        return self != StepStatus.PENDING


class ExecutionStep(WireModel):
    """One mutating tool call inside a plan"""
    id: str = Field(description="Step id, e.g. step1")
    action: str = Field(description="Registered tool name")
    params: Dict[str, Any] = Field(default_factory=dict, description="Tool arguments; may contain {{stepN.data.x}} placeholders")
    description: str = ""
    depends_on: List[str] = Field(default_factory=list)


class ExecutionPlan(WireModel):
    """Proposed write operations awaiting confirmation"""
    summary: str
    is_multi_step: bool = False
    steps: List[ExecutionStep] = Field(min_length=1)

    @field_validator("steps")
    @classmethod
    def _unique_ids(cls, steps: List[ExecutionStep]) -> List[ExecutionStep]:
        seen = set()
        for step in steps:
            if step.id in seen:
                raise ValueError(f"duplicate step id: {step.id}")
            seen.add(step.id)
        return steps


class TaskOperation(str, Enum):
    CREATE = "create"
    UPDATE = "update"


class PendingTaskAction(WireModel):
    """Single write waiting for individual confirmation"""
    operation: TaskOperation
    params: Dict[str, Any] = Field(default_factory=dict)
    description: str = ""

    @property
    def tool_name(self) -> str:
        return f"{self.operation.value}_task"


class PlanConfirmation(WireModel):
    """Caller decision about a proposed plan"""
    plan: ExecutionPlan
    approved: bool


class PendingActionConfirmation(WireModel):
    """Caller decision about a pending single action"""
    action: PendingTaskAction
    approved: bool


class ExecutionLog(WireModel):
    """Record of one executed (or skipped) step"""
    step_id: str
    tool: str
    input: Dict[str, Any] = Field(default_factory=dict)
    output: str = ""
    kind: Optional[ToolResultKind] = None
    status: StepStatus
    timestamp: datetime = Field(default_factory=utc_now)
    duration_ms: float = 0.0

    @property
    def success(self) -> bool:
        return self.status == StepStatus.COMPLETED


class ExecutionResult(WireModel):
    """Outcome of a confirmed or cancelled plan"""
    success: bool
    cancelled: bool = False
    summary: Optional[str] = None
    error: Optional[str] = None
    failed_step: Optional[str] = None
    logs: List[ExecutionLog] = Field(default_factory=list)
    context: Dict[str, Any] = Field(default_factory=dict)
