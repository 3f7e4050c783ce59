import operator
from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, TypedDict

from langchain_core.messages import BaseMessage
from langgraph.graph.message import add_messages
from pydantic import Field

from lifeagent.domain.models.base import WireModel, utc_now
from lifeagent.domain.models.conversation_state import ConversationState
from lifeagent.domain.models.execution_plan import ExecutionPlan, PendingTaskAction
from lifeagent.domain.tool.types import ToolResultKind


class PlanStepStatus(str, Enum):
    """Progress of an agent plan step"""
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


class PlanStep(WireModel):
    description: str
    status: PlanStepStatus = PlanStepStatus.PENDING
    result: Optional[str] = None


class AgentPlan(WireModel):
    """Goal and ordered steps produced by the planning stage"""
    goal: str
    steps: List[PlanStep] = Field(default_factory=list)

    def mark_progress(self, completed: int) -> "AgentPlan":
        """Mark the first `completed` pending steps as done"""
        steps = []
        remaining = completed
        for step in self.steps:
            if remaining > 0 and step.status == PlanStepStatus.PENDING:
                steps.append(step.model_copy(update={"status": PlanStepStatus.COMPLETED}))
                remaining -= 1
            else:
                steps.append(step)
        return self.model_copy(update={"steps": steps})


class ReflectionQuality(str, Enum):
    GOOD = "good"
    NEEDS_IMPROVEMENT = "needs_improvement"


class ReflectionResult(WireModel):
    """Outcome of one reflection pass"""
    quality: ReflectionQuality = ReflectionQuality.GOOD
    issues: List[str] = Field(default_factory=list)
    suggestions: List[str] = Field(default_factory=list)


class ToolCallInfo(WireModel):
    """Log entry for one tool invocation in a turn"""
    name: str
    args: Dict[str, Any] = Field(default_factory=dict)
    result: Optional[str] = None
    kind: Optional[ToolResultKind] = None
    timestamp: datetime = Field(default_factory=utc_now)


class ChatTurn(WireModel):
    """A previous message supplied by the caller"""
    role: Literal["user", "assistant"]
    content: str


class AgentState(TypedDict):
    """State flowing through the agent graph for one turn"""
    messages: Annotated[List[BaseMessage], add_messages]
    plan: Optional[AgentPlan]
    thoughts: Annotated[List[str], operator.add]
    reflection_result: Optional[ReflectionResult]
    learnings: Annotated[List[str], operator.add]
    thread_id: str
    tool_calls: Annotated[List[ToolCallInfo], operator.add]
    warnings: Annotated[List[str], operator.add]
    # Loop bounds; each pass decrements, zero forces progression
    iterations_remaining: int
    tool_rounds_remaining: int
    agent_passes: int
    conversation_state: ConversationState
    require_confirmation: bool
    execution_plan: Optional[ExecutionPlan]
    pending_action: Optional[PendingTaskAction]
    reply: Optional[str]


class AgentResponse(WireModel):
    """Final result of a turn"""
    reply: str
    thread_id: str
    plan: Optional[AgentPlan] = None
    reflection: Optional[ReflectionResult] = None
    learnings: List[str] = Field(default_factory=list)
    thoughts: List[str] = Field(default_factory=list)
    tool_calls: List[ToolCallInfo] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)
    execution_plan: Optional[ExecutionPlan] = None
    pending_action: Optional[PendingTaskAction] = None
    conversation_state: ConversationState
    agent_passes: int = 0
