import json
from datetime import datetime
from enum import Enum
from typing import Annotated, List, Literal, Optional, Union

from pydantic import Field

from lifeagent.domain.models.base import WireModel, utc_now
from lifeagent.domain.models.conversation_state import ConversationState
from lifeagent.domain.models.execution_plan import ExecutionPlan, PendingTaskAction
from lifeagent.domain.orchestration.core.decision import ToolCallRequest


class EventType(str, Enum):
    """Stream event types"""
    CONTENT = "content"
    TOOL_CALLS = "tool_calls"
    STATE_UPDATE = "state_update"
    PLAN = "plan"
    PENDING_ACTION = "pending_action"
    EXECUTION_COMPLETE = "execution_complete"
    DECISION_ERROR = "decision_error"
    ERROR = "error"


class BaseEvent(WireModel):
    """Base event model for all stream messages"""
    type: EventType
    timestamp: datetime = Field(default_factory=utc_now)


class ContentEvent(BaseEvent):
    """Reply text fragment; the last one carries done=True"""
    type: Literal[EventType.CONTENT] = EventType.CONTENT
    content: str
    done: bool = False


class ToolCallsEvent(BaseEvent):
    """Tool invocations requested by the agent"""
    type: Literal[EventType.TOOL_CALLS] = EventType.TOOL_CALLS
    tool_calls: List[ToolCallRequest]


class StateUpdateEvent(BaseEvent):
    """Full replacement of the caller-held conversation state"""
    type: Literal[EventType.STATE_UPDATE] = EventType.STATE_UPDATE
    state: ConversationState


class PlanEvent(BaseEvent):
    type: Literal[EventType.PLAN] = EventType.PLAN
    plan: ExecutionPlan


class PendingActionEvent(BaseEvent):
    type: Literal[EventType.PENDING_ACTION] = EventType.PENDING_ACTION
    action: PendingTaskAction


class ExecutionCompleteEvent(BaseEvent):
    type: Literal[EventType.EXECUTION_COMPLETE] = EventType.EXECUTION_COMPLETE
    success: bool
    summary: Optional[str] = None
    error: Optional[str] = None


class DecisionErrorEvent(BaseEvent):
    """Recoverable warning; the stream continues"""
    type: Literal[EventType.DECISION_ERROR] = EventType.DECISION_ERROR
    message: str


class ErrorEvent(BaseEvent):
    """Fatal error; nothing follows it"""
    type: Literal[EventType.ERROR] = EventType.ERROR
    error: str


StreamEvent = Annotated[
    Union[
        ContentEvent,
        ToolCallsEvent,
        StateUpdateEvent,
        PlanEvent,
        PendingActionEvent,
        ExecutionCompleteEvent,
        DecisionErrorEvent,
        ErrorEvent,
    ],
    Field(discriminator="type"),
]


def encode_sse(event: BaseEvent) -> bytes:
    """Serialize an event as one server-sent-events frame"""
    return f"data: {json.dumps(event.to_wire(), ensure_ascii=False)}\n\n".encode("utf-8")
