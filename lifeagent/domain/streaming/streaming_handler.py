from typing import Any, Dict, List

import structlog
from langchain_core.messages import AIMessage

from lifeagent.application.schema.events import (
    BaseEvent,
    ContentEvent,
    DecisionErrorEvent,
    ErrorEvent,
    ExecutionCompleteEvent,
    PendingActionEvent,
    PlanEvent,
    StateUpdateEvent,
    ToolCallsEvent,
)
from lifeagent.domain.models.agent_state import AgentResponse
from lifeagent.domain.models.execution_plan import ExecutionResult
from lifeagent.domain.orchestration.core.decision import ToolCallRequest

logger = structlog.get_logger(__name__)


class StreamingHandler:
    """Turns agent graph updates into typed stream events"""

    def __init__(self, chunk_size: int = 50):
        self.chunk_size = max(1, chunk_size)

    def handle_update(self, update: Dict[str, Any]) -> List[BaseEvent]:
        """Map one `updates` chunk from the graph to events"""
        events: List[BaseEvent] = []
        for node_id, node_data in update.items():
            events.extend(self._process_node_update(node_id, node_data or {}))
        return events

    def _process_node_update(self, node_id: str, data: Dict[str, Any]) -> List[BaseEvent]:
        logger.debug("Processing node update", node_id=node_id)

        events: List[BaseEvent] = [DecisionErrorEvent(message=w) for w in data.get("warnings") or []]

        if node_id == "agent":
            events.extend(self._handle_agent(data))
        elif node_id == "summary":
            reply = data.get("reply")
            if reply:
                events.extend(ContentEvent(content=chunk) for chunk in self.chunk_text(reply))
        return events

    def _handle_agent(self, data: Dict[str, Any]) -> List[BaseEvent]:
        for message in data.get("messages") or []:
            if isinstance(message, AIMessage) and message.tool_calls:
                calls = [
                    ToolCallRequest(id=call.get("id"), tool_name=call["name"], args=call.get("args") or {})
                    for call in message.tool_calls
                ]
                return [ToolCallsEvent(tool_calls=calls)]
        return []

    def chunk_text(self, text: str) -> List[str]:
        return [text[i:i + self.chunk_size] for i in range(0, len(text), self.chunk_size)]

    def finish(self, response: AgentResponse) -> List[BaseEvent]:
        """Closing events of a turn: proposals, new state, then done"""
        events: List[BaseEvent] = []
        if response.execution_plan:
            events.append(PlanEvent(plan=response.execution_plan))
        if response.pending_action:
            events.append(PendingActionEvent(action=response.pending_action))
        events.append(StateUpdateEvent(state=response.conversation_state))
        events.append(ContentEvent(content="", done=True))
        return events

    def execution_complete(self, result: ExecutionResult) -> ExecutionCompleteEvent:
        return ExecutionCompleteEvent(success=result.success, summary=result.summary, error=result.error)

    def error(self, message: str) -> ErrorEvent:
        logger.error("Streaming fatal error", error=message)
        return ErrorEvent(error=message)
