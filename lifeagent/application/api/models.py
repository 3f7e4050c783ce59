"""Request schemas for the agent API."""
from typing import Any, Dict, List, Optional

from pydantic import Field

from lifeagent.domain.models.agent_state import ChatTurn
from lifeagent.domain.models.base import WireModel


class ChatRequest(WireModel):
    """One user turn plus the caller-held context"""
    message: str = Field(..., min_length=1, description="User message")
    thread_id: Optional[str] = Field(None, description="Correlation id for logs")
    history: List[ChatTurn] = Field(default_factory=list, description="Earlier turns, oldest first")
    # Left untyped so a stale or tampered state is replaced instead of rejected
    state: Optional[Dict[str, Any]] = Field(None, description="Conversation state from the previous turn")
    require_confirmation: Optional[bool] = Field(
        None, description="Defer write operations until the user confirms"
    )


class PlanRequest(WireModel):
    """Request to draft an execution plan without running it"""
    message: str = Field(..., min_length=1)
    state: Optional[Dict[str, Any]] = None
