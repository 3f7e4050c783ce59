"""Caller-owned conversation state threaded through turns.

The state lives on the client. Each turn the client hands it back and
the server re-validates it as untrusted input: a stale, expired or
malformed state is replaced by a fresh one rather than trusted.
"""
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, List, Mapping, Optional, Union

import structlog
from pydantic import ConfigDict, Field, ValidationError, field_validator

from lifeagent.domain.models.base import WireModel, utc_now

logger = structlog.get_logger(__name__)

CURRENT_STATE_VERSION = 1
MAX_RECENT_ENTITIES = 5
DEFAULT_STATE_TTL_SECONDS = 1800
DEFAULT_FOCUS_TTL_SECONDS = 600


class Intent(str, Enum):
    """Kind of the last operation the user asked for"""
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    QUERY = "query"


class EntityRef(WireModel):
    """Reference to a user record the conversation is about"""
    model_config = ConfigDict(frozen=True)

    kind: str = Field(description="Record kind, e.g. task or schedule_block")
    id: Union[int, str]
    title: str

    def same_as(self, other: "EntityRef") -> bool:
        return self.kind == other.kind and str(self.id) == str(other.id)


class ConversationState(WireModel):
    """Versioned, timestamped cross-turn context"""
    model_config = ConfigDict(frozen=True)

    version: int = CURRENT_STATE_VERSION
    focus_entity: Optional[EntityRef] = None
    focus_updated_at: Optional[datetime] = None
    recent_entities: List[EntityRef] = Field(default_factory=list)
    last_intent: Optional[Intent] = None
    updated_at: datetime = Field(default_factory=utc_now)
    expires_at: datetime

    @field_validator("updated_at", "expires_at", "focus_updated_at")
    @classmethod
    def _assume_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value


def new_state(
    now: Optional[datetime] = None,
    ttl_seconds: int = DEFAULT_STATE_TTL_SECONDS
) -> ConversationState:
    """Create an empty state valid for ttl_seconds"""
    now = now or utc_now()
    return ConversationState(updated_at=now, expires_at=now + timedelta(seconds=ttl_seconds))


def is_expired(
    state: ConversationState,
    now: Optional[datetime] = None,
    ttl_seconds: int = DEFAULT_STATE_TTL_SECONDS
) -> bool:
    """Expired when past expires_at or idle longer than the server-side TTL"""
    now = now or utc_now()
    if now >= state.expires_at:
        return True
    return now - state.updated_at > timedelta(seconds=ttl_seconds)


def restore_state(
    raw: Union[None, ConversationState, Mapping[str, Any]],
    now: Optional[datetime] = None,
    state_ttl_seconds: int = DEFAULT_STATE_TTL_SECONDS,
    focus_ttl_seconds: int = DEFAULT_FOCUS_TTL_SECONDS
) -> ConversationState:
    """Validate a caller-supplied state, replacing it when unusable"""
    now = now or utc_now()
    if raw is None:
        return new_state(now, state_ttl_seconds)

    if isinstance(raw, ConversationState):
        state = raw
    else:
        try:
            state = ConversationState.model_validate(raw)
        except ValidationError as e:
            logger.warning("Discarding invalid conversation state", errors=e.error_count())
            return new_state(now, state_ttl_seconds)

    if state.version != CURRENT_STATE_VERSION:
        logger.info("Discarding conversation state with unknown version", version=state.version)
        return new_state(now, state_ttl_seconds)

    if _from_the_future(state, now):
        logger.warning("Discarding conversation state stamped in the future")
        return new_state(now, state_ttl_seconds)

    # Never honour an expiry further out than the server-side TTL allows
    latest_expiry = state.updated_at + timedelta(seconds=state_ttl_seconds)
    if state.expires_at > latest_expiry:
        state = state.model_copy(update={"expires_at": latest_expiry})

    if is_expired(state, now, state_ttl_seconds):
        logger.info("Conversation state expired")
        return new_state(now, state_ttl_seconds)

    if state.focus_entity and _focus_stale(state, now, focus_ttl_seconds):
        logger.debug("Clearing stale focus entity", entity=state.focus_entity.title)
        state = clear_focus(state)

    return state


def _from_the_future(state: ConversationState, now: datetime) -> bool:
    stamps = [state.updated_at, state.focus_updated_at]
    return any(stamp is not None and stamp > now for stamp in stamps)


def _focus_stale(state: ConversationState, now: datetime, focus_ttl_seconds: int) -> bool:
    since = state.focus_updated_at or state.updated_at
    return now - since > timedelta(seconds=focus_ttl_seconds)


def touch(
    state: ConversationState,
    now: Optional[datetime] = None,
    ttl_seconds: int = DEFAULT_STATE_TTL_SECONDS
) -> ConversationState:
    """Mark the state as used now and push its expiry forward"""
    now = now or utc_now()
    return state.model_copy(update={
        "updated_at": now,
        "expires_at": now + timedelta(seconds=ttl_seconds),
    })


def add_recent(state: ConversationState, entity: EntityRef) -> ConversationState:
    recent = [entity] + [e for e in state.recent_entities if not e.same_as(entity)]
    return state.model_copy(update={"recent_entities": recent[:MAX_RECENT_ENTITIES]})


def update_focus(
    state: ConversationState,
    entity: EntityRef,
    now: Optional[datetime] = None,
    ttl_seconds: int = DEFAULT_STATE_TTL_SECONDS
) -> ConversationState:
    """Focus on an entity and remember it among the recent ones"""
    now = now or utc_now()
    state = add_recent(state, entity)
    state = state.model_copy(update={"focus_entity": entity, "focus_updated_at": now})
    return touch(state, now, ttl_seconds)


def update_intent(
    state: ConversationState,
    intent: Intent,
    now: Optional[datetime] = None,
    ttl_seconds: int = DEFAULT_STATE_TTL_SECONDS
) -> ConversationState:
    return touch(state.model_copy(update={"last_intent": intent}), now, ttl_seconds)


def clear_focus(state: ConversationState) -> ConversationState:
    return state.model_copy(update={"focus_entity": None, "focus_updated_at": None})


def build_context_prompt(state: ConversationState) -> str:
    """Render the state as context lines for the system prompt"""
    lines = []
    if state.focus_entity:
        focus = state.focus_entity
        lines.append(f'Current focus: {focus.kind} "{focus.title}" (ID: {focus.id})')
    others = [e for e in state.recent_entities if not (state.focus_entity and e.same_as(state.focus_entity))]
    if others:
        mentioned = ", ".join(f'{e.kind} "{e.title}" (ID: {e.id})' for e in others)
        lines.append(f"Recently mentioned: {mentioned}")
    if state.last_intent:
        lines.append(f"Last operation: {state.last_intent.value}")
    return "\n".join(lines)
