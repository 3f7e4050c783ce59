"""
Tests for stream events produced while a turn runs.
"""

import json

import pytest
from langchain_core.messages import AIMessage

from conftest import ScriptedLLM, tool_call
from lifeagent.application.schema.events import (
    ContentEvent,
    DecisionErrorEvent,
    ErrorEvent,
    EventType,
    ExecutionCompleteEvent,
    encode_sse,
)
from lifeagent.domain.models.execution_plan import PlanConfirmation
from lifeagent.domain.streaming.streaming_handler import StreamingHandler
from lifeagent.infrastructure.llm.provider import LLMProvider


async def _collect(events):
    return [event async for event in events]


def test_chunking_and_sse_encoding() -> None:
    handler = StreamingHandler(chunk_size=4)

    assert handler.chunk_text("abcdefghij") == ["abcd", "efgh", "ij"]

    frame = encode_sse(ContentEvent(content="hi", done=True))
    assert frame.startswith(b"data: ") and frame.endswith(b"\n\n")
    payload = json.loads(frame[len(b"data: "):])
    assert payload["type"] == "content"
    assert payload["done"] is True


def test_warnings_become_decision_errors() -> None:
    events = StreamingHandler().handle_update({"agent": {"warnings": ["bad block"], "messages": []}})

    assert events == [DecisionErrorEvent(message="bad block", timestamp=events[0].timestamp)]


@pytest.mark.asyncio
async def test_stream_turn_event_order(make_orchestrator) -> None:
    llm = ScriptedLLM(agent=[
        AIMessage(content="", tool_calls=[tool_call("get_current_date")]),
        "Today is Friday, January 10th.",
    ])
    orchestrator = make_orchestrator(llm)
    orchestrator.streaming_handler = StreamingHandler(chunk_size=10)

    events = await _collect(orchestrator.stream_turn("what day is it?"))
    types = [e.type for e in events]

    assert types[0] == EventType.TOOL_CALLS
    assert events[0].tool_calls[0].tool_name == "get_current_date"
    assert types[-2:] == [EventType.STATE_UPDATE, EventType.CONTENT]
    assert events[-1].done is True
    text = "".join(e.content for e in events if isinstance(e, ContentEvent))
    assert text == "Today is Friday, January 10th."
    assert EventType.ERROR not in types


@pytest.mark.asyncio
async def test_stream_turn_with_confirmation_emits_plan(make_orchestrator) -> None:
    llm = ScriptedLLM(agent=[AIMessage(content="", tool_calls=[
        tool_call("create_schedule_block", "c1", date="today", start_time="15:00", title="Walk"),
        tool_call("delete_schedule_block", "c2", block_id=1),
    ])])

    events = await _collect(make_orchestrator(llm).stream_turn("walk, drop sync", require_confirmation=True))
    types = [e.type for e in events]

    assert types[-3:] == [EventType.PLAN, EventType.STATE_UPDATE, EventType.CONTENT]
    assert len(events[-3].plan.steps) == 2


@pytest.mark.asyncio
async def test_stream_stops_after_fatal_error(make_orchestrator) -> None:
    class Broken(LLMProvider):
        async def invoke(self, messages, tools=None):
            raise RuntimeError("socket closed")

    events = await _collect(make_orchestrator(Broken(), ENABLE_PLANNING=False).stream_turn("hi"))

    assert len(events) == 1
    assert isinstance(events[0], ErrorEvent)
    assert "socket closed" in events[0].error


@pytest.mark.asyncio
async def test_stream_plan_resolution(make_orchestrator, schedule_store) -> None:
    orchestrator = make_orchestrator(ScriptedLLM())
    plan = {"summary": "Drop sync", "steps": [{"id": "step1", "action": "delete_schedule_block",
                                              "params": {"block_id": 1}}]}

    events = await _collect(orchestrator.stream_plan_resolution(
        PlanConfirmation.model_validate({"plan": plan, "approved": True})
    ))

    assert len(events) == 1
    assert isinstance(events[0], ExecutionCompleteEvent)
    assert events[0].success
    assert schedule_store.blocks == {}
