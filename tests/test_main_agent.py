"""
Tests for the agent graph: planning, tool rounds, reflection bounds and
write confirmation.
"""

from datetime import timedelta

import pytest
from langchain_core.messages import AIMessage, HumanMessage, ToolMessage

from conftest import NOW, ScriptedLLM, tool_call
from lifeagent.domain.errors import LLMUnavailableError, OrchestrationError
from lifeagent.domain.models.agent_state import PlanStepStatus
from lifeagent.domain.models.conversation_state import Intent, new_state
from lifeagent.domain.models.execution_plan import (
    PendingActionConfirmation,
    PlanConfirmation,
    TaskOperation,
)
from lifeagent.domain.tool.types import ToolResultKind
from lifeagent.infrastructure.llm.provider import LLMProvider

NEEDS_WORK = '{"quality": "needs_improvement", "issues": ["too vague"], "suggestions": ["be specific"]}'


class DownLLM(LLMProvider):
    async def invoke(self, messages, tools=None):
        raise LLMUnavailableError("provider timed out")


@pytest.mark.asyncio
async def test_direct_answer(make_orchestrator) -> None:
    """A greeting needs no tools and goes planning, agent, reflection, summary."""

    llm = ScriptedLLM(agent=["Hello! How can I help?"])

    response = await make_orchestrator(llm).run_turn("hi", thread_id="t-1")

    assert response.reply == "Hello! How can I help?"
    assert response.thread_id == "t-1"
    assert response.agent_passes == 1
    assert response.tool_calls == []
    assert response.plan is None
    assert llm.calls == ["planning", "agent", "reflection"]


@pytest.mark.asyncio
async def test_tool_round_updates_store_and_focus(make_orchestrator, schedule_store) -> None:
    llm = ScriptedLLM(
        agent=[
            AIMessage(content="", tool_calls=[tool_call(
                "update_schedule_block", search_title="sync", new_start_time="14:00", new_end_time="15:00",
            )]),
            "Moved Team Sync to 14:00-15:00.",
        ],
        planning='{"goal": "Move the sync", "steps": ["Find the block", "Move it"]}',
    )

    response = await make_orchestrator(llm).run_turn("move my sync to 2pm")

    assert response.reply == "Moved Team Sync to 14:00-15:00."
    assert [c.name for c in response.tool_calls] == ["update_schedule_block"]
    assert response.tool_calls[0].kind == ToolResultKind.OK
    assert schedule_store.blocks[1].start_time == "14:00"
    assert response.agent_passes == 2
    assert response.plan.steps[0].status == PlanStepStatus.COMPLETED
    assert response.plan.steps[1].status == PlanStepStatus.PENDING
    state = response.conversation_state
    assert state.focus_entity.title == "Team Sync"
    assert state.last_intent == Intent.UPDATE


@pytest.mark.asyncio
async def test_ambiguous_result_reaches_the_model(make_orchestrator, schedule_store) -> None:
    schedule_store.blocks[2] = schedule_store.blocks[1].model_copy(update={"id": 2, "title": "Team Standup"})
    llm = ScriptedLLM(agent=[
        AIMessage(content="", tool_calls=[tool_call("delete_schedule_block", search_title="team")]),
        "Which one: Team Sync or Team Standup?",
    ])

    response = await make_orchestrator(llm).run_turn("delete the team meeting")

    assert response.tool_calls[0].kind == ToolResultKind.AMBIGUOUS
    assert len(schedule_store.blocks) == 2
    assert response.conversation_state.focus_entity is None


@pytest.mark.asyncio
async def test_reflection_loop_stops_at_iteration_limit(make_orchestrator) -> None:
    """Every reflection asks for more work; the turn still ends after two agent passes."""

    llm = ScriptedLLM(agent=["First try.", "Second try."], reflection=NEEDS_WORK)

    response = await make_orchestrator(llm, MAX_AGENT_ITERATIONS=2).run_turn("plan my week")

    assert response.agent_passes == 2
    assert llm.calls.count("agent") == 2
    assert llm.calls.count("reflection") == 2
    assert response.reply == "Second try."
    assert response.reflection.issues == ["too vague"]


@pytest.mark.asyncio
async def test_tool_round_limit_forces_text_reply(make_orchestrator) -> None:
    call = AIMessage(content="Checking the date.", tool_calls=[tool_call("get_current_date")])
    llm = ScriptedLLM(agent=[call])

    response = await make_orchestrator(llm, MAX_TOOL_ROUNDS=1).run_turn("what day is it?")

    assert len(response.tool_calls) == 1
    assert llm.agent_tools[0]
    assert llm.agent_tools[1] is None
    assert response.reply == "Checking the date."
    assert any("Tool round limit reached" in w for w in response.warnings)


@pytest.mark.asyncio
async def test_request_stays_visible_through_many_tool_rounds(make_orchestrator) -> None:
    """Tool traffic from the current turn never pushes the request out of the window."""

    rounds = [AIMessage(content="", tool_calls=[tool_call("get_current_date", f"call_{i}")]) for i in range(5)]
    llm = ScriptedLLM(agent=rounds + ["It is Friday."])
    history = [{"role": "user" if i % 2 == 0 else "assistant", "content": f"earlier {i}"} for i in range(4)]

    response = await make_orchestrator(llm, MAX_TOOL_ROUNDS=6, HISTORY_WINDOW=10).run_turn(
        "what day is it?", history=history,
    )

    assert response.reply == "It is Friday."
    assert len(response.tool_calls) == 5
    last_pass = llm.agent_messages[-1]
    humans = [m.content for m in last_pass if isinstance(m, HumanMessage)]
    assert humans[-1] == "what day is it?"
    assert sum(isinstance(m, ToolMessage) for m in last_pass) == 5
    assert not isinstance(last_pass[0], ToolMessage)


@pytest.mark.asyncio
async def test_undecodable_decision_becomes_warning(make_orchestrator) -> None:
    broken = "```tool-call\n{broken\n```"
    llm = ScriptedLLM(agent=[broken])

    response = await make_orchestrator(llm).run_turn("add 1 and 2")

    assert response.reply == broken
    assert response.tool_calls == []
    assert any("Could not decode" in w for w in response.warnings)


@pytest.mark.asyncio
async def test_planning_failure_is_not_fatal(make_orchestrator) -> None:
    llm = ScriptedLLM(agent=["Sure."], planning="I refuse to output JSON")

    response = await make_orchestrator(llm).run_turn("help")

    assert response.reply == "Sure."
    assert any("Planning skipped" in w for w in response.warnings)


@pytest.mark.asyncio
async def test_provider_failure_aborts_turn(make_orchestrator) -> None:
    with pytest.raises(LLMUnavailableError):
        await make_orchestrator(DownLLM(), ENABLE_PLANNING=False).run_turn("hi")


@pytest.mark.asyncio
async def test_empty_message_is_rejected(make_orchestrator) -> None:
    with pytest.raises(OrchestrationError):
        await make_orchestrator(ScriptedLLM()).run_turn("   ")


@pytest.mark.asyncio
async def test_expired_state_is_replaced(make_orchestrator) -> None:
    stale = new_state(NOW - timedelta(hours=3)).to_wire()

    response = await make_orchestrator(ScriptedLLM()).run_turn("hi", conversation_state=stale)

    assert response.conversation_state.updated_at == NOW
    assert response.conversation_state.expires_at > NOW


@pytest.mark.asyncio
async def test_learnings_are_collected(make_orchestrator) -> None:
    llm = ScriptedLLM(agent=["Noted."], learnings='[{"content": "Prefers morning meetings"}]')

    response = await make_orchestrator(llm, ENABLE_LEARNINGS=True).run_turn("I like mornings")

    assert response.learnings == ["Prefers morning meetings"]


@pytest.mark.asyncio
async def test_writes_wait_for_confirmation(make_orchestrator, schedule_store) -> None:
    """With confirmation required, writes become a plan and nothing is changed yet."""

    llm = ScriptedLLM(agent=[AIMessage(content="", tool_calls=[
        tool_call("create_schedule_block", "c1", date="tomorrow", start_time="09:00", title="Dentist"),
        tool_call("delete_schedule_block", "c2", search_title="sync"),
        tool_call("query_schedule", "c3", start_date="today"),
    ])])
    orchestrator = make_orchestrator(llm)

    response = await orchestrator.run_turn("book dentist, drop sync", require_confirmation=True)

    plan = response.execution_plan
    assert [s.action for s in plan.steps] == ["create_schedule_block", "delete_schedule_block"]
    assert plan.is_multi_step
    assert [c.name for c in response.tool_calls] == ["query_schedule"]
    assert list(schedule_store.blocks) == [1]
    assert "confirm" in response.reply.lower()
    assert "reflection" not in llm.calls

    cancelled = await orchestrator.resolve_plan(PlanConfirmation(plan=plan, approved=False))
    assert cancelled.cancelled and not cancelled.success
    assert list(schedule_store.blocks) == [1]

    executed = await orchestrator.resolve_plan(PlanConfirmation(plan=plan, approved=True))
    assert executed.success
    assert [b.title for b in schedule_store.blocks.values()] == ["Dentist"]


@pytest.mark.asyncio
async def test_single_task_write_becomes_pending_action(make_orchestrator, task_store) -> None:
    llm = ScriptedLLM(agent=[AIMessage(content="", tool_calls=[
        tool_call("create_task", title="Buy milk", priority=2),
    ])])
    orchestrator = make_orchestrator(llm)

    response = await orchestrator.run_turn("remind me to buy milk", require_confirmation=True)

    action = response.pending_action
    assert action.operation == TaskOperation.CREATE
    assert action.params == {"title": "Buy milk", "priority": 2}
    assert response.execution_plan is None
    assert len(task_store.tasks) == 2
    assert response.conversation_state.last_intent == Intent.CREATE

    rejected = await orchestrator.resolve_pending_action(PendingActionConfirmation(action=action, approved=False))
    assert rejected.cancelled
    assert len(task_store.tasks) == 2

    applied = await orchestrator.resolve_pending_action(PendingActionConfirmation(action=action, approved=True))
    assert applied.success
    assert task_store.tasks[3].title == "Buy milk"


@pytest.mark.asyncio
async def test_invalid_pending_action_is_not_applied(make_orchestrator, task_store) -> None:
    orchestrator = make_orchestrator(ScriptedLLM())
    action = {"operation": "create", "params": {"title": "Chapter 1", "level": "sub"}}

    result = await orchestrator.resolve_pending_action(
        PendingActionConfirmation.model_validate({"action": action, "approved": True})
    )

    assert not result.success
    assert "parent_id" in result.error
    assert len(task_store.tasks) == 2


@pytest.mark.asyncio
async def test_propose_plan(make_orchestrator) -> None:
    llm = ScriptedLLM(execution_plan=(
        '{"summary": "Create a project and its first task", "isMultiStep": true, "steps": ['
        '{"id": "step1", "action": "create_task", "params": {"title": "Launch"}},'
        '{"id": "step2", "action": "create_task", "params": {"title": "Draft", "level": "sub",'
        ' "parent_id": "{{step1.data.id}}"}, "dependsOn": ["step1"]}]}'
    ))

    plan = await make_orchestrator(llm).propose_plan("start a launch project with a draft task")

    assert plan.is_multi_step
    assert plan.steps[1].depends_on == ["step1"]
