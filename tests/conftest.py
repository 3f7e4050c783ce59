from datetime import date, datetime, timezone
from typing import List, Optional, Sequence, Union

import pytest
from langchain_core.messages import AIMessage, BaseMessage

from lifeagent.domain.models.records import ExpenseCategory, ScheduleBlock, Task, TaskType
from lifeagent.domain.orchestration.core.main_agent import AgentOrchestrator
from lifeagent.domain.orchestration.core.prompts import (
    AGENT_HEADER,
    EXECUTION_PLAN_HEADER,
    LEARNINGS_HEADER,
    PLANNING_HEADER,
    REFLECTION_HEADER,
)
from lifeagent.domain.store import (
    InMemoryExpenseStore,
    InMemoryScheduleStore,
    InMemoryTaskStore,
    StaticExchangeRateService,
)
from lifeagent.domain.tool.built_in import register_built_in_tools
from lifeagent.domain.tool.tool_registry import ToolRegistry
from lifeagent.infrastructure.config import Settings
from lifeagent.infrastructure.llm.provider import LLMProvider, message_text

TODAY = date(2025, 1, 10)
NOW = datetime(2025, 1, 10, 9, 0, tzinfo=timezone.utc)

Reply = Union[str, AIMessage]


def tool_call(name: str, call_id: str = "call_1", **args) -> dict:
    return {"name": name, "args": args, "id": call_id}


class ScriptedLLM(LLMProvider):
    """LLM double that answers each prompt kind from a script.

    Agent replies are consumed in order; the last one repeats once the
    script runs out.
    """

    def __init__(
        self,
        agent: Sequence[Reply] = ("Done.",),
        planning: str = '{"goal": "", "steps": []}',
        reflection: str = '{"quality": "good"}',
        learnings: str = "[]",
        execution_plan: str = "{}"
    ):
        self.agent = list(agent)
        self.planning = planning
        self.reflection = reflection
        self.learnings = learnings
        self.execution_plan = execution_plan
        self.calls: List[str] = []
        self.agent_tools: List[Optional[list]] = []
        self.agent_messages: List[List[BaseMessage]] = []

    async def invoke(self, messages: List[BaseMessage], tools=None) -> AIMessage:
        prompt = message_text(messages[0])
        if prompt.startswith(PLANNING_HEADER):
            self.calls.append("planning")
            return AIMessage(content=self.planning)
        if prompt.startswith(REFLECTION_HEADER):
            self.calls.append("reflection")
            return AIMessage(content=self.reflection)
        if prompt.startswith(LEARNINGS_HEADER):
            self.calls.append("learnings")
            return AIMessage(content=self.learnings)
        if prompt.startswith(EXECUTION_PLAN_HEADER):
            self.calls.append("execution_plan")
            return AIMessage(content=self.execution_plan)
        if prompt.startswith(AGENT_HEADER):
            self.calls.append("agent")
            self.agent_tools.append(tools)
            self.agent_messages.append(list(messages[1:]))
            reply = self.agent.pop(0) if len(self.agent) > 1 else self.agent[0]
            return reply if isinstance(reply, AIMessage) else AIMessage(content=reply)
        raise AssertionError(f"Unexpected prompt: {prompt[:60]}")


def make_block(block_id: int, title: str, start: str, end: str, **fields) -> ScheduleBlock:
    return ScheduleBlock(
        id=block_id, title=title, date=fields.pop("date", TODAY.isoformat()),
        start_time=start, end_time=end, **fields,
    )


@pytest.fixture
def schedule_store():
    return InMemoryScheduleStore([make_block(1, "Team Sync", "10:00", "11:00")])


@pytest.fixture
def task_store():
    return InMemoryTaskStore([
        Task(id=1, title="Write report", type=TaskType.SHORT_TERM, priority=2),
        Task(id=2, title="Learn Spanish", type=TaskType.LONG_TERM),
    ])


@pytest.fixture
def expense_store():
    return InMemoryExpenseStore([
        ExpenseCategory(id=1, name="Food"),
        ExpenseCategory(id=2, name="Transport"),
    ])


@pytest.fixture
def exchange_rates():
    return StaticExchangeRateService({"EUR": 0.5, "JPY": 150.0})


@pytest.fixture
def registry(schedule_store, task_store, expense_store, exchange_rates):
    registry = ToolRegistry()
    register_built_in_tools(
        registry,
        schedule_store=schedule_store,
        task_store=task_store,
        expense_store=expense_store,
        exchange_rates=exchange_rates,
        today=lambda: TODAY,
    )
    return registry


@pytest.fixture
def settings():
    return Settings(
        MAX_AGENT_ITERATIONS=2,
        MAX_TOOL_ROUNDS=3,
        ENABLE_PLANNING=True,
        ENABLE_REFLECTION=True,
        ENABLE_LEARNINGS=False,
        REQUIRE_WRITE_CONFIRMATION=False,
    )


@pytest.fixture
def make_orchestrator(registry, settings):
    def _make(llm: LLMProvider, **overrides) -> AgentOrchestrator:
        configured = settings.model_copy(update=overrides) if overrides else settings
        return AgentOrchestrator(llm, registry, settings=configured, clock=lambda: NOW)
    return _make

