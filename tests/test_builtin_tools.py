"""
Tests for the system, calculation, task and expense tools.
"""

from datetime import datetime, timezone

import pytest
from langchain_core.messages import AIMessage

from conftest import TODAY
from lifeagent.domain.tool.built_in.calculation import divide, multiply
from lifeagent.domain.tool.built_in.expense import ExpenseTools
from lifeagent.domain.tool.built_in.system import SystemTools
from lifeagent.domain.tool.built_in.tasks import TaskTools, validate_task_params
from lifeagent.domain.tool.built_in.vision import VisionTools
from lifeagent.domain.tool.types import ToolResultKind
from lifeagent.infrastructure.llm.provider import LLMProvider


@pytest.mark.asyncio
async def test_divide_by_zero_is_an_error_result() -> None:
    result = await divide(1, 0)

    assert result.kind == ToolResultKind.ERROR
    assert result.text.startswith("Error:")


@pytest.mark.asyncio
async def test_multiply() -> None:
    result = await multiply(2.5, 4)

    assert result.data["value"] == 10
    assert "= 10" in result.text


@pytest.mark.asyncio
async def test_current_date_uses_configured_timezone(registry) -> None:
    tools = SystemTools(registry, "Asia/Tokyo", now=lambda: datetime(2025, 1, 10, 20, 0, tzinfo=timezone.utc))

    result = await tools.get_current_date()

    assert result.data["date"] == "2025-01-11"


@pytest.mark.asyncio
async def test_date_difference(registry) -> None:
    tools = SystemTools(registry, now=lambda: datetime(2025, 1, 10, 12, 0, tzinfo=timezone.utc))

    result = await tools.date_difference("today", "2025-01-20")

    assert result.data["days"] == 10


@pytest.mark.asyncio
async def test_tool_documentation_lists_clarification_prompts(registry) -> None:
    tools = SystemTools(registry)

    result = await tools.get_tool_documentation("create_schedule_block")
    unknown = await tools.get_tool_documentation("fly_to_moon")

    assert "start_time (critical, required, if missing: ask_user)" in result.text
    assert 'ask: "What time should it start?"' in result.text
    assert "end_time (medium, default: one hour after start_time" in result.text
    assert unknown.kind == ToolResultKind.ERROR


def test_task_param_rules() -> None:
    assert validate_task_params("create", {"title": "Read", "level": "sub"}) == ["sub tasks need a parent_id"]
    assert validate_task_params("create", {"title": "Read", "deadline": "2025-02-01"}) == [
        "main tasks cannot have a deadline"
    ]
    assert validate_task_params("update", {"task_id": 1}) == ["no fields to update"]
    assert validate_task_params("create", {"title": "Read", "level": "sub", "parent_id": 1}) == []
    assert validate_task_params("create", {"title": "Read", "priority": 9})


@pytest.mark.asyncio
async def test_create_subtask_resolves_deadline(task_store) -> None:
    tools = TaskTools(task_store, today=lambda: TODAY)

    result = await tools.create_task("Outline", level="sub", parent_id=1, deadline="tomorrow")

    assert result.kind == ToolResultKind.OK
    task = task_store.tasks[result.data["id"]]
    assert task.level == 1
    assert task.deadline == "2025-01-11"
    assert result.data["entity"]["kind"] == "task"


@pytest.mark.asyncio
async def test_create_task_with_missing_parent(task_store) -> None:
    tools = TaskTools(task_store, today=lambda: TODAY)

    result = await tools.create_task("Outline", level="sub", parent_id=42)

    assert result.kind == ToolResultKind.ERROR
    assert len(task_store.tasks) == 2


@pytest.mark.asyncio
async def test_complete_task_and_schedulable(task_store) -> None:
    tools = TaskTools(task_store, today=lambda: TODAY)

    await tools.complete_task(1)
    schedulable = await tools.query_schedulable_tasks()

    assert task_store.tasks[1].is_completed
    assert task_store.tasks[1].completed_at is not None
    assert [t["id"] for t in schedulable.data["tasks"]] == [2]


@pytest.mark.asyncio
async def test_expense_unknown_category_warns(expense_store, exchange_rates) -> None:
    tools = ExpenseTools(expense_store, exchange_rates, today=lambda: TODAY)

    known = await tools.create_expense(4.5, category="food", description="coffee")
    unknown = await tools.create_expense(20, category="Gadgets")

    assert known.kind == ToolResultKind.OK
    assert expense_store.expenses[known.data["id"]].category_id == 1
    assert unknown.kind == ToolResultKind.WARNING
    assert "Gadgets" in unknown.text


@pytest.mark.asyncio
async def test_expense_summary_keeps_currencies_apart(expense_store, exchange_rates) -> None:
    tools = ExpenseTools(expense_store, exchange_rates, today=lambda: TODAY)
    await tools.create_expense(10, currency="USD", category="Food")
    await tools.create_expense(1000, currency="JPY", category="Food")
    await tools.create_expense(5, currency="usd", category="Transport", date="yesterday")

    summary = await tools.get_expense_summary(group_by="category")

    assert summary.data["groups"] == {
        "Food": {"USD": 10.0, "JPY": 1000.0},
        "Transport": {"USD": 5.0},
    }


@pytest.mark.asyncio
async def test_currency_conversion(expense_store, exchange_rates) -> None:
    tools = ExpenseTools(expense_store, exchange_rates, today=lambda: TODAY)

    converted = await tools.convert_currency(10, "EUR", "JPY")
    missing = await tools.get_exchange_rate("USD", "XYZ")

    assert converted.data["amount"] == pytest.approx(3000.0)
    assert missing.kind == ToolResultKind.ERROR


class _EchoVisionLLM(LLMProvider):
    def __init__(self):
        self.received = None

    async def invoke(self, messages, tools=None):
        self.received = messages[0]
        return AIMessage(content=[{"type": "text", "text": " A receipt for 12.50 EUR. "}])


@pytest.mark.asyncio
async def test_analyze_image_sends_multimodal_message() -> None:
    llm = _EchoVisionLLM()

    result = await VisionTools(llm).analyze_image("https://example.com/r.png", "What is the total?")

    assert result.text == "A receipt for 12.50 EUR."
    parts = llm.received.content
    assert parts[0] == {"type": "text", "text": "What is the total?"}
    assert parts[1]["image_url"]["url"] == "https://example.com/r.png"
