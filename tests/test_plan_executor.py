"""
Tests for confirmed execution plans.
"""

import asyncio
from typing import Optional

import pytest
from pydantic import BaseModel

from lifeagent.domain.errors import PlanValidationError
from lifeagent.domain.models.execution_plan import ExecutionPlan, StepStatus
from lifeagent.domain.orchestration.plan_executor import (
    PlanExecutor,
    UnresolvedPlaceholderError,
    resolve_placeholders,
    validate_plan,
)
from lifeagent.domain.tool.builder import build_tool
from lifeagent.domain.tool.tool_executor import ToolExecutor
from lifeagent.domain.tool.tool_registry import ToolRegistry
from lifeagent.domain.tool.types import ToolMetadata, ToolResult


class RecordArgs(BaseModel):
    label: str
    ref: Optional[int] = None
    fail: bool = False


def _executor(events):
    registry = ToolRegistry()

    def make(name, delay):
        async def record(label: str, ref: Optional[int] = None, fail: bool = False) -> ToolResult:
            events.append(("start", label, ref))
            await asyncio.sleep(delay)
            events.append(("end", label, ref))
            if fail:
                return ToolResult.error(f"{label} failed")
            return ToolResult.ok(f"{label} done", data={"id": len(events)})
        return build_tool(record, name, f"Record {name}", RecordArgs)

    # Separate categories so independent steps may overlap
    registry.register(make("write_a", 0.02), ToolMetadata(category="schedule"))
    registry.register(make("write_b", 0.01), ToolMetadata(category="tasks"))
    registry.register(make("write_c", 0), ToolMetadata(category="expense"))
    return registry, PlanExecutor(registry, ToolExecutor(registry))


def _plan(*steps) -> ExecutionPlan:
    return ExecutionPlan.model_validate({"summary": "test plan", "isMultiStep": len(steps) > 1, "steps": list(steps)})


@pytest.mark.asyncio
async def test_dependent_step_waits_for_all_dependencies() -> None:
    """C depends on A and B and is not dispatched until both finished."""

    events = []
    _, executor = _executor(events)
    plan = _plan(
        {"id": "A", "action": "write_a", "params": {"label": "A"}},
        {"id": "B", "action": "write_b", "params": {"label": "B"}},
        {"id": "C", "action": "write_c", "params": {"label": "C"}, "dependsOn": ["A", "B"]},
    )

    result = await executor.execute(plan)

    assert result.success
    start_c = events.index(("start", "C", None))
    assert events.index(("end", "A", None)) < start_c
    assert events.index(("end", "B", None)) < start_c
    assert [log.step_id for log in result.logs] == ["A", "B", "C"]
    assert all(log.status == StepStatus.COMPLETED for log in result.logs)


@pytest.mark.asyncio
async def test_cancelled_plan_makes_no_calls() -> None:
    events = []
    _, executor = _executor(events)
    plan = _plan({"id": "A", "action": "write_a", "params": {"label": "A"}})

    result = executor.cancel(plan)

    assert result.cancelled
    assert not result.success
    assert events == []


@pytest.mark.asyncio
async def test_failed_dependency_skips_dependents() -> None:
    events = []
    _, executor = _executor(events)
    plan = _plan(
        {"id": "A", "action": "write_a", "params": {"label": "A", "fail": True}},
        {"id": "B", "action": "write_b", "params": {"label": "B"}},
        {"id": "C", "action": "write_c", "params": {"label": "C"}, "dependsOn": ["A", "B"]},
    )

    result = await executor.execute(plan)

    assert not result.success
    assert result.failed_step == "A"
    statuses = {log.step_id: log.status for log in result.logs}
    assert statuses == {"A": StepStatus.FAILED, "B": StepStatus.COMPLETED, "C": StepStatus.SKIPPED}
    assert ("start", "C", None) not in events


@pytest.mark.asyncio
async def test_placeholders_pass_results_forward() -> None:
    events = []
    _, executor = _executor(events)
    plan = _plan(
        {"id": "step1", "action": "write_a", "params": {"label": "parent"}},
        {"id": "step2", "action": "write_b", "params": {"label": "child of {{step1.text}}",
                                                         "ref": "{{step1.data.id}}"},
         "dependsOn": ["step1"]},
    )

    result = await executor.execute(plan)

    assert result.success
    assert ("start", "child of parent done", 2) in events
    assert result.context["step2"]["kind"] == "ok"


@pytest.mark.asyncio
async def test_invalid_plans_are_rejected_before_any_call() -> None:
    events = []
    registry, executor = _executor(events)
    cyclic = _plan(
        {"id": "A", "action": "write_a", "params": {"label": "A"}, "dependsOn": ["B"]},
        {"id": "B", "action": "write_b", "params": {"label": "B"}, "dependsOn": ["A"]},
    )
    unknown = _plan({"id": "A", "action": "launch_rocket", "params": {}})

    result = await executor.execute(cyclic)

    assert not result.success
    assert "cycle" in result.error
    assert events == []
    with pytest.raises(PlanValidationError):
        validate_plan(unknown, registry)


def test_resolve_placeholders() -> None:
    context = {"step1": {"text": "ok", "data": {"id": 7, "items": [{"name": "x"}]}}}

    assert resolve_placeholders({"id": "{{step1.data.id}}"}, context) == {"id": 7}
    assert resolve_placeholders(["{{ step1.data.items.0.name }}"], context) == ["x"]
    assert resolve_placeholders("task {{step1.data.id}}", context) == "task 7"
    with pytest.raises(UnresolvedPlaceholderError):
        resolve_placeholders("{{step9.data.id}}", context)


def test_duplicate_step_ids_are_invalid() -> None:
    with pytest.raises(ValueError):
        _plan(
            {"id": "A", "action": "write_a", "params": {"label": "A"}},
            {"id": "A", "action": "write_b", "params": {"label": "B"}},
        )
