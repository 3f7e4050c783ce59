"""
Tests for the tool registry.

Run with:
$ pytest -q tests/test_tool_registry.py
"""

from lifeagent.domain.tool.builder import build_tool
from lifeagent.domain.tool.built_in.calculation import BinaryArgs
from lifeagent.domain.tool.tool_registry import ToolRegistry
from lifeagent.domain.tool.types import (
    ToolCategory,
    ToolMetadata,
    ToolQueryFilter,
    ToolRegistrationOptions,
    ToolResult,
)


async def _add(a: float, b: float) -> ToolResult:
    return ToolResult.ok(str(a + b))


async def _add_again(a: float, b: float) -> ToolResult:
    return ToolResult.ok(str(a + b + 1))


async def _noop() -> ToolResult:
    return ToolResult.ok("ok")


def _meta(category=ToolCategory.CALCULATION, **fields) -> ToolMetadata:
    return ToolMetadata(category=category, **fields)


def test_duplicate_registration_keeps_original() -> None:
    """A second registration without overwrite is rejected and the first tool stays."""

    registry = ToolRegistry()
    first = build_tool(_add, "add", "Add two numbers", BinaryArgs)
    second = build_tool(_add_again, "add", "Add two numbers differently", BinaryArgs)

    assert registry.register(first, _meta()) is True
    assert registry.register(second, _meta()) is False
    assert registry.get_tool("add") is first


def test_overwrite_replaces_tool() -> None:
    """With overwrite the new implementation wins."""

    registry = ToolRegistry()
    first = build_tool(_add, "add", "Add", BinaryArgs)
    second = build_tool(_add_again, "add", "Add", BinaryArgs)
    registry.register(first, _meta())

    assert registry.register(second, _meta(), ToolRegistrationOptions(overwrite=True)) is True
    assert registry.get_tool("add") is second


def test_registration_requires_category_unless_validation_disabled() -> None:
    """Uncategorized tools are rejected by default."""

    registry = ToolRegistry()
    tool = build_tool(_noop, "noop", "Does nothing")

    assert registry.register(tool, ToolMetadata()) is False
    assert registry.register(tool, ToolMetadata(), ToolRegistrationOptions(validate=False)) is True


def test_query_orders_by_category_priority() -> None:
    """Lower priority categories come first; ties keep registration order."""

    registry = ToolRegistry()
    registry.register(build_tool(_noop, "describe_image", "Vision"), _meta(ToolCategory.VISION))
    registry.register(build_tool(_add, "add", "Add", BinaryArgs), _meta())
    registry.register(build_tool(_noop, "now", "Clock"), _meta(ToolCategory.SYSTEM))
    registry.register(build_tool(_add_again, "plus", "Add", BinaryArgs), _meta())
    registry.register(build_tool(_noop, "custom", "Custom"), _meta("plugins"))

    names = [t.name for t in registry.query()]
    assert names == ["now", "add", "plus", "describe_image", "custom"]


def test_query_filters() -> None:
    """Category, readonly, enabled and name filters combine."""

    registry = ToolRegistry()
    registry.register(build_tool(_add, "add", "Add", BinaryArgs), _meta(readonly=True))
    registry.register(build_tool(_noop, "reset", "Reset"), _meta(readonly=False))
    registry.register(build_tool(_noop, "old_add", "Old"), _meta(enabled=False, readonly=True))

    assert [t.name for t in registry.query(ToolQueryFilter(readonly_only=True))] == ["add"]
    assert [t.name for t in registry.query(ToolQueryFilter(enabled_only=False, name_pattern="add"))] == [
        "add", "old_add",
    ]
    assert registry.query(ToolQueryFilter(categories=["schedule"])) == []
    assert [t.name for t in registry.get_enabled_tools()] == ["add", "reset"]


def test_stats_and_unregister() -> None:
    """Stats track categories and enabled counts; unregister removes tools."""

    registry = ToolRegistry()
    registry.register(build_tool(_add, "add", "Add", BinaryArgs), _meta())
    registry.register(build_tool(_noop, "now", "Clock"), _meta(ToolCategory.SYSTEM, enabled=False))

    stats = registry.get_stats()
    assert stats["total"] == 2
    assert stats["enabled"] == 1
    assert stats["disabled"] == 1
    assert stats["by_category"] == {"calculation": 1, "system": 1}

    assert registry.unregister("add") is True
    assert registry.unregister("add") is False
    assert not registry.has("add")


def test_built_in_catalog(registry) -> None:
    """Built-in tools are registered under their categories."""

    assert registry.has("update_schedule_block")
    assert registry.get_metadata("update_schedule_block").category == "schedule"
    assert registry.get_metadata("query_schedule").readonly is True
    assert registry.get_metadata("create_task").readonly is False
    # Vision needs an LLM and is only registered when one is given
    assert not registry.has("analyze_image")
    grouped = registry.describe()
    assert list(grouped)[0] == "system"
