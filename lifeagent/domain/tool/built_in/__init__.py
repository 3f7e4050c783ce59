from datetime import date, datetime
from typing import Callable, Optional
from zoneinfo import ZoneInfo

import structlog

from lifeagent.domain.store.base import ExchangeRateService, ExpenseStore, ScheduleStore, TaskStore
from lifeagent.domain.tool.built_in.calculation import get_calculation_tools
from lifeagent.domain.tool.built_in.expense import ExpenseTools
from lifeagent.domain.tool.built_in.schedule import ScheduleTools
from lifeagent.domain.tool.built_in.system import SystemTools
from lifeagent.domain.tool.built_in.tasks import TaskTools
from lifeagent.domain.tool.built_in.vision import VisionTools
from lifeagent.domain.tool.tool_registry import ToolRegistry
from lifeagent.domain.tool.types import ToolCategory
from lifeagent.infrastructure.llm.provider import LLMProvider

logger = structlog.get_logger(__name__)


def register_built_in_tools(
    registry: ToolRegistry,
    schedule_store: ScheduleStore,
    task_store: TaskStore,
    expense_store: ExpenseStore,
    exchange_rates: ExchangeRateService,
    llm: Optional[LLMProvider] = None,
    timezone: str = "UTC",
    today: Optional[Callable[[], date]] = None
) -> int:
    """Register every built-in tool category; returns the number registered"""
    today = today or (lambda: datetime.now(ZoneInfo(timezone)).date())

    count = registry.register_category(ToolCategory.SYSTEM, SystemTools(registry, timezone).entries())
    count += registry.register_category(ToolCategory.CALCULATION, get_calculation_tools())
    count += registry.register_category(
        ToolCategory.SCHEDULE, ScheduleTools(schedule_store, task_store, today).entries()
    )
    count += registry.register_category(ToolCategory.TASKS, TaskTools(task_store, today).entries())
    count += registry.register_category(
        ToolCategory.EXPENSE, ExpenseTools(expense_store, exchange_rates, today).entries()
    )
    if llm is not None:
        count += registry.register_category(ToolCategory.VISION, VisionTools(llm).entries())

    logger.info("Built-in tools registered", count=count)
    return count
