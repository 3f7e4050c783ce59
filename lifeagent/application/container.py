"""Wiring of the orchestrator and its collaborators.

Everything the agent needs is passed in explicitly; there are no
module-level singletons besides settings.
"""
from typing import Optional

import structlog

from lifeagent.domain.models.records import ExpenseCategory
from lifeagent.domain.orchestration.core.main_agent import AgentOrchestrator
from lifeagent.domain.store import (
    ExchangeRateService,
    ExpenseStore,
    InMemoryExpenseStore,
    InMemoryScheduleStore,
    InMemoryTaskStore,
    ScheduleStore,
    StaticExchangeRateService,
    TaskStore,
)
from lifeagent.domain.tool.built_in import register_built_in_tools
from lifeagent.domain.tool.tool_registry import ToolRegistry
from lifeagent.infrastructure.config import Settings, settings as default_settings
from lifeagent.infrastructure.llm.provider import LLMProvider, create_llm_provider

logger = structlog.get_logger(__name__)

DEFAULT_EXPENSE_CATEGORIES = [
    ExpenseCategory(id=1, name="Food", kind="expense"),
    ExpenseCategory(id=2, name="Transport", kind="expense"),
    ExpenseCategory(id=3, name="Housing", kind="expense"),
    ExpenseCategory(id=4, name="Entertainment", kind="expense"),
    ExpenseCategory(id=5, name="Salary", kind="income"),
]

DEFAULT_RATES = {"USD": 1.0, "EUR": 0.92, "GBP": 0.79, "CNY": 7.2, "JPY": 150.0}


def build_orchestrator(
    settings: Optional[Settings] = None,
    llm: Optional[LLMProvider] = None,
    schedule_store: Optional[ScheduleStore] = None,
    task_store: Optional[TaskStore] = None,
    expense_store: Optional[ExpenseStore] = None,
    exchange_rates: Optional[ExchangeRateService] = None,
    registry: Optional[ToolRegistry] = None
) -> AgentOrchestrator:
    """Build an orchestrator, filling gaps with in-memory stores"""
    settings = settings or default_settings
    llm = llm or create_llm_provider(settings)
    registry = registry or ToolRegistry()

    register_built_in_tools(
        registry,
        schedule_store=schedule_store or InMemoryScheduleStore(),
        task_store=task_store or InMemoryTaskStore(),
        expense_store=expense_store or InMemoryExpenseStore(DEFAULT_EXPENSE_CATEGORIES),
        exchange_rates=exchange_rates or StaticExchangeRateService(DEFAULT_RATES),
        llm=llm,
        timezone=settings.TIMEZONE,
    )
    logger.info("Orchestrator built", tools=registry.get_stats()["total"])
    return AgentOrchestrator(llm, registry, settings=settings)
