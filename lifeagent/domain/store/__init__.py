from lifeagent.domain.store.base import (
    ExchangeRateService,
    ExpenseStore,
    ScheduleStore,
    TaskStore,
)
from lifeagent.domain.store.memory_store import (
    InMemoryExpenseStore,
    InMemoryScheduleStore,
    InMemoryTaskStore,
    StaticExchangeRateService,
)

__all__ = [
    "ExchangeRateService",
    "ExpenseStore",
    "ScheduleStore",
    "TaskStore",
    "InMemoryExpenseStore",
    "InMemoryScheduleStore",
    "InMemoryTaskStore",
    "StaticExchangeRateService",
]
