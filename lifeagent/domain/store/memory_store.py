import asyncio
from typing import Any, Dict, Iterable, List, Optional, Sequence

from lifeagent.domain.models.base import utc_now
from lifeagent.domain.models.records import (
    BlockStatus,
    Expense,
    ExpenseCategory,
    ExpenseCreate,
    ScheduleBlock,
    ScheduleBlockCreate,
    Task,
    TaskCreate,
    TaskType,
)
from lifeagent.domain.store.base import (
    ExchangeRateService,
    ExpenseStore,
    ScheduleStore,
    TaskStore,
)


class InMemoryScheduleStore(ScheduleStore):
    """In-memory schedule store"""

    def __init__(self, blocks: Optional[Iterable[ScheduleBlock]] = None):
        self.blocks: Dict[int, ScheduleBlock] = {b.id: b for b in blocks or []}
        self._next_id = max(self.blocks, default=0) + 1
        self._lock = asyncio.Lock()

    async def query(
        self,
        start_date: str,
        end_date: str,
        statuses: Optional[Sequence[BlockStatus]] = None,
        task_id: Optional[int] = None,
        category_id: Optional[int] = None
    ) -> List[ScheduleBlock]:
        async with self._lock:
            found = [
                b for b in self.blocks.values()
                if start_date <= b.date <= end_date
                and (not statuses or b.status in statuses)
                and (task_id is None or b.task_id == task_id)
                and (category_id is None or b.category_id == category_id)
            ]
        return sorted(found, key=lambda b: (b.date, b.start_time, b.id))

    async def get(self, block_id: int) -> Optional[ScheduleBlock]:
        async with self._lock:
            return self.blocks.get(block_id)

    async def create(self, data: ScheduleBlockCreate) -> ScheduleBlock:
        async with self._lock:
            block = ScheduleBlock(id=self._next_id, **data.model_dump())
            self.blocks[block.id] = block
            self._next_id += 1
            return block

    async def update(self, block_id: int, patch: Dict[str, Any]) -> None:
        async with self._lock:
            block = self.blocks[block_id]
            self.blocks[block_id] = block.model_copy(update=patch)

    async def delete(self, block_id: int) -> None:
        async with self._lock:
            self.blocks.pop(block_id, None)


class InMemoryTaskStore(TaskStore):
    """In-memory task store"""

    def __init__(self, tasks: Optional[Iterable[Task]] = None):
        self.tasks: Dict[int, Task] = {t.id: t for t in tasks or []}
        self._next_id = max(self.tasks, default=0) + 1
        self._lock = asyncio.Lock()

    async def query(
        self,
        task_type: Optional[TaskType] = None,
        category_id: Optional[int] = None,
        parent_id: Optional[int] = None,
        include_completed: bool = False
    ) -> List[Task]:
        async with self._lock:
            return [
                t for t in self.tasks.values()
                if (task_type is None or t.type == task_type)
                and (category_id is None or t.category_id == category_id)
                and (parent_id is None or t.parent_id == parent_id)
                and (include_completed or not t.is_completed)
            ]

    async def query_schedulable(self) -> List[Task]:
        async with self._lock:
            parents = {t.parent_id for t in self.tasks.values() if t.parent_id is not None}
            return [t for t in self.tasks.values() if not t.is_completed and t.id not in parents]

    async def get(self, task_id: int) -> Optional[Task]:
        async with self._lock:
            return self.tasks.get(task_id)

    async def create(self, data: TaskCreate) -> Task:
        async with self._lock:
            task = Task(id=self._next_id, **data.model_dump())
            self.tasks[task.id] = task
            self._next_id += 1
            return task

    async def update(self, task_id: int, patch: Dict[str, Any]) -> None:
        async with self._lock:
            task = self.tasks[task_id]
            if patch.get("is_completed") and not task.is_completed:
                patch = {**patch, "completed_at": utc_now()}
            self.tasks[task_id] = task.model_copy(update=patch)

    async def delete(self, task_id: int) -> None:
        async with self._lock:
            self.tasks.pop(task_id, None)


class InMemoryExpenseStore(ExpenseStore):
    """In-memory expense store"""

    def __init__(
        self,
        categories: Optional[Iterable[ExpenseCategory]] = None,
        expenses: Optional[Iterable[Expense]] = None
    ):
        self._categories = list(categories or [])
        self.expenses: Dict[int, Expense] = {e.id: e for e in expenses or []}
        self._next_id = max(self.expenses, default=0) + 1
        self._lock = asyncio.Lock()

    async def query(
        self,
        start_date: str,
        end_date: str,
        category_id: Optional[int] = None
    ) -> List[Expense]:
        async with self._lock:
            found = [
                e for e in self.expenses.values()
                if start_date <= e.date <= end_date
                and (category_id is None or e.category_id == category_id)
            ]
        return sorted(found, key=lambda e: (e.date, e.id))

    async def categories(self) -> List[ExpenseCategory]:
        return list(self._categories)

    async def create(self, data: ExpenseCreate) -> Expense:
        async with self._lock:
            expense = Expense(id=self._next_id, **data.model_dump())
            self.expenses[expense.id] = expense
            self._next_id += 1
            return expense

    async def update(self, expense_id: int, patch: Dict[str, Any]) -> None:
        async with self._lock:
            self.expenses[expense_id] = self.expenses[expense_id].model_copy(update=patch)

    async def delete(self, expense_id: int) -> None:
        async with self._lock:
            self.expenses.pop(expense_id, None)


class StaticExchangeRateService(ExchangeRateService):
    """Exchange rates from a fixed table quoted against one base currency"""

    def __init__(self, rates: Dict[str, float], base: str = "USD"):
        self.base = base.upper()
        self.rates = {k.upper(): v for k, v in rates.items()}
        self.rates[self.base] = 1.0

    async def get_rate(self, base: str, target: str) -> float:
        base, target = base.upper(), target.upper()
        if base not in self.rates or target not in self.rates:
            raise KeyError(f"No rate for {base}/{target}")
        return self.rates[target] / self.rates[base]
