"""Record store collaborators consumed by the built-in tools.

Persistence lives outside the agent core; these are the interfaces it
expects. Each call is the unit of atomicity for its own operation.
"""
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence

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


class ScheduleStore(ABC):

    @abstractmethod
    async def query(
        self,
        start_date: str,
        end_date: str,
        statuses: Optional[Sequence[BlockStatus]] = None,
        task_id: Optional[int] = None,
        category_id: Optional[int] = None
    ) -> List[ScheduleBlock]:
        """Blocks between two dates (inclusive), ordered by date and start time"""

    @abstractmethod
    async def get(self, block_id: int) -> Optional[ScheduleBlock]:
        pass

    @abstractmethod
    async def create(self, data: ScheduleBlockCreate) -> ScheduleBlock:
        pass

    @abstractmethod
    async def update(self, block_id: int, patch: Dict[str, Any]) -> None:
        pass

    @abstractmethod
    async def delete(self, block_id: int) -> None:
        pass


class TaskStore(ABC):

    @abstractmethod
    async def query(
        self,
        task_type: Optional[TaskType] = None,
        category_id: Optional[int] = None,
        parent_id: Optional[int] = None,
        include_completed: bool = False
    ) -> List[Task]:
        pass

    @abstractmethod
    async def query_schedulable(self) -> List[Task]:
        """Open leaf tasks that can be put on the schedule"""

    @abstractmethod
    async def get(self, task_id: int) -> Optional[Task]:
        pass

    @abstractmethod
    async def create(self, data: TaskCreate) -> Task:
        pass

    @abstractmethod
    async def update(self, task_id: int, patch: Dict[str, Any]) -> None:
        pass

    @abstractmethod
    async def delete(self, task_id: int) -> None:
        pass


class ExpenseStore(ABC):

    @abstractmethod
    async def query(
        self,
        start_date: str,
        end_date: str,
        category_id: Optional[int] = None
    ) -> List[Expense]:
        pass

    @abstractmethod
    async def categories(self) -> List[ExpenseCategory]:
        pass

    @abstractmethod
    async def create(self, data: ExpenseCreate) -> Expense:
        pass

    @abstractmethod
    async def update(self, expense_id: int, patch: Dict[str, Any]) -> None:
        pass

    @abstractmethod
    async def delete(self, expense_id: int) -> None:
        pass


class ExchangeRateService(ABC):

    @abstractmethod
    async def get_rate(self, base: str, target: str) -> float:
        """Units of target currency per one unit of base currency"""
