from datetime import datetime
from enum import Enum
from typing import Literal, Optional

from pydantic import BaseModel, Field

from lifeagent.domain.models.base import utc_now


class BlockStatus(str, Enum):
    """Schedule block status"""
    PLANNED = "planned"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class BlockType(str, Enum):
    """Schedule block type"""
    TASK = "task"
    EVENT = "event"


class TaskType(str, Enum):
    """Task horizon"""
    ROUTINE = "routine"
    LONG_TERM = "long-term"
    SHORT_TERM = "short-term"


class TaskLevel(str, Enum):
    """Task hierarchy level"""
    MAIN = "main"
    SUB = "sub"
    SUBSUB = "subsub"


TASK_LEVEL_NUMBERS = {TaskLevel.MAIN: 0, TaskLevel.SUB: 1, TaskLevel.SUBSUB: 2}


def task_level_to_number(level: TaskLevel) -> int:
    return TASK_LEVEL_NUMBERS[TaskLevel(level)]


class ScheduleBlockCreate(BaseModel):
    """Input for creating a schedule block"""
    type: BlockType = BlockType.EVENT
    task_id: Optional[int] = None
    title: str
    date: str = Field(description="YYYY-MM-DD")
    start_time: str = Field(description="HH:MM")
    end_time: str = Field(description="HH:MM")
    status: BlockStatus = BlockStatus.PLANNED
    comment: Optional[str] = None
    category_id: Optional[int] = None


class ScheduleBlock(ScheduleBlockCreate):
    """A time block on the user's schedule"""
    id: int


class TaskCreate(BaseModel):
    """Input for creating a task"""
    title: str
    type: TaskType = TaskType.SHORT_TERM
    level: int = 0
    parent_id: Optional[int] = None
    description: Optional[str] = None
    priority: int = Field(3, ge=1, le=5)
    deadline: Optional[str] = None
    category_id: Optional[int] = None


class Task(TaskCreate):
    """A task record"""
    id: int
    is_completed: bool = False
    completed_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utc_now)


class ExpenseCreate(BaseModel):
    """Input for recording an expense"""
    amount: float = Field(gt=0)
    currency: str = "USD"
    category_id: Optional[int] = None
    description: Optional[str] = None
    date: str = Field(description="YYYY-MM-DD")


class Expense(ExpenseCreate):
    """An expense record"""
    id: int


class ExpenseCategory(BaseModel):
    """Expense category"""
    id: int
    name: str
    kind: Literal["expense", "income"] = "expense"
