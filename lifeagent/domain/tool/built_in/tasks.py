from datetime import date
from typing import Any, Callable, Dict, List, Optional

import structlog
from pydantic import BaseModel, Field, ValidationError

from lifeagent.domain.models.records import Task, TaskCreate, TaskLevel, TaskType, task_level_to_number
from lifeagent.domain.store.base import TaskStore
from lifeagent.domain.tool.builder import build_tool
from lifeagent.domain.tool.built_in.schedule_utils import DateParseError, parse_date_string
from lifeagent.domain.tool.types import (
    OnMissing,
    ParameterImportance,
    ParameterMetadata,
    ToolEntry,
    ToolMetadata,
    ToolResult,
)

logger = structlog.get_logger(__name__)


class QueryTasksArgs(BaseModel):
    type: Optional[TaskType] = None
    category_id: Optional[int] = None
    parent_id: Optional[int] = Field(None, description="Only children of this task")
    include_completed: bool = False


class CreateTaskArgs(BaseModel):
    title: str = Field(min_length=1)
    type: TaskType = TaskType.SHORT_TERM
    level: TaskLevel = Field(TaskLevel.MAIN, description="main, sub or subsub")
    parent_id: Optional[int] = Field(None, description="Parent task; required for sub and subsub levels")
    description: Optional[str] = None
    priority: int = Field(3, ge=1, le=5, description="1 (highest) to 5")
    deadline: Optional[str] = Field(None, description="Deadline date; not allowed on main tasks")
    category_id: Optional[int] = None


class UpdateTaskArgs(BaseModel):
    task_id: int
    title: Optional[str] = None
    type: Optional[TaskType] = None
    description: Optional[str] = None
    priority: Optional[int] = Field(None, ge=1, le=5)
    deadline: Optional[str] = None
    category_id: Optional[int] = None


class CompleteTaskArgs(BaseModel):
    task_id: int


def validate_task_params(operation: str, params: Dict[str, Any]) -> List[str]:
    """Return a list of problems with create/update task parameters"""
    schema = CreateTaskArgs if operation == "create" else UpdateTaskArgs
    try:
        parsed = schema.model_validate(params)
    except ValidationError as e:
        return [f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()]

    errors = []
    if isinstance(parsed, CreateTaskArgs):
        if parsed.level != TaskLevel.MAIN and parsed.parent_id is None:
            errors.append(f"{parsed.level.value} tasks need a parent_id")
        if parsed.level == TaskLevel.MAIN and parsed.deadline:
            errors.append("main tasks cannot have a deadline")
    elif len(parsed.model_dump(exclude_none=True)) == 1:
        errors.append("no fields to update")
    return errors


def _task_line(task: Task) -> str:
    state = "done" if task.is_completed else f"priority {task.priority}"
    deadline = f", due {task.deadline}" if task.deadline else ""
    return f"- {task.title} ({task.type.value}, {state}{deadline}) [ID: {task.id}]"


def _entity(task: Task) -> Dict[str, Any]:
    return {"kind": "task", "id": task.id, "title": task.title}


class TaskTools:
    """Task tree tools"""

    def __init__(self, task_store: TaskStore, today: Callable[[], date] = date.today):
        self.task_store = task_store
        self.today = today

    async def query_tasks(
        self,
        type: Optional[TaskType] = None,
        category_id: Optional[int] = None,
        parent_id: Optional[int] = None,
        include_completed: bool = False
    ) -> ToolResult:
        tasks = await self.task_store.query(type, category_id, parent_id, include_completed)
        if not tasks:
            return ToolResult.ok("No tasks found.", data={"tasks": []})
        listing = "\n".join(_task_line(t) for t in tasks)
        return ToolResult.ok(
            f"Found {len(tasks)} tasks:\n{listing}",
            data={"tasks": [t.model_dump(mode="json") for t in tasks]},
        )

    async def query_schedulable_tasks(self) -> ToolResult:
        tasks = await self.task_store.query_schedulable()
        if not tasks:
            return ToolResult.ok("No open tasks can be scheduled.", data={"tasks": []})
        listing = "\n".join(_task_line(t) for t in tasks)
        return ToolResult.ok(
            f"{len(tasks)} tasks can be scheduled:\n{listing}",
            data={"tasks": [t.model_dump(mode="json") for t in tasks]},
        )

    async def create_task(self, title: str, **fields) -> ToolResult:
        params = {"title": title, **fields}
        problems = validate_task_params("create", params)
        if problems:
            return ToolResult.error("Invalid task: " + "; ".join(problems))

        args = CreateTaskArgs.model_validate(params)
        if args.parent_id is not None and await self.task_store.get(args.parent_id) is None:
            return ToolResult.error(f"Parent task {args.parent_id} not found.")

        deadline = None
        if args.deadline:
            try:
                deadline = parse_date_string(args.deadline, self.today())
            except DateParseError as e:
                return ToolResult.error(str(e))

        task = await self.task_store.create(TaskCreate(
            title=args.title.strip(),
            type=args.type,
            level=task_level_to_number(args.level),
            parent_id=args.parent_id,
            description=args.description,
            priority=args.priority,
            deadline=deadline,
            category_id=args.category_id,
        ))
        logger.info("Task created", task_id=task.id, level=args.level.value)
        return ToolResult.ok(
            f'Created task "{task.title}" [ID: {task.id}].',
            data={"id": task.id, "task": task.model_dump(mode="json"), "entity": _entity(task)},
        )

    async def update_task(self, task_id: int, **fields) -> ToolResult:
        params = {"task_id": task_id, **fields}
        problems = validate_task_params("update", params)
        if problems:
            return ToolResult.error("Invalid update: " + "; ".join(problems))

        task = await self.task_store.get(task_id)
        if task is None:
            return ToolResult.error(f"Task {task_id} not found.")

        patch = UpdateTaskArgs.model_validate(params).model_dump(exclude_none=True, exclude={"task_id"})
        if "deadline" in patch:
            try:
                patch["deadline"] = parse_date_string(patch["deadline"], self.today())
            except DateParseError as e:
                return ToolResult.error(str(e))

        await self.task_store.update(task_id, patch)
        updated = task.model_copy(update=patch)
        logger.info("Task updated", task_id=task_id, fields=list(patch))
        return ToolResult.ok(
            f'Updated task "{updated.title}" [ID: {task_id}]: {", ".join(patch)} changed.',
            data={"id": task_id, "updated_fields": list(patch), "entity": _entity(updated)},
        )

    async def complete_task(self, task_id: int) -> ToolResult:
        task = await self.task_store.get(task_id)
        if task is None:
            return ToolResult.error(f"Task {task_id} not found.")
        if task.is_completed:
            return ToolResult.ok(f'Task "{task.title}" was already completed.', data={"id": task_id, "entity": _entity(task)})

        await self.task_store.update(task_id, {"is_completed": True})
        logger.info("Task completed", task_id=task_id)
        return ToolResult.ok(
            f'Marked "{task.title}" as completed.',
            data={"id": task_id, "entity": _entity(task)},
        )

    def entries(self) -> List[ToolEntry]:
        return [
            ToolEntry(
                build_tool(self.query_tasks, "query_tasks", "List the user's tasks with optional filters.", QueryTasksArgs),
                ToolMetadata(display_name="Query tasks", description="List tasks", readonly=True),
            ),
            ToolEntry(
                build_tool(
                    self.query_schedulable_tasks, "query_schedulable_tasks",
                    "List open leaf tasks that can be put on the schedule.",
                ),
                ToolMetadata(display_name="Schedulable tasks", description="List tasks ready to schedule", readonly=True),
            ),
            ToolEntry(
                build_tool(
                    self.create_task, "create_task",
                    "Create a task. Sub and subsub tasks need parent_id; main tasks cannot have a deadline.",
                    CreateTaskArgs,
                ),
                ToolMetadata(
                    display_name="Create task",
                    description="Create a task",
                    parameters=[
                        ParameterMetadata(
                            name="title", importance=ParameterImportance.CRITICAL, required=True,
                            on_missing=OnMissing.ASK_USER, clarification_prompt="What should the task be called?",
                        ),
                        ParameterMetadata(
                            name="type", importance=ParameterImportance.MEDIUM, has_default=True,
                            default_description="short-term", on_missing=OnMissing.USE_DEFAULT,
                        ),
                        ParameterMetadata(
                            name="parent_id", importance=ParameterImportance.HIGH, on_missing=OnMissing.ASK_USER,
                            clarification_prompt="Which task does this belong under?",
                            explanation="Only needed for sub and subsub tasks.",
                        ),
                        ParameterMetadata(
                            name="priority", importance=ParameterImportance.LOW, has_default=True,
                            default_description="3", on_missing=OnMissing.USE_DEFAULT,
                        ),
                        ParameterMetadata(name="deadline", importance=ParameterImportance.LOW),
                    ],
                ),
            ),
            ToolEntry(
                build_tool(self.update_task, "update_task", "Change fields of an existing task.", UpdateTaskArgs),
                ToolMetadata(display_name="Update task", description="Change a task"),
            ),
            ToolEntry(
                build_tool(self.complete_task, "complete_task", "Mark a task as completed.", CompleteTaskArgs),
                ToolMetadata(display_name="Complete task", description="Finish a task"),
            ),
        ]
