from datetime import date
from typing import Callable, List, Optional, Union

import structlog
from pydantic import BaseModel, Field

from lifeagent.domain.models.records import (
    BlockStatus,
    BlockType,
    ScheduleBlock,
    ScheduleBlockCreate,
)
from lifeagent.domain.store.base import ScheduleStore, TaskStore
from lifeagent.domain.tool.builder import build_tool
from lifeagent.domain.tool.built_in.schedule_utils import (
    DateParseError,
    conflict_warning,
    default_end_time,
    find_conflicts,
    format_block,
    match_title,
    normalize_time,
    parse_date_string,
)
from lifeagent.domain.tool.types import (
    OnMissing,
    ParameterImportance,
    ParameterMetadata,
    ToolEntry,
    ToolMetadata,
    ToolResult,
)

logger = structlog.get_logger(__name__)

DATE_HELP = "today, tomorrow, 'in 3 days', YYYY-MM-DD or MM-DD"


class QueryScheduleArgs(BaseModel):
    start_date: str = Field("today", description=f"First date, {DATE_HELP}")
    end_date: Optional[str] = Field(None, description="Last date (inclusive); defaults to start_date")
    status: Optional[List[BlockStatus]] = Field(None, description="Only blocks with these statuses")
    task_id: Optional[int] = Field(None, description="Only blocks linked to this task")
    category_id: Optional[int] = Field(None, description="Only blocks in this category")


class CreateScheduleBlockArgs(BaseModel):
    type: BlockType = Field(BlockType.EVENT, description="task (linked to a task) or event (standalone)")
    task_id: Optional[int] = Field(None, description="Task to schedule; required when type is task")
    title: Optional[str] = Field(None, description="Event title; required when type is event")
    date: str = Field(description=f"Date of the block, {DATE_HELP}")
    start_time: str = Field(description="Start time HH:MM")
    end_time: Optional[str] = Field(None, description="End time HH:MM; defaults to one hour after start")
    comment: Optional[str] = None
    category_id: Optional[int] = None


class BlockLocatorArgs(BaseModel):
    block_id: Optional[int] = Field(None, description="Exact block id; do not combine with search_date/search_title")
    search_date: Optional[str] = Field(None, description=f"Date to search on, {DATE_HELP}; defaults to today")
    search_title: Optional[str] = Field(None, description="Part of the block title")


class UpdateScheduleBlockArgs(BlockLocatorArgs):
    new_date: Optional[str] = None
    new_start_time: Optional[str] = None
    new_end_time: Optional[str] = None
    new_status: Optional[BlockStatus] = None
    new_comment: Optional[str] = None
    new_category_id: Optional[int] = None
    new_title: Optional[str] = None


class ScheduleTools:
    """Schedule block tools with natural-language target resolution"""

    def __init__(
        self,
        schedule_store: ScheduleStore,
        task_store: TaskStore,
        today: Callable[[], date] = date.today
    ):
        self.schedule_store = schedule_store
        self.task_store = task_store
        self.today = today

    async def resolve_block(
        self,
        block_id: Optional[int] = None,
        search_date: Optional[str] = None,
        search_title: Optional[str] = None
    ) -> Union[ScheduleBlock, ToolResult]:
        """Find exactly one block, or explain why none was chosen"""
        by_description = search_date is not None or search_title is not None
        if block_id is not None and by_description:
            return ToolResult.error("Use either block_id or search_date/search_title, not both.")
        if block_id is None and not by_description:
            return ToolResult.error("Identify the block with block_id, or with search_date and search_title.")

        if block_id is not None:
            block = await self.schedule_store.get(block_id)
            if block is None:
                return ToolResult.error(f"Schedule block {block_id} not found.", data={"matches": []})
            return block

        try:
            day = parse_date_string(search_date or "today", self.today())
        except DateParseError as e:
            return ToolResult.error(str(e))

        matches = match_title(await self.schedule_store.query(day, day), search_title)
        label = f"'{search_title}'" if search_title else "any title"

        if not matches:
            return ToolResult.error(
                f"No schedule block matching {label} found on {day}.",
                data={"matches": [], "date": day},
            )
        if len(matches) > 1:
            listing = "\n".join(format_block(b) for b in matches)
            return ToolResult.ambiguous(
                f"Found {len(matches)} schedule blocks matching {label} on {day}:\n{listing}\n"
                "Ask the user which one they mean, then call again with block_id.",
                data={"matches": [b.id for b in matches], "date": day},
            )
        return matches[0]

    async def query_schedule(
        self,
        start_date: str = "today",
        end_date: Optional[str] = None,
        status: Optional[List[BlockStatus]] = None,
        task_id: Optional[int] = None,
        category_id: Optional[int] = None
    ) -> ToolResult:
        try:
            start = parse_date_string(start_date, self.today())
            end = parse_date_string(end_date, self.today()) if end_date else start
        except DateParseError as e:
            return ToolResult.error(str(e))
        if end < start:
            return ToolResult.error(f"end_date {end} is before start_date {start}.")

        blocks = await self.schedule_store.query(start, end, status, task_id, category_id)
        if not blocks:
            return ToolResult.ok(f"No schedule blocks found between {start} and {end}.", data={"blocks": []})

        listing = "\n".join(f"{format_block(b)} {b.status.value}" for b in blocks)
        return ToolResult.ok(
            f"Found {len(blocks)} schedule blocks:\n{listing}",
            data={"blocks": [b.model_dump(mode="json") for b in blocks]},
        )

    async def create_schedule_block(
        self,
        date: str,
        start_time: str,
        type: BlockType = BlockType.EVENT,
        task_id: Optional[int] = None,
        title: Optional[str] = None,
        end_time: Optional[str] = None,
        comment: Optional[str] = None,
        category_id: Optional[int] = None
    ) -> ToolResult:
        if type == BlockType.TASK:
            if task_id is None:
                return ToolResult.error("A task block needs task_id. Ask the user which task to schedule.")
            task = await self.task_store.get(task_id)
            if task is None:
                return ToolResult.error(f"Task {task_id} not found.")
            title = title or task.title
        elif not (title or "").strip():
            return ToolResult.error("An event block needs a title.")

        try:
            day = parse_date_string(date, self.today())
            start = normalize_time(start_time)
            end = normalize_time(end_time) if end_time else default_end_time(start)
        except ValueError as e:
            return ToolResult.error(str(e))
        if end <= start:
            return ToolResult.error(f"End time {end} must be after start time {start}.")

        conflicts = find_conflicts(await self.schedule_store.query(day, day), start, end)
        block = await self.schedule_store.create(ScheduleBlockCreate(
            type=type,
            task_id=task_id if type == BlockType.TASK else None,
            title=title.strip(),
            date=day,
            start_time=start,
            end_time=end,
            comment=comment,
            category_id=category_id,
        ))
        logger.info("Schedule block created", block_id=block.id, date=day, conflicts=len(conflicts))

        text = f'Created schedule block "{block.title}" on {day} {start}-{end} [ID: {block.id}].'
        data = {
            "block": block.model_dump(mode="json"),
            "id": block.id,
            "entity": {"kind": "schedule_block", "id": block.id, "title": block.title},
        }
        if conflicts:
            data["conflicts"] = [b.id for b in conflicts]
            return ToolResult.warning(f"{text}\n{conflict_warning(conflicts)}", data=data)
        return ToolResult.ok(text, data=data)

    async def update_schedule_block(
        self,
        block_id: Optional[int] = None,
        search_date: Optional[str] = None,
        search_title: Optional[str] = None,
        new_date: Optional[str] = None,
        new_start_time: Optional[str] = None,
        new_end_time: Optional[str] = None,
        new_status: Optional[BlockStatus] = None,
        new_comment: Optional[str] = None,
        new_category_id: Optional[int] = None,
        new_title: Optional[str] = None
    ) -> ToolResult:
        changes = {
            "date": new_date,
            "start_time": new_start_time,
            "end_time": new_end_time,
            "status": new_status,
            "comment": new_comment,
            "category_id": new_category_id,
            "title": new_title,
        }
        patch = {k: v for k, v in changes.items() if v is not None}
        if not patch:
            return ToolResult.error("No updates given. Provide at least one new_* field.")

        resolved = await self.resolve_block(block_id, search_date, search_title)
        if isinstance(resolved, ToolResult):
            return resolved
        block = resolved

        try:
            if "date" in patch:
                patch["date"] = parse_date_string(new_date, self.today())
            if "start_time" in patch:
                patch["start_time"] = normalize_time(new_start_time)
            if "end_time" in patch:
                patch["end_time"] = normalize_time(new_end_time)
        except ValueError as e:
            return ToolResult.error(str(e))
        if "status" in patch:
            patch["status"] = BlockStatus(patch["status"])

        conflicts: List[ScheduleBlock] = []
        if patch.keys() & {"date", "start_time", "end_time"}:
            day = patch.get("date", block.date)
            start = patch.get("start_time", block.start_time)
            end = patch.get("end_time", block.end_time)
            if end <= start:
                return ToolResult.error(f"End time {end} must be after start time {start}.")
            conflicts = find_conflicts(await self.schedule_store.query(day, day), start, end, exclude_id=block.id)

        await self.schedule_store.update(block.id, patch)
        updated = block.model_copy(update=patch)
        logger.info("Schedule block updated", block_id=block.id, fields=list(patch))

        text = f'Updated "{updated.title}" [ID: {block.id}]: {", ".join(patch)} changed.'
        data = {
            "block": updated.model_dump(mode="json"),
            "id": block.id,
            "updated_fields": list(patch),
            "entity": {"kind": "schedule_block", "id": block.id, "title": updated.title},
        }
        if conflicts:
            data["conflicts"] = [b.id for b in conflicts]
            return ToolResult.warning(f"{text}\n{conflict_warning(conflicts)}", data=data)
        return ToolResult.ok(text, data=data)

    async def delete_schedule_block(
        self,
        block_id: Optional[int] = None,
        search_date: Optional[str] = None,
        search_title: Optional[str] = None
    ) -> ToolResult:
        resolved = await self.resolve_block(block_id, search_date, search_title)
        if isinstance(resolved, ToolResult):
            return resolved

        await self.schedule_store.delete(resolved.id)
        logger.info("Schedule block deleted", block_id=resolved.id)
        return ToolResult.ok(
            f'Deleted "{resolved.title}" ({resolved.date} {resolved.start_time}-{resolved.end_time}).',
            data={"id": resolved.id, "block": resolved.model_dump(mode="json")},
        )

    def entries(self) -> List[ToolEntry]:
        locator_params = [
            ParameterMetadata(
                name="block_id", importance=ParameterImportance.HIGH, on_missing=OnMissing.SKIP,
                explanation="Use when the id is known from a previous result; otherwise describe the block.",
            ),
            ParameterMetadata(
                name="search_date", importance=ParameterImportance.MEDIUM, has_default=True,
                default_description="today", on_missing=OnMissing.USE_DEFAULT,
            ),
            ParameterMetadata(
                name="search_title", importance=ParameterImportance.HIGH, on_missing=OnMissing.ASK_USER,
                clarification_prompt="Which schedule block do you mean?",
                explanation="Any part of the title; several matches are returned for the user to choose.",
            ),
        ]
        return [
            ToolEntry(
                build_tool(
                    self.query_schedule, "query_schedule",
                    "List schedule blocks in a date range, optionally filtered by status, task or category.",
                    QueryScheduleArgs,
                ),
                ToolMetadata(display_name="Query schedule", description="List schedule blocks", readonly=True),
            ),
            ToolEntry(
                build_tool(
                    self.create_schedule_block, "create_schedule_block",
                    "Create a schedule block for a task or a standalone event. "
                    "Overlapping blocks are reported as a warning.",
                    CreateScheduleBlockArgs,
                ),
                ToolMetadata(
                    display_name="Create schedule block",
                    description="Create a time block",
                    parameters=[
                        ParameterMetadata(
                            name="type", importance=ParameterImportance.HIGH, has_default=True,
                            default_description="event", on_missing=OnMissing.USE_DEFAULT,
                            explanation="Use task when the user refers to one of their tasks.",
                        ),
                        ParameterMetadata(
                            name="task_id", importance=ParameterImportance.CRITICAL, on_missing=OnMissing.ASK_USER,
                            clarification_prompt="Which task do you want to schedule? "
                                                 "If this is a standalone event, what is its title?",
                            explanation="Required for task blocks; never guess it.",
                        ),
                        ParameterMetadata(
                            name="title", importance=ParameterImportance.CRITICAL, on_missing=OnMissing.ASK_USER,
                            clarification_prompt="What is the title of this event?",
                        ),
                        ParameterMetadata(
                            name="date", importance=ParameterImportance.CRITICAL, required=True,
                            on_missing=OnMissing.ASK_USER, clarification_prompt="Which day should this be on?",
                        ),
                        ParameterMetadata(
                            name="start_time", importance=ParameterImportance.CRITICAL, required=True,
                            on_missing=OnMissing.ASK_USER, clarification_prompt="What time should it start?",
                        ),
                        ParameterMetadata(
                            name="end_time", importance=ParameterImportance.MEDIUM, has_default=True,
                            default_description="one hour after start_time", on_missing=OnMissing.USE_DEFAULT,
                        ),
                        ParameterMetadata(name="comment", importance=ParameterImportance.LOW),
                        ParameterMetadata(name="category_id", importance=ParameterImportance.LOW),
                    ],
                ),
            ),
            ToolEntry(
                build_tool(
                    self.update_schedule_block, "update_schedule_block",
                    "Change a schedule block found by block_id or by search_date plus search_title. "
                    "If several blocks match, the candidates are listed instead.",
                    UpdateScheduleBlockArgs,
                ),
                ToolMetadata(
                    display_name="Update schedule block",
                    description="Change a time block",
                    parameters=locator_params + [
                        ParameterMetadata(
                            name="new_*", importance=ParameterImportance.CRITICAL, required=True,
                            on_missing=OnMissing.ASK_USER, clarification_prompt="What should change?",
                            explanation="At least one new_ field is required.",
                        ),
                    ],
                ),
            ),
            ToolEntry(
                build_tool(
                    self.delete_schedule_block, "delete_schedule_block",
                    "Delete a schedule block found by block_id or by search_date plus search_title.",
                    BlockLocatorArgs,
                ),
                ToolMetadata(
                    display_name="Delete schedule block",
                    description="Remove a time block",
                    parameters=locator_params,
                ),
            ),
        ]
