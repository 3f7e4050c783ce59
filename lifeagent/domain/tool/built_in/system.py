from datetime import datetime
from typing import Callable, List, Optional
from zoneinfo import ZoneInfo

from pydantic import BaseModel, Field

from lifeagent.domain.tool.builder import build_tool
from lifeagent.domain.tool.built_in.schedule_utils import DateParseError, parse_date_string
from lifeagent.domain.tool.tool_registry import ToolRegistry
from lifeagent.domain.tool.types import (
    OnMissing,
    ParameterImportance,
    ParameterMetadata,
    ToolEntry,
    ToolMetadata,
    ToolResult,
)


class DateDifferenceArgs(BaseModel):
    start_date: str = Field(description="YYYY-MM-DD or a relative date such as today")
    end_date: str = Field(description="YYYY-MM-DD or a relative date such as tomorrow")


class ToolDocumentationArgs(BaseModel):
    tool_name: str = Field(description="Name of the tool to document")


class SystemTools:
    """Clock, calendar and self-documentation tools"""

    def __init__(
        self,
        registry: ToolRegistry,
        timezone: str = "UTC",
        now: Optional[Callable[[], datetime]] = None
    ):
        self.registry = registry
        self.tz = ZoneInfo(timezone)
        self._now = now or (lambda: datetime.now(self.tz))

    def now(self) -> datetime:
        return self._now().astimezone(self.tz)

    async def get_current_time(self) -> ToolResult:
        now = self.now()
        return ToolResult.ok(
            f"Current time: {now:%Y-%m-%d %H:%M:%S} ({now:%A}, {self.tz.key})",
            data={"iso": now.isoformat()},
        )

    async def get_current_date(self) -> ToolResult:
        today = self.now().date()
        return ToolResult.ok(f"Today is {today.isoformat()} ({today:%A})", data={"date": today.isoformat()})

    async def date_difference(self, start_date: str, end_date: str) -> ToolResult:
        today = self.now().date()
        try:
            start = datetime.fromisoformat(parse_date_string(start_date, today)).date()
            end = datetime.fromisoformat(parse_date_string(end_date, today)).date()
        except DateParseError as e:
            return ToolResult.error(str(e))
        days = abs((end - start).days)
        return ToolResult.ok(f"{days} days between {start} and {end}", data={"days": days})

    async def get_tool_documentation(self, tool_name: str) -> ToolResult:
        """Render parameter guidance so the agent knows what to ask for"""
        metadata = self.registry.get_metadata(tool_name)
        if metadata is None:
            return ToolResult.error(f"Unknown tool '{tool_name}'.")

        lines = [f"# {metadata.display_name or tool_name} ({tool_name})", metadata.description]
        lines.append("Read-only" if metadata.readonly else "Modifies user data")
        if not metadata.parameters:
            lines.append("No parameter guidance available.")
            return ToolResult.ok("\n".join(lines))

        lines.append("Parameters:")
        for param in metadata.parameters:
            flags = [param.importance.value]
            if param.required:
                flags.append("required")
            if param.has_default:
                flags.append(f"default: {param.default_description or 'yes'}")
            flags.append(f"if missing: {param.on_missing.value}")
            lines.append(f"- {param.name} ({', '.join(flags)})")
            if param.clarification_prompt:
                lines.append(f'  ask: "{param.clarification_prompt}"')
            if param.explanation:
                lines.append(f"  note: {param.explanation}")
        return ToolResult.ok("\n".join(lines))

    def entries(self) -> List[ToolEntry]:
        return [
            ToolEntry(
                build_tool(self.get_current_time, "get_current_time", "Get the current date, time and weekday."),
                ToolMetadata(display_name="Current time", description="Current time", readonly=True),
            ),
            ToolEntry(
                build_tool(self.get_current_date, "get_current_date", "Get today's date and weekday."),
                ToolMetadata(display_name="Current date", description="Today's date", readonly=True),
            ),
            ToolEntry(
                build_tool(
                    self.date_difference, "date_difference",
                    "Number of days between two dates.", DateDifferenceArgs,
                ),
                ToolMetadata(
                    display_name="Date difference",
                    description="Days between dates",
                    readonly=True,
                    parameters=[
                        ParameterMetadata(name="start_date", importance=ParameterImportance.CRITICAL, required=True,
                                          on_missing=OnMissing.ASK_USER),
                        ParameterMetadata(name="end_date", importance=ParameterImportance.CRITICAL, required=True,
                                          on_missing=OnMissing.ASK_USER),
                    ],
                ),
            ),
            ToolEntry(
                build_tool(
                    self.get_tool_documentation, "get_tool_documentation",
                    "Explain a tool's parameters: which matter, which have defaults, "
                    "and how to ask the user for missing ones. Call before using an unfamiliar tool.",
                    ToolDocumentationArgs,
                ),
                ToolMetadata(display_name="Tool documentation", description="Parameter guidance", readonly=True),
            ),
        ]
