from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, NamedTuple, Optional, Union

from langchain_core.tools import BaseTool
from pydantic import BaseModel, ConfigDict, Field

from lifeagent.domain.models.base import utc_now


class ToolCategory(str, Enum):
    """Tool categories"""
    SYSTEM = "system"
    CALCULATION = "calculation"
    SCHEDULE = "schedule"
    TASKS = "tasks"
    QUEST = "quest"
    MEMORY = "memory"
    EXPENSE = "expense"
    VISION = "vision"


CATEGORY_PRIORITY: Dict[str, int] = {
    "system": 1,
    "calculation": 2,
    "schedule": 3,
    "tasks": 4,
    "quest": 5,
    "memory": 6,
    "expense": 7,
    "vision": 8,
}

CATEGORY_DESCRIPTIONS: Dict[str, str] = {
    "system": "Current time, dates and tool documentation",
    "calculation": "Basic arithmetic",
    "schedule": "Time blocks on the user's calendar",
    "tasks": "The user's task tree",
    "quest": "Long-running goals",
    "memory": "Remembered facts about the user",
    "expense": "Expense records and currency conversion",
    "vision": "Image understanding",
}

UNKNOWN_CATEGORY_PRIORITY = 999


def category_key(category: Union[str, ToolCategory, None]) -> Optional[str]:
    if isinstance(category, Enum):
        return category.value
    return category


def category_priority(category: Union[str, ToolCategory, None]) -> int:
    return CATEGORY_PRIORITY.get(category_key(category), UNKNOWN_CATEGORY_PRIORITY)


class ParameterImportance(str, Enum):
    """How much a parameter matters to the outcome"""
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class OnMissing(str, Enum):
    """What the agent should do when a parameter is missing"""
    ASK_USER = "ask_user"
    USE_DEFAULT = "use_default"
    SKIP = "skip"


class ParameterMetadata(BaseModel):
    """Documentation-only parameter hints; never enforced on calls"""
    name: str
    importance: ParameterImportance
    required: bool = False
    has_default: bool = False
    default_description: Optional[str] = None
    on_missing: OnMissing = OnMissing.SKIP
    clarification_prompt: Optional[str] = None
    explanation: Optional[str] = None


class ToolMetadata(BaseModel):
    """Registry metadata for a tool"""
    category: Optional[str] = None
    display_name: str = ""
    description: str = ""
    readonly: bool = False
    enabled: bool = True
    requires_permission: bool = False
    version: str = "1.0.0"
    author: Optional[str] = None
    parameters: Optional[List[ParameterMetadata]] = None


class ToolRegistrationOptions(BaseModel):
    overwrite: bool = False
    validate_tool: bool = Field(True, alias="validate")

    model_config = ConfigDict(populate_by_name=True)


class ToolQueryFilter(BaseModel):
    """Filter for registry queries"""
    categories: Optional[List[str]] = None
    enabled_only: bool = True
    readonly_only: Optional[bool] = None
    name_pattern: Optional[str] = None


class RegisteredTool(BaseModel):
    """A tool and its metadata as held by the registry"""
    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    name: str
    tool: BaseTool
    metadata: ToolMetadata
    registered_at: datetime = Field(default_factory=utc_now)


class ToolEntry(NamedTuple):
    """A tool paired with its metadata, ready for registration"""
    tool: BaseTool
    metadata: ToolMetadata


class ToolResultKind(str, Enum):
    """Outcome of a tool call"""
    OK = "ok"
    WARNING = "warning"
    ERROR = "error"
    AMBIGUOUS = "ambiguous"


class ToolResult(BaseModel):
    """Tagged tool outcome.

    `text` is what the LLM reads. `kind` and `data` let the orchestrator
    branch on the outcome without inspecting the text.
    """
    kind: ToolResultKind
    text: str
    data: Optional[Dict[str, Any]] = None

    @classmethod
    def ok(cls, text: str, data: Optional[Dict[str, Any]] = None) -> "ToolResult":
        return cls(kind=ToolResultKind.OK, text=text, data=data)

    @classmethod
    def warning(cls, text: str, data: Optional[Dict[str, Any]] = None) -> "ToolResult":
        return cls(kind=ToolResultKind.WARNING, text=text, data=data)

    @classmethod
    def error(cls, text: str, data: Optional[Dict[str, Any]] = None) -> "ToolResult":
        if not text.lower().startswith("error"):
            text = f"Error: {text}"
        return cls(kind=ToolResultKind.ERROR, text=text, data=data)

    @classmethod
    def ambiguous(cls, text: str, data: Optional[Dict[str, Any]] = None) -> "ToolResult":
        return cls(kind=ToolResultKind.AMBIGUOUS, text=text, data=data)

    @property
    def succeeded(self) -> bool:
        return self.kind in (ToolResultKind.OK, ToolResultKind.WARNING)
