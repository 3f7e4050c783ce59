from typing import Awaitable, Callable, Type

import structlog
from langchain_core.tools import StructuredTool
from pydantic import BaseModel

from lifeagent.domain.tool.types import ToolResult

logger = structlog.get_logger(__name__)

ToolFunc = Callable[..., Awaitable[ToolResult]]


class NoArgs(BaseModel):
    """Schema for tools without parameters"""


def build_tool(
    func: ToolFunc,
    name: str,
    description: str,
    args_schema: Type[BaseModel] = NoArgs
) -> StructuredTool:
    """Wrap an async function returning ToolResult as a LangChain tool.

    The tool uses the content_and_artifact response format: the model sees
    the result text and the ToolMessage artifact carries the ToolResult.
    """

    async def _run(**kwargs) -> tuple:
        try:
            result = await func(**kwargs)
        except Exception as e:
            logger.exception("Tool raised", tool_name=name)
            result = ToolResult.error(f"{name} failed: {e}")
        return result.text, result

    return StructuredTool.from_function(
        coroutine=_run,
        name=name,
        description=description,
        args_schema=args_schema,
        response_format="content_and_artifact",
    )
