import asyncio
import time
import uuid
from collections import OrderedDict
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional

import structlog
from langchain_core.messages import ToolMessage
from pydantic import BaseModel, ConfigDict, Field

from lifeagent.domain.models.base import utc_now
from lifeagent.domain.tool.tool_registry import ToolRegistry
from lifeagent.domain.tool.tool_validator import ToolParameterValidator
from lifeagent.domain.tool.types import ToolQueryFilter, ToolResult, ToolResultKind, category_key
from lifeagent.infrastructure.observability.logging import agent_logger

logger = structlog.get_logger(__name__)


class ToolExecution(BaseModel):
    """Result of one tool invocation"""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    call_id: str
    name: str
    args: Dict[str, Any] = Field(default_factory=dict)
    result: ToolResult
    readonly: bool = True
    started_at: datetime = Field(default_factory=utc_now)
    duration_ms: float = 0.0

    def to_message(self) -> ToolMessage:
        return ToolMessage(
            content=self.result.text,
            tool_call_id=self.call_id,
            name=self.name,
            artifact=self.result,
            status="error" if self.result.kind == ToolResultKind.ERROR else "success",
        )


class ToolExecutor:
    """Runs tool calls against the registry and never lets a failure escape.

    Within a batch, read-only calls run concurrently. Mutating calls are
    grouped by tool category; each group runs one call at a time in the
    order requested, so two writes to the same kind of record cannot
    interleave their checks and updates.
    """

    def __init__(self, registry: ToolRegistry, validator: Optional[ToolParameterValidator] = None):
        self.registry = registry
        self.validator = validator or ToolParameterValidator()

    async def execute(self, call: Mapping[str, Any]) -> ToolExecution:
        """Execute one call of the form {name, args, id}"""
        name = call.get("name") or ""
        args = dict(call.get("args") or {})
        call_id = call.get("id") or f"call_{uuid.uuid4().hex[:12]}"
        started = time.perf_counter()
        started_at = utc_now()

        registered = self.registry.get_registered(name)
        readonly = registered.metadata.readonly if registered else True
        if registered is None:
            available = ", ".join(t.name for t in self.registry.query(ToolQueryFilter()))
            result = ToolResult.error(f"Unknown tool '{name}'. Available tools: {available}")
        else:
            validation = self.validator.validate_tool_call(registered.tool, registered.metadata, args)
            if not validation.is_valid:
                result = ToolResult.error(f"Invalid arguments for {name}: " + "; ".join(validation.errors))
            else:
                result = await self._invoke(registered.tool, name, args, call_id)

        duration_ms = (time.perf_counter() - started) * 1000
        agent_logger.log_tool_execution(
            tool_name=name,
            input_data=args,
            result_kind=result.kind.value,
            duration_ms=round(duration_ms, 2),
            success=result.succeeded,
            error=result.text if result.kind == ToolResultKind.ERROR else None,
        )
        return ToolExecution(
            call_id=call_id,
            name=name,
            args=args,
            result=result,
            readonly=readonly,
            started_at=started_at,
            duration_ms=duration_ms,
        )

    async def _invoke(self, tool, name: str, args: Dict[str, Any], call_id: str) -> ToolResult:
        try:
            output = await tool.ainvoke({"type": "tool_call", "name": name, "args": args, "id": call_id})
        except Exception as e:
            logger.exception("Tool execution failed", tool_name=name)
            return ToolResult.error(f"{name} failed: {e}")

        artifact = getattr(output, "artifact", None)
        if isinstance(artifact, ToolResult):
            return artifact
        content = getattr(output, "content", output)
        return ToolResult.ok(content if isinstance(content, str) else str(content))

    async def execute_batch(self, calls: List[Mapping[str, Any]]) -> List[ToolExecution]:
        """Execute sibling calls; results come back in request order"""
        if not calls:
            return []

        readonly_idx: List[int] = []
        groups: "OrderedDict[str, List[int]]" = OrderedDict()
        for idx, call in enumerate(calls):
            metadata = self.registry.get_metadata(call.get("name") or "")
            if metadata is None or metadata.readonly:
                readonly_idx.append(idx)
            else:
                groups.setdefault(category_key(metadata.category) or "", []).append(idx)

        results: List[Optional[ToolExecution]] = [None] * len(calls)

        async def run_one(idx: int):
            results[idx] = await self.execute(calls[idx])

        async def run_group(indices: List[int]):
            for idx in indices:
                await run_one(idx)

        await asyncio.gather(
            *(run_one(idx) for idx in readonly_idx),
            *(run_group(indices) for indices in groups.values()),
        )
        logger.debug("Tool batch executed", calls=len(calls), write_groups=list(groups))
        return results
