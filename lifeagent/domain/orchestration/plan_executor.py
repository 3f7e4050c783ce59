import re
import time
from typing import Any, Dict, List, Mapping

import structlog

from lifeagent.domain.errors import PlanValidationError
from lifeagent.domain.models.execution_plan import (
    ExecutionLog,
    ExecutionPlan,
    ExecutionResult,
    ExecutionStep,
    StepStatus,
)
from lifeagent.domain.tool.tool_executor import ToolExecutor
from lifeagent.domain.tool.tool_registry import ToolRegistry

logger = structlog.get_logger(__name__)

PLACEHOLDER = re.compile(r"\{\{\s*([\w\-]+(?:\.[\w\-]+)*)\s*\}\}")


class UnresolvedPlaceholderError(ValueError):
    pass


def validate_plan(plan: ExecutionPlan, registry: ToolRegistry) -> None:
    """Reject plans that reference unknown tools or have a broken dependency graph"""
    ids = {step.id for step in plan.steps}
    for step in plan.steps:
        if not registry.has(step.action):
            raise PlanValidationError(f"Step {step.id} uses unknown action '{step.action}'")
        for dep in step.depends_on:
            if dep == step.id:
                raise PlanValidationError(f"Step {step.id} depends on itself")
            if dep not in ids:
                raise PlanValidationError(f"Step {step.id} depends on unknown step '{dep}'")

    # Kahn's algorithm; anything left over sits on a cycle
    indegree = {step.id: len(set(step.depends_on)) for step in plan.steps}
    dependents: Dict[str, List[str]] = {step.id: [] for step in plan.steps}
    for step in plan.steps:
        for dep in set(step.depends_on):
            dependents[dep].append(step.id)
    queue = [sid for sid, degree in indegree.items() if degree == 0]
    visited = 0
    while queue:
        current = queue.pop()
        visited += 1
        for child in dependents[current]:
            indegree[child] -= 1
            if indegree[child] == 0:
                queue.append(child)
    if visited != len(plan.steps):
        cyclic = sorted(sid for sid, degree in indegree.items() if degree > 0)
        raise PlanValidationError(f"Plan has a dependency cycle between steps: {', '.join(cyclic)}")


def _lookup(path: str, context: Mapping[str, Any]) -> Any:
    value: Any = context
    for key in path.split("."):
        if isinstance(value, Mapping) and key in value:
            value = value[key]
        elif isinstance(value, list) and key.isdigit() and int(key) < len(value):
            value = value[int(key)]
        else:
            raise UnresolvedPlaceholderError(f"Cannot resolve {{{{{path}}}}}")
    return value


def resolve_placeholders(value: Any, context: Mapping[str, Any]) -> Any:
    """Substitute {{stepN.data.x}} references with results of earlier steps"""
    if isinstance(value, dict):
        return {k: resolve_placeholders(v, context) for k, v in value.items()}
    if isinstance(value, list):
        return [resolve_placeholders(v, context) for v in value]
    if not isinstance(value, str):
        return value

    whole = PLACEHOLDER.fullmatch(value.strip())
    if whole:
        # keep the original type, e.g. an integer id
        return _lookup(whole.group(1), context)
    return PLACEHOLDER.sub(lambda m: str(_lookup(m.group(1), context)), value)


class PlanExecutor:
    """Executes confirmed plans through the tool executor.

    Steps run in waves: a step starts once all of its dependencies reached
    a terminal status. A step whose dependency did not complete is skipped.
    Once started, a plan runs to the end; steps cannot be cancelled mid-flight.
    """

    def __init__(self, registry: ToolRegistry, tool_executor: ToolExecutor):
        self.registry = registry
        self.tool_executor = tool_executor

    def cancel(self, plan: ExecutionPlan) -> ExecutionResult:
        logger.info("Execution plan cancelled", steps=len(plan.steps), summary=plan.summary)
        return ExecutionResult(success=False, cancelled=True, summary="Plan cancelled; nothing was changed.")

    async def execute(self, plan: ExecutionPlan) -> ExecutionResult:
        try:
            validate_plan(plan, self.registry)
        except PlanValidationError as e:
            logger.warning("Rejected execution plan", error=str(e))
            return ExecutionResult(success=False, error=str(e))

        status: Dict[str, StepStatus] = {step.id: StepStatus.PENDING for step in plan.steps}
        context: Dict[str, Any] = {}
        logs: List[ExecutionLog] = []
        errors: Dict[str, str] = {}

        logger.info("Executing plan", steps=len(plan.steps), summary=plan.summary)
        while any(s == StepStatus.PENDING for s in status.values()):
            ready = [
                step for step in plan.steps
                if status[step.id] == StepStatus.PENDING
                and all(status[dep].terminal for dep in step.depends_on)
            ]

            runnable: List[ExecutionStep] = []
            calls = []
            for step in ready:
                blocked = [dep for dep in step.depends_on if status[dep] != StepStatus.COMPLETED]
                if blocked:
                    status[step.id] = StepStatus.SKIPPED
                    errors[step.id] = f"skipped because {', '.join(blocked)} did not complete"
                    logs.append(ExecutionLog(step_id=step.id, tool=step.action, input=step.params,
                                             output=errors[step.id], status=StepStatus.SKIPPED))
                    continue
                try:
                    args = resolve_placeholders(step.params, context)
                except UnresolvedPlaceholderError as e:
                    status[step.id] = StepStatus.FAILED
                    errors[step.id] = str(e)
                    logs.append(ExecutionLog(step_id=step.id, tool=step.action, input=step.params,
                                             output=str(e), status=StepStatus.FAILED))
                    continue
                runnable.append(step)
                calls.append({"name": step.action, "args": args, "id": step.id})

            started = time.perf_counter()
            executions = await self.tool_executor.execute_batch(calls)
            for step, execution in zip(runnable, executions):
                result = execution.result
                step_status = StepStatus.COMPLETED if result.succeeded else StepStatus.FAILED
                status[step.id] = step_status
                context[step.id] = {"text": result.text, "kind": result.kind.value, "data": result.data or {}}
                if step_status == StepStatus.FAILED:
                    errors[step.id] = result.text
                logs.append(ExecutionLog(
                    step_id=step.id,
                    tool=step.action,
                    input=execution.args,
                    output=result.text,
                    kind=result.kind,
                    status=step_status,
                    timestamp=execution.started_at,
                    duration_ms=execution.duration_ms,
                ))
            if runnable:
                logger.debug("Plan wave finished", steps=[s.id for s in runnable],
                             duration_ms=round((time.perf_counter() - started) * 1000, 2))

        completed = sum(1 for s in status.values() if s == StepStatus.COMPLETED)
        success = completed == len(plan.steps)
        failed_step = next((step.id for step in plan.steps if step.id in errors), None)
        summary = f"Completed {completed} of {len(plan.steps)} steps."
        if success:
            summary = f"{plan.summary} Completed {completed} of {len(plan.steps)} steps.".strip()

        logger.info("Plan executed", success=success, completed=completed, failed_step=failed_step)
        return ExecutionResult(
            success=success,
            summary=summary,
            error=errors.get(failed_step) if failed_step else None,
            failed_step=failed_step,
            logs=logs,
            context=context,
        )
