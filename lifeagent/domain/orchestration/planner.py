import structlog
from langchain_core.messages import HumanMessage
from pydantic import ValidationError

from lifeagent.domain.errors import DecisionDecodeError, PlanGenerationError, PlanValidationError
from lifeagent.domain.models.execution_plan import ExecutionPlan
from lifeagent.domain.orchestration.core.decision import extract_json
from lifeagent.domain.orchestration.core.prompts import EXECUTION_PLAN_PROMPT
from lifeagent.domain.orchestration.plan_executor import validate_plan
from lifeagent.domain.tool.tool_registry import ToolRegistry
from lifeagent.domain.tool.types import ToolQueryFilter
from lifeagent.infrastructure.llm.provider import LLMProvider, message_text

logger = structlog.get_logger(__name__)


class ExecutionPlanner:
    """Asks the LLM for a confirmable plan of write operations"""

    def __init__(self, llm: LLMProvider, registry: ToolRegistry):
        self.llm = llm
        self.registry = registry

    async def generate_plan(self, request: str, context: str = "") -> ExecutionPlan:
        actions = self.registry.query(ToolQueryFilter(readonly_only=False))
        if not actions:
            raise PlanGenerationError("No write actions are available")

        prompt = EXECUTION_PLAN_PROMPT.format(
            actions="\n".join(f"- {t.name}: {t.tool.description}" for t in actions),
            context=context or "(none)",
            request=request,
        )
        try:
            response = await self.llm.invoke([HumanMessage(content=prompt)])
            plan = ExecutionPlan.model_validate(extract_json(message_text(response), dict))
            validate_plan(plan, self.registry)
        except (DecisionDecodeError, ValidationError, PlanValidationError) as e:
            logger.warning("Planner produced an unusable plan", error=str(e))
            raise PlanGenerationError(f"Could not build a plan: {e}") from e

        logger.info("Execution plan generated", steps=len(plan.steps), multi_step=plan.is_multi_step)
        return plan
