import json
import uuid
from datetime import datetime
from typing import Any, AsyncIterator, Callable, Dict, List, Literal, Mapping, Optional, Sequence, Tuple, Union
from zoneinfo import ZoneInfo

import structlog
from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage, ToolMessage
from langchain_core.tools import BaseTool
from langgraph.errors import GraphRecursionError
from langgraph.graph import END, START, StateGraph
from pydantic import ValidationError

from lifeagent.application.schema.events import BaseEvent
from lifeagent.domain.errors import (
    DecisionDecodeError,
    LLMUnavailableError,
    NoUsableReplyError,
    OrchestrationError,
)
from lifeagent.domain.models.agent_state import (
    AgentPlan,
    AgentResponse,
    AgentState,
    ChatTurn,
    PlanStep,
    ReflectionQuality,
    ReflectionResult,
    ToolCallInfo,
)
from lifeagent.domain.models.base import utc_now
from lifeagent.domain.models.conversation_state import (
    ConversationState,
    EntityRef,
    Intent,
    build_context_prompt,
    restore_state,
    touch,
    update_focus,
    update_intent,
)
from lifeagent.domain.models.execution_plan import (
    ExecutionPlan,
    ExecutionResult,
    ExecutionStep,
    PendingActionConfirmation,
    PendingTaskAction,
    PlanConfirmation,
    TaskOperation,
)
from lifeagent.domain.orchestration.core.decision import (
    ContentDecision,
    ToolCallsDecision,
    decode_decision,
    extract_json,
)
from lifeagent.domain.orchestration.core.prompts import (
    AGENT_PROMPT,
    LEARNINGS_PROMPT,
    PLANNING_PROMPT,
    REFLECTION_PROMPT,
)
from lifeagent.domain.orchestration.plan_executor import PlanExecutor
from lifeagent.domain.orchestration.planner import ExecutionPlanner
from lifeagent.domain.streaming.streaming_handler import StreamingHandler
from lifeagent.domain.tool.built_in.tasks import validate_task_params
from lifeagent.domain.tool.tool_executor import ToolExecutor
from lifeagent.domain.tool.tool_registry import ToolRegistry
from lifeagent.domain.tool.types import ToolResult
from lifeagent.infrastructure.config import Settings, settings as default_settings
from lifeagent.infrastructure.llm.provider import LLMProvider, message_text
from lifeagent.infrastructure.observability.logging import agent_logger

logger = structlog.get_logger(__name__)

PLANNING = "planning"
AGENT = "agent"
TOOLS = "tools"
REFLECTION = "reflection"
SUMMARY = "summary"

AWAITING_CONFIRMATION = "Not executed yet: waiting for the user to confirm."
TASK_ACTIONS = {"create_task": TaskOperation.CREATE, "update_task": TaskOperation.UPDATE}
INTENT_PREFIXES = (
    ("create_", Intent.CREATE),
    ("update_", Intent.UPDATE),
    ("complete_", Intent.UPDATE),
    ("delete_", Intent.DELETE),
    ("query_", Intent.QUERY),
)


class AgentOrchestrator:
    """Five-stage agent graph: planning, agent, tools, reflection, summary.

    Two counters in the state bound every turn. `tool_rounds_remaining`
    drops on each Tools pass; once it hits zero the Agent runs without
    tools and must answer in text. `iterations_remaining` drops on each
    Reflection pass; once it hits zero the turn goes to Summary whatever
    the reflection said.
    """

    def __init__(
        self,
        llm: LLMProvider,
        registry: ToolRegistry,
        settings: Optional[Settings] = None,
        tool_executor: Optional[ToolExecutor] = None,
        streaming_handler: Optional[StreamingHandler] = None,
        clock: Callable[[], datetime] = utc_now
    ):
        self.llm = llm
        self.registry = registry
        self.settings = settings or default_settings
        self.tool_executor = tool_executor or ToolExecutor(registry)
        self.plan_executor = PlanExecutor(registry, self.tool_executor)
        self.planner = ExecutionPlanner(llm, registry)
        self.streaming_handler = streaming_handler or StreamingHandler(self.settings.CONTENT_CHUNK_SIZE)
        self.clock = clock
        self.workflow = self._create_workflow()

    def _create_workflow(self):
        """Create the agent workflow graph"""

        workflow = StateGraph(AgentState)

        workflow.add_node(PLANNING, self.planning_node)
        workflow.add_node(AGENT, self.agent_node)
        workflow.add_node(TOOLS, self.tools_node)
        workflow.add_node(REFLECTION, self.reflection_node)
        workflow.add_node(SUMMARY, self.summary_node)

        workflow.add_edge(START, PLANNING)
        workflow.add_edge(PLANNING, AGENT)
        workflow.add_conditional_edges(
            AGENT,
            self.route_after_agent,
            {TOOLS: TOOLS, REFLECTION: REFLECTION, SUMMARY: SUMMARY}
        )
        workflow.add_conditional_edges(
            TOOLS,
            self.route_after_tools,
            {AGENT: AGENT, SUMMARY: SUMMARY}
        )
        workflow.add_conditional_edges(
            REFLECTION,
            self.route_after_reflection,
            {AGENT: AGENT, SUMMARY: SUMMARY}
        )
        workflow.add_edge(SUMMARY, END)

        return workflow.compile()

    # Nodes

    async def planning_node(self, state: AgentState) -> Dict[str, Any]:
        """Break a non-trivial request into a goal and steps"""
        logger.info("Planning", thread_id=state["thread_id"])

        if not self.settings.ENABLE_PLANNING:
            return {"plan": None, "thoughts": ["Planning disabled"]}

        prompt = PLANNING_PROMPT.format(
            context=build_context_prompt(state["conversation_state"]) or "(none)",
            request=self._latest_request(state),
        )
        try:
            response = await self.llm.invoke([HumanMessage(content=prompt)])
            data = extract_json(message_text(response), dict)
        except (LLMUnavailableError, DecisionDecodeError) as e:
            logger.warning("Planning failed, continuing without a plan", error=str(e))
            return {"plan": None, "warnings": [f"Planning skipped: {e}"]}

        steps = []
        for raw in data.get("steps") or []:
            description = raw.get("description") if isinstance(raw, dict) else raw
            if description:
                steps.append(PlanStep(description=str(description)))

        if not steps:
            return {"plan": None, "thoughts": ["Simple request, no plan needed"]}

        plan = AgentPlan(goal=str(data.get("goal") or self._latest_request(state)), steps=steps)
        return {"plan": plan, "thoughts": [f"Goal: {plan.goal} ({len(steps)} steps)"]}

    async def agent_node(self, state: AgentState) -> Dict[str, Any]:
        """Ask the LLM for a reply or for tool calls"""
        passes = state["agent_passes"] + 1
        tools_allowed = state["tool_rounds_remaining"] > 0
        tools = self.registry.get_enabled_tools() if tools_allowed else []
        logger.info("Agent pass", thread_id=state["thread_id"], agent_pass=passes, tools=len(tools))

        messages = [SystemMessage(content=self._system_prompt(state, tools))] + self._conversation_window(state)
        response = await self.llm.invoke(messages, tools or None)

        update: Dict[str, Any] = {"agent_passes": passes}
        warnings = []
        try:
            decision: Union[ContentDecision, ToolCallsDecision] = decode_decision(response)
        except DecisionDecodeError as e:
            logger.warning("Agent decision could not be decoded", error=str(e))
            warnings.append(f"Could not decode agent decision: {e}")
            decision = ContentDecision(text=message_text(response))

        if isinstance(decision, ToolCallsDecision) and tools_allowed:
            calls = [call.as_call() for call in decision.calls]
            update["messages"] = [AIMessage(content=decision.text, tool_calls=calls)]
            update["thoughts"] = [f"Calling tools: {', '.join(c['name'] for c in calls)}"]
        else:
            if isinstance(decision, ToolCallsDecision):
                warnings.append("Tool round limit reached; ignored requested tool calls")
            update["messages"] = [AIMessage(content=decision.text)]
            update["thoughts"] = ["Drafted a reply"]

        if warnings:
            update["warnings"] = warnings
        return update

    async def tools_node(self, state: AgentState) -> Dict[str, Any]:
        """Execute requested tools, deferring writes when confirmation is required"""
        last = state["messages"][-1]
        calls = list(last.tool_calls) if isinstance(last, AIMessage) else []
        logger.info("Executing tools", thread_id=state["thread_id"], calls=[c["name"] for c in calls])

        to_run, deferred = [], []
        for call in calls:
            metadata = self.registry.get_metadata(call["name"])
            if state["require_confirmation"] and metadata is not None and not metadata.readonly:
                deferred.append(call)
            else:
                to_run.append(call)

        executions = await self.tool_executor.execute_batch(to_run)
        messages: List[BaseMessage] = [execution.to_message() for execution in executions]
        infos = [
            ToolCallInfo(
                name=e.name,
                args=e.args,
                result=e.result.text,
                kind=e.result.kind,
                timestamp=e.started_at,
            )
            for e in executions
        ]

        update: Dict[str, Any] = {
            "tool_calls": infos,
            "tool_rounds_remaining": state["tool_rounds_remaining"] - 1,
            "thoughts": [f"Executed {len(executions)} tool calls"],
        }
        if state.get("plan"):
            update["plan"] = state["plan"].mark_progress(len(executions))

        if deferred:
            messages.extend(
                ToolMessage(content=AWAITING_CONFIRMATION, tool_call_id=call["id"], name=call["name"])
                for call in deferred
            )
            update.update(self._defer_for_confirmation(deferred))

        update["messages"] = messages
        return update

    async def reflection_node(self, state: AgentState) -> Dict[str, Any]:
        """Judge the latest reply; each pass uses up one iteration"""
        remaining = state["iterations_remaining"] - 1
        reply = self._latest_reply(state)
        warnings = []

        if reply is None:
            result = ReflectionResult(
                quality=ReflectionQuality.NEEDS_IMPROVEMENT,
                issues=["No reply was produced"],
                suggestions=["Answer the user directly using the tool results"],
            )
        else:
            prompt = REFLECTION_PROMPT.format(
                request=self._latest_request(state),
                tool_results=self._turn_tool_results(state) or "(none)",
                reply=reply,
            )
            try:
                response = await self.llm.invoke([HumanMessage(content=prompt)])
                result = ReflectionResult.model_validate(extract_json(message_text(response), dict))
            except (LLMUnavailableError, DecisionDecodeError, ValidationError) as e:
                logger.warning("Reflection failed, accepting reply", error=str(e))
                warnings.append(f"Reflection skipped: {e}")
                result = ReflectionResult()

        logger.info(
            "Reflection",
            thread_id=state["thread_id"],
            quality=result.quality.value,
            iterations_remaining=remaining,
        )
        update = {
            "reflection_result": result,
            "iterations_remaining": remaining,
            "thoughts": [f"Reflection: {result.quality.value}"],
        }
        if warnings:
            update["warnings"] = warnings
        return update

    async def summary_node(self, state: AgentState) -> Dict[str, Any]:
        """Compile the final reply, learnings and next conversation state"""
        deferred_reply = state.get("reply")
        reply = deferred_reply or self._latest_reply(state)
        if not reply:
            raise NoUsableReplyError("The agent finished without a usable reply")

        update: Dict[str, Any] = {
            "reply": reply,
            "conversation_state": self._next_conversation_state(state),
            "thoughts": ["Summary compiled"],
        }
        if deferred_reply:
            update["messages"] = [AIMessage(content=deferred_reply)]

        if self.settings.ENABLE_LEARNINGS:
            learnings, warning = await self._extract_learnings(state, reply)
            if learnings:
                update["learnings"] = learnings
            if warning:
                update["warnings"] = [warning]
        return update

    # Routers

    def route_after_agent(self, state: AgentState) -> Literal["tools", "reflection", "summary"]:
        last = state["messages"][-1]
        if isinstance(last, AIMessage) and last.tool_calls and state["tool_rounds_remaining"] > 0:
            target = TOOLS
        elif self.settings.ENABLE_REFLECTION and state["iterations_remaining"] > 0:
            target = REFLECTION
        else:
            target = SUMMARY
        agent_logger.log_workflow_transition(state["thread_id"], AGENT, target)
        return target

    def route_after_tools(self, state: AgentState) -> Literal["agent", "summary"]:
        if state.get("execution_plan") or state.get("pending_action"):
            target, condition = SUMMARY, "awaiting_confirmation"
        else:
            target, condition = AGENT, None
        agent_logger.log_workflow_transition(state["thread_id"], TOOLS, target, condition)
        return target

    def route_after_reflection(self, state: AgentState) -> Literal["agent", "summary"]:
        result = state.get("reflection_result")
        needs_work = result is not None and result.quality == ReflectionQuality.NEEDS_IMPROVEMENT
        if needs_work and state["iterations_remaining"] > 0:
            target = AGENT
        else:
            target = SUMMARY
        agent_logger.log_workflow_transition(
            state["thread_id"], REFLECTION, target,
            condition=result.quality.value if result else None,
            state_summary={"iterations_remaining": state["iterations_remaining"]},
        )
        return target

    # Public API

    async def run_turn(
        self,
        message: str,
        thread_id: Optional[str] = None,
        history: Optional[Sequence[Union[ChatTurn, Mapping[str, Any]]]] = None,
        conversation_state: Union[None, ConversationState, Mapping[str, Any]] = None,
        require_confirmation: Optional[bool] = None
    ) -> AgentResponse:
        """Run one user turn to completion"""
        initial = self._initial_state(message, thread_id, history, conversation_state, require_confirmation)
        try:
            final = await self.workflow.ainvoke(initial, config=self._run_config())
        except GraphRecursionError as e:
            raise OrchestrationError(f"Agent loop exceeded its step limit: {e}") from e
        return self._build_response(final)

    async def stream_turn(
        self,
        message: str,
        thread_id: Optional[str] = None,
        history: Optional[Sequence[Union[ChatTurn, Mapping[str, Any]]]] = None,
        conversation_state: Union[None, ConversationState, Mapping[str, Any]] = None,
        require_confirmation: Optional[bool] = None
    ) -> AsyncIterator[BaseEvent]:
        """Run one user turn, yielding stream events as the graph progresses"""
        try:
            initial = self._initial_state(message, thread_id, history, conversation_state, require_confirmation)
        except OrchestrationError as e:
            yield self.streaming_handler.error(str(e))
            return

        final: Optional[Dict[str, Any]] = None
        try:
            async for mode, chunk in self.workflow.astream(
                initial, config=self._run_config(), stream_mode=["updates", "values"]
            ):
                if mode == "updates":
                    for event in self.streaming_handler.handle_update(chunk):
                        yield event
                else:
                    final = chunk
        except OrchestrationError as e:
            yield self.streaming_handler.error(str(e))
            return
        except GraphRecursionError:
            yield self.streaming_handler.error("Agent loop exceeded its step limit")
            return
        except Exception as e:
            logger.exception("Unexpected failure while streaming turn", thread_id=initial["thread_id"])
            yield self.streaming_handler.error(f"Unexpected error: {e}")
            return

        for event in self.streaming_handler.finish(self._build_response(final)):
            yield event

    async def propose_plan(
        self,
        message: str,
        conversation_state: Union[None, ConversationState, Mapping[str, Any]] = None
    ) -> ExecutionPlan:
        """Generate an execution plan for the caller to confirm"""
        state = self._restore(conversation_state)
        return await self.planner.generate_plan(message, build_context_prompt(state))

    async def resolve_plan(self, confirmation: PlanConfirmation) -> ExecutionResult:
        """Execute an approved plan or discard a rejected one"""
        if not confirmation.approved:
            return self.plan_executor.cancel(confirmation.plan)
        return await self.plan_executor.execute(confirmation.plan)

    async def stream_plan_resolution(self, confirmation: PlanConfirmation) -> AsyncIterator[BaseEvent]:
        result = await self.resolve_plan(confirmation)
        yield self.streaming_handler.execution_complete(result)

    async def resolve_pending_action(self, confirmation: PendingActionConfirmation) -> ExecutionResult:
        """Apply or discard a single pending write"""
        action = confirmation.action
        if not confirmation.approved:
            logger.info("Pending action cancelled", operation=action.operation.value)
            return ExecutionResult(success=False, cancelled=True, summary="Action cancelled; nothing was changed.")

        problems = validate_task_params(action.operation.value, action.params)
        if problems:
            return ExecutionResult(success=False, error="; ".join(problems))

        plan = ExecutionPlan(
            summary=action.description or action.tool_name,
            steps=[ExecutionStep(id="step1", action=action.tool_name, params=action.params,
                                 description=action.description)],
        )
        return await self.plan_executor.execute(plan)

    # Helpers

    def _restore(self, raw: Union[None, ConversationState, Mapping[str, Any]]) -> ConversationState:
        return restore_state(
            raw,
            now=self.clock(),
            state_ttl_seconds=self.settings.STATE_TTL_SECONDS,
            focus_ttl_seconds=self.settings.FOCUS_TTL_SECONDS,
        )

    def _initial_state(
        self,
        message: str,
        thread_id: Optional[str],
        history: Optional[Sequence[Union[ChatTurn, Mapping[str, Any]]]],
        conversation_state: Union[None, ConversationState, Mapping[str, Any]],
        require_confirmation: Optional[bool]
    ) -> AgentState:
        if not message or not message.strip():
            raise OrchestrationError("Message is empty")

        messages: List[BaseMessage] = []
        for turn in list(history or [])[-self.settings.HISTORY_WINDOW:]:
            turn = turn if isinstance(turn, ChatTurn) else ChatTurn.model_validate(turn)
            messages.append(HumanMessage(content=turn.content) if turn.role == "user" else AIMessage(content=turn.content))
        messages.append(HumanMessage(content=message.strip()))

        if require_confirmation is None:
            require_confirmation = self.settings.REQUIRE_WRITE_CONFIRMATION

        return {
            "messages": messages,
            "plan": None,
            "thoughts": [],
            "reflection_result": None,
            "learnings": [],
            "thread_id": thread_id or uuid.uuid4().hex,
            "tool_calls": [],
            "warnings": [],
            "iterations_remaining": max(1, self.settings.MAX_AGENT_ITERATIONS),
            "tool_rounds_remaining": max(0, self.settings.MAX_TOOL_ROUNDS),
            "agent_passes": 0,
            "conversation_state": self._restore(conversation_state),
            "require_confirmation": require_confirmation,
            "execution_plan": None,
            "pending_action": None,
            "reply": None,
        }

    def _run_config(self) -> Dict[str, Any]:
        # Every agent pass consumes a tool round or a reflection iteration
        passes = self.settings.MAX_TOOL_ROUNDS + max(1, self.settings.MAX_AGENT_ITERATIONS)
        return {"recursion_limit": 2 * passes + 5}

    def _build_response(self, final: Dict[str, Any]) -> AgentResponse:
        return AgentResponse(
            reply=final["reply"],
            thread_id=final["thread_id"],
            plan=final.get("plan"),
            reflection=final.get("reflection_result"),
            learnings=final.get("learnings") or [],
            thoughts=final.get("thoughts") or [],
            tool_calls=final.get("tool_calls") or [],
            warnings=final.get("warnings") or [],
            execution_plan=final.get("execution_plan"),
            pending_action=final.get("pending_action"),
            conversation_state=final["conversation_state"],
            agent_passes=final.get("agent_passes", 0),
        )

    def _latest_request(self, state: AgentState) -> str:
        for message in reversed(state["messages"]):
            if isinstance(message, HumanMessage):
                return message_text(message)
        return ""

    def _last_human_index(self, messages: List[BaseMessage]) -> int:
        for idx in range(len(messages) - 1, -1, -1):
            if isinstance(messages[idx], HumanMessage):
                return idx
        return 0

    def _latest_reply(self, state: AgentState) -> Optional[str]:
        """Text of the newest assistant reply in this turn, if any"""
        messages = state["messages"]
        for message in reversed(messages[self._last_human_index(messages):]):
            if isinstance(message, AIMessage) and not message.tool_calls:
                text = message_text(message).strip()
                if text:
                    return text
        return None

    def _turn_tool_results(self, state: AgentState) -> str:
        messages = state["messages"]
        return "\n".join(
            f"[{m.name}] {message_text(m)[:500]}"
            for m in messages[self._last_human_index(messages):]
            if isinstance(m, ToolMessage)
        )

    def _conversation_window(self, state: AgentState) -> List[BaseMessage]:
        messages = state["messages"]
        start = self._last_human_index(messages)
        current_turn = messages[start:]
        reflection = state.get("reflection_result")
        if reflection and reflection.quality == ReflectionQuality.NEEDS_IMPROVEMENT:
            # Retry from the request and tool results, without the rejected drafts
            return [m for m in current_turn if not (isinstance(m, AIMessage) and not m.tool_calls)]

        # The current turn is always sent whole; only earlier turns are windowed
        earlier = messages[:start][-self.settings.HISTORY_WINDOW:]
        while earlier and isinstance(earlier[0], ToolMessage):
            earlier = earlier[1:]
        return earlier + current_turn

    def _system_prompt(self, state: AgentState, tools: List[BaseTool]) -> str:
        now = self.clock().astimezone(ZoneInfo(self.settings.TIMEZONE))
        tool_lines = "\n".join(f"- {t.name}: {t.description}" for t in tools) or "(none; answer in text)"

        plan = ""
        if state.get("plan"):
            steps = "\n".join(f"{i}. [{s.status.value}] {s.description}" for i, s in enumerate(state["plan"].steps, 1))
            plan = f"\nCurrent plan for goal '{state['plan'].goal}':\n{steps}\n"

        context = build_context_prompt(state["conversation_state"])
        context = f"\nConversation context:\n{context}\n" if context else ""

        feedback = ""
        reflection = state.get("reflection_result")
        if reflection and reflection.quality == ReflectionQuality.NEEDS_IMPROVEMENT:
            issues = "\n".join(f"- {i}" for i in reflection.issues) or "- (none listed)"
            suggestions = "\n".join(f"- {s}" for s in reflection.suggestions) or "- (none listed)"
            feedback = (
                "\nYour previous reply needs improvement.\n"
                f"Issues:\n{issues}\nSuggestions:\n{suggestions}\n"
            )

        return AGENT_PROMPT.format(
            today=now.date().isoformat(),
            weekday=now.strftime("%A"),
            tools=tool_lines,
            plan=plan,
            context=context,
            feedback=feedback,
        )

    def _describe_call(self, call: Mapping[str, Any]) -> str:
        metadata = self.registry.get_metadata(call["name"])
        label = metadata.display_name if metadata and metadata.display_name else call["name"]
        return f"{label}: {json.dumps(call.get('args') or {}, ensure_ascii=False, default=str)}"

    def _defer_for_confirmation(self, calls: List[Mapping[str, Any]]) -> Dict[str, Any]:
        """Turn deferred writes into a pending action or an execution plan"""
        if len(calls) == 1 and calls[0]["name"] in TASK_ACTIONS:
            call = calls[0]
            action = PendingTaskAction(
                operation=TASK_ACTIONS[call["name"]],
                params=dict(call.get("args") or {}),
                description=self._describe_call(call),
            )
            logger.info("Write deferred as pending action", operation=action.operation.value)
            return {"pending_action": action, "reply": f"Please confirm this change: {action.description}"}

        steps = [
            ExecutionStep(
                id=f"step{i}",
                action=call["name"],
                params=dict(call.get("args") or {}),
                description=self._describe_call(call),
            )
            for i, call in enumerate(calls, 1)
        ]
        plan = ExecutionPlan(
            summary=f"{len(steps)} change(s) waiting for confirmation",
            is_multi_step=len(steps) > 1,
            steps=steps,
        )
        listing = "\n".join(f"{i}. {step.description}" for i, step in enumerate(steps, 1))
        logger.info("Writes deferred as execution plan", steps=len(steps))
        return {
            "execution_plan": plan,
            "reply": f"I prepared these changes. Please confirm to apply them:\n{listing}",
        }

    def _next_conversation_state(self, state: AgentState) -> ConversationState:
        now = self.clock()
        ttl = self.settings.STATE_TTL_SECONDS
        conversation = state["conversation_state"]

        entity = self._latest_entity(state)
        if entity is not None:
            conversation = update_focus(conversation, entity, now, ttl)

        names = [info.name for info in state["tool_calls"]]
        if state.get("execution_plan"):
            names += [step.action for step in state["execution_plan"].steps]
        if state.get("pending_action"):
            names.append(state["pending_action"].tool_name)
        intent = self._intent_for(names)
        if intent is not None:
            conversation = update_intent(conversation, intent, now, ttl)

        return touch(conversation, now, ttl)

    def _latest_entity(self, state: AgentState) -> Optional[EntityRef]:
        messages = state["messages"]
        for message in reversed(messages[self._last_human_index(messages):]):
            artifact = getattr(message, "artifact", None)
            if isinstance(message, ToolMessage) and isinstance(artifact, ToolResult) and artifact.succeeded:
                raw = (artifact.data or {}).get("entity")
                if raw:
                    try:
                        return EntityRef.model_validate(raw)
                    except ValidationError:
                        logger.debug("Ignoring malformed entity in tool result", tool_name=message.name)
        return None

    def _intent_for(self, tool_names: List[str]) -> Optional[Intent]:
        intents = []
        for name in tool_names:
            for prefix, intent in INTENT_PREFIXES:
                if name.startswith(prefix):
                    intents.append(intent)
                    break
        writes = [i for i in intents if i != Intent.QUERY]
        if writes:
            return writes[-1]
        return intents[-1] if intents else None

    async def _extract_learnings(self, state: AgentState, reply: str) -> Tuple[List[str], Optional[str]]:
        conversation = "\n".join(
            f"{type(m).__name__.replace('Message', '')}: {message_text(m)[:500]}"
            for m in state["messages"]
            if isinstance(m, (HumanMessage, AIMessage)) and message_text(m).strip()
        )
        prompt = LEARNINGS_PROMPT.format(conversation=f"{conversation}\nAI: {reply}")
        try:
            response = await self.llm.invoke([HumanMessage(content=prompt)])
            items = extract_json(message_text(response), list)
        except (LLMUnavailableError, DecisionDecodeError) as e:
            logger.warning("Learning extraction failed", error=str(e))
            return [], f"Learning extraction skipped: {e}"

        learnings = []
        for item in items:
            content = item.get("content") if isinstance(item, dict) else item
            if isinstance(content, str) and content.strip():
                learnings.append(content.strip())
        return learnings, None
