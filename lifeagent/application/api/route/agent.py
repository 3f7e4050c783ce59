from typing import AsyncIterator

import structlog
from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import StreamingResponse

from lifeagent.application.api.models import ChatRequest, PlanRequest
from lifeagent.application.schema.events import BaseEvent, encode_sse
from lifeagent.domain.errors import LLMUnavailableError, OrchestrationError, PlanGenerationError
from lifeagent.domain.models.execution_plan import PendingActionConfirmation, PlanConfirmation
from lifeagent.domain.orchestration.core.main_agent import AgentOrchestrator

logger = structlog.get_logger(__name__)
router = APIRouter(prefix="/api/v1/agent", tags=["agent"])

SSE_HEADERS = {"Cache-Control": "no-cache", "Connection": "keep-alive"}


def get_orchestrator(request: Request) -> AgentOrchestrator:
    return request.app.state.orchestrator


async def _sse(events: AsyncIterator[BaseEvent]) -> AsyncIterator[bytes]:
    async for event in events:
        yield encode_sse(event)


@router.post("/chat")
async def chat_endpoint(body: ChatRequest, request: Request):
    """Run a turn and return the complete response"""
    orchestrator = get_orchestrator(request)
    try:
        response = await orchestrator.run_turn(
            body.message,
            thread_id=body.thread_id,
            history=body.history,
            conversation_state=body.state,
            require_confirmation=body.require_confirmation,
        )
    except LLMUnavailableError as e:
        logger.error("LLM unavailable", error=str(e))
        raise HTTPException(status_code=503, detail=str(e))
    except OrchestrationError as e:
        logger.error("Turn failed", error=str(e))
        raise HTTPException(status_code=500, detail=str(e))
    return response.to_wire()


@router.post("/chat/stream")
async def chat_stream_endpoint(body: ChatRequest, request: Request):
    """Run a turn, streaming events as server-sent events"""
    orchestrator = get_orchestrator(request)
    events = orchestrator.stream_turn(
        body.message,
        thread_id=body.thread_id,
        history=body.history,
        conversation_state=body.state,
        require_confirmation=body.require_confirmation,
    )
    return StreamingResponse(_sse(events), media_type="text/event-stream", headers=SSE_HEADERS)


@router.post("/plan")
async def plan_endpoint(body: PlanRequest, request: Request):
    """Draft an execution plan for the user to confirm"""
    orchestrator = get_orchestrator(request)
    try:
        plan = await orchestrator.propose_plan(body.message, body.state)
    except PlanGenerationError as e:
        raise HTTPException(status_code=422, detail=str(e))
    except LLMUnavailableError as e:
        raise HTTPException(status_code=503, detail=str(e))
    return plan.to_wire()


@router.post("/plan/execute")
async def plan_execute_endpoint(body: PlanConfirmation, request: Request):
    """Run or discard a confirmed plan, streaming the outcome"""
    orchestrator = get_orchestrator(request)
    events = orchestrator.stream_plan_resolution(body)
    return StreamingResponse(_sse(events), media_type="text/event-stream", headers=SSE_HEADERS)


@router.post("/action/execute")
async def action_execute_endpoint(body: PendingActionConfirmation, request: Request):
    """Apply or discard a pending task action"""
    orchestrator = get_orchestrator(request)
    result = await orchestrator.resolve_pending_action(body)
    return result.to_wire()
