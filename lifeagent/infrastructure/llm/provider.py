from abc import ABC, abstractmethod
from typing import List, Optional, Sequence

import structlog
from langchain_core.language_models import BaseChatModel
from langchain_core.messages import AIMessage, BaseMessage
from langchain_core.tools import BaseTool

from lifeagent.domain.errors import LLMUnavailableError
from lifeagent.infrastructure.config import Settings

logger = structlog.get_logger(__name__)


class LLMProvider(ABC):
    """Opaque LLM capability used by the orchestrator.

    Given a message history and optionally a set of callable tools, the
    provider answers with an AIMessage carrying either plain text or
    structured tool calls.
    """

    @abstractmethod
    async def invoke(
        self,
        messages: List[BaseMessage],
        tools: Optional[Sequence[BaseTool]] = None
    ) -> AIMessage:
        pass


class ChatModelProvider(LLMProvider):
    """LLM provider backed by a LangChain chat model"""

    def __init__(self, model: BaseChatModel):
        self.model = model

    async def invoke(
        self,
        messages: List[BaseMessage],
        tools: Optional[Sequence[BaseTool]] = None
    ) -> AIMessage:
        runnable = self.model.bind_tools(list(tools)) if tools else self.model
        try:
            response = await runnable.ainvoke(messages)
        except Exception as e:
            logger.error("LLM invocation failed", error=str(e), tool_count=len(tools or []))
            raise LLMUnavailableError(f"LLM provider failed: {e}") from e

        if not isinstance(response, AIMessage):
            return AIMessage(content=str(getattr(response, "content", response)))
        return response


def create_llm_provider(settings: Settings) -> LLMProvider:
    """Create the default chat model provider from settings"""
    from langchain.chat_models import init_chat_model

    model = init_chat_model(
        settings.LLM_MODEL,
        model_provider=settings.LLM_PROVIDER,
        temperature=settings.LLM_TEMPERATURE,
    )
    logger.info("LLM provider created", provider=settings.LLM_PROVIDER, model=settings.LLM_MODEL)
    return ChatModelProvider(model)


def message_text(message: BaseMessage) -> str:
    """Plain text of a message whose content may be a list of parts"""
    content = message.content
    if isinstance(content, str):
        return content
    parts = []
    for part in content:
        if isinstance(part, str):
            parts.append(part)
        elif isinstance(part, dict) and part.get("type") == "text":
            parts.append(part.get("text", ""))
    return "".join(parts)
