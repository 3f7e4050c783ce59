from lifeagent.infrastructure.llm.provider import (
    ChatModelProvider,
    LLMProvider,
    create_llm_provider,
    message_text,
)

__all__ = ["ChatModelProvider", "LLMProvider", "create_llm_provider", "message_text"]
