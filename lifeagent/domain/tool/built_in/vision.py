from typing import List

from langchain_core.messages import HumanMessage
from pydantic import BaseModel, Field

from lifeagent.domain.errors import LLMUnavailableError
from lifeagent.domain.tool.builder import build_tool
from lifeagent.domain.tool.types import ToolEntry, ToolMetadata, ToolResult
from lifeagent.infrastructure.llm.provider import LLMProvider, message_text


class AnalyzeImageArgs(BaseModel):
    image_url: str = Field(description="http(s) or data: URL of the image")
    question: str = Field("Describe this image in detail.", description="What to look for")


class VisionTools:
    """Image understanding delegated to a multimodal LLM"""

    def __init__(self, llm: LLMProvider):
        self.llm = llm

    async def analyze_image(self, image_url: str, question: str = "Describe this image in detail.") -> ToolResult:
        message = HumanMessage(content=[
            {"type": "text", "text": question},
            {"type": "image_url", "image_url": {"url": image_url}},
        ])
        try:
            response = await self.llm.invoke([message])
        except LLMUnavailableError as e:
            return ToolResult.error(f"Image analysis is unavailable: {e}")
        text = message_text(response)
        if not text.strip():
            return ToolResult.error("The image could not be analysed.")
        return ToolResult.ok(text.strip())

    def entries(self) -> List[ToolEntry]:
        return [
            ToolEntry(
                build_tool(
                    self.analyze_image, "analyze_image",
                    "Look at an image the user shared and answer a question about it.", AnalyzeImageArgs,
                ),
                ToolMetadata(display_name="Analyze image", description="Image understanding", readonly=True),
            ),
        ]
