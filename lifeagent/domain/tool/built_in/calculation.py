from typing import List

from pydantic import BaseModel, Field

from lifeagent.domain.tool.builder import build_tool
from lifeagent.domain.tool.types import ToolEntry, ToolMetadata, ToolResult


class BinaryArgs(BaseModel):
    a: float = Field(description="First operand")
    b: float = Field(description="Second operand")


def _fmt(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else f"{value:.10g}"


async def add(a: float, b: float) -> ToolResult:
    return ToolResult.ok(f"{_fmt(a)} + {_fmt(b)} = {_fmt(a + b)}", data={"value": a + b})


async def subtract(a: float, b: float) -> ToolResult:
    return ToolResult.ok(f"{_fmt(a)} - {_fmt(b)} = {_fmt(a - b)}", data={"value": a - b})


async def multiply(a: float, b: float) -> ToolResult:
    return ToolResult.ok(f"{_fmt(a)} × {_fmt(b)} = {_fmt(a * b)}", data={"value": a * b})


async def divide(a: float, b: float) -> ToolResult:
    if b == 0:
        return ToolResult.error("Division by zero is not allowed.")
    return ToolResult.ok(f"{_fmt(a)} ÷ {_fmt(b)} = {_fmt(a / b)}", data={"value": a / b})


def get_calculation_tools() -> List[ToolEntry]:
    specs = [
        (add, "add", "Add two numbers."),
        (subtract, "subtract", "Subtract b from a."),
        (multiply, "multiply", "Multiply two numbers."),
        (divide, "divide", "Divide a by b."),
    ]
    return [
        ToolEntry(
            build_tool(func, name, description, BinaryArgs),
            ToolMetadata(display_name=name.capitalize(), description=description, readonly=True),
        )
        for func, name, description in specs
    ]
