"""Decoding of LLM output into agent decisions.

An Agent pass ends with exactly one decision: plain content, or a list
of tool calls. Native tool calls from the provider win; providers that
only return text may emit a fenced ```tool-call block holding
{"toolName": ..., "args": {...}} (or a list of them). Anything that
looks like a decision but cannot be decoded raises DecisionDecodeError.
"""
import json
import re
import uuid
from typing import Any, Dict, Iterator, List, Literal, Optional, Union

from langchain_core.messages import AIMessage
from pydantic import BaseModel, Field

from lifeagent.domain.errors import DecisionDecodeError
from lifeagent.domain.models.base import WireModel
from lifeagent.infrastructure.llm.provider import message_text

TOOL_CALL_FENCE = re.compile(r"```tool[-_]call\s*(.*?)```", re.DOTALL | re.IGNORECASE)
JSON_FENCE = re.compile(r"```(?:json|decision)?\s*(.*?)```", re.DOTALL | re.IGNORECASE)


class ToolCallRequest(WireModel):
    """A tool invocation requested by the agent"""
    id: Optional[str] = None
    tool_name: str
    args: Dict[str, Any] = Field(default_factory=dict)

    def as_call(self) -> Dict[str, Any]:
        return {"name": self.tool_name, "args": self.args, "id": self.id, "type": "tool_call"}


class ContentDecision(BaseModel):
    kind: Literal["content"] = "content"
    text: str


class ToolCallsDecision(BaseModel):
    kind: Literal["tool_calls"] = "tool_calls"
    text: str = ""
    calls: List[ToolCallRequest] = Field(min_length=1)


Decision = Union[ContentDecision, ToolCallsDecision]


def _new_call_id() -> str:
    return f"call_{uuid.uuid4().hex[:12]}"


def decode_decision(message: AIMessage) -> Decision:
    """Turn an LLM reply into a content or tool-calls decision"""
    text = message_text(message)

    if message.tool_calls:
        calls = [
            ToolCallRequest(id=call.get("id") or _new_call_id(), tool_name=call["name"], args=call.get("args") or {})
            for call in message.tool_calls
        ]
        return ToolCallsDecision(text=text, calls=calls)

    invalid = getattr(message, "invalid_tool_calls", None)
    if invalid:
        names = ", ".join(str(c.get("name")) for c in invalid)
        raise DecisionDecodeError(f"Provider returned malformed tool calls: {names}")

    fences = TOOL_CALL_FENCE.findall(text)
    if not fences:
        return ContentDecision(text=text)

    calls = []
    for body in fences:
        payload = _loads_lenient(body.strip())
        if payload is None:
            raise DecisionDecodeError("Could not parse tool-call block as JSON")
        for item in payload if isinstance(payload, list) else [payload]:
            calls.append(_call_from_payload(item))

    remaining = TOOL_CALL_FENCE.sub("", text).strip()
    return ToolCallsDecision(text=remaining, calls=calls)


def _call_from_payload(item: Any) -> ToolCallRequest:
    if not isinstance(item, dict):
        raise DecisionDecodeError("Tool-call entry must be an object")
    name = item.get("toolName") or item.get("tool_name") or item.get("name")
    args = item.get("args", item.get("arguments", {}))
    if not isinstance(name, str) or not name:
        raise DecisionDecodeError("Tool-call entry is missing toolName")
    if not isinstance(args, dict):
        raise DecisionDecodeError(f"Arguments for {name} must be an object")
    return ToolCallRequest(id=_new_call_id(), tool_name=name, args=args)


def _loads_lenient(text: str) -> Any:
    try:
        return json.loads(text)
    except ValueError:
        pass
    try:
        return json.loads(text.replace("'", '"'))
    except ValueError:
        return None


def _balanced_spans(text: str, opener: str) -> Iterator[str]:
    """Yield substrings with balanced brackets, ignoring brackets inside strings"""
    closer = "}" if opener == "{" else "]"
    start = text.find(opener)
    while start != -1:
        depth = 0
        quote: Optional[str] = None
        escaped = False
        for idx in range(start, len(text)):
            ch = text[idx]
            if quote:
                if escaped:
                    escaped = False
                elif ch == "\\":
                    escaped = True
                elif ch == quote:
                    quote = None
                continue
            if ch in "\"'":
                quote = ch
            elif ch == opener:
                depth += 1
            elif ch == closer:
                depth -= 1
                if depth == 0:
                    yield text[start:idx + 1]
                    break
        start = text.find(opener, start + 1)


def extract_json(text: str, expect: type = dict) -> Any:
    """Find the first JSON value of the expected type in free-form LLM text"""
    candidates = [body.strip() for body in JSON_FENCE.findall(text)]
    candidates.append(text.strip())
    opener = "{" if expect is dict else "["
    for source in list(candidates):
        candidates.extend(_balanced_spans(source, opener))

    for candidate in candidates:
        value = _loads_lenient(candidate)
        if isinstance(value, expect):
            return value
    raise DecisionDecodeError(f"No JSON {expect.__name__} found in model output")
