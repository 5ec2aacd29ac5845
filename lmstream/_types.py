"""Dataclass models for chat completion requests and tool calls."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
import json
from typing import Any

LMSTUDIO_DEFAULT_TEMPERATURE = 0.0


@dataclass(frozen=True)
class RequestParameters:
    """Everything needed to issue one streaming chat completion."""

    model_id: str
    messages: tuple[dict, ...]
    temperature: float = LMSTUDIO_DEFAULT_TEMPERATURE
    stream: bool = True
    tools: tuple[dict, ...] | None = None
    tool_choice: str | dict | None = None
    parallel_tool_calls: bool | None = None
    draft_model_id: str | None = None

    def to_body(self) -> dict[str, Any]:
        """Render the JSON body for POST /chat/completions."""
        body: dict[str, Any] = {
            "model": self.model_id,
            "messages": list(self.messages),
            "temperature": self.temperature,
            "stream": self.stream,
        }
        if self.tools:
            body["tools"] = list(self.tools)
            if self.tool_choice is not None:
                body["tool_choice"] = self.tool_choice
            body["parallel_tool_calls"] = bool(self.parallel_tool_calls)
        if self.draft_model_id:
            body["draft_model"] = self.draft_model_id
        return body


@dataclass
class ToolCallFragment:
    """One tool-call delta. ``index`` is the only stable correlation key."""

    index: int
    id: str | None = None
    name: str | None = None
    arguments: str | None = None

    @classmethod
    def from_dict(cls, data: dict) -> ToolCallFragment:
        function = data.get("function")
        if not isinstance(function, dict):
            function = {}
        index = data.get("index")
        return cls(
            index=index if isinstance(index, int) and not isinstance(index, bool) else 0,
            id=_str_or_none(data.get("id")),
            name=_str_or_none(function.get("name")),
            arguments=_str_or_none(function.get("arguments")),
        )


@dataclass
class ToolCall:
    """A tool call assembled from every fragment sharing one index."""

    index: int
    id: str | None = None
    name: str | None = None
    arguments: str = ""
    completed: bool = False

    def parsed_arguments(self) -> dict[str, Any]:
        """Decode the accumulated JSON arguments. Raises ValueError when incomplete."""
        if not self.arguments.strip():
            return {}
        value = json.loads(self.arguments)
        if not isinstance(value, dict):
            raise ValueError(f"Tool call arguments must be a JSON object, got {type(value).__name__}")
        return value


def convert_tools(tools: Iterable[dict]) -> tuple[dict, ...]:
    """Normalize tool definitions to the OpenAI ``{"type": "function", ...}`` shape.

    Definitions already in that shape pass through. Definitions shaped as
    ``{"name", "description", "input_schema"}`` are wrapped.
    """
    converted: list[dict] = []
    for tool in tools:
        if tool.get("type") == "function" and isinstance(tool.get("function"), dict):
            converted.append(tool)
            continue
        function: dict[str, Any] = {"name": tool["name"]}
        if tool.get("description"):
            function["description"] = tool["description"]
        function["parameters"] = (
            tool.get("input_schema") or tool.get("parameters") or {"type": "object", "properties": {}}
        )
        converted.append({"type": "function", "function": function})
    return tuple(converted)


def _str_or_none(value: Any) -> str | None:
    return value if isinstance(value, str) else None
