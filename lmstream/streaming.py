"""
Output events and frame decoding for OpenAI-compatible chat completion streams.

Each SSE payload is decoded defensively into an ``EventFrame`` variant: a
``DeltaFrame`` carrying the first choice's content delta, tool-call deltas and
finish reason, or an ``UnknownFrame`` for anything malformed or unrecognized.
The pipeline turns frames into ``StreamEvent`` objects, the only artifact a
caller observes.
"""

from dataclasses import dataclass, field
from enum import Enum
import json
import logging
from typing import Any, ClassVar

from ._types import ToolCall, ToolCallFragment

logger = logging.getLogger(__name__)


class StreamEventType(str, Enum):
    """Output event types."""

    TEXT = "text"
    REASONING = "reasoning"
    TOOL_CALL_PARTIAL = "tool_call_partial"
    TOOL_CALL_END = "tool_call_end"
    USAGE = "usage"


@dataclass
class StreamEvent:
    """Base class for all output events."""

    type: ClassVar[StreamEventType]

    def to_dict(self) -> dict[str, Any]:
        data = {"type": self.type.value}
        data.update(self.__dict__)
        return data


@dataclass
class TextEvent(StreamEvent):
    """Answer text outside any reasoning tag."""

    type: ClassVar[StreamEventType] = StreamEventType.TEXT
    text: str


@dataclass
class ReasoningEvent(StreamEvent):
    """Reasoning text, delimiters included."""

    type: ClassVar[StreamEventType] = StreamEventType.REASONING
    text: str


@dataclass
class ToolCallPartialEvent(StreamEvent):
    """Fields carried by one tool-call fragment. ``arguments`` is an append, never a replacement."""

    type: ClassVar[StreamEventType] = StreamEventType.TOOL_CALL_PARTIAL
    index: int
    id: str | None = None
    name: str | None = None
    arguments: str | None = None


@dataclass
class ToolCallEndEvent(StreamEvent):
    """No more fragments will arrive for this tool call."""

    type: ClassVar[StreamEventType] = StreamEventType.TOOL_CALL_END
    index: int
    id: str | None = None


@dataclass
class UsageEvent(StreamEvent):
    """Token totals, emitted last and only when the stream completed normally."""

    type: ClassVar[StreamEventType] = StreamEventType.USAGE
    input_tokens: int
    output_tokens: int


# Frames


@dataclass
class EventFrame:
    """Base class for decoded payloads."""


@dataclass
class DeltaFrame(EventFrame):
    """First choice of a ``chat.completion.chunk``."""

    content: str | None = None
    tool_calls: list[ToolCallFragment] = field(default_factory=list)
    finish_reason: str | None = None


@dataclass
class UnknownFrame(EventFrame):
    """Payload that is not valid JSON or carries no usable choice."""

    payload: str
    reason: str


def decode_frame(payload: str) -> DeltaFrame | UnknownFrame:
    """Decode one SSE payload field by field. Never raises."""
    try:
        data = json.loads(payload)
    except json.JSONDecodeError as e:
        return UnknownFrame(payload=payload, reason=f"invalid JSON: {e.msg}")
    except (ValueError, RecursionError) as e:
        return UnknownFrame(payload=payload, reason=f"undecodable JSON: {e}")

    if not isinstance(data, dict):
        return UnknownFrame(payload=payload, reason="payload is not an object")

    error = data.get("error")
    if error:
        message = error.get("message") if isinstance(error, dict) else error
        return UnknownFrame(payload=payload, reason=f"server error: {message}")

    choices = data.get("choices")
    if not isinstance(choices, list):
        return UnknownFrame(payload=payload, reason="no choices")
    if not choices:
        # usage-only chunks carry an empty choice list
        return DeltaFrame()
    if not isinstance(choices[0], dict):
        return UnknownFrame(payload=payload, reason="choice is not an object")

    choice = choices[0]
    delta = choice.get("delta")
    if not isinstance(delta, dict):
        delta = {}

    content = delta.get("content")
    finish_reason = choice.get("finish_reason")
    raw_calls = delta.get("tool_calls")
    return DeltaFrame(
        content=content if isinstance(content, str) else None,
        tool_calls=(
            [ToolCallFragment.from_dict(call) for call in raw_calls if isinstance(call, dict)]
            if isinstance(raw_calls, list)
            else []
        ),
        finish_reason=finish_reason if isinstance(finish_reason, str) else None,
    )


class StreamAccumulator:
    """
    Accumulates output events into complete values.

    Useful for collecting all text deltas into a single string.
    """

    def __init__(self) -> None:
        self.text_parts: list[str] = []
        self.reasoning_parts: list[str] = []
        self.tool_calls: dict[int, ToolCall] = {}
        self.usage: UsageEvent | None = None

    def process(self, event: StreamEvent) -> None:
        """Process an event and accumulate data."""
        if isinstance(event, TextEvent):
            self.text_parts.append(event.text)

        elif isinstance(event, ReasoningEvent):
            self.reasoning_parts.append(event.text)

        elif isinstance(event, ToolCallPartialEvent):
            call = self.tool_calls.setdefault(event.index, ToolCall(index=event.index))
            if event.id and not call.id:
                call.id = event.id
            if event.name and not call.name:
                call.name = event.name
            if event.arguments:
                call.arguments += event.arguments

        elif isinstance(event, ToolCallEndEvent):
            call = self.tool_calls.setdefault(event.index, ToolCall(index=event.index, id=event.id))
            call.completed = True

        elif isinstance(event, UsageEvent):
            self.usage = event

    def get_text(self) -> str:
        """Get accumulated text."""
        return "".join(self.text_parts)

    def get_reasoning(self) -> str:
        """Get accumulated reasoning."""
        return "".join(self.reasoning_parts)

    def get_tool_calls(self) -> list[ToolCall]:
        """Get all tool calls ordered by index."""
        return [self.tool_calls[index] for index in sorted(self.tool_calls)]
