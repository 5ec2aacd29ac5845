"""
lmstream - streaming chat completion client for LM Studio.

Turns an OpenAI-compatible SSE stream into typed text, reasoning, tool-call
and usage events, with prompt cancellation.
"""

__version__ = "0.1.0"

from ._exceptions import (
    APIError,
    CancelledError,
    LMStreamError,
    SessionBusyError,
    StreamFailedError,
    StreamTimeoutError,
    TransportError,
)
from ._streaming import MessageStream
from ._types import RequestParameters, ToolCall, ToolCallFragment
from .cancellation import CancellationToken
from .handler import LMStudioHandler, get_lmstudio_models
from .sse import SSEDemuxer
from .streaming import (
    ReasoningEvent,
    StreamEvent,
    StreamEventType,
    TextEvent,
    ToolCallEndEvent,
    ToolCallPartialEvent,
    UsageEvent,
)
from .tags import Segment, SegmentKind, TagMatcher
from .tool_calls import ToolCallAssembler
from .usage import UsageAccountant

__all__ = [
    "APIError",
    "CancellationToken",
    "CancelledError",
    # Main handler
    "LMStudioHandler",
    "LMStreamError",
    "MessageStream",
    "ReasoningEvent",
    "RequestParameters",
    "SSEDemuxer",
    "Segment",
    "SegmentKind",
    "SessionBusyError",
    "StreamEvent",
    "StreamEventType",
    "StreamFailedError",
    "StreamTimeoutError",
    "TagMatcher",
    "TextEvent",
    "ToolCall",
    "ToolCallAssembler",
    "ToolCallEndEvent",
    "ToolCallFragment",
    "ToolCallPartialEvent",
    "TransportError",
    "UsageAccountant",
    "UsageEvent",
    "get_lmstudio_models",
]
