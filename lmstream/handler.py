"""
Streaming chat completion handler for a locally hosted LM Studio server.

The handler owns at most one in-flight request. ``start`` returns a lazy
``MessageStream``; the HTTP request is issued on the first pull, with no
timeout, since local generations can run for minutes or hours. ``cancel``
shuts down the request socket, which wakes a read blocked on the headers
or the body, and the consuming loop stops at the next chunk or payload.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
import codecs
import logging
import os
from threading import Lock
from typing import Any
from urllib.parse import urlparse

import requests

from ._exceptions import (
    FAILURE_MESSAGE,
    TIMEOUT_MESSAGE,
    CancelledError,
    LMStreamError,
    RequestTimeoutError,
    SessionBusyError,
    StreamFailedError,
    StreamTimeoutError,
)
from ._http import HTTPClient
from ._session import StreamSession
from ._streaming import MessageStream
from ._types import LMSTUDIO_DEFAULT_TEMPERATURE, RequestParameters, convert_tools
from .sse import SSEDemuxer
from .streaming import (
    ReasoningEvent,
    StreamEvent,
    TextEvent,
    UnknownFrame,
    UsageEvent,
    decode_frame,
)
from .tags import Segment, SegmentKind, TagMatcher
from .tool_calls import ToolCallAssembler
from .usage import TokenCounter, UsageAccountant

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "http://localhost:1234"

# Upper bound per read; chunked responses yield as soon as any data arrives.
STREAM_CHUNK_SIZE = 1024

_TRUTHY = {"1", "true", "yes", "on"}


def _segment_event(segment: Segment) -> StreamEvent:
    if segment.kind is SegmentKind.REASONING:
        return ReasoningEvent(text=segment.content)
    return TextEvent(text=segment.content)


class _Turn:
    """Per-request pipeline state: classifier, assembler and the text seen so far."""

    def __init__(self, reasoning_tag: str) -> None:
        self.matcher = TagMatcher(reasoning_tag)
        self.assembler = ToolCallAssembler()
        self.text_parts: list[str] = []

    def dispatch(self, payload: str) -> Iterator[StreamEvent]:
        frame = decode_frame(payload)
        if isinstance(frame, UnknownFrame):
            logger.warning("Skipping SSE frame (%s): %s", frame.reason, payload[:200])
            return

        if frame.content:
            self.text_parts.append(frame.content)
            for segment in self.matcher.update(frame.content):
                yield _segment_event(segment)

        for fragment in frame.tool_calls:
            yield self.assembler.on_delta(fragment)

        if frame.finish_reason:
            yield from self.assembler.on_finish_reason(frame.finish_reason)

    def final(self) -> Iterator[StreamEvent]:
        for segment in self.matcher.final():
            yield _segment_event(segment)

    @property
    def text(self) -> str:
        return "".join(self.text_parts)


class LMStudioHandler:
    """Streaming client for LM Studio's OpenAI-compatible chat completions endpoint.

    Usage:
        handler = LMStudioHandler(model_id="qwen3-8b")
        with handler.create_message("You are helpful.", [{"role": "user", "content": "Hi"}]) as s:
            for event in s:
                print(event.type, event)
    """

    def __init__(
        self,
        base_url: str | None = None,
        model_id: str | None = None,
        temperature: float | None = None,
        draft_model_id: str | None = None,
        speculative_decoding: bool | None = None,
        reasoning_tag: str = "think",
        token_counter: TokenCounter | None = None,
        http: HTTPClient | None = None,
    ):
        self.base_url = (base_url or os.environ.get("LMSTUDIO_BASE_URL") or DEFAULT_BASE_URL).rstrip(
            "/"
        )
        self.model_id = model_id or os.environ.get("LMSTUDIO_MODEL_ID", "")
        if temperature is None:
            env_temperature = os.environ.get("LMSTUDIO_TEMPERATURE")
            temperature = (
                float(env_temperature) if env_temperature else LMSTUDIO_DEFAULT_TEMPERATURE
            )
        self.temperature = temperature
        self.draft_model_id = draft_model_id or os.environ.get("LMSTUDIO_DRAFT_MODEL_ID")
        if speculative_decoding is None:
            speculative_decoding = (
                os.environ.get("LMSTUDIO_SPECULATIVE_DECODING", "").lower() in _TRUTHY
            )
        self.speculative_decoding = speculative_decoding
        self.reasoning_tag = reasoning_tag

        self._http = http or HTTPClient(base_url=f"{self.base_url}/v1", timeout=None)
        self._usage = UsageAccountant(counter=token_counter)
        self._lock = Lock()
        self._session: StreamSession | None = None
        logger.debug("LM Studio handler for %s (model=%r)", self.base_url, self.model_id)

    # Request construction

    def build_parameters(
        self,
        system_prompt: str,
        messages: Iterable[dict[str, Any]],
        *,
        tools: Iterable[dict] | None = None,
        tool_choice: str | dict | None = None,
        parallel_tool_calls: bool | None = None,
        tool_protocol: str | None = None,
    ) -> RequestParameters:
        """Assemble RequestParameters from handler settings and OpenAI-format messages."""
        tool_defs = convert_tools(tools) if tools else ()
        use_native_tools = bool(tool_defs) and tool_protocol != "xml"
        return RequestParameters(
            model_id=self.model_id,
            messages=({"role": "system", "content": system_prompt}, *messages),
            temperature=self.temperature,
            tools=tool_defs if use_native_tools else None,
            tool_choice=tool_choice if use_native_tools else None,
            parallel_tool_calls=(bool(parallel_tool_calls) if use_native_tools else None),
            draft_model_id=(
                self.draft_model_id if self.speculative_decoding and self.draft_model_id else None
            ),
        )

    def create_message(
        self,
        system_prompt: str,
        messages: Iterable[dict[str, Any]],
        *,
        tools: Iterable[dict] | None = None,
        tool_choice: str | dict | None = None,
        parallel_tool_calls: bool | None = None,
        tool_protocol: str | None = None,
    ) -> MessageStream:
        """Stream a chat completion for ``system_prompt`` + ``messages``."""
        params = self.build_parameters(
            system_prompt,
            messages,
            tools=tools,
            tool_choice=tool_choice,
            parallel_tool_calls=parallel_tool_calls,
            tool_protocol=tool_protocol,
        )
        return self.start(params)

    # Session lifecycle

    @property
    def active(self) -> bool:
        """Whether a request is in flight on this handler."""
        return self._session is not None

    def start(self, params: RequestParameters) -> MessageStream:
        """Open a session for ``params`` and return its lazy event stream.

        Raises:
            SessionBusyError: another request is still active on this handler
        """
        with self._lock:
            if self._session is not None:
                raise SessionBusyError(
                    f"Stream session {self._session.id} is still active; "
                    "cancel it or finish iterating before starting another request"
                )
            session = StreamSession(on_finish=self._release)
            self._session = session
        return MessageStream(self._run(session, params), session)

    def cancel(self) -> None:
        """Cancel the active request, if any. Idempotent and safe from any thread."""
        with self._lock:
            session, self._session = self._session, None
        if session is None:
            logger.debug("cancel() called with no active request")
            return
        session.cancel()

    def _release(self, session: StreamSession) -> None:
        with self._lock:
            if self._session is session:
                self._session = None

    # Pipeline

    def _run(self, session: StreamSession, params: RequestParameters) -> Iterator[StreamEvent]:
        token = session.token
        try:
            input_tokens = self._usage.count_input(params.messages)
            token.raise_if_cancelled()

            logger.info("Starting streaming request (model=%r, no timeout)", params.model_id)
            response = self._http.stream(
                "POST",
                "/chat/completions",
                json=params.to_body(),
                on_connection=session.bind_connection,
            )
            session.attach(response)
            if session.cancelled:
                logger.info("Request was cancelled before the first chunk")
                return
            logger.info("Stream started, response status: %s", response.status_code)

            demuxer = SSEDemuxer()
            decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
            turn = _Turn(self.reasoning_tag)

            for chunk in response.iter_content(chunk_size=STREAM_CHUNK_SIZE):
                if session.cancelled:
                    logger.info("Detected cancellation during stream processing")
                    break
                for payload in demuxer.feed(decoder.decode(chunk)):
                    if session.cancelled:
                        break
                    yield from turn.dispatch(payload)
                if session.cancelled:
                    # checked before the next pull, not after it
                    break

            if session.cancelled:
                logger.info("Stream processing stopped due to cancellation")
                return

            for payload in demuxer.feed(decoder.decode(b"", final=True)) + demuxer.flush():
                yield from turn.dispatch(payload)
            yield from turn.final()

            if not demuxer.done:
                logger.warning("Stream ended without the [DONE] sentinel")

            output_tokens = self._usage.count_output(turn.text)
            yield UsageEvent(input_tokens=input_tokens, output_tokens=output_tokens)
            logger.info("Stream completed successfully")
        except Exception as e:
            if session.cancelled or isinstance(e, CancelledError):
                logger.info("Request was cancelled")
                return
            if isinstance(e, (RequestTimeoutError, requests.Timeout)):
                logger.error("Stream timed out: %s", e)
                raise StreamTimeoutError(TIMEOUT_MESSAGE) from e
            logger.error("Stream error: %s", e)
            status_code = e.status_code if isinstance(e, LMStreamError) else None
            raise StreamFailedError(FAILURE_MESSAGE, status_code=status_code) from e
        finally:
            session.finish()

    # Non-streaming surfaces

    def complete_prompt(self, prompt: str) -> str:
        """Single non-streaming completion for ``prompt``. Returns the message content."""
        params = RequestParameters(
            model_id=self.model_id,
            messages=({"role": "user", "content": prompt},),
            temperature=self.temperature,
            stream=False,
            draft_model_id=(
                self.draft_model_id if self.speculative_decoding and self.draft_model_id else None
            ),
        )
        try:
            resp = self._http.request("POST", "/chat/completions", json=params.to_body())
            data = resp.json()
        except (LMStreamError, requests.RequestException, ValueError) as e:
            logger.error("Completion failed: %s", e)
            raise StreamFailedError(FAILURE_MESSAGE) from e

        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError):
            return ""
        return content if isinstance(content, str) else ""

    def list_models(self) -> list[str]:
        return get_lmstudio_models(self.base_url, http=self._http)


def get_lmstudio_models(base_url: str = DEFAULT_BASE_URL, http: HTTPClient | None = None) -> list[str]:
    """Return the unique model ids served at ``base_url``; [] on any failure."""
    parsed = urlparse(base_url or "")
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        logger.debug("Invalid LM Studio base URL: %r", base_url)
        return []

    client = http or HTTPClient(base_url=f"{base_url.rstrip('/')}/v1", timeout=10)
    try:
        data = client.request("GET", "/models").json()
    except (LMStreamError, requests.RequestException, ValueError) as e:
        logger.debug("Model listing failed: %s", e)
        return []
    finally:
        if http is None:
            client.close()

    models = data.get("data") if isinstance(data, dict) else None
    if not isinstance(models, list):
        return []
    ids = [m["id"] for m in models if isinstance(m, dict) and isinstance(m.get("id"), str)]
    return list(dict.fromkeys(ids))
