"""MessageStream: the lazy, single-pass event sequence handed to callers."""

from __future__ import annotations

from collections.abc import Iterator
import logging
from typing import TYPE_CHECKING
import weakref

from .streaming import StreamAccumulator, StreamEvent, UsageEvent

if TYPE_CHECKING:
    from ._session import StreamSession
    from ._types import ToolCall

logger = logging.getLogger(__name__)


def _abandon(session: StreamSession) -> None:
    # runs when a stream is garbage collected without being closed
    if session.finished:
        return
    logger.debug("Stream for session %d discarded before completion", session.id)
    session.cancel("stream discarded")
    session.finish()


class MessageStream:
    """Iterable stream of output events. Use as context manager or iterate directly.

    Usage:
        with handler.create_message(system_prompt, messages) as stream:
            for event in stream:
                print(event.type, event)
        print(stream.text)  # full accumulated text

    The sequence cannot be restarted: a second iteration yields nothing.
    Leaving the ``with`` block before the end cancels the request, as does
    dropping the stream without consuming it.
    """

    def __init__(self, events: Iterator[StreamEvent], session: StreamSession):
        self._events = events
        self._session = session
        self._accumulator = StreamAccumulator()
        self._iterator = self._iterate()
        weakref.finalize(self, _abandon, session)

    def _iterate(self) -> Iterator[StreamEvent]:
        try:
            for event in self._events:
                self._accumulator.process(event)
                yield event
        finally:
            self.close()

    def __iter__(self) -> Iterator[StreamEvent]:
        return self._iterator

    def __next__(self) -> StreamEvent:
        return next(self._iterator)

    def cancel(self) -> None:
        """Cancel the request behind this stream. Safe from any thread."""
        self._session.cancel()

    def close(self) -> None:
        """Stop the stream and release the transport (idempotent).

        Call from the consuming thread; other threads should use cancel().
        """
        if not self._session.finished:
            self._session.cancel()
        # closing a never-started generator skips its finally block
        self._events.close()  # type: ignore[attr-defined]
        self._session.finish()

    def __enter__(self) -> MessageStream:
        return self

    def __exit__(self, *_: object) -> None:
        self.close()

    @property
    def cancelled(self) -> bool:
        return self._session.cancelled

    @property
    def text(self) -> str:
        """Full accumulated assistant text after iteration."""
        return self._accumulator.get_text()

    @property
    def reasoning(self) -> str:
        return self._accumulator.get_reasoning()

    @property
    def tool_calls(self) -> list[ToolCall]:
        return self._accumulator.get_tool_calls()

    @property
    def usage(self) -> UsageEvent | None:
        return self._accumulator.usage
