"""Turns fragmentary tool-call deltas into partial and end events keyed by index."""

import logging

from ._types import ToolCallFragment
from .streaming import ToolCallEndEvent, ToolCallPartialEvent

logger = logging.getLogger(__name__)


class ToolCallAssembler:
    """
    Tracks the tool calls opened in the current turn.

    The protocol never marks an individual call as finished, only the turn as
    a whole (via ``finish_reason``), so end markers for every call seen since
    the previous end are produced when the finish reason arrives. Arguments
    are not buffered here; consumers append the partial events themselves
    (see ``StreamAccumulator``).
    """

    def __init__(self) -> None:
        # index -> first id seen for that index
        self._open: dict[int, str | None] = {}

    def on_delta(self, fragment: ToolCallFragment) -> ToolCallPartialEvent:
        if not self._open.get(fragment.index):
            self._open[fragment.index] = fragment.id or None
        return ToolCallPartialEvent(
            index=fragment.index,
            id=fragment.id,
            name=fragment.name,
            arguments=fragment.arguments,
        )

    def on_finish_reason(self, reason: str | None) -> list[ToolCallEndEvent]:
        if not reason or not self._open:
            return []
        if reason != "tool_calls":
            logger.debug("Finish reason %r with %d open tool call(s)", reason, len(self._open))
        ended = [ToolCallEndEvent(index=index, id=self._open[index]) for index in sorted(self._open)]
        self._open.clear()
        return ended
