"""Classifier splitting streamed text into plain text and tag-delimited reasoning."""

from collections.abc import Iterator
from dataclasses import dataclass
from enum import Enum


class SegmentKind(str, Enum):
    TEXT = "text"
    REASONING = "reasoning"


@dataclass
class Segment:
    kind: SegmentKind
    content: str


def _held_back(buffer: str, tag: str) -> int:
    """Length of the longest buffer suffix that is a proper prefix of ``tag``."""
    for size in range(min(len(buffer), len(tag) - 1), 0, -1):
        if tag.startswith(buffer[-size:]):
            return size
    return 0


class TagMatcher:
    """
    Incrementally classify text as ``text`` or ``reasoning``.

    Content between ``<tag>`` and ``</tag>`` is reasoning, everything else is
    text. The delimiters belong to the reasoning span they open and close, so
    joining every emitted segment reproduces the input exactly. A partial tag
    at the end of an update is held back until the next update decides it.
    """

    def __init__(self, tag: str = "think") -> None:
        self.open_tag = f"<{tag}>"
        self.close_tag = f"</{tag}>"
        self._inside = False
        self._buffer = ""

    @property
    def inside(self) -> bool:
        """Whether the scanner is currently inside a reasoning span."""
        return self._inside

    def update(self, text: str) -> Iterator[Segment]:
        self._buffer += text
        pieces: list[tuple[SegmentKind, str]] = []

        while self._buffer:
            tag = self.close_tag if self._inside else self.open_tag
            idx = self._buffer.find(tag)
            if idx != -1:
                end = idx + len(tag)
                if self._inside:
                    pieces.append((SegmentKind.REASONING, self._buffer[:end]))
                else:
                    pieces.append((SegmentKind.TEXT, self._buffer[:idx]))
                    pieces.append((SegmentKind.REASONING, tag))
                self._buffer = self._buffer[end:]
                self._inside = not self._inside
                continue

            keep = _held_back(self._buffer, tag)
            cut = len(self._buffer) - keep
            pieces.append((self._kind, self._buffer[:cut]))
            self._buffer = self._buffer[cut:]
            break

        yield from _coalesce(pieces)

    def final(self) -> Iterator[Segment]:
        """Flush held-back text using the last confirmed state."""
        remaining, self._buffer = self._buffer, ""
        if remaining:
            yield Segment(self._kind, remaining)

    @property
    def _kind(self) -> SegmentKind:
        return SegmentKind.REASONING if self._inside else SegmentKind.TEXT


def _coalesce(pieces: list[tuple[SegmentKind, str]]) -> Iterator[Segment]:
    current: Segment | None = None
    for kind, content in pieces:
        if not content:
            continue
        if current is not None and current.kind == kind:
            current.content += content
            continue
        if current is not None:
            yield current
        current = Segment(kind, content)
    if current is not None:
        yield current
