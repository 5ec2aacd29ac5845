"""Best-effort token accounting around a streaming request."""

from collections.abc import Callable, Iterable, Iterator
import logging
from typing import Any

import tiktoken

logger = logging.getLogger(__name__)

DEFAULT_ENCODING = "o200k_base"

TokenCounter = Callable[[str], int]


def text_blocks(messages: Iterable[dict[str, Any]]) -> Iterator[str]:
    """Yield the text of every message: string contents and ``{"type": "text"}`` parts."""
    for message in messages:
        content = message.get("content")
        if isinstance(content, str):
            yield content
        elif isinstance(content, list):
            for part in content:
                if isinstance(part, dict) and part.get("type") == "text":
                    text = part.get("text")
                    if isinstance(text, str):
                        yield text


class UsageAccountant:
    """
    Counts prompt and completion tokens.

    Counting is a metric, not part of the stream's correctness: a failing
    counter is logged and reported as zero.
    """

    def __init__(self, counter: TokenCounter | None = None, encoding_name: str = DEFAULT_ENCODING):
        self._counter = counter
        self._encoding_name = encoding_name
        self._encoding: tiktoken.Encoding | None = None

    def count(self, content: str) -> int:
        """Count tokens in ``content``. May raise."""
        if self._counter is not None:
            return self._counter(content)
        if self._encoding is None:
            self._encoding = tiktoken.get_encoding(self._encoding_name)
        return len(self._encoding.encode(content, disallowed_special=()))

    def count_input(self, messages: Iterable[dict[str, Any]]) -> int:
        """Sum the tokens of the system prompt and message history."""
        try:
            return sum(self.count(block) for block in text_blocks(messages))
        except Exception as e:
            logger.warning("Failed to count input tokens: %s", e)
            return 0

    def count_output(self, text: str) -> int:
        try:
            return self.count(text)
        except Exception as e:
            logger.warning("Failed to count output tokens: %s", e)
            return 0
