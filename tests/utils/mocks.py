"""Mock utilities for lmstream tests."""

from unittest.mock import MagicMock


class FakeResponse:
    """Stands in for a streaming requests.Response: records pulls and close() calls."""

    def __init__(self, chunks: list, status_code: int = 200):
        self._chunks = chunks
        self.pulled = 0
        self.status_code = status_code
        self.close = MagicMock()

    def iter_content(self, chunk_size=None):
        for chunk in self._chunks:
            self.pulled += 1
            if isinstance(chunk, Exception):
                raise chunk
            yield chunk.encode("utf-8") if isinstance(chunk, str) else chunk

