"""
Incremental SSE demuxer for OpenAI-compatible chat completion streams.

The server frames each event as a ``data: <json>`` line and ends the stream
with ``data: [DONE]``. Chunks from the transport can split a line anywhere, so
complete lines are buffered before a payload is released. JSON decoding
happens one layer up and may fail independently of framing.
"""

DATA_PREFIX = "data:"
DONE_SENTINEL = "[DONE]"


class SSEDemuxer:
    """Turns an arbitrary chunking of the wire text into frame payload strings."""

    def __init__(self) -> None:
        self._buffer = ""
        self.done = False

    def feed(self, chunk: str) -> list[str]:
        """Append a chunk and return the payloads of all lines it completed."""
        self._buffer += chunk
        lines = self._buffer.split("\n")
        self._buffer = lines.pop()

        payloads: list[str] = []
        for line in lines:
            payload = self._payload(line)
            if payload is not None:
                payloads.append(payload)
        return payloads

    def flush(self) -> list[str]:
        """Treat whatever is left as a final, possibly unterminated line."""
        remaining, self._buffer = self._buffer, ""
        payload = self._payload(remaining)
        return [payload] if payload is not None else []

    def _payload(self, line: str) -> str | None:
        line = line.strip()
        if not line.startswith(DATA_PREFIX):
            # blank separators, comments and event: lines carry no payload
            return None
        data = line[len(DATA_PREFIX) :].strip()
        if data == DONE_SENTINEL:
            self.done = True
            return None
        return data or None
