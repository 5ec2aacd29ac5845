"""
Root pytest configuration and fixtures for lmstream.

Provides a handler wired to a fake transport.
"""

from pathlib import Path
import sys
from unittest.mock import MagicMock

import pytest

# Add the project root to the Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from lmstream.handler import LMStudioHandler  # noqa: E402
from tests.utils.mocks import FakeResponse  # noqa: E402


@pytest.fixture
def fake_http():
    """HTTPClient double; ``fake_http.stream.return_value`` is the streaming response."""
    return MagicMock()


@pytest.fixture
def make_handler(fake_http):
    """Build a handler whose transport returns the given chunks."""

    def _make(chunks: list | None = None, **kwargs) -> LMStudioHandler:
        if chunks is not None:
            fake_http.stream.return_value = FakeResponse(chunks)
        kwargs.setdefault("model_id", "qwen3-8b")
        kwargs.setdefault("token_counter", len)
        return LMStudioHandler(base_url="http://localhost:1234", http=fake_http, **kwargs)

    return _make


@pytest.fixture
def user_messages():
    return [{"role": "user", "content": "Hello there"}]


@pytest.fixture
def loopback(monkeypatch):
    """Keep requests to 127.0.0.1 off any proxy configured in the environment."""
    monkeypatch.setenv("NO_PROXY", "127.0.0.1,localhost")
    monkeypatch.setenv("no_proxy", "127.0.0.1,localhost")
