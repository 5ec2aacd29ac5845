"""Tests for the HTTP client and the handler over a mocked LM Studio server."""

import json

import pytest
import requests
import responses
from urllib3.connection import HTTPConnection

from lmstream._exceptions import (
    APIError,
    BadRequestError,
    NotFoundError,
    RateLimitError,
    RequestTimeoutError,
    StreamFailedError,
    TransportError,
)
from lmstream._http import USER_AGENT, HTTPClient
from lmstream.handler import LMStudioHandler
from lmstream.streaming import TextEvent, UsageEvent
from tests.utils.server import StallingSSEServer
from tests.utils.sse import content_chunk, finish_chunk, sse_body, sse_frame

BASE = "http://localhost:1234/v1"


@pytest.fixture
def http():
    return HTTPClient(base_url=BASE, timeout=10)


class TestHTTPClient:
    @responses.activate
    def test_default_headers(self, http):
        responses.add(responses.GET, f"{BASE}/models", json={"data": []}, status=200)
        http.request("GET", "/models")
        headers = responses.calls[0].request.headers
        assert headers["User-Agent"] == USER_AGENT
        assert headers["Content-Type"] == "application/json"

    @responses.activate
    def test_trailing_slash_stripped(self):
        client = HTTPClient(base_url=f"{BASE}/")
        responses.add(responses.GET, f"{BASE}/models", json={"data": []}, status=200)
        client.request("GET", "/models")
        assert responses.calls[0].request.url == f"{BASE}/models"

    @responses.activate
    def test_stream_sets_accept_header(self, http):
        responses.add(responses.POST, f"{BASE}/chat/completions", body="data: [DONE]\n\n", status=200)
        http.stream("POST", "/chat/completions", json={"model": "m"})
        request = responses.calls[0].request
        assert request.headers["Accept"] == "text/event-stream"
        assert json.loads(request.body) == {"model": "m"}

    def test_stream_reports_checked_out_connection(self, loopback):
        seen = []
        with StallingSSEServer(frames=[sse_frame("[DONE]")]) as server:
            client = HTTPClient(base_url=f"{server.base_url}/v1")
            response = client.stream("POST", "/chat/completions", json={}, on_connection=seen.append)

            (conn,) = seen
            assert isinstance(conn, HTTPConnection)
            assert conn.sock is not None
            response.close()

    def test_observer_is_scoped_to_one_call(self, loopback):
        seen = []
        with StallingSSEServer(frames=[sse_frame("[DONE]")]) as server:
            client = HTTPClient(base_url=f"{server.base_url}/v1")
            client.stream("POST", "/chat/completions", json={}, on_connection=seen.append).close()
            client.stream("POST", "/chat/completions", json={}).close()

        assert len(seen) == 1


class TestErrorMapping:
    @responses.activate
    def test_400_openai_error_shape(self, http):
        responses.add(
            responses.POST,
            f"{BASE}/chat/completions",
            json={"error": {"message": "Model not loaded", "type": "invalid_request_error"}},
            status=400,
        )
        with pytest.raises(BadRequestError) as exc_info:
            http.request("POST", "/chat/completions")
        assert exc_info.value.status_code == 400
        assert exc_info.value.message == "Model not loaded"
        assert exc_info.value.method == "POST"

    @responses.activate
    def test_error_string_shape(self, http):
        responses.add(responses.POST, f"{BASE}/chat/completions", json={"error": "bad"}, status=422)
        with pytest.raises(BadRequestError, match="bad"):
            http.request("POST", "/chat/completions")

    @responses.activate
    def test_404_raises_not_found(self, http):
        responses.add(responses.GET, f"{BASE}/x", json={"detail": "Not found"}, status=404)
        with pytest.raises(NotFoundError, match="Not found"):
            http.request("GET", "/x")

    @responses.activate
    def test_429_raises_rate_limit(self, http):
        responses.add(responses.POST, f"{BASE}/x", json={"detail": "Slow down"}, status=429)
        with pytest.raises(RateLimitError):
            http.request("POST", "/x")

    @responses.activate
    def test_500_raises_api_error(self, http):
        responses.add(responses.POST, f"{BASE}/x", json={"detail": "Boom"}, status=500)
        with pytest.raises(APIError) as exc_info:
            http.request("POST", "/x")
        assert exc_info.value.status_code == 500

    @responses.activate
    def test_non_json_error_body(self, http):
        responses.add(responses.POST, f"{BASE}/x", body="upstream crashed", status=502)
        with pytest.raises(APIError, match="upstream crashed"):
            http.request("POST", "/x")

    @responses.activate
    def test_connection_error(self, http):
        responses.add(
            responses.POST, f"{BASE}/x", body=requests.ConnectionError("Connection refused")
        )
        with pytest.raises(TransportError, match="Connection refused"):
            http.request("POST", "/x")

    @responses.activate
    def test_timeout(self, http):
        responses.add(responses.POST, f"{BASE}/x", body=requests.ReadTimeout("slow"))
        with pytest.raises(RequestTimeoutError):
            http.request("POST", "/x")


class TestHandlerOverHTTP:
    @responses.activate
    def test_streams_events(self, user_messages):
        responses.add(
            responses.POST,
            f"{BASE}/chat/completions",
            body=sse_body(content_chunk("Hel"), content_chunk("lo"), finish_chunk("stop")),
            status=200,
            content_type="text/event-stream",
        )
        handler = LMStudioHandler(base_url="http://localhost:1234", model_id="m", token_counter=len)

        events = list(handler.create_message("sys", user_messages))

        assert events == [
            TextEvent(text="Hel"),
            TextEvent(text="lo"),
            UsageEvent(input_tokens=len("sys") + len("Hello there"), output_tokens=5),
        ]
        body = json.loads(responses.calls[0].request.body)
        assert body["stream"] is True
        assert body["model"] == "m"

    @responses.activate
    def test_server_error_is_stream_failure(self, user_messages):
        responses.add(
            responses.POST,
            f"{BASE}/chat/completions",
            json={"error": {"message": "context length exceeded"}},
            status=500,
        )
        handler = LMStudioHandler(base_url="http://localhost:1234", model_id="m", token_counter=len)

        with pytest.raises(StreamFailedError) as exc_info:
            list(handler.create_message("sys", user_messages))

        assert exc_info.value.status_code == 500
        assert isinstance(exc_info.value.__cause__, APIError)
        assert handler.active is False
