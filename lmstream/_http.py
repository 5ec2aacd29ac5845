"""Thin HTTP client wrapping requests.Session with error mapping and retry."""

from collections.abc import Callable, Iterator
from contextlib import contextmanager
import logging
import threading
from typing import Any

import requests
from requests.adapters import HTTPAdapter
from urllib3.connection import HTTPConnection
from urllib3.connectionpool import HTTPConnectionPool, HTTPSConnectionPool
from urllib3.util.retry import Retry

from ._exceptions import STATUS_MAP, APIError, RequestTimeoutError, TransportError

logger = logging.getLogger(__name__)

USER_AGENT = "lmstream-python/0.1.0"

ConnectionObserver = Callable[[HTTPConnection], None]

_observers = threading.local()


@contextmanager
def observe_connections(observer: ConnectionObserver | None) -> Iterator[None]:
    """Report every connection the current thread checks out of a pool to ``observer``."""
    previous = getattr(_observers, "current", None)
    _observers.current = observer
    try:
        yield
    finally:
        _observers.current = previous


def _checked_out(conn: HTTPConnection) -> HTTPConnection:
    observer = getattr(_observers, "current", None)
    if observer is not None:
        observer(conn)
    return conn


class _ObservedHTTPConnectionPool(HTTPConnectionPool):
    def _get_conn(self, timeout: float | None = None) -> HTTPConnection:
        return _checked_out(super()._get_conn(timeout))


class _ObservedHTTPSConnectionPool(HTTPSConnectionPool):
    def _get_conn(self, timeout: float | None = None) -> HTTPConnection:
        return _checked_out(super()._get_conn(timeout))


class _ObservedAdapter(HTTPAdapter):
    """HTTPAdapter whose pools announce checked-out connections to ``observe_connections``."""

    def init_poolmanager(self, *args: Any, **kwargs: Any) -> None:
        super().init_poolmanager(*args, **kwargs)
        self.poolmanager.pool_classes_by_scheme = {
            "http": _ObservedHTTPConnectionPool,
            "https": _ObservedHTTPSConnectionPool,
        }


def _raise_for_status(resp: requests.Response, *, method: str = "", path: str = "") -> None:
    """Map HTTP error responses to typed exceptions."""
    message = f"HTTP {resp.status_code}"
    try:
        body = resp.json()
        # OpenAI-compatible servers return {"error": {"message": ...}} or {"error": "..."}
        error_obj = body.get("error", {})
        if isinstance(error_obj, dict):
            message = error_obj.get("message", body.get("detail", message))
        elif isinstance(error_obj, str) and error_obj:
            message = error_obj
    except (ValueError, AttributeError):
        logger.debug("Failed to parse error body: %s", resp.text[:200] if resp.text else "empty")
        message = resp.text or message

    resp.close()
    exc_cls = STATUS_MAP.get(resp.status_code, APIError)
    raise exc_cls(message, status_code=resp.status_code, method=method, path=path)


class HTTPClient:
    """Minimal HTTP client with JSON headers, error mapping, and retry for idempotent calls."""

    def __init__(self, base_url: str, timeout: float | None = None):
        self._session = requests.Session()

        # POST is not idempotent; a retried chat completion would run the model twice.
        retry_strategy = Retry(
            total=3,
            backoff_factor=0.5,
            status_forcelist=[429, 500, 502, 503, 504],
            allowed_methods=["HEAD", "GET", "OPTIONS"],
            raise_on_status=False,
        )
        adapter = _ObservedAdapter(max_retries=retry_strategy)
        self._session.mount("http://", adapter)
        self._session.mount("https://", adapter)

        self._session.headers["Content-Type"] = "application/json"
        self._session.headers["User-Agent"] = USER_AGENT
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout

    def _send(
        self, method: str, url: str, *, is_stream: bool = False, **kwargs: Any
    ) -> requests.Response:
        try:
            resp = self._session.request(
                method, url, timeout=self._timeout, stream=is_stream, **kwargs
            )
        except requests.Timeout as e:
            raise RequestTimeoutError(str(e), method=method, path=url) from e
        except requests.RequestException as e:
            logger.warning("Request %s %s failed: %s", method, url, e)
            raise TransportError(str(e), method=method, path=url) from e

        if not resp.ok:
            _raise_for_status(resp, method=method, path=url)
        return resp

    def request(self, method: str, path: str, **kwargs: Any) -> requests.Response:
        """Send request and raise typed exception on error."""
        return self._send(method, f"{self._base_url}{path}", **kwargs)

    def stream(
        self,
        method: str,
        path: str,
        *,
        on_connection: ConnectionObserver | None = None,
        **kwargs: Any,
    ) -> requests.Response:
        """Send request with stream=True for SSE parsing. The caller owns the response.

        ``on_connection`` receives the pooled connection carrying the request as soon as
        it is checked out, before the response headers arrive.
        """
        headers = {"Accept": "text/event-stream", **kwargs.pop("headers", {})}
        url = f"{self._base_url}{path}"
        with observe_connections(on_connection):
            return self._send(method, url, is_stream=True, headers=headers, **kwargs)

    def close(self) -> None:
        self._session.close()
