"""One in-flight streaming request: its transfer handle, token, and cleanup."""

from __future__ import annotations

from collections.abc import Callable
import itertools
import logging
import socket
from threading import Lock
from typing import TYPE_CHECKING

from .cancellation import CancellationToken

if TYPE_CHECKING:
    import requests
    from urllib3.connection import HTTPConnection

logger = logging.getLogger(__name__)

_ids = itertools.count(1)


class StreamSession:
    """
    Owns the connection, response and cancellation token for the lifetime of one request.

    ``cancel`` may be called from any thread. It shuts down the socket under the
    request, which wakes a reader blocked either on the response headers or on
    the body. ``finish`` is the finalizer run by the consuming generator on
    every exit path; it executes once.
    """

    def __init__(self, on_finish: Callable[[StreamSession], None] | None = None) -> None:
        self.id = next(_ids)
        self.token = CancellationToken()
        self._lock = Lock()
        self._connection: HTTPConnection | None = None
        self._response: requests.Response | None = None
        self._cancel_requested = False
        self._finished = False
        self._on_finish = on_finish
        self.token.add_observer(self._interrupt)

    @property
    def cancelled(self) -> bool:
        """True once cancel() has begun, even before the token itself is set."""
        return self._cancel_requested or self.token.cancelled

    @property
    def finished(self) -> bool:
        return self._finished

    def bind_connection(self, connection: HTTPConnection) -> None:
        """Record the pooled connection carrying the request (called before headers arrive)."""
        with self._lock:
            self._connection = connection
        if self.cancelled:
            self._interrupt()

    def attach(self, response: requests.Response) -> None:
        """Bind the transfer handle. Closes it at once if the session was already cancelled."""
        with self._lock:
            self._response = response
        if self.cancelled:
            self._interrupt()

    def cancel(self, reason: str = "cancelled by caller") -> None:
        """Stop the byte producer, then signal the token. Never raises."""
        logger.info("Cancelling stream session %d", self.id)
        self._cancel_requested = True
        self._interrupt()
        try:
            self.token.cancel(reason)
        except Exception:
            logger.exception("Failed to signal cancellation for session %d", self.id)

    def finish(self) -> None:
        """Close the transfer handle and release references (exactly once)."""
        with self._lock:
            if self._finished:
                return
            self._finished = True
            response, self._response = self._response, None
            self._connection = None
        self._close(response)
        if self._on_finish is not None:
            on_finish, self._on_finish = self._on_finish, None
            on_finish(self)
        logger.debug("Stream session %d finished", self.id)

    def _interrupt(self) -> None:
        with self._lock:
            connection, self._connection = self._connection, None
            response, self._response = self._response, None
        if connection is not None:
            self._shutdown(connection)
        self._close(response)

    def _shutdown(self, connection: HTTPConnection) -> None:
        sock = connection.sock
        if sock is None:
            logger.debug("Session %d connection has no socket yet", self.id)
            return
        try:
            sock.shutdown(socket.SHUT_RDWR)
        except OSError as e:
            # already closed by the peer or by the pool
            logger.debug("Socket shutdown for session %d failed: %s", self.id, e)

    def _close(self, response: requests.Response | None) -> None:
        if response is None:
            return
        try:
            response.close()
        except Exception:
            logger.exception("Error closing response for session %d", self.id)
