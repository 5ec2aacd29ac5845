"""Typed error hierarchy for the LM Studio streaming client."""

FAILURE_MESSAGE = (
    "Please check the LM Studio developer logs to debug what went wrong. "
    "You may need to load the model with a larger context length to work with your prompts."
)

TIMEOUT_MESSAGE = (
    "Request timed out. This shouldn't happen with an unbounded timeout - please check your setup."
)


class LMStreamError(Exception):
    """Base exception for all lmstream errors."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        method: str | None = None,
        path: str | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.method = method
        self.path = path


class APIError(LMStreamError):
    """Non-2xx response from the inference server."""


class BadRequestError(APIError):
    """400/422: the server rejected the request body."""


class NotFoundError(APIError):
    """404: unknown endpoint or model."""


class RateLimitError(APIError):
    """429: too many requests."""


class TransportError(LMStreamError):
    """Connection refused, reset, or otherwise broken before a response arrived."""


class RequestTimeoutError(LMStreamError):
    """The HTTP layer gave up waiting for the server."""


class StreamFailedError(LMStreamError):
    """A streaming request failed for a reason other than cancellation."""


class StreamTimeoutError(LMStreamError):
    """A streaming request timed out; the transport is expected to have no timeout."""


class SessionBusyError(LMStreamError):
    """start() was called while another request is still active on the handler."""


class CancelledError(LMStreamError):
    """Raised when an operation observes a cancelled token."""


# Map HTTP status codes to exception classes.
STATUS_MAP: dict[int, type[APIError]] = {
    400: BadRequestError,
    404: NotFoundError,
    422: BadRequestError,
    429: RateLimitError,
}
