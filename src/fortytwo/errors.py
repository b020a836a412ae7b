"""Exception hierarchy for the fortytwo client.

Every failure the request pipeline surfaces derives from FortyTwoError, so
callers can catch the whole family with a single except clause.
"""

from typing import Any

__all__ = [
    "ApiError",
    "FortyTwoError",
    "RetryExhaustedError",
    "TokenAcquisitionError",
    "TransportError",
]


class FortyTwoError(Exception):
    """Base class for all fortytwo client errors."""

    pass


class TransportError(FortyTwoError):
    """Raised when no HTTP response was obtained (DNS, connect, timeout...).

    Never retried by the request executor.
    """

    def __init__(self, message: str, method: str | None = None, url: str | None = None):
        self.method = method
        self.url = url
        super().__init__(message)


class ApiError(FortyTwoError):
    """Raised for an HTTP error response (status >= 400).

    Attributes:
        status: HTTP status code
        url: Request URL
        body: Decoded response body (JSON value, text, or None)
        method: HTTP method of the failed request
        attempt: Attempt counter of the request when it failed
    """

    def __init__(
        self,
        status: int,
        url: str,
        body: Any = None,
        method: str | None = None,
        attempt: int = 0,
    ):
        self.status = status
        self.url = url
        self.body = body
        self.method = method
        self.attempt = attempt
        super().__init__(self._describe())

    def _describe(self) -> str:
        return f"API error {self.status}: {self.method or 'request'} {self.url}"


class RetryExhaustedError(ApiError):
    """Raised when a retryable status persists after the retry budget is spent."""

    def _describe(self) -> str:
        return (
            f"API error {self.status} after {self.attempt} retries: "
            f"{self.method or 'request'} {self.url}"
        )


class TokenAcquisitionError(FortyTwoError):
    """Raised when the OAuth grant exchange fails."""

    def __init__(self, message: str, status: int | None = None, body: Any = None):
        self.status = status
        self.body = body
        super().__init__(message)
