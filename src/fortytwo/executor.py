"""Request executor: the authenticate/dispatch/retry state machine.

Every API call goes through RequestExecutor.execute():

    AUTHENTICATE -> DISPATCH -> SUCCESS
                             -> RETRY (back to AUTHENTICATE)
                             -> TERMINAL_FAILURE

Retry Strategy:
- Retries on: 401 (token dropped and re-fetched) and 429 (throttled)
- Optionally on 5xx when ``retry_server_errors`` is enabled
- Budget: ``descriptor.max_retry`` re-attempts; 0 disables retrying
- Every attempt re-authenticates and re-acquires a rate limiter permit
- Transport failures (no response at all) are never retried here
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Mapping

import httpx

from .auth import TokenManager, decode_body
from .errors import ApiError, RetryExhaustedError, TransportError
from .metrics import requests_total, retries_total, transport_errors_total
from .rate_limiter import RateLimiter

logger = logging.getLogger("fortytwo.executor")

__all__ = [
    "DEFAULT_MAX_RETRY",
    "METHODS",
    "RETRYABLE_STATUSES",
    "RequestDescriptor",
    "RequestExecutor",
    "ResponseEnvelope",
]

METHODS = frozenset({"GET", "POST", "PATCH", "DELETE"})
RETRYABLE_STATUSES = frozenset({401, 429})
DEFAULT_MAX_RETRY = 5

_RETRY_REASONS = {401: "unauthorized", 429: "throttled"}


@dataclass
class RequestDescriptor:
    """One logical API call, mutated in place across retries.

    Attributes:
        method: HTTP method (GET, POST, PATCH, DELETE)
        url: Absolute target URL
        body: Optional JSON body
        params: Optional query parameters
        token: Optional per-call bearer token overriding the cached one
        attempt: Retries performed so far (starts at 0, never exceeds max_retry)
        max_retry: Retry ceiling for this call
    """

    method: str
    url: str
    body: Any = None
    params: Mapping[str, Any] | None = None
    token: str | None = field(default=None, repr=False)
    attempt: int = 0
    max_retry: int = DEFAULT_MAX_RETRY

    def __post_init__(self) -> None:
        self.method = self.method.upper()
        if self.method not in METHODS:
            raise ValueError(f"Invalid HTTP method: {self.method}")
        if self.max_retry < 0:
            raise ValueError(f"max_retry must be >= 0, got {self.max_retry}")

    @property
    def can_retry(self) -> bool:
        return self.max_retry > 0 and self.attempt < self.max_retry


@dataclass(frozen=True)
class ResponseEnvelope:
    """A received HTTP response with its body already decoded."""

    status: int
    headers: httpx.Headers
    body: Any
    url: str


class RequestExecutor:
    """Runs RequestDescriptors through the retry state machine.

    Example:
        >>> executor = RequestExecutor(http, tokens, limiter)
        >>> envelope = await executor.execute(RequestDescriptor("GET", url))
        >>> envelope.body
    """

    def __init__(
        self,
        http: httpx.AsyncClient,
        tokens: TokenManager,
        limiter: RateLimiter,
        retry_server_errors: bool = False,
        log_requests: bool = False,
    ) -> None:
        """Initialize executor.

        Args:
            http: Shared httpx client used for resource calls
            tokens: Token manager supplying bearer tokens
            limiter: Rate limiter gating every dispatch
            retry_server_errors: Also retry 5xx responses
            log_requests: Log every successful request at INFO
        """
        self._http = http
        self.tokens = tokens
        self.limiter = limiter
        self.retry_server_errors = retry_server_errors
        self.log_requests = log_requests

    def is_retryable(self, status: int) -> bool:
        """Whether a response status is eligible for another attempt."""
        if status in RETRYABLE_STATUSES:
            return True
        return self.retry_server_errors and status >= 500

    async def execute(self, descriptor: RequestDescriptor) -> ResponseEnvelope:
        """Execute a request, retrying 401/429 within the descriptor's budget.

        Args:
            descriptor: Request to execute; its attempt counter is updated

        Returns:
            ResponseEnvelope for the first response with status < 400

        Raises:
            TokenAcquisitionError: A bearer token could not be obtained
            TransportError: No HTTP response was received
            RetryExhaustedError: A retryable status persisted past max_retry
            ApiError: Any other error response
        """
        while True:
            token = await self.tokens.ensure_token(descriptor.token)
            response = await self._dispatch(descriptor, token)
            status = response.status_code
            requests_total.labels(method=descriptor.method, status=str(status)).inc()

            if status < 400:
                return self._success(descriptor, response)

            retryable = self.is_retryable(status)
            if retryable and descriptor.can_retry:
                if status == 401:
                    self.tokens.invalidate(token)
                descriptor.attempt += 1
                retries_total.labels(
                    reason=_RETRY_REASONS.get(status, "server_error")
                ).inc()
                logger.warning(
                    "request_retry",
                    extra={
                        "status_code": status,
                        "method": descriptor.method,
                        "url": descriptor.url,
                        "attempt": descriptor.attempt,
                        "max_retry": descriptor.max_retry,
                    },
                )
                continue

            raise self._failure(descriptor, response, retryable)

    async def _dispatch(self, descriptor: RequestDescriptor, token: str) -> httpx.Response:
        """Send one attempt while holding a rate limiter permit."""
        request_kwargs: dict[str, Any] = {
            "params": descriptor.params,
            "headers": {"Authorization": f"Bearer {token}"},
        }
        if descriptor.body is not None:
            request_kwargs["json"] = descriptor.body

        async with self.limiter.acquire():
            try:
                return await self._http.request(
                    descriptor.method, descriptor.url, **request_kwargs
                )
            except httpx.RequestError as e:
                transport_errors_total.labels(method=descriptor.method).inc()
                logger.error(
                    "request_transport_error",
                    extra={
                        "method": descriptor.method,
                        "url": descriptor.url,
                        "error": str(e),
                    },
                )
                raise TransportError(
                    f"{descriptor.method} {descriptor.url} failed: {e}",
                    method=descriptor.method,
                    url=descriptor.url,
                ) from e

    def _success(self, descriptor: RequestDescriptor, response: httpx.Response) -> ResponseEnvelope:
        envelope = ResponseEnvelope(
            status=response.status_code,
            headers=response.headers,
            body=decode_body(response),
            url=str(response.request.url),
        )
        if self.log_requests:
            context: dict[str, Any] = {
                "status_code": envelope.status,
                "method": descriptor.method,
                "url": envelope.url,
            }
            if descriptor.attempt:
                context["attempt"] = descriptor.attempt
                context["max_retry"] = descriptor.max_retry
            logger.info("request_succeeded", extra=context)
        return envelope

    def _failure(
        self,
        descriptor: RequestDescriptor,
        response: httpx.Response,
        retryable: bool,
    ) -> ApiError:
        """Normalize an error response into the exception to raise."""
        error_cls = RetryExhaustedError if retryable else ApiError
        error = error_cls(
            response.status_code,
            str(response.request.url),
            body=decode_body(response),
            method=descriptor.method,
            attempt=descriptor.attempt,
        )
        logger.error(
            "request_failed",
            extra={
                "status_code": error.status,
                "method": descriptor.method,
                "url": error.url,
                "attempt": descriptor.attempt,
                "max_retry": descriptor.max_retry,
            },
        )
        return error
