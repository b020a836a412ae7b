"""42 intranet REST API client.

Provides an async httpx-based client with OAuth2 bearer token auth.
Every call shares one token cache and one rate limiter, is retried on
401/429 by the request executor, and paginated endpoints can be read in one
call with ``get_all()``.

Reference: https://api.intra.42.fr/apidoc
"""

from typing import Any, Iterable, Mapping
from urllib.parse import urljoin

import httpx

from .auth import Credential, TokenManager
from .config import DEFAULT_BASE_URL, DEFAULT_RATE_WINDOW, DEFAULT_TOKEN_URL, FortyTwoConfig
from .executor import DEFAULT_MAX_RETRY, RequestDescriptor, RequestExecutor, ResponseEnvelope
from .pagination import DEFAULT_PER_PAGE, Paginator
from .rate_limiter import RateLimiter

__all__ = ["FortyTwoClient"]


class FortyTwoClient:
    """Authenticated client for a paginated, rate-limited REST API.

    Uses a long-lived httpx.AsyncClient with connection pooling.

    Attributes:
        base_url: API root that relative endpoints are joined onto
        max_retry: Retry ceiling applied to every request
        tokens: Token manager (cached bearer token)
        limiter: Rate limiter shared by every request
        executor: Retry state machine
        paginator: Link header paginator

    Example:
        >>> async with FortyTwoClient("uid", "secret") as client:
        ...     me = await client.get("/campus/1")
        ...     campuses = await client.get_all("/campus")
    """

    # Timeout configuration
    CONNECT_TIMEOUT = 5.0  # seconds
    READ_TIMEOUT = 30.0  # seconds
    WRITE_TIMEOUT = 5.0  # seconds
    POOL_TIMEOUT = 5.0  # seconds

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        scopes: Iterable[str] = ("public",),
        base_url: str = DEFAULT_BASE_URL,
        token_url: str = DEFAULT_TOKEN_URL,
        rate: int = 2,
        rate_window: float = DEFAULT_RATE_WINDOW,
        max_retry: int = DEFAULT_MAX_RETRY,
        retry_server_errors: bool = False,
        log_requests: bool = False,
        timeout: float = READ_TIMEOUT,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize client.

        Args:
            client_id: OAuth application UID
            client_secret: OAuth application secret
            scopes: Scopes requested by the client-credentials grant
            base_url: API root (a trailing slash is added when missing)
            token_url: OAuth token endpoint
            rate: Requests admitted per rate window
            rate_window: Rate window length in seconds
            max_retry: Retry ceiling for 401/429 responses (0 disables)
            retry_server_errors: Also retry 5xx responses
            log_requests: Log status, method and URL of successful requests
            timeout: Read timeout in seconds
            transport: Optional httpx transport (tests use httpx.MockTransport)
        """
        if max_retry < 0:
            raise ValueError(f"max_retry must be >= 0, got {max_retry}")

        self.base_url = base_url if base_url.endswith("/") else base_url + "/"
        self.max_retry = max_retry

        self._client = httpx.AsyncClient(
            headers={"Accept": "application/json"},
            timeout=httpx.Timeout(
                connect=self.CONNECT_TIMEOUT,
                read=timeout,
                write=self.WRITE_TIMEOUT,
                pool=self.POOL_TIMEOUT,
            ),
            transport=transport,
        )

        self.tokens = TokenManager(
            self._client,
            token_url,
            Credential(client_id, client_secret, tuple(scopes)),
        )
        self.limiter = RateLimiter(rate=rate, window=rate_window)
        self.executor = RequestExecutor(
            self._client,
            self.tokens,
            self.limiter,
            retry_server_errors=retry_server_errors,
            log_requests=log_requests,
        )
        self.paginator = Paginator(self.executor, max_retry, url_for=self.url_for)

    @classmethod
    def from_config(
        cls,
        config: FortyTwoConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> "FortyTwoClient":
        """Build a client from a FortyTwoConfig (see get_config())."""
        return cls(
            config.client_id,
            config.client_secret.get_secret_value(),
            scopes=config.scopes,
            base_url=config.base_url,
            token_url=config.token_url,
            rate=config.rate,
            rate_window=config.rate_window,
            max_retry=config.max_retry,
            retry_server_errors=config.retry_server_errors,
            log_requests=config.log_requests,
            timeout=config.timeout,
            transport=transport,
        )

    async def __aenter__(self) -> "FortyTwoClient":
        """Async context manager entry."""
        return self

    async def __aexit__(self, *args: Any) -> None:
        """Async context manager exit -- close httpx client."""
        await self.close()

    async def close(self) -> None:
        """Close the httpx client and release connections."""
        await self._client.aclose()

    def url_for(self, endpoint: str) -> str:
        """Resolve an endpoint against base_url; absolute URLs pass through.

        Leading slashes are relative to base_url, not to the host root, so
        "/campus" and "campus" both resolve to ``<base_url>campus``.
        """
        if endpoint.startswith(("http://", "https://")):
            return endpoint
        return urljoin(self.base_url, endpoint.lstrip("/"))

    # --- Authentication ---

    async def authenticate_with_code(self, code: str, redirect_uri: str) -> str:
        """Exchange an OAuth authorization code and use the resulting token."""
        return await self.tokens.exchange_code(code, redirect_uri)

    # --- Requests ---

    async def request(
        self,
        method: str,
        endpoint: str,
        body: Any = None,
        params: Mapping[str, Any] | None = None,
        token: str | None = None,
    ) -> ResponseEnvelope:
        """Execute a request and return the full response envelope.

        Raises:
            FortyTwoError: On terminal failure (see fortytwo.errors)
        """
        descriptor = RequestDescriptor(
            method,
            self.url_for(endpoint),
            body=body,
            params=params,
            token=token,
            max_retry=self.max_retry,
        )
        return await self.executor.execute(descriptor)

    async def get(
        self,
        endpoint: str,
        params: Mapping[str, Any] | None = None,
        token: str | None = None,
    ) -> Any:
        """GET an endpoint and return the decoded body."""
        envelope = await self.request("GET", endpoint, params=params, token=token)
        return envelope.body

    async def post(self, endpoint: str, body: Any, token: str | None = None) -> Any:
        """POST a JSON body and return the decoded response body."""
        envelope = await self.request("POST", endpoint, body=body, token=token)
        return envelope.body

    async def patch(self, endpoint: str, body: Any, token: str | None = None) -> Any:
        """PATCH a JSON body and return the decoded response body."""
        envelope = await self.request("PATCH", endpoint, body=body, token=token)
        return envelope.body

    async def delete(self, endpoint: str, token: str | None = None) -> Any:
        """DELETE an endpoint and return the decoded response body (often None)."""
        envelope = await self.request("DELETE", endpoint, token=token)
        return envelope.body

    async def get_all(
        self,
        endpoint: str,
        per_page: int = DEFAULT_PER_PAGE,
        params: Mapping[str, Any] | None = None,
        token: str | None = None,
    ) -> Any:
        """GET every page of an endpoint (see Paginator.get_all)."""
        return await self.paginator.get_all(
            endpoint, per_page=per_page, params=params, token=token
        )
