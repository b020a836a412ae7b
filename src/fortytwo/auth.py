"""OAuth2 bearer token management (client credentials + authorization code).

The TokenManager caches one access token per client instance. A missing token
is fetched lazily on first need; a token rejected by the API is dropped via
``invalidate()`` and re-fetched on the next request.

Concurrent callers that find the cache empty share a single in-flight grant
exchange instead of each posting to the token endpoint.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any

import httpx

from .errors import TokenAcquisitionError
from .metrics import token_requests_total

logger = logging.getLogger("fortytwo.auth")

__all__ = ["Credential", "TokenManager", "decode_body"]


@dataclass(frozen=True)
class Credential:
    """OAuth application credentials, fixed for the client's lifetime."""

    client_id: str
    client_secret: str = field(repr=False)
    scopes: tuple[str, ...] = ("public",)

    @property
    def scope(self) -> str:
        return " ".join(self.scopes)


class TokenManager:
    """Owns the cached bearer token and the grant exchange protocol.

    Attributes:
        token_url: OAuth token endpoint
        credential: Client id, secret and scopes used for the grant
    """

    def __init__(self, http: httpx.AsyncClient, token_url: str, credential: Credential):
        """Initialize token manager.

        Args:
            http: Shared httpx client used for the token endpoint call
            token_url: OAuth token endpoint URL
            credential: Application credentials
        """
        self._http = http
        self.token_url = token_url
        self.credential = credential

        self._token: str | None = None
        self._pending: asyncio.Future[str] | None = None
        # Bumped by exchange_code(); older grants must not overwrite its token
        self._generation = 0

    @property
    def token(self) -> str | None:
        """Currently cached access token, if any."""
        return self._token

    async def ensure_token(self, override: str | None = None) -> str:
        """Return a bearer token for the next request.

        Args:
            override: Per-call token; returned unchanged and never cached

        Returns:
            Access token string

        Raises:
            TokenAcquisitionError: Grant exchange failed
        """
        if override is not None:
            return override
        if self._token is not None:
            return self._token

        # No await between the check and the assignment, so concurrent
        # misses always observe the same pending exchange.
        if self._pending is None:
            self._pending = asyncio.ensure_future(
                self._grant(
                    "client_credentials",
                    {
                        "grant_type": "client_credentials",
                        "client_id": self.credential.client_id,
                        "client_secret": self.credential.client_secret,
                        "scope": self.credential.scope,
                    },
                    self._generation,
                )
            )
            self._pending.add_done_callback(self._clear_pending)

        # Shielded: a cancelled waiter must not abort the exchange for the others
        return await asyncio.shield(self._pending)

    def invalidate(self, rejected: str | None = None) -> None:
        """Drop the cached token; the next ensure_token() fetches a new one.

        Args:
            rejected: Token the API refused. The cache is only cleared while it
                still holds that token, so a late 401 for an old token does not
                discard a newer one.
        """
        if self._token is None:
            return
        if rejected is not None and rejected != self._token:
            return
        logger.info("access_token_invalidated")
        self._token = None

    async def exchange_code(self, code: str, redirect_uri: str) -> str:
        """Trade an authorization code for an access token and cache it.

        Args:
            code: Authorization code received on the redirect URI
            redirect_uri: Redirect URI registered for the application

        Returns:
            Access token string

        Raises:
            TokenAcquisitionError: Grant exchange failed
        """
        self._generation += 1
        return await self._grant(
            "authorization_code",
            {
                "grant_type": "authorization_code",
                "client_id": self.credential.client_id,
                "client_secret": self.credential.client_secret,
                "code": code,
                "redirect_uri": redirect_uri,
            },
            self._generation,
        )

    def _clear_pending(self, future: asyncio.Future) -> None:
        if self._pending is future:
            self._pending = None

    async def _grant(self, grant_type: str, form: dict[str, str], generation: int) -> str:
        try:
            response = await self._http.post(self.token_url, data=form)
        except httpx.HTTPError as e:
            token_requests_total.labels(grant_type=grant_type, status="failed").inc()
            logger.error(
                "token_request_failed",
                extra={"grant_type": grant_type, "error": str(e)},
            )
            raise TokenAcquisitionError(f"Token request failed: {e}") from e

        if not response.is_success:
            body = decode_body(response)
            token_requests_total.labels(grant_type=grant_type, status="failed").inc()
            logger.error(
                "token_request_rejected",
                extra={"grant_type": grant_type, "status_code": response.status_code},
            )
            raise TokenAcquisitionError(
                f"Token endpoint returned {response.status_code}",
                status=response.status_code,
                body=body,
            )

        body = decode_body(response)
        token = body.get("access_token") if isinstance(body, dict) else None
        if not isinstance(token, str) or not token:
            token_requests_total.labels(grant_type=grant_type, status="failed").inc()
            raise TokenAcquisitionError(
                "Token response has no access_token",
                status=response.status_code,
                body=body,
            )

        token_requests_total.labels(grant_type=grant_type, status="success").inc()
        logger.info("access_token_acquired", extra={"grant_type": grant_type})
        if generation == self._generation:
            self._token = token
        else:
            logger.info("access_token_superseded", extra={"grant_type": grant_type})
        return token


def decode_body(response: httpx.Response) -> Any:
    """Decode a JSON body, falling back to text for anything else."""
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return response.text
