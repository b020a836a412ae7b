"""Shared pytest fixtures for fortytwo client tests.

Fixture Organization:
    - FakeApi: scripted server behind httpx.MockTransport (token endpoint +
      resource routes), recording every request it receives
    - Client fixtures: FortyTwoClient / TokenManager wired to the FakeApi,
      closed on teardown

References:
    - pytest fixtures docs: https://docs.pytest.org/en/stable/how-to/fixtures.html
    - httpx MockTransport: https://www.python-httpx.org/advanced/transports/#mock-transports
"""

import asyncio
from collections.abc import Awaitable, Callable
from urllib.parse import parse_qsl

import httpx
import pytest
import pytest_asyncio

from fortytwo.auth import Credential, TokenManager
from fortytwo.client import FortyTwoClient

BASE_URL = "https://api.test/v2/"
TOKEN_URL = "https://auth.test/oauth/token"

Route = Callable[[httpx.Request], httpx.Response | Awaitable[httpx.Response]]


class FakeApi:
    """Scripted 42 API.

    Attributes:
        token_status: Status returned by the token endpoint (200 issues tokens)
        token_delay: Seconds the token endpoint takes to answer
        token_forms: Decoded form bodies posted to the token endpoint
        tokens_issued: Number of access tokens handed out (tok-1, tok-2, ...)
        requests: Resource requests received (token endpoint excluded)
        routes: path -> handler callable, or a list of responses served in order
    """

    def __init__(self) -> None:
        self.token_status = 200
        self.token_delay = 0.0
        self.token_forms: list[dict[str, str]] = []
        self.tokens_issued = 0
        self.requests: list[httpx.Request] = []
        self.routes: dict[str, Route | list[httpx.Response]] = {}

    def route(self, path: str, handler: Route | list[httpx.Response]) -> None:
        self.routes[path] = handler

    def requests_to(self, path: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.url.path == path]

    async def handler(self, request: httpx.Request) -> httpx.Response:
        if str(request.url) == TOKEN_URL:
            return await self._token(request)

        self.requests.append(request)
        route = self.routes.get(request.url.path)
        if route is None:
            return httpx.Response(404, json={"error": "Not Found"})
        if isinstance(route, list):
            return route.pop(0)
        response = route(request)
        if asyncio.iscoroutine(response):
            response = await response
        return response

    async def _token(self, request: httpx.Request) -> httpx.Response:
        self.token_forms.append(dict(parse_qsl(request.content.decode())))
        if self.token_delay:
            await asyncio.sleep(self.token_delay)
        if self.token_status != 200:
            return httpx.Response(self.token_status, json={"error": "server_error"})
        self.tokens_issued += 1
        return httpx.Response(
            200,
            json={
                "access_token": f"tok-{self.tokens_issued}",
                "token_type": "bearer",
                "expires_in": 7200,
            },
        )

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


def page_link(path: str, last: int) -> str:
    """Build a Link header pointing at ``last`` as the final page."""
    return (
        f'<{BASE_URL}{path}?page=2&per_page=100>; rel="next", '
        f'<{BASE_URL}{path}?page={last}&per_page=100>; rel="last"'
    )


@pytest.fixture
def fake_api() -> FakeApi:
    """Fresh scripted API per test."""
    return FakeApi()


@pytest_asyncio.fixture
async def make_client(fake_api):
    """Factory for FortyTwoClients talking to fake_api; all closed on teardown.

    Defaults keep the rate limiter out of the way (rate=100, tiny window).
    """
    clients: list[FortyTwoClient] = []

    def _make(**kwargs) -> FortyTwoClient:
        options = {
            "client_id": "uid",
            "client_secret": "secret",
            "base_url": BASE_URL,
            "token_url": TOKEN_URL,
            "rate": 100,
            "rate_window": 0.01,
            "transport": fake_api.transport,
        }
        options.update(kwargs)
        client = FortyTwoClient(**options)
        clients.append(client)
        return client

    yield _make

    for client in clients:
        await client.close()


@pytest_asyncio.fixture
async def client(make_client) -> FortyTwoClient:
    """Client with default retry budget (5)."""
    return make_client()


@pytest_asyncio.fixture
async def token_manager(fake_api):
    """TokenManager on its own httpx client, bound to fake_api."""
    http = httpx.AsyncClient(transport=fake_api.transport)
    manager = TokenManager(
        http,
        TOKEN_URL,
        Credential("uid", "secret", ("public", "projects")),
    )
    yield manager
    await http.aclose()
