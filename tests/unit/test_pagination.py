"""Unit tests for Link header pagination.

Tests Paginator with:
- Link header parsing (well-formed, malformed, absent)
- Last page discovery from the "last" relation
- Non-paginated fallback (page 1 body returned unchanged)
- Concurrent fan-out of pages 2..N with page-ordered results
- All-or-nothing failure semantics
"""

import asyncio

import httpx
import pytest

from fortytwo.errors import ApiError
from fortytwo.pagination import last_page_number, parse_link_header

from conftest import BASE_URL, page_link


def _paged(path: str, last: int, per_page_items: dict[int, list] | None = None, delays=None):
    """Route handler serving ``last`` pages, each tagged with its page number."""

    async def handler(request: httpx.Request) -> httpx.Response:
        page = int(request.url.params["page"])
        if delays:
            await asyncio.sleep(delays.get(page, 0))
        items = (per_page_items or {}).get(page, [{"id": page * 10 + i} for i in range(2)])
        return httpx.Response(200, json=items, headers={"Link": page_link(path, last)})

    return handler


# =============================================================================
# Link Header Parsing Tests
# =============================================================================


class TestParseLinkHeader:
    """Test Link header parsing."""

    def test_parses_all_relations(self):
        """Each <URL>; rel="name" pair is extracted."""
        header = (
            '<https://api.test/v2/campus?page=1>; rel="first", '
            '<https://api.test/v2/campus?page=2>; rel="next", '
            '<https://api.test/v2/campus?page=4>; rel="last"'
        )
        assert parse_link_header(header) == {
            "first": "https://api.test/v2/campus?page=1",
            "next": "https://api.test/v2/campus?page=2",
            "last": "https://api.test/v2/campus?page=4",
        }

    def test_tolerates_whitespace(self):
        """Spacing around separators does not matter."""
        header = '  <https://api.test/v2/x?page=3>;rel="last" ,<https://api.test/v2/x?page=2> ;  rel="next"'
        assert parse_link_header(header) == {
            "last": "https://api.test/v2/x?page=3",
            "next": "https://api.test/v2/x?page=2",
        }

    def test_skips_malformed_segments(self):
        """Segments not matching the pattern are ignored."""
        header = 'garbage, <https://api.test/v2/x?page=3>; rel="last", <no-rel>'
        assert parse_link_header(header) == {"last": "https://api.test/v2/x?page=3"}

    @pytest.mark.parametrize("header", [None, "", "   "])
    def test_empty_header(self, header):
        """Absent header yields no relations."""
        assert parse_link_header(header) == {}


class TestLastPageNumber:
    """Test last page discovery."""

    def test_reads_page_parameter(self):
        """The page query parameter of "last" is the page count."""
        links = {"last": "https://api.test/v2/campus?per_page=100&page=7"}
        assert last_page_number(links) == 7

    def test_missing_last_relation(self):
        """No "last" relation -> None."""
        assert last_page_number({"next": "https://api.test/v2/campus?page=2"}) is None

    @pytest.mark.parametrize(
        "url",
        [
            "https://api.test/v2/campus",
            "https://api.test/v2/campus?page=",
            "https://api.test/v2/campus?page=last",
            "https://api.test/v2/campus?page=0",
        ],
    )
    def test_unusable_page_parameter(self, url):
        """Missing, empty, non-integer or zero page -> None."""
        assert last_page_number({"last": url}) is None


# =============================================================================
# Non-Paginated Fallback Tests
# =============================================================================


class TestSinglePage:
    """Resources without a usable Link header are returned as-is."""

    @pytest.mark.asyncio
    async def test_object_body_returned_unchanged(self, client, fake_api):
        """get_all on /campus/9 returns the raw object, not an array."""
        campus = {"id": 9, "name": "Lyon"}
        fake_api.route("/v2/campus/9", lambda r: httpx.Response(200, json=campus))

        result = await client.get_all("/campus/9")

        assert result == campus
        assert len(fake_api.requests) == 1

    @pytest.mark.asyncio
    async def test_list_body_without_link_returned_unchanged(self, client, fake_api):
        """A list without Link header is a single page."""
        fake_api.route("/v2/cursus", lambda r: httpx.Response(200, json=[{"id": 1}]))

        assert await client.get_all("/cursus") == [{"id": 1}]
        assert len(fake_api.requests) == 1

    @pytest.mark.asyncio
    async def test_link_without_last_is_single_page(self, client, fake_api):
        """A Link header lacking "last" is not an error."""
        fake_api.route(
            "/v2/cursus",
            lambda r: httpx.Response(
                200,
                json=[{"id": 1}],
                headers={"Link": f'<{BASE_URL}cursus?page=2>; rel="next"'},
            ),
        )

        assert await client.get_all("/cursus") == [{"id": 1}]
        assert len(fake_api.requests) == 1

    @pytest.mark.asyncio
    async def test_first_page_query(self, client, fake_api):
        """Page 1 is requested with per_page and page=1."""
        fake_api.route("/v2/campus/9", lambda r: httpx.Response(200, json={}))

        await client.get_all("/campus/9")

        params = fake_api.requests[0].url.params
        assert params["per_page"] == "100"
        assert params["page"] == "1"


# =============================================================================
# Fan-Out Tests
# =============================================================================


class TestFanOut:
    """Multi-page resources are fetched concurrently and concatenated."""

    @pytest.mark.asyncio
    async def test_four_pages_concatenated_in_page_order(self, client, fake_api):
        """Later pages finishing first does not change result order."""
        fake_api.route(
            "/v2/campus",
            _paged("campus", last=4, delays={2: 0.06, 3: 0.03, 4: 0.0}),
        )

        result = await client.get_all("/campus")

        assert [item["id"] for item in result] == [10, 11, 20, 21, 30, 31, 40, 41]
        pages = [int(r.url.params["page"]) for r in fake_api.requests]
        assert pages[0] == 1
        assert sorted(pages[1:]) == [2, 3, 4]

    @pytest.mark.asyncio
    async def test_last_page_five_issues_exactly_five_requests(self, client, fake_api):
        """1 sequential + 4 concurrent requests for five pages."""
        fake_api.route("/v2/users", _paged("users", last=5))

        result = await client.get_all("/users")

        assert len(fake_api.requests) == 5
        assert len(result) == 10

    @pytest.mark.asyncio
    async def test_result_length_is_sum_of_pages(self, client, fake_api):
        """Uneven pages are all included."""
        items = {1: [{"id": 1}, {"id": 2}, {"id": 3}], 2: [{"id": 4}], 3: [{"id": 5}, {"id": 6}]}
        fake_api.route("/v2/campus", _paged("campus", last=3, per_page_items=items))

        result = await client.get_all("/campus")

        assert [item["id"] for item in result] == [1, 2, 3, 4, 5, 6]

    @pytest.mark.asyncio
    async def test_pages_requested_concurrently(self, client, fake_api):
        """Pages 2..N are in flight at the same time."""
        in_flight = 0
        peak = 0

        async def handler(request):
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.02)
            in_flight -= 1
            return httpx.Response(200, json=[], headers={"Link": page_link("campus", 6)})

        fake_api.route("/v2/campus", handler)

        await client.get_all("/campus")

        assert peak > 1

    @pytest.mark.asyncio
    async def test_concurrency_bounded_by_rate_limiter(self, make_client, fake_api):
        """Fan-out still respects the limiter's concurrency bound."""
        client = make_client(rate=3, rate_window=0.01)
        in_flight = 0
        peak = 0

        async def handler(request):
            nonlocal in_flight, peak
            in_flight += 1
            peak = max(peak, in_flight)
            await asyncio.sleep(0.01)
            in_flight -= 1
            return httpx.Response(200, json=[], headers={"Link": page_link("campus", 6)})

        fake_api.route("/v2/campus", handler)

        await client.get_all("/campus")

        assert peak <= 2
        assert len(fake_api.requests) == 6

    @pytest.mark.asyncio
    async def test_params_and_per_page_forwarded_to_every_page(self, client, fake_api):
        """Caller params and per_page are sent with each page."""
        fake_api.route("/v2/users", _paged("users", last=3))

        await client.get_all("/users", per_page=30, params={"filter[kind]": "student"})

        for request in fake_api.requests:
            assert request.url.params["per_page"] == "30"
            assert request.url.params["filter[kind]"] == "student"
        assert sorted(int(r.url.params["page"]) for r in fake_api.requests) == [1, 2, 3]

    @pytest.mark.asyncio
    async def test_each_page_retries_independently(self, client, fake_api):
        """A throttled page retries on its own without failing the batch."""
        throttled = {3: 1}

        async def handler(request):
            page = int(request.url.params["page"])
            if throttled.get(page):
                throttled[page] -= 1
                return httpx.Response(429)
            return httpx.Response(200, json=[page], headers={"Link": page_link("campus", 3)})

        fake_api.route("/v2/campus", handler)

        assert await client.get_all("/campus") == [1, 2, 3]
        assert len(fake_api.requests) == 4

    @pytest.mark.asyncio
    async def test_any_page_failure_fails_whole_operation(self, client, fake_api):
        """No partial results when a page fails terminally."""

        async def handler(request):
            page = int(request.url.params["page"])
            if page == 3:
                return httpx.Response(404, json={"error": "Not Found"})
            return httpx.Response(200, json=[page], headers={"Link": page_link("campus", 4)})

        fake_api.route("/v2/campus", handler)

        with pytest.raises(ApiError) as exc_info:
            await client.get_all("/campus")

        assert exc_info.value.status == 404
        assert exc_info.value.url.endswith("page=3")

    @pytest.mark.asyncio
    async def test_late_401_for_old_token_keeps_refreshed_token(self, client, fake_api):
        """Pages rejected with the same old token share one refreshed token."""

        async def handler(request):
            page = int(request.url.params["page"])
            if page > 1 and request.headers["Authorization"] == "Bearer tok-1":
                # page 3's rejection arrives after page 2 has refreshed the token
                await asyncio.sleep(0.05 if page == 3 else 0.0)
                return httpx.Response(401)
            return httpx.Response(200, json=[page], headers={"Link": page_link("campus", 3)})

        fake_api.route("/v2/campus", handler)

        assert await client.get_all("/campus") == [1, 2, 3]

        assert fake_api.tokens_issued == 2
        retried = [r for r in fake_api.requests if r.headers["Authorization"] != "Bearer tok-1"]
        assert [r.headers["Authorization"] for r in retried] == ["Bearer tok-2"] * 2
        assert client.tokens.token == "tok-2"
