"""Link header pagination with concurrent page fan-out.

Paginated endpoints answer page 1 with a Link header such as:

    <https://api.intra.42.fr/v2/campus?page=2>; rel="next",
    <https://api.intra.42.fr/v2/campus?page=4>; rel="last"

The Paginator reads the ``last`` relation to learn the page count, then
fetches the remaining pages concurrently and concatenates them in page order.
A missing or unusable Link header means the resource is not paginated and
page 1's body is returned as-is.
"""

import asyncio
import logging
import re
from typing import Any, Callable, Mapping
from urllib.parse import parse_qs, urlsplit

from .executor import RequestDescriptor, RequestExecutor

logger = logging.getLogger("fortytwo.pagination")

__all__ = ["DEFAULT_PER_PAGE", "Paginator", "last_page_number", "parse_link_header"]

DEFAULT_PER_PAGE = 100

_LINK_RE = re.compile(r'^\s*<([^>]+)>\s*;\s*rel="([^"]+)"\s*$')


def parse_link_header(header: str | None) -> dict[str, str]:
    """Parse a Link header into a {relation: url} mapping.

    Segments that do not match ``<URL>; rel="name"`` are skipped.

    Args:
        header: Raw Link header value

    Returns:
        Mapping of relation name to absolute URL (empty when absent)
    """
    links: dict[str, str] = {}
    if not header:
        return links

    for segment in header.split(","):
        match = _LINK_RE.match(segment)
        if match:
            url, rel = match.groups()
            links[rel] = url
    return links


def last_page_number(links: Mapping[str, str]) -> int | None:
    """Extract the ``page`` query parameter of the ``last`` relation.

    Returns:
        Last page number, or None when the relation or its page is unusable
    """
    url = links.get("last")
    if not url:
        return None
    pages = parse_qs(urlsplit(url).query).get("page")
    if not pages:
        return None
    try:
        page = int(pages[-1])
    except ValueError:
        return None
    return page if page >= 1 else None


class Paginator:
    """Fetches a resource as if it were not paged.

    Example:
        >>> paginator = Paginator(executor, max_retry=5)
        >>> campuses = await paginator.get_all("https://api.intra.42.fr/v2/campus")
    """

    def __init__(
        self,
        executor: RequestExecutor,
        max_retry: int,
        url_for: Callable[[str], str] = str,
    ) -> None:
        """Initialize paginator.

        Args:
            executor: Request executor used for every page
            max_retry: Retry ceiling given to each page request
            url_for: Maps an endpoint to an absolute URL
        """
        self.executor = executor
        self.max_retry = max_retry
        self.url_for = url_for

    def _page(
        self,
        url: str,
        page: int,
        per_page: int,
        params: Mapping[str, Any] | None,
        token: str | None,
    ) -> RequestDescriptor:
        query = dict(params or {})
        query["per_page"] = per_page
        query["page"] = page
        return RequestDescriptor(
            "GET", url, params=query, token=token, max_retry=self.max_retry
        )

    async def get_all(
        self,
        endpoint: str,
        per_page: int = DEFAULT_PER_PAGE,
        params: Mapping[str, Any] | None = None,
        token: str | None = None,
    ) -> Any:
        """Fetch every page of an endpoint.

        Args:
            endpoint: Endpoint path or absolute URL
            per_page: Page size requested from the server
            params: Extra query parameters sent with every page
            token: Optional per-call bearer token

        Returns:
            Concatenated items of all pages in page order, or page 1's body
            unchanged when the endpoint is not paginated

        Raises:
            FortyTwoError: Any page failed terminally (no partial results)
        """
        url = self.url_for(endpoint)
        first = await self.executor.execute(self._page(url, 1, per_page, params, token))

        last = last_page_number(parse_link_header(first.headers.get("Link")))
        if last is None:
            return first.body
        if not isinstance(first.body, list):
            logger.warning(
                "paginated_body_not_a_list",
                extra={"url": url, "last_page": last},
            )
            return first.body

        logger.debug("paginating", extra={"url": url, "last_page": last})

        # gather() keeps results in argument order whatever the completion order
        rest = await asyncio.gather(
            *(
                self.executor.execute(self._page(url, page, per_page, params, token))
                for page in range(2, last + 1)
            )
        )

        items = list(first.body)
        for envelope in rest:
            if isinstance(envelope.body, list):
                items.extend(envelope.body)
            elif envelope.body is not None:
                items.append(envelope.body)
        return items
