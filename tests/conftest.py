"""Pytest configuration and fixtures."""

import asyncio
from collections import Counter
from typing import Callable, Dict, Optional, Tuple, Union

import pytest

from docs_md_crawler.crawler.fetcher import FetchResponse, HttpFetcher, Transport
from docs_md_crawler.session import Session
from docs_md_crawler.utils.ratelimit import HostRateLimiter


Route = Union[str, bytes, Tuple[int, Union[str, bytes]], BaseException]


class FakeTransport(Transport):
    """In-memory transport: URL -> body, (status, body) or an exception to raise.

    Unknown URLs answer 404. Every request is counted in ``calls``.
    """

    def __init__(self, routes: Optional[Dict[str, Route]] = None):
        self.routes: Dict[str, Route] = dict(routes or {})
        self.calls: Counter = Counter()
        self.on_request: Optional[Callable[[str], None]] = None
        self.closed = False

    async def request(self, url, *, method="GET", timeout=15, response_type="text"):
        self.calls[url] += 1
        if self.on_request is not None:
            self.on_request(url)
        await asyncio.sleep(0)

        route = self.routes.get(url, (404, ""))
        if isinstance(route, BaseException):
            raise route
        if isinstance(route, tuple):
            status, body = route
        else:
            status, body = 200, route

        if response_type == "binary":
            return FetchResponse(status=status, body=body, url=url)
        text = body.decode("utf-8") if isinstance(body, bytes) else body
        return FetchResponse(status=status, text=text, body=text, url=url)

    async def close(self):
        self.closed = True


async def no_sleep(seconds):
    return None


@pytest.fixture
def transport():
    """Empty fake transport; tests fill in ``routes``."""
    return FakeTransport()


@pytest.fixture
def fetcher(transport):
    """Fetcher without throttling or backoff delays."""
    return HttpFetcher(
        transport=transport,
        rate_limiter=HostRateLimiter(0),
        retries=2,
        backoff_base=0.01,
        sleep=no_sleep
    )


@pytest.fixture
def session():
    return Session()


def html_page(body: str, title: str = "", head: str = "") -> str:
    """Small HTML document helper."""
    return (
        f"<html><head><title>{title}</title>{head}</head>"
        f"<body>{body}</body></html>"
    )
