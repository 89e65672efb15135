"""
HTTP fetching with host throttling, retries and exponential backoff.

The transport is a small pluggable object; AiohttpTransport is the default.
Whatever shape a transport returns a body in, fetch_binary() hands callers
plain bytes.
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional

import aiohttp
from aiohttp import ClientError, ClientTimeout

from ..utils.constants import (
    DEFAULT_BACKOFF_BASE,
    DEFAULT_RETRIES,
    DEFAULT_TIMEOUT,
    DEFAULT_USER_AGENT,
)
from ..utils.log import get_logger
from ..utils.ratelimit import HostRateLimiter


RETRYABLE_STATUSES = frozenset({408, 425, 429})


def is_retryable_status(status: int) -> bool:
    """Timeouts, throttling and server errors are worth another attempt."""
    return status in RETRYABLE_STATUSES or status >= 500


class FetchError(Exception):
    """A request failed; `retryable` tells whether another attempt may help."""

    retryable = True

    def __init__(self, message: str, retryable: Optional[bool] = None):
        super().__init__(message)
        if retryable is not None:
            self.retryable = retryable


class HttpStatusError(FetchError):
    """The server answered with a non-success status code."""

    def __init__(self, status: int):
        super().__init__(f"http-{status}", retryable=is_retryable_status(status))
        self.status = status

    @property
    def is_gone(self) -> bool:
        """404/410: the page does not exist (dead navigation link)."""
        return self.status in (404, 410)


class FetchTimeoutError(FetchError):
    """The request exceeded its deadline."""

    def __init__(self, message: str = "timeout"):
        super().__init__(message, retryable=True)


class NetworkError(FetchError):
    """Connection-level failure."""

    def __init__(self, detail: str = ""):
        message = f"network-error: {detail}" if detail else "network-error"
        super().__init__(message, retryable=True)


class UnsupportedPayloadError(FetchError):
    """The transport returned a body this program cannot turn into bytes."""

    def __init__(self, kind: str):
        super().__init__(f"unsupported-payload: {kind}", retryable=False)


@dataclass
class FetchResponse:
    """What a transport returns for one request."""

    status: int
    text: str = ""
    body: Any = None
    url: str = ""


def to_bytes(payload: Any) -> bytes:
    """
    Normalize a response body to bytes.

    Accepts bytes-like objects, typed arrays exposing tobytes(), file-like
    objects exposing read(), and strings (treated as binary strings, one
    byte per character).

    Raises:
        UnsupportedPayloadError: For any other payload shape
    """
    if isinstance(payload, (bytes, bytearray, memoryview)):
        return bytes(payload)
    if isinstance(payload, str):
        return bytes(ord(char) & 0xFF for char in payload)
    if hasattr(payload, "tobytes"):
        return bytes(payload.tobytes())
    if hasattr(payload, "read"):
        data = payload.read()
        if isinstance(data, (bytes, bytearray, memoryview, str)):
            return to_bytes(data)
    raise UnsupportedPayloadError(type(payload).__name__)


class Transport:
    """Raw HTTP collaborator: one request, no retries, no throttling."""

    async def request(
        self,
        url: str,
        *,
        method: str = "GET",
        timeout: float = DEFAULT_TIMEOUT,
        response_type: str = "text"
    ) -> FetchResponse:
        raise NotImplementedError

    async def close(self) -> None:
        return None


class AiohttpTransport(Transport):
    """Transport backed by a shared aiohttp ClientSession."""

    def __init__(
        self,
        user_agent: str = DEFAULT_USER_AGENT,
        headers: Optional[Dict[str, str]] = None
    ):
        """
        Args:
            user_agent: User agent string for requests
            headers: Extra headers sent with every request
        """
        self.headers = {"User-Agent": user_agent}
        if headers:
            self.headers.update(headers)
        self._session: Optional[aiohttp.ClientSession] = None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(headers=self.headers)
        return self._session

    async def request(
        self,
        url: str,
        *,
        method: str = "GET",
        timeout: float = DEFAULT_TIMEOUT,
        response_type: str = "text"
    ) -> FetchResponse:
        session = await self._get_session()
        async with session.request(
            method,
            url,
            timeout=ClientTimeout(total=timeout),
            allow_redirects=True
        ) as response:
            if response_type == "binary":
                body = await response.read()
                return FetchResponse(status=response.status, body=body, url=str(response.url))
            text = await response.text(errors="replace")
            return FetchResponse(status=response.status, text=text, body=text, url=str(response.url))

    async def close(self) -> None:
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None


class HttpFetcher:
    """
    Fetches text and binary resources.

    Every attempt first waits on the host rate limiter. Retryable failures are
    retried up to `retries` times with backoff_base * 2 ** attempt seconds in
    between; non-retryable failures are raised immediately.
    """

    def __init__(
        self,
        transport: Optional[Transport] = None,
        rate_limiter: Optional[HostRateLimiter] = None,
        timeout: float = DEFAULT_TIMEOUT,
        retries: int = DEFAULT_RETRIES,
        backoff_base: float = DEFAULT_BACKOFF_BASE,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    ):
        self.transport = transport or AiohttpTransport()
        self.rate_limiter = rate_limiter or HostRateLimiter()
        self.timeout = timeout
        self.retries = max(0, int(retries))
        self.backoff_base = backoff_base
        self._sleep = sleep
        self.logger = get_logger("fetcher")

    async def __aenter__(self) -> "HttpFetcher":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def close(self) -> None:
        await self.transport.close()

    async def fetch_text(self, url: str, retries: Optional[int] = None) -> str:
        """
        Fetch a text document (HTML, XML, robots.txt).

        Raises:
            FetchError: When every attempt failed
        """
        response = await self._request(url, "text", retries)
        return str(response.text or "")

    async def fetch_binary(self, url: str, retries: Optional[int] = None) -> bytes:
        """
        Fetch a binary resource and return its bytes.

        Raises:
            FetchError: When every attempt failed; UnsupportedPayloadError
                        without retrying if the body cannot be normalized
        """
        response = await self._request(url, "binary", retries)
        return to_bytes(response.body)

    async def _request(
        self,
        url: str,
        response_type: str,
        retries: Optional[int]
    ) -> FetchResponse:
        attempts = self.retries if retries is None else max(0, retries)
        last_error: FetchError = FetchError("request-failed")

        for attempt in range(attempts + 1):
            await self.rate_limiter.wait(url)
            try:
                response = await self._attempt(url, response_type)
                if 200 <= response.status < 400:
                    if response_type == "binary":
                        if response.body is None or response.body == b"":
                            raise FetchError("empty-response")
                        to_bytes(response.body)
                    return response
                raise HttpStatusError(response.status)
            except FetchError as e:
                if not e.retryable:
                    raise
                last_error = e

            if attempt < attempts:
                backoff = self.backoff_base * (2 ** attempt)
                self.logger.debug(
                    f"Retry {attempt + 1}/{attempts} for {url} after {backoff:.2f}s ({last_error})"
                )
                await self._sleep(backoff)

        raise last_error

    async def _attempt(self, url: str, response_type: str) -> FetchResponse:
        try:
            return await self.transport.request(
                url,
                method="GET",
                timeout=self.timeout,
                response_type=response_type
            )
        except asyncio.TimeoutError:
            raise FetchTimeoutError()
        except ClientError as e:
            raise NetworkError(str(e) or type(e).__name__)
