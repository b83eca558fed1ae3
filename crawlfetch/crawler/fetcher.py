"""
Web page fetcher: one logical fetch per URL, following redirects and
retrying transient failures over a private connection pool and cookie store.
"""

import logging
import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple
from urllib.parse import unquote, urljoin, urlsplit, urlunsplit

import aiohttp
from multidict import CIMultiDictProxy

from .connection_pool import ConnectionPool
from .cookie_store import CookieStore
from .errors import BadStatusError, ConnectionBuildError, EmptyResponseError, TRANSIENT_ERRORS
from .page import Page
from ..utils.config import FetcherConfig


# A connection that cannot be built costs one attempt, like a failed request.
RETRYABLE_ERRORS = TRANSIENT_ERRORS + (ConnectionBuildError,)


@dataclass
class HttpResponse:
    """A fully read HTTP response."""
    status: int
    headers: CIMultiDictProxy
    body: bytes

    def header_dict(self) -> Dict[str, str]:
        """Flatten headers, joining repeated fields with ', '."""
        return {name: ', '.join(self.headers.getall(name)) for name in self.headers.keys()}


class WebFetcher:
    """
    Turns a URL into the ordered list of Page records its fetch produced.

    Each fetcher owns its connection pool and cookie store; fetchers are
    not shared between workers.
    """

    MAX_RETRIES = 5

    def __init__(self, config: Optional[FetcherConfig] = None,
                 pool: Optional[ConnectionPool] = None,
                 cookie_store: Optional[CookieStore] = None):
        self.config = config or FetcherConfig()
        self.logger = logging.getLogger(__name__)

        if pool is None:
            pool = ConnectionPool(
                proxies=self.config.proxies,
                read_timeout=self.config.read_timeout,
                verbose=self.config.verbose
            )
        self.pool = pool
        if cookie_store is None:
            cookie_store = CookieStore(self.config.cookies)
        self.cookie_store = cookie_store

        # Statistics
        self.stats = {
            'total_requests': 0,
            'successful_requests': 0,
            'failed_requests': 0,
            'retries': 0,
            'redirects_followed': 0,
            'failed_fetches': 0
        }

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def close(self):
        """Close every pooled connection."""
        await self.pool.close()

    @property
    def redirect_limit(self) -> int:
        """The maximum number of redirects to follow."""
        if self.config.redirect_limit is None:
            return 5
        return self.config.redirect_limit

    @property
    def user_agent(self) -> Optional[str]:
        return self.config.user_agent

    @property
    def accept_cookies(self) -> bool:
        return bool(self.config.accept_cookies)

    @property
    def read_timeout(self) -> Optional[float]:
        return self.config.read_timeout

    @property
    def verbose(self) -> bool:
        return bool(self.config.verbose)

    def _diag(self, message: str, exc_info: bool = False):
        if self.verbose:
            self.logger.warning(message, exc_info=exc_info)
        else:
            self.logger.debug(message)

    async def fetch_page(self, url: str, referer: Optional[str] = None,
                         depth: Optional[int] = None) -> Page:
        """Fetch *url* and return only the final page of the chain."""
        pages = await self.fetch_pages(url, referer, depth)
        return pages[-1]

    async def fetch_pages(self, url: str, referer: Optional[str] = None,
                          depth: Optional[int] = None) -> List[Page]:
        """
        Fetch *url*, following same-host redirects.

        Returns one Page per hop in traversal order. Never raises: any
        failure yields a single Page carrying the error and the requested URL.
        """
        try:
            pages = []
            remaining = self.redirect_limit
            location = url
            _require_absolute(url)

            while True:
                # a relative location is resolved against the original request
                location = urljoin(url, location)

                response, response_time = await self._get_response(
                    location, referer, intercept=self._redirect_location
                )
                redirect_to = self._redirect_target(response, url)

                pages.append(Page(
                    location,
                    body=response.body,
                    status_code=response.status,
                    headers=response.header_dict(),
                    referer=referer,
                    depth=depth,
                    redirect_target=redirect_to,
                    response_time_ms=response_time
                ))

                if redirect_to is None or not self._allowed(redirect_to, url) or remaining <= 0:
                    break

                remaining -= 1
                self.stats['redirects_followed'] += 1
                location = redirect_to

            return pages

        except Exception as e:
            self.stats['failed_fetches'] += 1
            self._diag(f"Fetch failed for {url}: {e!r}", exc_info=True)
            return [Page(url, error=_describe(e))]

    async def _get_response(self, url: str, referer: Optional[str] = None,
                            intercept: Optional[Callable[[HttpResponse], Optional[str]]] = None
                            ) -> Tuple[HttpResponse, int]:
        """
        Perform one GET for *url*, retrying transient failures.

        *intercept* lets the caller claim a response (a redirect) before the
        2xx status check runs. Returns the response and the round trip time
        in whole milliseconds.
        """
        parsed = urlsplit(url)
        request_url = urlunsplit((parsed.scheme, parsed.netloc.rpartition('@')[2],
                                  parsed.path or '/', parsed.query, ''))

        auth = None
        if parsed.username:
            auth = aiohttp.BasicAuth(unquote(parsed.username), unquote(parsed.password or ''))

        retries = 0
        rebuild = False
        while True:
            try:
                headers = self._request_headers(referer)
                # a failed attempt replaces the connection before the next one
                if rebuild:
                    conn = await self.pool.refresh(url)
                else:
                    conn = await self.pool.acquire(url)

                self.stats['total_requests'] += 1
                start = time.perf_counter()
                async with conn.session.get(request_url, headers=headers, auth=auth,
                                            proxy=conn.proxy, allow_redirects=False) as resp:
                    if resp is None:
                        raise EmptyResponseError(f"No response received for {url}")
                    body = await resp.read()
                    response = HttpResponse(resp.status, resp.headers, body)
                finish = time.perf_counter()
                response_time = int(round((finish - start) * 1000))

                if self.accept_cookies:
                    self.cookie_store.merge(response.headers.getall('Set-Cookie', []))

                claimed = intercept is not None and intercept(response) is not None
                if not claimed and not 200 <= response.status <= 299:
                    raise BadStatusError(response.status, url, retries)

                self.stats['successful_requests'] += 1
                return response, response_time

            except RETRYABLE_ERRORS as e:
                self.stats['failed_requests'] += 1
                self._diag(f"While trying to fetch page... {e!r}")
                rebuild = True
                retries += 1
                if retries > self.MAX_RETRIES:
                    raise
                self.stats['retries'] += 1

    def _request_headers(self, referer: Optional[str]) -> Dict[str, str]:
        headers = {}
        if self.user_agent:
            headers['User-Agent'] = self.user_agent
        if referer:
            headers['Referer'] = str(referer)
        send_cookies = self.accept_cookies or self.config.cookies is not None
        if send_cookies and not self.cookie_store.empty():
            headers['Cookie'] = self.cookie_store.render()
        return headers

    @staticmethod
    def _redirect_location(response: HttpResponse) -> Optional[str]:
        """The Location of a redirect response, or None."""
        if 300 <= response.status <= 399:
            return response.headers.get('Location') or None
        return None

    def _redirect_target(self, response: HttpResponse, from_url: str) -> Optional[str]:
        location = self._redirect_location(response)
        if location is None:
            return None
        return urljoin(from_url, location.strip())

    @staticmethod
    def _allowed(to_url: str, from_url: str) -> bool:
        """Allowed to follow a redirect from *from_url* to *to_url*?"""
        to_host = urlsplit(to_url).hostname
        return to_host is None or to_host == urlsplit(from_url).hostname

    def get_stats(self) -> Dict[str, int]:
        """Get fetcher statistics."""
        stats = self.stats.copy()
        stats.update(self.pool.stats)
        return stats

    def reset_stats(self):
        """Reset statistics counters."""
        for key in self.stats:
            self.stats[key] = 0


def _require_absolute(url: str):
    parsed = urlsplit(url)
    if not parsed.scheme or not parsed.hostname:
        raise ValueError(f"Not an absolute URL: {url!r}")


def _describe(error: Exception) -> str:
    message = str(error)
    name = type(error).__name__
    return f"{name}: {message}" if message else name
