"""
Per-host connection pool with a coarse pool-wide expiry.
"""

import logging
import time
from typing import Callable, Dict, Optional, Tuple
from urllib.parse import urlsplit

import aiohttp

from .errors import ConnectionBuildError
from .providers import as_provider, choose_proxy


DEFAULT_PORTS = {'http': 80, 'https': 443}


def host_port(url: str) -> Tuple[str, int]:
    """Return the (host, port) pool key for *url*."""
    parsed = urlsplit(url)
    if not parsed.hostname:
        raise ValueError(f"URL has no host: {url!r}")
    port = parsed.port or DEFAULT_PORTS.get(parsed.scheme.lower())
    if port is None:
        raise ValueError(f"Unsupported URL scheme {parsed.scheme!r}: {url!r}")
    return parsed.hostname, port


def proxy_url(proxy: Optional[str]) -> Optional[str]:
    """Turn a ``host:port`` proxy string into a URL aiohttp accepts."""
    if not proxy:
        return None
    url = proxy if '://' in proxy else f"http://{proxy}"
    parsed = urlsplit(url)
    # .port raises ValueError on a non-numeric port
    if not parsed.hostname or parsed.port is None:
        raise ValueError(f"Proxy must be given as host:port, got {proxy!r}")
    return url


class HostConnection:
    """A reusable transport handle for one (host, port)."""

    def __init__(self, key: Tuple[str, int], session: aiohttp.ClientSession,
                 proxy: Optional[str], created_at: float):
        self.key = key
        self.session = session
        self.proxy = proxy
        self.created_at = created_at

    @property
    def closed(self) -> bool:
        return self.session.closed

    async def close(self):
        if not self.session.closed:
            await self.session.close()

    def __repr__(self) -> str:
        host, port = self.key
        return f"<HostConnection {host}:{port} proxy={self.proxy}>"


class ConnectionPool:
    """
    Keeps at most one live connection per (host, port).

    The whole pool is dropped once more than STALE_AFTER seconds have
    passed since it was last cleared, regardless of how recently an
    individual connection was built. TLS certificates are NOT verified:
    the crawler trusts every server it is pointed at.

    Building a handle only resolves the proxy and creates a session; the
    socket is opened lazily by the first request. MAX_BUILD_RETRIES
    therefore covers proxy resolution only, and TCP or TLS connect
    failures surface in the fetcher's exchange retries.
    """

    STALE_AFTER = 15
    MAX_BUILD_RETRIES = 5

    def __init__(self, proxies=None, read_timeout: Optional[float] = None,
                 verbose: bool = False, clock: Callable[[], float] = time.monotonic):
        self.proxies = as_provider(proxies)
        self.read_timeout = read_timeout
        self.verbose = verbose
        self.clock = clock
        self.logger = logging.getLogger(__name__)

        self._connections: Dict[Tuple[str, int], HostConnection] = {}
        self.last_cleared: Optional[float] = None

        self.stats = {
            'connections_built': 0,
            'build_failures': 0,
            'pool_clears': 0
        }

    def _diag(self, message: str, level: int = logging.WARNING):
        self.logger.log(level if self.verbose else logging.DEBUG, message)

    async def acquire(self, url: str) -> HostConnection:
        """Return the pooled connection for *url*'s host, building it if needed."""
        now = self.clock()
        if self.last_cleared is None or now - self.last_cleared > self.STALE_AFTER:
            self._diag("Clearing connections...", logging.INFO)
            await self.clear()
            self.last_cleared = now

        key = host_port(url)
        conn = self._connections.get(key)
        if conn is not None and not conn.closed:
            return conn

        return await self.refresh(url)

    async def refresh(self, url: str) -> HostConnection:
        """
        Build a fresh connection for *url*'s host and replace any existing one.

        Skips the staleness check. Raises ConnectionBuildError once
        MAX_BUILD_RETRIES retries have failed.
        """
        key = host_port(url)
        retries = 0
        while True:
            try:
                conn = self._build(key, url)
                break
            except Exception as e:
                self.stats['build_failures'] += 1
                self._diag(f"While refreshing connection... (url: {url}) {e!r}")
                retries += 1
                if retries > self.MAX_BUILD_RETRIES:
                    raise ConnectionBuildError(
                        f"Could not build connection to {key[0]}:{key[1]}: {e}"
                    ) from e

        old = self._connections.pop(key, None)
        if old is not None:
            await old.close()

        self._connections[key] = conn
        self.stats['connections_built'] += 1
        return conn

    def _build(self, key: Tuple[str, int], url: str) -> HostConnection:
        proxy = proxy_url(choose_proxy(self.proxies))
        if proxy:
            self._diag(f"Proxy: {proxy}", logging.INFO)

        if self.read_timeout:
            timeout = aiohttp.ClientTimeout(total=None, sock_read=self.read_timeout)
        else:
            timeout = aiohttp.ClientTimeout()

        session = aiohttp.ClientSession(
            connector=aiohttp.TCPConnector(limit=1, ssl=False),
            timeout=timeout,
            cookie_jar=aiohttp.DummyCookieJar()
        )
        return HostConnection(key, session, proxy, self.clock())

    def get(self, url: str) -> Optional[HostConnection]:
        """Return the pooled connection for *url* without building one."""
        return self._connections.get(host_port(url))

    async def clear(self):
        """Close and drop every pooled connection."""
        connections = list(self._connections.values())
        self._connections = {}
        for conn in connections:
            await conn.close()
        self.stats['pool_clears'] += 1

    async def close(self):
        await self.clear()
        self.last_cleared = None

    def __len__(self) -> int:
        return len(self._connections)
