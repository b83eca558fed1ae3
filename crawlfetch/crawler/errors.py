"""
Exceptions raised inside the fetching core.
"""

import asyncio

import aiohttp


class FetchError(Exception):
    """Base class for fetch failures."""
    pass


class EmptyResponseError(FetchError):
    """Raised when the transport hands back no response object."""
    pass


class BadStatusError(FetchError):
    """Raised for a non-2xx response that is not a followed redirect."""

    def __init__(self, status: int, url: str, attempt: int = 0):
        self.status = status
        self.url = url
        self.attempt = attempt
        super().__init__(f"Bad status code ({status}) for: {url}... Retry #{attempt}...")


class ConnectionBuildError(FetchError):
    """Raised when the connection pool cannot build a handle for a host."""
    pass


# Failure classes the exchange layer recovers from by rebuilding the
# connection and trying again.
TRANSIENT_ERRORS = (
    aiohttp.ClientError,
    asyncio.TimeoutError,
    OSError,
    EmptyResponseError,
    BadStatusError,
)
