"""
Cookie storage for a single fetcher.
"""

import logging
from typing import Dict, Iterable, Optional, Union


class CookieStore:
    """
    Accumulates cookies from Set-Cookie headers and renders them back as a
    Cookie request header. One store belongs to one fetcher.
    """

    def __init__(self, cookies: Optional[Dict[str, str]] = None):
        self.logger = logging.getLogger(__name__)
        self._cookies: Dict[str, str] = {}
        if cookies:
            for name, value in cookies.items():
                self._cookies[str(name)] = str(value)

    def merge(self, set_cookie: Union[str, Iterable[str], None]):
        """Merge one or more Set-Cookie header values into the store."""
        if not set_cookie:
            return
        headers = [set_cookie] if isinstance(set_cookie, str) else list(set_cookie)

        for header in headers:
            # only the leading name=value pair matters; attributes are dropped
            pair = header.split(';', 1)[0]
            name, sep, value = pair.partition('=')
            name = name.strip()
            if not sep or not name:
                self.logger.debug(f"Ignoring Set-Cookie header without a cookie pair: {header!r}")
                continue
            self._cookies[name] = value.strip()

    def render(self) -> str:
        """Render the store as a Cookie header value."""
        return "; ".join(f"{name}={value}" for name, value in self._cookies.items())

    def empty(self) -> bool:
        return not self._cookies

    def get(self, name: str, default: Optional[str] = None) -> Optional[str]:
        return self._cookies.get(name, default)

    def to_dict(self) -> Dict[str, str]:
        return dict(self._cookies)

    def __len__(self) -> int:
        return len(self._cookies)

    def __contains__(self, name: str) -> bool:
        return name in self._cookies

    def __str__(self) -> str:
        return self.render()
