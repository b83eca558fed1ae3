"""
Page records produced by the fetcher.
"""

import base64
import time
from dataclasses import dataclass, field
from typing import Dict, Optional


@dataclass
class Page:
    """
    One hop of a fetch: either a retrieved response (possibly a redirect)
    or the error that ended the fetch.
    """
    url: str
    body: Optional[bytes] = None
    status_code: Optional[int] = None
    headers: Optional[Dict[str, str]] = None
    referer: Optional[str] = None
    depth: Optional[int] = None
    redirect_target: Optional[str] = None
    response_time_ms: Optional[int] = None
    error: Optional[str] = None
    fetched_at: float = field(default_factory=time.time)

    @property
    def is_redirect(self) -> bool:
        return self.redirect_target is not None

    @property
    def fetched(self) -> bool:
        """True when the page carries a response rather than an error."""
        return self.error is None and self.status_code is not None

    @property
    def text(self) -> str:
        if not self.body:
            return ""
        try:
            return self.body.decode('utf-8')
        except UnicodeDecodeError:
            return self.body.decode('latin-1', errors='replace')

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            'url': self.url,
            'body': base64.b64encode(self.body).decode('ascii') if self.body is not None else None,
            'status_code': self.status_code,
            'headers': self.headers,
            'referer': self.referer,
            'depth': self.depth,
            'redirect_target': self.redirect_target,
            'response_time_ms': self.response_time_ms,
            'error': self.error,
            'fetched_at': self.fetched_at
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'Page':
        """Create a Page from dictionary."""
        body = data.get('body')
        return cls(
            url=data['url'],
            body=base64.b64decode(body) if body is not None else None,
            status_code=data.get('status_code'),
            headers=data.get('headers'),
            referer=data.get('referer'),
            depth=data.get('depth'),
            redirect_target=data.get('redirect_target'),
            response_time_ms=data.get('response_time_ms'),
            error=data.get('error'),
            fetched_at=data.get('fetched_at', time.time())
        )
