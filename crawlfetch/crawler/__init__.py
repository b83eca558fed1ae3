"""
Web crawler fetching components.
"""

from .page import Page
from .cookie_store import CookieStore
from .connection_pool import ConnectionPool, HostConnection
from .fetcher import WebFetcher
from .job_queue import Job, END, MemoryQueue, RedisQueue
from .worker import Worker
from .scheduler import CrawlerScheduler

__all__ = [
    'Page', 'CookieStore', 'ConnectionPool', 'HostConnection',
    'WebFetcher', 'Job', 'END', 'MemoryQueue', 'RedisQueue',
    'Worker', 'CrawlerScheduler'
]
