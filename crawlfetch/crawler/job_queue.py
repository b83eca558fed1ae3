"""
Job and page queues shared between the scheduler and its workers.

Two backends are provided: an in-process asyncio queue and a Redis list,
so that producers and consumers of crawl work can live outside the
worker process.
"""

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any, Optional, Union

import redis.asyncio as redis

from .page import Page


@dataclass(frozen=True)
class Job:
    """A unit of crawl work."""
    url: str
    referer: Optional[str] = None
    depth: int = 0

    def to_dict(self) -> dict:
        return {'url': self.url, 'referer': self.referer, 'depth': self.depth}

    @classmethod
    def from_dict(cls, data: dict) -> 'Job':
        return cls(url=data['url'], referer=data.get('referer'), depth=data.get('depth', 0))


class _EndOfWork:
    """Tells a worker to stop."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return 'END'


END = _EndOfWork()

QueueItem = Union[Job, Page, _EndOfWork]


class WorkQueue:
    """Interface shared by the queue backends."""

    async def put(self, item: QueueItem):
        raise NotImplementedError

    async def get(self) -> QueueItem:
        """Block until an item is available and return it."""
        raise NotImplementedError

    async def size(self) -> int:
        raise NotImplementedError

    async def close(self):
        pass


class MemoryQueue(WorkQueue):
    """Unbounded in-process FIFO queue."""

    def __init__(self):
        self._queue: asyncio.Queue = asyncio.Queue()

    async def put(self, item: QueueItem):
        self._queue.put_nowait(item)

    async def get(self) -> QueueItem:
        return await self._queue.get()

    async def size(self) -> int:
        return self._queue.qsize()

    def get_nowait(self) -> QueueItem:
        return self._queue.get_nowait()

    def empty(self) -> bool:
        return self._queue.empty()


def encode_item(item: QueueItem) -> str:
    """Serialize a queue item to JSON."""
    if item is END:
        return json.dumps({'type': 'end'})
    if isinstance(item, Job):
        return json.dumps({'type': 'job', 'data': item.to_dict()})
    if isinstance(item, Page):
        return json.dumps({'type': 'page', 'data': item.to_dict()})
    raise TypeError(f"Cannot queue {type(item).__name__}")


def decode_item(raw: Union[str, bytes]) -> QueueItem:
    """Deserialize a queue item produced by encode_item."""
    if isinstance(raw, bytes):
        raw = raw.decode('utf-8')
    payload: Any = json.loads(raw)
    kind = payload.get('type')
    if kind == 'end':
        return END
    if kind == 'job':
        return Job.from_dict(payload['data'])
    if kind == 'page':
        return Page.from_dict(payload['data'])
    raise ValueError(f"Unknown queue item type: {kind!r}")


class RedisQueue(WorkQueue):
    """FIFO queue stored in a Redis list (RPUSH / BLPOP)."""

    def __init__(self, redis_client: redis.Redis, key: str, poll_timeout: int = 5):
        self.redis_client = redis_client
        self.key = key
        self.poll_timeout = poll_timeout
        self.logger = logging.getLogger(__name__)

    async def put(self, item: QueueItem):
        await self.redis_client.rpush(self.key, encode_item(item))

    async def get(self) -> QueueItem:
        while True:
            result = await self.redis_client.blpop([self.key], timeout=self.poll_timeout)
            if result is None:
                continue
            _, raw = result
            try:
                return decode_item(raw)
            except (ValueError, KeyError) as e:
                self.logger.error(f"Dropping malformed item from {self.key}: {e}")

    async def size(self) -> int:
        return await self.redis_client.llen(self.key)

    async def clear(self):
        await self.redis_client.delete(self.key)
