"""
Tests for Worker.
"""

from unittest.mock import AsyncMock, patch

import pytest

from crawlfetch.crawler.job_queue import END, Job, MemoryQueue
from crawlfetch.crawler.page import Page
from crawlfetch.crawler.worker import Worker
from crawlfetch.utils.config import FetcherConfig
from crawlfetch.utils.monitoring import CrawlerMonitor


class FakeFetcher:
    def __init__(self):
        self.calls = []
        self.closed = False

    async def fetch_pages(self, url, referer=None, depth=None):
        self.calls.append((url, referer, depth))
        if url.endswith('/fail'):
            return [Page(url, error='BadStatusError: 500')]
        return [
            Page(url, status_code=301, body=b'', referer=referer, depth=depth,
                 redirect_target=url + '/next', response_time_ms=3),
            Page(url + '/next', status_code=200, body=b'ok', referer=referer, depth=depth,
                 response_time_ms=4),
        ]

    async def close(self):
        self.closed = True


async def _drain(queue: MemoryQueue) -> list:
    items = []
    while not queue.empty():
        items.append(await queue.get())
    return items


@pytest.mark.asyncio
async def test_worker_stops_at_sentinel() -> None:
    jobs, pages = MemoryQueue(), MemoryQueue()
    fetcher = FakeFetcher()
    await jobs.put(Job('http://example.com/a', None, 0))
    await jobs.put(Job('http://example.com/fail', 'http://example.com/', 1))
    await jobs.put(END)
    await jobs.put(Job('http://example.com/never', None, 0))

    worker = Worker(jobs, pages, FetcherConfig(), fetcher=fetcher)
    await worker.run()

    assert fetcher.calls == [
        ('http://example.com/a', None, 0),
        ('http://example.com/fail', 'http://example.com/', 1),
    ]
    assert fetcher.closed
    assert await jobs.size() == 1

    emitted = await _drain(pages)
    assert [p.url for p in emitted] == [
        'http://example.com/a',
        'http://example.com/a/next',
        'http://example.com/fail',
    ]
    assert emitted[-1].error
    assert worker.jobs_processed == 2
    assert worker.pages_emitted == 3


@pytest.mark.asyncio
async def test_delay_is_resolved_each_iteration_and_skipped_when_not_positive() -> None:
    jobs, pages = MemoryQueue(), MemoryQueue()
    delays = iter([0.5, 0, -1])
    for n in range(3):
        await jobs.put(Job(f'http://example.com/{n}'))
    await jobs.put(END)

    worker = Worker(jobs, pages, FetcherConfig(delay=lambda: next(delays)), fetcher=FakeFetcher())
    with patch('crawlfetch.crawler.worker.asyncio.sleep', new=AsyncMock()) as sleep:
        await worker.run()

    sleep.assert_awaited_once_with(0.5)


@pytest.mark.asyncio
async def test_fixed_delay() -> None:
    jobs, pages = MemoryQueue(), MemoryQueue()
    await jobs.put(Job('http://example.com/'))
    await jobs.put(Job('http://example.com/2'))
    await jobs.put(END)

    worker = Worker(jobs, pages, FetcherConfig(delay=0.25), fetcher=FakeFetcher())
    with patch('crawlfetch.crawler.worker.asyncio.sleep', new=AsyncMock()) as sleep:
        await worker.run()

    assert sleep.await_count == 2


@pytest.mark.asyncio
async def test_worker_records_metrics() -> None:
    jobs, pages = MemoryQueue(), MemoryQueue()
    await jobs.put(Job('http://example.com/a'))
    await jobs.put(Job('http://example.com/fail'))
    await jobs.put(END)

    monitor = CrawlerMonitor()
    await Worker(jobs, pages, FetcherConfig(), monitor=monitor, fetcher=FakeFetcher()).run()

    values = monitor.metrics.get_current_values()
    assert values['pages_fetched_total'] == 2
    assert values['errors_total'] == 1
    assert values['bytes_downloaded_total'] == 2


@pytest.mark.asyncio
async def test_worker_with_real_fetcher(site) -> None:
    jobs, pages = MemoryQueue(), MemoryQueue()
    await jobs.put(Job(site.url('/a'), None, 0))
    await jobs.put(END)

    await Worker(jobs, pages, FetcherConfig()).run()

    first, second = await _drain(pages)
    assert first.url == site.url('/a')
    assert first.redirect_target == site.url('/b')
    assert second.url == site.url('/b')
    assert second.status_code == 200
    assert second.body == b'hello'


@pytest.mark.asyncio
async def test_delay_errors_do_not_stop_the_worker() -> None:
    jobs, pages = MemoryQueue(), MemoryQueue()
    await jobs.put(Job('http://example.com/1'))
    await jobs.put(Job('http://example.com/2'))
    await jobs.put(END)

    def broken_delay():
        raise RuntimeError('delay service down')

    fetcher = FakeFetcher()
    worker = Worker(jobs, pages, FetcherConfig(delay=broken_delay), fetcher=fetcher)
    await worker.run()

    assert [call[0] for call in fetcher.calls] == ['http://example.com/1', 'http://example.com/2']
    assert worker.jobs_processed == 2


class FlakyPageQueue(MemoryQueue):
    def __init__(self, failures: int):
        super().__init__()
        self.failures = failures

    async def put(self, item):
        if self.failures:
            self.failures -= 1
            raise ConnectionError('redis went away')
        await super().put(item)


@pytest.mark.asyncio
async def test_page_queue_errors_do_not_stop_the_worker() -> None:
    jobs, pages = MemoryQueue(), FlakyPageQueue(failures=1)
    await jobs.put(Job('http://example.com/1'))
    await jobs.put(Job('http://example.com/2'))
    await jobs.put(END)

    fetcher = FakeFetcher()
    await Worker(jobs, pages, FetcherConfig(), fetcher=fetcher).run()

    assert len(fetcher.calls) == 2
    emitted = await _drain(pages)
    assert [p.url for p in emitted] == ['http://example.com/2', 'http://example.com/2/next']
