"""
Crawl worker: drains the job queue through its own fetcher.
"""

import asyncio
import logging
from typing import Optional

from .fetcher import WebFetcher
from .job_queue import END, Job, WorkQueue
from .providers import as_provider, resolve_delay
from ..utils.config import FetcherConfig
from ..utils.logger import get_crawler_logger
from ..utils.monitoring import CrawlerMonitor


class Worker:
    """
    Takes jobs from the job queue and puts the fetched Page records on the
    page queue until it receives END.
    """

    def __init__(self, job_queue: WorkQueue, page_queue: WorkQueue,
                 config: Optional[FetcherConfig] = None, worker_id: str = "worker-0",
                 monitor: Optional[CrawlerMonitor] = None,
                 fetcher: Optional[WebFetcher] = None):
        self.job_queue = job_queue
        self.page_queue = page_queue
        self.config = config or FetcherConfig()
        self.worker_id = worker_id
        self.monitor = monitor
        self.fetcher = fetcher or WebFetcher(self.config)
        self.delay_provider = as_provider(self.config.delay)
        self.logger = get_crawler_logger(__name__, worker_id=worker_id)

        self.jobs_processed = 0
        self.pages_emitted = 0

    async def run(self):
        """Process jobs until END is dequeued."""
        self.logger.debug(f"Worker {self.worker_id} started")
        try:
            while True:
                job = await self.job_queue.get()
                if job is END:
                    break
                try:
                    await self._process(job)
                except Exception as e:
                    self.logger.error(f"Worker {self.worker_id} could not process {job.url}: {e!r}",
                                      exc_info=True)
                try:
                    await self._delay()
                except Exception as e:
                    self.logger.error(f"Worker {self.worker_id} could not resolve its delay: {e!r}")
        finally:
            await self.fetcher.close()
            self.logger.debug(f"Worker {self.worker_id} finished")

    async def _process(self, job: Job):
        pages = await self.fetcher.fetch_pages(job.url, job.referer, job.depth)
        for page in pages:
            await self.page_queue.put(page)
            self.pages_emitted += 1
            if self.monitor:
                self._record(page)
        self.jobs_processed += 1

        final = pages[-1]
        if final.error:
            self.logger.log_url_event(logging.WARNING, job.url, f"Failed to fetch {job.url}: {final.error}")
        else:
            self.logger.log_url_event(logging.DEBUG, job.url,
                                      f"Fetched {job.url}: {len(pages)} page(s), final status {final.status_code}")

    def _record(self, page):
        if page.error:
            self.monitor.record_error('fetch_failed', page.error)
        else:
            self.monitor.record_page(page.url, page.status_code, page.response_time_ms or 0,
                                     len(page.body or b''))

    async def _delay(self):
        seconds = resolve_delay(self.delay_provider)
        if seconds > 0:
            await asyncio.sleep(seconds)
