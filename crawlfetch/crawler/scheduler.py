"""
Crawler scheduler that runs a pool of workers over shared job and page queues.
"""

import asyncio
import logging
import time
from typing import Dict, List, Optional
from dataclasses import dataclass
import redis.asyncio as redis

from .job_queue import END, Job, MemoryQueue, RedisQueue, WorkQueue
from .worker import Worker
from ..utils.config import Config
from ..utils.monitoring import CrawlerMonitor


@dataclass
class CrawlStats:
    """Statistics for a scheduler run."""
    start_time: float
    jobs_submitted: int = 0
    workers_started: int = 0
    worker_failures: int = 0

    @property
    def elapsed_time(self) -> float:
        return time.monotonic() - self.start_time


class CrawlerScheduler:
    """
    Starts the configured number of workers and feeds them jobs.

    Workers share only the two queues; each one builds its own fetcher.
    Stopping enqueues one END per worker, so jobs submitted before stop()
    are still processed.
    """

    def __init__(self, config: Config, job_queue: Optional[WorkQueue] = None,
                 page_queue: Optional[WorkQueue] = None,
                 monitor: Optional[CrawlerMonitor] = None):
        self.config = config
        self.logger = logging.getLogger(__name__)

        self.redis_client: Optional[redis.Redis] = None
        self.job_queue = job_queue
        self.page_queue = page_queue
        self.monitor = monitor

        self.stats = CrawlStats(start_time=time.monotonic())
        self.is_running = False
        self.workers: List[Worker] = []
        self.tasks: List[asyncio.Task] = []
        self._stats_task: Optional[asyncio.Task] = None

    async def initialize(self):
        """Create the queues that were not passed in."""
        if self.job_queue is not None and self.page_queue is not None:
            return

        if self.config.queue.backend == 'redis':
            self.redis_client = redis.Redis(
                host=self.config.queue.host,
                port=self.config.queue.port,
                db=self.config.queue.db,
                password=self.config.queue.password,
                decode_responses=False
            )
            await self.redis_client.ping()
            self.logger.info("Redis connection established")

            self.job_queue = self.job_queue or RedisQueue(self.redis_client, self.config.queue.job_queue_key)
            self.page_queue = self.page_queue or RedisQueue(self.redis_client, self.config.queue.page_queue_key)
        else:
            self.job_queue = self.job_queue or MemoryQueue()
            self.page_queue = self.page_queue or MemoryQueue()

    async def start(self):
        """Start the worker tasks."""
        if self.is_running:
            self.logger.warning("Scheduler is already running")
            return

        await self.initialize()
        self.is_running = True
        self.stats = CrawlStats(start_time=time.monotonic())

        num_workers = self.config.crawler.workers
        for i in range(num_workers):
            worker = Worker(
                self.job_queue,
                self.page_queue,
                self.config.fetcher,
                worker_id=f"worker-{i}",
                monitor=self.monitor
            )
            self.workers.append(worker)
            self.tasks.append(asyncio.create_task(worker.run()))
        self.stats.workers_started = num_workers

        if self.monitor:
            self.monitor.update_active_workers(num_workers)

        if self.config.crawler.stats_interval > 0:
            self._stats_task = asyncio.create_task(self._stats_reporter())

        self.logger.info(f"Started {num_workers} workers")

    async def submit(self, url: str, referer: Optional[str] = None, depth: int = 0):
        """Queue a job for the workers."""
        if self.job_queue is None:
            await self.initialize()
        await self.job_queue.put(Job(url, referer, depth))
        self.stats.jobs_submitted += 1

    async def stop(self):
        """Send END to every worker and wait for them to finish."""
        if not self.is_running:
            return

        for _ in self.tasks:
            await self.job_queue.put(END)

        results = await asyncio.gather(*self.tasks, return_exceptions=True)
        for worker, result in zip(self.workers, results):
            if isinstance(result, BaseException):
                self.stats.worker_failures += 1
                self.logger.error(f"Worker {worker.worker_id} error: {result!r}")

        if self._stats_task:
            self._stats_task.cancel()
            await asyncio.gather(self._stats_task, return_exceptions=True)
            self._stats_task = None

        if self.monitor:
            self.monitor.update_active_workers(0)

        self.is_running = False
        self.tasks.clear()
        self._log_final_stats()

    async def _stats_reporter(self):
        """Periodically log progress."""
        while True:
            await asyncio.sleep(self.config.crawler.stats_interval)
            queued = await self.job_queue.size()
            if self.monitor:
                self.monitor.update_queue_size(queued)
            self.logger.info(
                f"Progress: "
                f"Submitted={self.stats.jobs_submitted}, "
                f"Processed={sum(w.jobs_processed for w in self.workers)}, "
                f"Pages={sum(w.pages_emitted for w in self.workers)}, "
                f"Queued={queued}"
            )

    def _log_final_stats(self):
        self.logger.info("=== CRAWL COMPLETED ===")
        self.logger.info(f"Jobs submitted: {self.stats.jobs_submitted}")
        self.logger.info(f"Jobs processed: {sum(w.jobs_processed for w in self.workers)}")
        self.logger.info(f"Pages emitted: {sum(w.pages_emitted for w in self.workers)}")
        self.logger.info(f"Total time: {self.stats.elapsed_time:.2f} seconds")
        for worker in self.workers:
            self.logger.debug(f"Fetcher stats ({worker.worker_id}): {worker.fetcher.get_stats()}")

    async def close(self):
        """Stop the workers and release the queue backend."""
        try:
            await self.stop()
        finally:
            if self.redis_client:
                await self.redis_client.aclose()
                self.redis_client = None
            self.logger.info("Crawler scheduler closed")

    def get_stats(self) -> Dict:
        """Get current statistics."""
        return {
            'jobs_submitted': self.stats.jobs_submitted,
            'jobs_processed': sum(w.jobs_processed for w in self.workers),
            'pages_emitted': sum(w.pages_emitted for w in self.workers),
            'workers': len(self.tasks),
            'worker_failures': self.stats.worker_failures,
            'elapsed_time': self.stats.elapsed_time,
            'is_running': self.is_running
        }
