#!/usr/bin/env python3
"""
Main entry point for the crawl fetcher.
"""

import asyncio
import argparse
import logging
import signal
import sys
from dataclasses import asdict
from pathlib import Path
from typing import List, Optional

from crawlfetch import __version__
from crawlfetch.crawler.job_queue import MemoryQueue
from crawlfetch.crawler.page import Page
from crawlfetch.crawler.scheduler import CrawlerScheduler
from crawlfetch.utils.config import Config, load_config
from crawlfetch.utils.logger import setup_logging
from crawlfetch.utils.monitoring import initialize_monitoring


class CrawlerApp:
    """Fetches a set of URLs with a pool of workers and reports every page."""

    def __init__(self):
        self.scheduler: Optional[CrawlerScheduler] = None
        self.logger = logging.getLogger(__name__)
        self.pages: List[Page] = []
        self._shutdown_event = asyncio.Event()

    def setup_signal_handlers(self):
        """Setup signal handlers for graceful shutdown."""
        loop = asyncio.get_running_loop()
        for signum in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(signum, self._shutdown_event.set)
            except NotImplementedError:
                # add_signal_handler is unavailable on Windows event loops
                pass

    async def run(self, config: Config, json_logs: bool = False) -> int:
        """Run the workers over the configured seed URLs."""
        try:
            setup_logging(asdict(config.logging), enable_json=json_logs)
            self.setup_signal_handlers()

            self.logger.info("=== CRAWL FETCHER STARTING ===")
            self.logger.info(f"Seed URLs: {config.crawler.seed_urls}")
            self.logger.info(f"Workers: {config.crawler.workers}")
            self.logger.info(f"Redirect limit: {config.fetcher.redirect_limit}")
            self.logger.info(f"Queue backend: {config.queue.backend}")

            monitor = initialize_monitoring(
                config.monitoring.metrics_enabled,
                config.monitoring.prometheus_port
            )
            self.scheduler = CrawlerScheduler(config, monitor=monitor)
            await self.scheduler.start()

            for url in config.crawler.seed_urls:
                await self.scheduler.submit(url)

            stop_task = asyncio.create_task(self.scheduler.stop())
            shutdown_task = asyncio.create_task(self._shutdown_event.wait())

            done, pending = await asyncio.wait(
                [stop_task, shutdown_task],
                return_when=asyncio.FIRST_COMPLETED
            )
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)

            if shutdown_task in done:
                self.logger.info("Shutdown requested, abandoning remaining jobs")
                return 1

            await self._drain_pages()
            self._report()

        except Exception as e:
            self.logger.error(f"Fatal error: {e}", exc_info=True)
            return 1

        finally:
            if self.scheduler:
                await self.scheduler.close()
            self.logger.info("=== CRAWL FETCHER FINISHED ===")

        return 0

    async def _drain_pages(self):
        """Collect the page records left on an in-process page queue."""
        page_queue = self.scheduler.page_queue
        if not isinstance(page_queue, MemoryQueue):
            self.logger.info("Pages were pushed to the shared page queue")
            return
        while not page_queue.empty():
            self.pages.append(page_queue.get_nowait())

    def _report(self):
        for page in self.pages:
            if page.error:
                self.logger.warning(f"ERROR    {page.url}: {page.error}")
            elif page.is_redirect:
                self.logger.info(f"{page.status_code}      {page.url} -> {page.redirect_target} "
                                 f"({page.response_time_ms} ms)")
            else:
                self.logger.info(f"{page.status_code}      {page.url} "
                                 f"({len(page.body or b'')} bytes, {page.response_time_ms} ms)")

        failed = sum(1 for page in self.pages if page.error)
        self.logger.info(f"Page records: {len(self.pages)}, failed fetches: {failed}")


def build_config(args: argparse.Namespace) -> Config:
    """Load the config file and apply command line overrides."""
    if Path(args.config).exists():
        config = load_config(args.config)
    elif args.url:
        config = Config()
    else:
        raise FileNotFoundError(f"Configuration file '{args.config}' not found")

    if args.url:
        config.crawler.seed_urls = list(args.url)
    if args.workers:
        config.crawler.workers = args.workers
    if args.verbose:
        config.fetcher.verbose = True
        config.logging.level = 'DEBUG'
    return config


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Crawl Fetcher",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py                                  # Fetch seed URLs from config.yaml
  python main.py --config my_config.yaml          # Run with custom config
  python main.py --url https://example.com/       # Fetch a single URL
  python main.py --url https://example.com/ -v    # Show retry and connection diagnostics
        """
    )

    parser.add_argument(
        '--config',
        default='config.yaml',
        help='Path to configuration file (default: config.yaml)'
    )

    parser.add_argument(
        '--url',
        action='append',
        help='URL to fetch (repeatable, replaces the configured seed URLs)'
    )

    parser.add_argument(
        '--workers',
        type=int,
        help='Number of concurrent workers'
    )

    parser.add_argument(
        '-v', '--verbose',
        action='store_true',
        help='Log internal fetch failures, retries and connection rebuilds'
    )

    parser.add_argument(
        '--json-logs',
        action='store_true',
        help='Emit logs as JSON lines'
    )

    parser.add_argument(
        '--version',
        action='version',
        version=f'Crawl Fetcher {__version__}'
    )

    args = parser.parse_args()

    try:
        config = build_config(args)
    except (FileNotFoundError, ValueError) as e:
        print(f"Error: {e}")
        print("Create a config.yaml file, pass --config, or give URLs with --url")
        return 1

    app = CrawlerApp()
    try:
        return asyncio.run(app.run(config, json_logs=args.json_logs))
    except KeyboardInterrupt:
        print("\nInterrupted by user")
        return 1


if __name__ == '__main__':
    sys.exit(main())
