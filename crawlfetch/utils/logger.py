"""
Logging setup for the crawl fetcher.

Workers log through a CrawlerLogAdapter so every line carries the worker
id, and URL events additionally carry the URL they concern.
"""

import logging
import logging.handlers
import json
import sys
from pathlib import Path
from typing import Dict, Any, Optional
from datetime import datetime, timezone


# Attributes a record may carry from CrawlerLogAdapter
CONTEXT_FIELDS = ('worker_id', 'url', 'event_type')

# Loggers whose per-request chatter drowns out the fetch diagnostics
QUIET_LOGGERS = ('aiohttp.access', 'redis.connection')


class JSONFormatter(logging.Formatter):
    """One JSON object per record, with any worker context attached."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            'timestamp': datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
        }
        for name in CONTEXT_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                entry[name] = value
        if record.exc_info:
            entry['exception'] = self.formatException(record.exc_info)
        return json.dumps(entry, ensure_ascii=False, default=str)


class CrawlerLogAdapter(logging.LoggerAdapter):
    """Stamps records with the context it was created with."""

    def __init__(self, logger: logging.Logger, extra: Optional[Dict[str, Any]] = None):
        super().__init__(logger, extra or {})

    def process(self, msg, kwargs):
        # per-call extras win over the adapter's own context
        kwargs['extra'] = {**self.extra, **(kwargs.get('extra') or {})}
        return msg, kwargs

    def log_url_event(self, level: int, url: str, message: str, **kwargs):
        """Log *message* about *url*."""
        kwargs['extra'] = {**(kwargs.get('extra') or {}), 'url': url, 'event_type': 'url_event'}
        self.log(level, message, **kwargs)


class QuietLoggerFilter(logging.Filter):
    """Drops records from the loggers named in *quiet*."""

    def __init__(self, quiet=QUIET_LOGGERS):
        super().__init__()
        self.quiet = tuple(quiet)

    def filter(self, record: logging.LogRecord) -> bool:
        return not record.name.startswith(self.quiet)


def setup_logging(config: Dict[str, Any], enable_json: bool = False) -> logging.Logger:
    """
    Configure the root logger from the ``logging`` config section.

    Records at the configured level go to stdout and to a rotating log
    file; errors are also copied to ``errors.log`` beside it.
    """
    log_file = Path(config.get('file') or 'logs/crawlfetch.log')
    log_file.parent.mkdir(parents=True, exist_ok=True)

    level = getattr(logging, str(config.get('level') or 'INFO').upper())
    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()

    if enable_json:
        formatter = JSONFormatter()
    else:
        formatter = logging.Formatter(
            config.get('format') or '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        )

    handlers = [
        (logging.StreamHandler(sys.stdout), level),
        (logging.handlers.RotatingFileHandler(
            log_file, maxBytes=50 * 1024 * 1024, backupCount=5, encoding='utf-8'
        ), logging.DEBUG),
        (logging.handlers.RotatingFileHandler(
            log_file.parent / 'errors.log', maxBytes=10 * 1024 * 1024, backupCount=3, encoding='utf-8'
        ), logging.ERROR),
    ]
    for handler, handler_level in handlers:
        handler.setLevel(handler_level)
        handler.setFormatter(formatter)
        handler.addFilter(QuietLoggerFilter())
        root_logger.addHandler(handler)

    for name in ('aiohttp', 'redis', 'asyncio'):
        logging.getLogger(name).setLevel(logging.WARNING)

    root_logger.info(f"Logging to {log_file} at {logging.getLevelName(level)}")
    return root_logger


def get_crawler_logger(name: str, **context) -> CrawlerLogAdapter:
    """Return a logger for *name* that adds *context* (e.g. worker_id) to each record."""
    return CrawlerLogAdapter(logging.getLogger(name), context)
