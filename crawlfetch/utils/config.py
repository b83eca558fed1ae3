"""
Configuration management for the crawl fetcher.
"""

import yaml
import logging
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union
from dataclasses import dataclass, field


ProxySetting = Union[None, str, List[str], Callable[[], Any]]
DelaySetting = Union[None, int, float, Callable[[], Any]]


@dataclass
class FetcherConfig:
    """Configuration for fetching behavior."""
    redirect_limit: int = 5
    user_agent: Optional[str] = None
    accept_cookies: bool = False
    cookies: Optional[Dict[str, str]] = None
    proxies: ProxySetting = None
    read_timeout: Optional[float] = None
    delay: DelaySetting = 0
    verbose: bool = False


@dataclass
class CrawlerConfig:
    """Configuration for the worker pool."""
    seed_urls: List[str] = field(default_factory=list)
    workers: int = 4
    stats_interval: float = 30.0


@dataclass
class QueueConfig:
    """Configuration for the job and page queues."""
    backend: str = 'memory'
    host: str = 'localhost'
    port: int = 6379
    db: int = 0
    password: Optional[str] = None
    job_queue_key: str = 'crawlfetch:jobs'
    page_queue_key: str = 'crawlfetch:pages'


@dataclass
class LoggingConfig:
    """Configuration for logging."""
    level: str = 'INFO'
    file: str = 'logs/crawlfetch.log'
    format: str = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


@dataclass
class MonitoringConfig:
    """Configuration for monitoring."""
    prometheus_port: int = 8000
    metrics_enabled: bool = False


@dataclass
class Config:
    """Main configuration class."""
    fetcher: FetcherConfig = field(default_factory=FetcherConfig)
    crawler: CrawlerConfig = field(default_factory=CrawlerConfig)
    queue: QueueConfig = field(default_factory=QueueConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    monitoring: MonitoringConfig = field(default_factory=MonitoringConfig)


def validate_config(config: Config):
    """Validate configuration values, raising ValueError on the first problem."""
    fetcher = config.fetcher

    if fetcher.redirect_limit < 0:
        raise ValueError("redirect_limit must be non-negative")

    if fetcher.read_timeout is not None and fetcher.read_timeout <= 0:
        raise ValueError("read_timeout must be positive")

    if isinstance(fetcher.delay, (int, float)) and fetcher.delay < 0:
        raise ValueError("delay must be non-negative")

    if fetcher.cookies is not None and not isinstance(fetcher.cookies, dict):
        raise ValueError("cookies must be a mapping of name to value")

    if isinstance(fetcher.proxies, (str, list)):
        proxies = [fetcher.proxies] if isinstance(fetcher.proxies, str) else fetcher.proxies
        for proxy in proxies:
            host, sep, port = str(proxy).rpartition(':')
            if not sep or not host or not port.isdigit():
                raise ValueError(f"Proxy must be given as host:port, got {proxy!r}")

    if config.crawler.workers < 1:
        raise ValueError("workers must be at least 1")

    if config.queue.backend not in ['memory', 'redis']:
        raise ValueError("Queue backend must be 'memory' or 'redis'")

    logging.info("Configuration validation passed")


class ConfigManager:
    """Manages configuration loading and validation."""

    def __init__(self, config_path: str = "config.yaml"):
        self.config_path = Path(config_path)
        self._config: Optional[Config] = None

    def load_config(self) -> Config:
        """Load configuration from YAML file."""
        if not self.config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {self.config_path}")

        with open(self.config_path, 'r') as file:
            try:
                config_data = yaml.safe_load(file) or {}
            except yaml.YAMLError as e:
                raise ValueError(f"Invalid YAML in configuration file: {e}")

        self._config = parse_config(config_data)
        validate_config(self._config)
        return self._config

    @property
    def config(self) -> Config:
        """Get the loaded configuration."""
        if not self._config:
            raise ValueError("Configuration not loaded. Call load_config() first.")
        return self._config


def parse_config(config_data: Dict[str, Any]) -> Config:
    """Build a Config from a parsed YAML mapping; missing sections use defaults."""
    try:
        return Config(
            fetcher=FetcherConfig(**(config_data.get('fetcher') or {})),
            crawler=CrawlerConfig(**(config_data.get('crawler') or {})),
            queue=QueueConfig(**(config_data.get('queue') or {})),
            logging=LoggingConfig(**(config_data.get('logging') or {})),
            monitoring=MonitoringConfig(**(config_data.get('monitoring') or {}))
        )
    except TypeError as e:
        raise ValueError(f"Unknown configuration option: {e}")


# Global config manager instance
config_manager = ConfigManager()


def get_config() -> Config:
    """Get the global configuration instance."""
    return config_manager.config


def load_config(config_path: str = "config.yaml") -> Config:
    """Load configuration from file."""
    global config_manager
    config_manager = ConfigManager(config_path)
    return config_manager.load_config()
