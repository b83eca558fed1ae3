"""
Utility modules for the crawl fetcher.
"""

from .config import Config, ConfigManager, FetcherConfig, load_config, get_config

__all__ = ['Config', 'ConfigManager', 'FetcherConfig', 'load_config', 'get_config']
