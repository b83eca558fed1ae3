"""
Crawl Fetcher

The fetching core of a web crawler: redirect-aware page fetching over
pooled per-host connections, driven by concurrent workers.
"""

__version__ = "1.0.0"
__description__ = "Fetching core for a web crawler: connection pooling, redirects, retries and workers"
