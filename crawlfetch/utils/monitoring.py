"""
Monitoring and metrics collection for the crawl fetcher.
"""

import time
import logging
from typing import Dict, Optional, Any, List
from dataclasses import dataclass, field

from prometheus_client import Counter, Histogram, Gauge, CollectorRegistry
from prometheus_client import start_http_server


@dataclass
class MetricPoint:
    """Individual metric data point."""
    timestamp: float
    value: float
    labels: Dict[str, str] = field(default_factory=dict)


@dataclass
class Metric:
    """Metric container with history."""
    name: str
    description: str
    metric_type: str  # counter, gauge, histogram
    points: List[MetricPoint] = field(default_factory=list)
    current_value: float = 0.0


class MetricsCollector:
    """Collects and manages fetcher metrics."""

    MAX_POINTS = 1000

    def __init__(self, enable_prometheus: bool = False, prometheus_port: int = 8000):
        self.logger = logging.getLogger(__name__)
        self.metrics: Dict[str, Metric] = {}
        self.enable_prometheus = enable_prometheus
        self.prometheus_port = prometheus_port

        self.prometheus_registry: Optional[CollectorRegistry] = None
        self.prometheus_metrics = {}

        if self.enable_prometheus:
            self._setup_prometheus()

    def _setup_prometheus(self):
        """Setup Prometheus metrics."""
        self.prometheus_registry = CollectorRegistry()

        self.prometheus_metrics = {
            'pages_fetched_total': Counter(
                'crawlfetch_pages_fetched_total',
                'Total number of page records with a response',
                registry=self.prometheus_registry
            ),
            'errors_total': Counter(
                'crawlfetch_errors_total',
                'Total number of failed fetches',
                ['error_type'],
                registry=self.prometheus_registry
            ),
            'response_time_seconds': Histogram(
                'crawlfetch_response_time_seconds',
                'Response time for HTTP requests',
                registry=self.prometheus_registry
            ),
            'bytes_downloaded_total': Counter(
                'crawlfetch_bytes_downloaded_total',
                'Total bytes downloaded',
                registry=self.prometheus_registry
            ),
            'queue_size': Gauge(
                'crawlfetch_queue_size',
                'Number of jobs waiting in the job queue',
                registry=self.prometheus_registry
            ),
            'active_workers': Gauge(
                'crawlfetch_active_workers',
                'Number of running workers',
                registry=self.prometheus_registry
            )
        }

        self.logger.info("Prometheus metrics initialized")

    def start_prometheus_server(self):
        """Start Prometheus metrics HTTP server."""
        if not self.enable_prometheus:
            return
        start_http_server(self.prometheus_port, registry=self.prometheus_registry)
        self.logger.info(f"Prometheus metrics server started on port {self.prometheus_port}")

    def record_metric(self, name: str, value: float, labels: Optional[Dict[str, str]] = None,
                      description: str = "", metric_type: str = "gauge",
                      prometheus_value: Optional[float] = None):
        """Record a metric value."""
        labels = labels or {}

        if name not in self.metrics:
            self.metrics[name] = Metric(
                name=name,
                description=description,
                metric_type=metric_type
            )

        metric = self.metrics[name]
        metric.points.append(MetricPoint(timestamp=time.time(), value=value, labels=labels))
        metric.current_value = value

        if len(metric.points) > self.MAX_POINTS:
            metric.points = metric.points[-self.MAX_POINTS:]

        if self.enable_prometheus and name in self.prometheus_metrics:
            prom_metric = self.prometheus_metrics[name]
            if labels:
                prom_metric = prom_metric.labels(**labels)
            observed = value if prometheus_value is None else prometheus_value

            if metric_type == 'counter':
                prom_metric.inc(observed)
            elif metric_type == 'histogram':
                prom_metric.observe(observed)
            else:
                prom_metric.set(observed)

    def increment_counter(self, name: str, labels: Optional[Dict[str, str]] = None,
                          description: str = "", amount: float = 1):
        """Increment a counter metric."""
        current_value = 0
        if name in self.metrics:
            current_value = self.metrics[name].current_value

        self.record_metric(name, current_value + amount, labels, description, "counter",
                           prometheus_value=amount)

    def set_gauge(self, name: str, value: float, labels: Optional[Dict[str, str]] = None,
                  description: str = ""):
        """Set a gauge metric value."""
        self.record_metric(name, value, labels, description, "gauge")

    def observe_histogram(self, name: str, value: float, labels: Optional[Dict[str, str]] = None,
                          description: str = ""):
        """Record a histogram observation."""
        self.record_metric(name, value, labels, description, "histogram")

    def get_metric(self, name: str) -> Optional[Metric]:
        return self.metrics.get(name)

    def get_current_values(self) -> Dict[str, float]:
        """Get current values of all metrics."""
        return {name: metric.current_value for name, metric in self.metrics.items()}


class CrawlerMonitor:
    """High-level monitoring interface for the workers."""

    def __init__(self, metrics_collector: Optional[MetricsCollector] = None):
        self.metrics = metrics_collector or MetricsCollector()
        self.logger = logging.getLogger(__name__)
        self.start_time = time.monotonic()

    def record_page(self, url: str, status_code: int, response_time_ms: int, content_size: int):
        """Record a page record that carries a response."""
        self.metrics.increment_counter('pages_fetched_total', description='Pages fetched')
        self.metrics.observe_histogram('response_time_seconds', response_time_ms / 1000.0,
                                       description='HTTP response time')
        self.metrics.increment_counter('bytes_downloaded_total', description='Bytes downloaded',
                                       amount=content_size)

    def record_error(self, error_type: str, error_message: str = ""):
        """Record a failed fetch."""
        self.metrics.increment_counter('errors_total', {'error_type': error_type}, 'Fetch errors')
        self.logger.debug(f"Recorded {error_type}: {error_message}")

    def update_queue_size(self, size: int):
        self.metrics.set_gauge('queue_size', size, description='Jobs in queue')

    def update_active_workers(self, count: int):
        self.metrics.set_gauge('active_workers', count, description='Active workers')

    def get_summary(self) -> Dict[str, Any]:
        """Get a summary of all metrics."""
        current_values = self.metrics.get_current_values()
        runtime = time.monotonic() - self.start_time

        return {
            'runtime_seconds': runtime,
            'metrics': current_values,
            'rates': {
                'pages_per_second': current_values.get('pages_fetched_total', 0) / runtime if runtime > 0 else 0,
            }
        }


def initialize_monitoring(enable_prometheus: bool = False, prometheus_port: int = 8000) -> CrawlerMonitor:
    """Create a monitor, starting the Prometheus exporter when enabled."""
    metrics_collector = MetricsCollector(enable_prometheus, prometheus_port)
    metrics_collector.start_prometheus_server()
    return CrawlerMonitor(metrics_collector)
