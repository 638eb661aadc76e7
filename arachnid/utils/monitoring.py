"""
Prometheus metrics for a crawl.
"""

import logging
import time
from typing import Any, Dict, Optional

from prometheus_client import CollectorRegistry, Counter, Gauge, start_http_server


class CrawlMetrics:
    """
    Counters and gauges for one crawler, kept in a private registry so
    several crawlers can live in one process.
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        self.logger = logging.getLogger(__name__)
        self.registry = registry or CollectorRegistry()
        self.start_time = time.time()

        self.pages_crawled = Counter(
            'crawler_pages_crawled',
            'Pages processed by the crawler',
            registry=self.registry
        )
        self.fetch_errors = Counter(
            'crawler_fetch_errors',
            'Pages whose fetch failed',
            registry=self.registry
        )
        self.links_queued = Counter(
            'crawler_links_queued',
            'Links put on the request queue',
            registry=self.registry
        )
        self.request_queue_size = Gauge(
            'crawler_request_queue_size',
            'Links waiting on the request queue',
            registry=self.registry
        )
        self.idle_workers = Gauge(
            'crawler_idle_workers',
            'Workers blocked waiting for a link',
            registry=self.registry
        )

    def start_server(self, port: int):
        """Start the Prometheus metrics HTTP server."""
        start_http_server(port, registry=self.registry)
        self.logger.info(f"Prometheus metrics server started on port {port}")

    def record_page(self, failed: bool):
        self.pages_crawled.inc()
        if failed:
            self.fetch_errors.inc()

    def record_links(self, count: int):
        if count:
            self.links_queued.inc(count)

    def update_queues(self, queue_size: int, idle_workers: int):
        self.request_queue_size.set(queue_size)
        self.idle_workers.set(idle_workers)

    def value(self, name: str) -> float:
        """Current value of a metric by its exported sample name."""
        return self.registry.get_sample_value(name) or 0.0

    def summary(self) -> Dict[str, Any]:
        runtime = time.time() - self.start_time
        pages = self.value('crawler_pages_crawled_total')
        return {
            'runtime_seconds': runtime,
            'pages_crawled': pages,
            'fetch_errors': self.value('crawler_fetch_errors_total'),
            'links_queued': self.value('crawler_links_queued_total'),
            'pages_per_minute': pages / (runtime / 60) if runtime > 0 else 0,
        }
