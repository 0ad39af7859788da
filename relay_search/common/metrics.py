"""Metrics collection for the relay search service.

Provides a thin convenience wrapper around ``prometheus_client`` so the HTTP
layer and the search manager record request, search, sub-search and fusion
metrics consistently.

Design notes
- Metrics and labels are predeclared to avoid cardinality explosions
- A single registry is kept per service (can be injected if needed)
"""

from typing import Optional

from prometheus_client import Counter, Histogram, CollectorRegistry, generate_latest


class MetricsCollector:
    """Centralized metrics collection for the search service.

    Parameters
    - service_name: Logical name used for scoping/labels if desired
    - registry: Optional custom ``CollectorRegistry`` (e.g. for testing)
    """

    def __init__(self, service_name: str, registry: Optional[CollectorRegistry] = None):
        self.service_name = service_name
        self.registry = registry or CollectorRegistry()

        self.request_count = Counter(
            'http_requests_total',
            'Total HTTP requests',
            ['method', 'endpoint', 'status'],
            registry=self.registry
        )

        self.request_duration = Histogram(
            'http_request_duration_seconds',
            'HTTP request duration',
            ['method', 'endpoint'],
            registry=self.registry
        )

        self.search_requests = Counter(
            'relay_search_requests_total',
            'Total search requests',
            ['strategy'],
            registry=self.registry
        )

        self.search_duration = Histogram(
            'relay_search_duration_seconds',
            'Search duration',
            ['strategy'],
            registry=self.registry
        )

        self.search_results = Histogram(
            'relay_search_results',
            'Number of results returned per search',
            ['strategy'],
            buckets=(0, 1, 5, 10, 25, 50, 100, 250, 500),
            registry=self.registry
        )

        self.subsearch_failures = Counter(
            'relay_subsearch_failures_total',
            'Per entity type sub-searches that failed or timed out',
            ['entity_type', 'reason'],
            registry=self.registry
        )

        self.fusion_operations = Counter(
            'relay_fusion_operations_total',
            'Hybrid fusion operations',
            ['algorithm'],
            registry=self.registry
        )

    def record_http_request(
        self,
        method: str,
        endpoint: str,
        status: int,
        duration: float
    ) -> None:
        """Record HTTP request metrics.

        duration is expected in seconds to match Prometheus histogram units.
        """
        self.request_count.labels(method=method, endpoint=endpoint, status=status).inc()
        self.request_duration.labels(method=method, endpoint=endpoint).observe(duration)

    def record_search(self, strategy: str, duration: float, result_count: int) -> None:
        """Record one completed search."""
        self.search_requests.labels(strategy=strategy).inc()
        self.search_duration.labels(strategy=strategy).observe(duration)
        self.search_results.labels(strategy=strategy).observe(result_count)

    def record_subsearch_failure(self, entity_type: str, reason: str) -> None:
        self.subsearch_failures.labels(entity_type=entity_type, reason=reason).inc()

    def record_fusion(self, algorithm: str) -> None:
        self.fusion_operations.labels(algorithm=algorithm).inc()

    def get_metrics(self) -> str:
        """Get metrics in Prometheus exposition format for scraping."""
        return generate_latest(self.registry).decode('utf-8')


# Global metrics collector instance
_metrics_collector: Optional[MetricsCollector] = None


def get_metrics_collector(service_name: str) -> MetricsCollector:
    """Get or create metrics collector for a service.

    Returns a process-wide singleton to avoid duplicate collectors/labels.
    """
    global _metrics_collector
    if _metrics_collector is None:
        _metrics_collector = MetricsCollector(service_name)
    return _metrics_collector
