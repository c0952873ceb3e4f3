"""
Shared metrics configuration for modelo-mcp services.
"""

from prometheus_client import (
    CollectorRegistry,
    Counter,
    GCCollector,
    Gauge,
    Histogram,
    Info,
    PlatformCollector,
    ProcessCollector,
    generate_latest,
)
from typing import Dict, Any, Optional


class MetricsCollector:
    """Centralized metrics collector for services.

    Each collector owns a ``CollectorRegistry`` seeded with the process,
    platform and GC collectors, so several service instances (one per test,
    for example) never clash over metric names.
    """

    def __init__(self, service_name: str, registry: Optional[CollectorRegistry] = None,
                 version: str = "1.0.0"):
        self.service_name = service_name
        self.version = version
        if registry is None:
            registry = CollectorRegistry()
            ProcessCollector(registry=registry)
            PlatformCollector(registry=registry)
            GCCollector(registry=registry)
        self.registry = registry
        self._metrics: Dict[str, Any] = {}
        self._setup_metrics()

    def _setup_metrics(self):
        """Set up common metrics for the service."""

        self._metrics["service_info"] = Info(
            "service",
            "Service information",
            registry=self.registry
        )
        self._metrics["service_info"].info({
            "service": self.service_name,
            "version": self.version
        })

        # HTTP metrics
        self._metrics["http_requests_total"] = Counter(
            "http_requests_total",
            "Total HTTP requests",
            ["method", "endpoint", "status_code"],
            registry=self.registry
        )

        self._metrics["http_request_duration_seconds"] = Histogram(
            "http_request_duration_seconds",
            "HTTP request duration in seconds",
            ["method", "endpoint"],
            registry=self.registry
        )

        self._metrics["health_check_total"] = Counter(
            "health_check_total",
            "Total health check requests",
            ["status"],
            registry=self.registry
        )

        self._metrics["errors_total"] = Counter(
            "errors_total",
            "Total errors",
            ["error_type", "service"],
            registry=self.registry
        )

        self._setup_admission_metrics()
        self._setup_bus_metrics()

    def _setup_admission_metrics(self):
        """Set up per-tenant admission control metrics."""
        self._metrics["rate_limit_decisions_total"] = Counter(
            "rate_limit_decisions_total",
            "Admission decisions taken by the tenant rate limiter",
            ["decision"],
            registry=self.registry
        )

        self._metrics["rate_limit_tracked_tenants"] = Gauge(
            "rate_limit_tracked_tenants",
            "Number of tenants with a live admission budget",
            registry=self.registry
        )

    def _setup_bus_metrics(self):
        """Set up message bus metrics."""
        self._metrics["bus_messages_total"] = Counter(
            "bus_messages_total",
            "Total message bus messages handled",
            ["topic", "status"],
            registry=self.registry
        )

    def render(self) -> bytes:
        """Render the registry in the Prometheus text exposition format."""
        return generate_latest(self.registry)

    def record_http_request(self, method: str, endpoint: str, status_code: int, duration: float):
        """Record HTTP request metrics."""
        self._metrics["http_requests_total"].labels(
            method=method,
            endpoint=endpoint,
            status_code=str(status_code)
        ).inc()

        self._metrics["http_request_duration_seconds"].labels(
            method=method,
            endpoint=endpoint
        ).observe(duration)

    def record_health_check(self, status: str):
        """Record health check metrics."""
        self._metrics["health_check_total"].labels(status=status).inc()

    def record_error(self, error_type: str, service: Optional[str] = None):
        """Record error metrics."""
        service_name = service or self.service_name
        self._metrics["errors_total"].labels(error_type=error_type, service=service_name).inc()

    def record_admission(self, admitted: bool, tracked_tenants: Optional[int] = None):
        """Record an admission decision and, when known, the registry size."""
        decision = "admitted" if admitted else "rejected"
        self._metrics["rate_limit_decisions_total"].labels(decision=decision).inc()
        if tracked_tenants is not None:
            self._metrics["rate_limit_tracked_tenants"].set(tracked_tenants)

    def record_bus_message(self, topic: str, status: str):
        self._metrics["bus_messages_total"].labels(topic=topic, status=status).inc()


def get_metrics_collector(service_name: str, registry: Optional[CollectorRegistry] = None,
                          version: str = "1.0.0") -> MetricsCollector:
    """Get a metrics collector for a service."""
    return MetricsCollector(service_name, registry, version=version)
