"""
Shared metrics configuration for the Claim Assignment Service.
"""

import threading
from typing import Dict, Any, Optional

from prometheus_client import Counter, Histogram, Gauge, Info, CollectorRegistry, REGISTRY


class MetricsCollector:
    """Centralized metrics collector for services."""

    def __init__(self, service_name: str, registry: Optional[CollectorRegistry] = None):
        self.service_name = service_name
        self.registry = registry if registry is not None else REGISTRY
        self._metrics: Dict[str, Any] = {}
        self._setup_metrics()

    def _setup_metrics(self):
        """Set up common metrics for the service."""

        self._metrics["service_info"] = Info(
            "service_info",
            "Service information",
            registry=self.registry
        )
        self._metrics["service_info"].info({
            "service": self.service_name,
            "version": "1.0.0"
        })

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

        # Queue consumer
        self._metrics["queue_messages_total"] = Counter(
            "queue_messages_total",
            "Queue messages by terminal outcome",
            ["outcome"],
            registry=self.registry
        )

        self._metrics["queue_message_processing_seconds"] = Histogram(
            "queue_message_processing_seconds",
            "Time spent processing one queue message",
            registry=self.registry
        )

        self._metrics["queue_reconnect_attempts"] = Gauge(
            "queue_reconnect_attempts",
            "Current broker reconnect attempt counter",
            registry=self.registry
        )

        # Assignments
        self._metrics["assignments_created_total"] = Counter(
            "assignments_created_total",
            "Assignments persisted by status",
            ["status"],
            registry=self.registry
        )

        self._metrics["notifications_total"] = Counter(
            "notifications_total",
            "External assignment notifications by result",
            ["result"],
            registry=self.registry
        )

    def get_metric(self, name: str):
        """Get a metric by name."""
        return self._metrics.get(name)

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

    def record_message_outcome(self, outcome: str):
        """Count a processed queue message."""
        self._metrics["queue_messages_total"].labels(outcome=outcome).inc()

    def record_assignment(self, status: str):
        """Count a persisted assignment."""
        self._metrics["assignments_created_total"].labels(status=status).inc()

    def record_notification(self, result: str):
        """Count an outbound notification attempt."""
        self._metrics["notifications_total"].labels(result=result).inc()

    def set_reconnect_attempts(self, attempts: int):
        """Publish the reconnect counter."""
        self._metrics["queue_reconnect_attempts"].set(attempts)

    def observe_message_processing(self, duration: float):
        """Record how long one message took to settle."""
        self._metrics["queue_message_processing_seconds"].observe(duration)


_collectors: Dict[str, MetricsCollector] = {}
_collectors_lock = threading.Lock()


def get_metrics_collector(service_name: str, registry: Optional[CollectorRegistry] = None) -> MetricsCollector:
    """Get a metrics collector for a service.

    Collectors on the default registry are cached per service name so that
    the same metric is never registered twice in one process.
    """
    if registry is not None:
        return MetricsCollector(service_name, registry)

    with _collectors_lock:
        if service_name not in _collectors:
            _collectors[service_name] = MetricsCollector(service_name)
        return _collectors[service_name]
