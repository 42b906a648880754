"""
Shared metrics configuration for the access-control layer.
"""

import threading
from typing import Any, Dict, Optional

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram, Info


class MetricsCollector:
    """Centralized metrics collector for services."""

    def __init__(self, service_name: str, registry: Optional[CollectorRegistry] = None):
        self.service_name = service_name
        self.registry = registry if registry is not None else CollectorRegistry()
        self._metrics: Dict[str, Any] = {}
        self._lock = threading.Lock()
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

        self._setup_policy_metrics()

    def _setup_policy_metrics(self):
        """Set up access-decision metrics."""
        self._metrics["access_decisions_total"] = Counter(
            "access_decisions_total",
            "Total access decisions",
            ["decision", "stage"],
            registry=self.registry
        )

        self._metrics["access_evaluation_duration_seconds"] = Histogram(
            "access_evaluation_duration_seconds",
            "Access evaluation duration in seconds",
            registry=self.registry
        )

        self._metrics["decision_cache_lookups_total"] = Counter(
            "decision_cache_lookups_total",
            "Decision cache lookups",
            ["result"],
            registry=self.registry
        )

        self._metrics["decision_cache_entries"] = Gauge(
            "decision_cache_entries",
            "Number of cached decisions",
            registry=self.registry
        )

        self._metrics["contextual_rule_errors_total"] = Counter(
            "contextual_rule_errors_total",
            "Contextual rule predicates that raised",
            ["rule_id"],
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

    def record_access_decision(self, allowed: bool, stage: str, duration: float):
        """Record the outcome of one evaluated access request."""
        decision = "allow" if allowed else "deny"
        self._metrics["access_decisions_total"].labels(decision=decision, stage=stage).inc()
        self._metrics["access_evaluation_duration_seconds"].observe(duration)

    def record_cache_lookup(self, hit: bool):
        """Record a decision cache hit or miss."""
        self._metrics["decision_cache_lookups_total"].labels(result="hit" if hit else "miss").inc()

    def set_cache_size(self, size: int):
        """Publish the current decision cache size."""
        self._metrics["decision_cache_entries"].set(size)

    def record_rule_error(self, rule_id: str):
        """Record a contextual rule predicate failure."""
        self._metrics["contextual_rule_errors_total"].labels(rule_id=rule_id).inc()


_collectors: Dict[str, MetricsCollector] = {}
_collectors_lock = threading.Lock()


def get_metrics_collector(service_name: str, registry: Optional[CollectorRegistry] = None) -> MetricsCollector:
    """Get a metrics collector for a service.

    Collectors bound to their own registry are shared per service name so
    repeated service construction does not register duplicate series.
    """
    if registry is not None:
        return MetricsCollector(service_name, registry)

    with _collectors_lock:
        if service_name not in _collectors:
            _collectors[service_name] = MetricsCollector(service_name)
        return _collectors[service_name]
