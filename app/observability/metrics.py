"""
Metrics Collection with Prometheus.

Exposes access-control and system metrics for monitoring.
"""

from enum import Enum

from prometheus_client import Counter, Gauge, Histogram, Info

from app.config import settings


class MetricLabels(str, Enum):
    """Standard metric label names."""

    ENDPOINT = "endpoint"
    METHOD = "method"
    STATUS_CODE = "status_code"
    OPERATION = "operation"
    OUTCOME = "outcome"
    ERROR_TYPE = "error_type"


class AccessMetrics:
    """
    Centralized metrics for the access gate.

    Covers:
    - HTTP requests (rate, duration, errors)
    - Redemptions (rate by outcome, duration)
    - Entitlement checks (allowed/denied by reason)
    - Usage recorded after privileged operations
    - Token issuance
    """

    def __init__(self) -> None:
        """Initialize all Prometheus metrics."""

        # ====================================================================
        # Service Info
        # ====================================================================
        self.service_info = Info(
            "toolgate_service",
            "Service information",
        )
        self.service_info.info(
            {
                "version": settings.api_version,
                "service_name": settings.service_name,
            }
        )

        # ====================================================================
        # HTTP Metrics
        # ====================================================================
        self.http_requests_total = Counter(
            "toolgate_http_requests_total",
            "Total HTTP requests",
            [MetricLabels.ENDPOINT, MetricLabels.METHOD, MetricLabels.STATUS_CODE],
        )

        self.http_request_duration_seconds = Histogram(
            "toolgate_http_request_duration_seconds",
            "HTTP request duration in seconds",
            [MetricLabels.ENDPOINT, MetricLabels.METHOD],
            buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
        )

        self.http_requests_in_progress = Gauge(
            "toolgate_http_requests_in_progress",
            "Number of HTTP requests currently being processed",
            [MetricLabels.ENDPOINT, MetricLabels.METHOD],
        )

        # ====================================================================
        # Redemption Metrics
        # ====================================================================
        self.redemptions_total = Counter(
            "toolgate_redemptions_total",
            "Unlock token redemption attempts by outcome",
            [MetricLabels.OUTCOME],
        )

        self.redemption_duration_seconds = Histogram(
            "toolgate_redemption_duration_seconds",
            "Redemption duration in seconds",
            buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0),
        )

        self.tokens_issued_total = Counter(
            "toolgate_tokens_issued_total",
            "Unlock tokens issued",
        )

        # ====================================================================
        # Entitlement Metrics
        # ====================================================================
        self.entitlement_checks_total = Counter(
            "toolgate_entitlement_checks_total",
            "Entitlement gate decisions",
            ["allowed", "reason"],
        )

        self.usage_recorded_total = Counter(
            "toolgate_usage_recorded_total",
            "Privileged operations metered after success",
            [MetricLabels.OPERATION],
        )

        # ====================================================================
        # Error Metrics
        # ====================================================================
        self.errors_total = Counter(
            "toolgate_errors_total",
            "Total errors by type",
            [MetricLabels.ERROR_TYPE, MetricLabels.OPERATION],
        )

    # ========================================================================
    # Helper Methods
    # ========================================================================

    def record_http_request(
        self, endpoint: str, method: str, status_code: int, duration: float
    ) -> None:
        """Record HTTP request metrics."""
        self.http_requests_total.labels(
            endpoint=endpoint, method=method, status_code=status_code
        ).inc()
        self.http_request_duration_seconds.labels(endpoint=endpoint, method=method).observe(
            duration
        )

    def record_redemption(self, outcome: str, duration: float) -> None:
        """Record a redemption outcome ("consumed" or a rejection reason)."""
        self.redemptions_total.labels(outcome=outcome).inc()
        self.redemption_duration_seconds.observe(duration)

    def record_entitlement_check(self, allowed: bool, reason: str | None) -> None:
        """Record an entitlement gate decision."""
        self.entitlement_checks_total.labels(
            allowed=str(allowed), reason=reason or "none"
        ).inc()

    def record_usage(self, operation: str) -> None:
        """Record a metered privileged operation."""
        self.usage_recorded_total.labels(operation=operation).inc()

    def record_error(self, error_type: str, operation: str) -> None:
        """Record error occurrence."""
        self.errors_total.labels(error_type=error_type, operation=operation).inc()


# Global metrics instance
metrics = AccessMetrics()
