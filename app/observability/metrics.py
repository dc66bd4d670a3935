"""
Metrics Collection with Prometheus.

Exposes business and system metrics for monitoring.
"""

from enum import StrEnum

from prometheus_client import Counter, Gauge, Histogram, Info

from app.config import settings


class MetricLabels(StrEnum):
    """Standard metric label names."""

    ENDPOINT = "endpoint"
    METHOD = "method"
    STATUS_CODE = "status_code"
    OPERATION = "operation"
    PAYMENT_METHOD = "payment_method"
    PROVIDER = "provider"
    RESULT = "result"
    ERROR_TYPE = "error_type"


class GatewayMetrics:
    """
    Centralized metrics for the WiFi access gateway.

    Covers:
    - HTTP requests (rate, duration, in progress)
    - Token issuance and validation outcomes
    - SMS delivery per provider
    - Payment events per provider
    - Errors by type
    """

    def __init__(self) -> None:
        """Initialize all Prometheus metrics."""

        self.service_info = Info(
            "gateway_service",
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
            "gateway_http_requests_total",
            "Total HTTP requests",
            [MetricLabels.ENDPOINT, MetricLabels.METHOD, MetricLabels.STATUS_CODE],
        )

        self.http_request_duration_seconds = Histogram(
            "gateway_http_request_duration_seconds",
            "HTTP request duration in seconds",
            [MetricLabels.ENDPOINT, MetricLabels.METHOD],
            buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
        )

        self.http_requests_in_progress = Gauge(
            "gateway_http_requests_in_progress",
            "Number of HTTP requests currently being processed",
            [MetricLabels.ENDPOINT, MetricLabels.METHOD],
        )

        # ====================================================================
        # Token Metrics
        # ====================================================================
        self.tokens_issued_total = Counter(
            "gateway_tokens_issued_total",
            "Total tokens issued",
            [MetricLabels.PAYMENT_METHOD],
        )

        self.token_code_collisions_total = Counter(
            "gateway_token_code_collisions_total",
            "Generated codes rejected by the unique constraint",
        )

        self.token_validations_total = Counter(
            "gateway_token_validations_total",
            "Token validations by outcome",
            [MetricLabels.RESULT],
        )

        self.tokens_revoked_total = Counter(
            "gateway_tokens_revoked_total",
            "Total tokens revoked by an administrator",
        )

        # ====================================================================
        # Adapter Metrics
        # ====================================================================
        self.sms_messages_total = Counter(
            "gateway_sms_messages_total",
            "SMS messages sent by provider and outcome",
            [MetricLabels.PROVIDER, "success"],
        )

        self.payment_events_total = Counter(
            "gateway_payment_events_total",
            "Payment lifecycle events by provider",
            [MetricLabels.PROVIDER, "event"],
        )

        # ====================================================================
        # Error Metrics
        # ====================================================================
        self.errors_total = Counter(
            "gateway_errors_total",
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

    def record_token_issued(self, payment_method: str) -> None:
        """Record a successfully persisted token."""
        self.tokens_issued_total.labels(payment_method=payment_method).inc()

    def record_validation(self, result: str) -> None:
        """Record a validation outcome (valid, not found, revoked, expired)."""
        self.token_validations_total.labels(result=result).inc()

    def record_sms(self, provider: str, success: bool) -> None:
        """Record an SMS send attempt."""
        self.sms_messages_total.labels(provider=provider, success=str(success)).inc()

    def record_payment_event(self, provider: str, event: str) -> None:
        """Record a payment lifecycle event (created, paid, failed, error)."""
        self.payment_events_total.labels(provider=provider, event=event).inc()

    def record_error(self, error_type: str, operation: str) -> None:
        """Record error occurrence."""
        self.errors_total.labels(error_type=error_type, operation=operation).inc()


# Global metrics instance
metrics = GatewayMetrics()
