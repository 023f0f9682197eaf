"""
Prometheus metrics for settlement monitoring.

Tracks:
- Webhook events received and their processing status
- Settlement outcomes and failures by error kind
- Match funding credited
- Stripe API calls and errors
- Stripe circuit breaker state
"""
from prometheus_client import Counter, Gauge, Histogram

# Webhook metrics
webhook_events_received_total = Counter(
    "webhook_events_received_total",
    "Total webhook events received",
    ["event_type"],
)

webhook_events_processed_total = Counter(
    "webhook_events_processed_total",
    "Total webhook events processed",
    ["event_type", "status"],  # settled, already_settled, ignored, rejected
)

webhook_processing_duration_seconds = Histogram(
    "webhook_processing_duration_seconds",
    "Webhook processing duration in seconds",
    ["event_type"],
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0),
)

# Settlement metrics
settlements_total = Counter(
    "settlements_total",
    "Total settlement outcomes",
    ["status"],  # settled, already_settled
)

settlement_failures_total = Counter(
    "settlement_failures_total",
    "Total settlement failures",
    ["kind"],  # unauthorized, malformed, conflict, dependency
)

match_funding_allocated_minor_units = Histogram(
    "match_funding_allocated_minor_units",
    "Match funding credited per settled payment in minor currency units",
    buckets=(0, 100, 500, 1000, 5000, 10000, 50000, 100000),
)

# Stripe API metrics
stripe_api_requests_total = Counter(
    "stripe_api_requests_total",
    "Total Stripe API requests",
    ["operation", "status"],
)

stripe_api_errors_total = Counter(
    "stripe_api_errors_total",
    "Total Stripe API errors",
    ["error_type"],  # transient, permanent, rate_limit
)

stripe_api_duration_seconds = Histogram(
    "stripe_api_duration_seconds",
    "Stripe API call duration in seconds",
    ["operation"],
    buckets=(0.1, 0.25, 0.5, 0.75, 1.0, 2.5, 5.0, 7.5, 10.0),
)

stripe_circuit_breaker_state = Gauge(
    "stripe_circuit_breaker_state",
    "Stripe circuit breaker state (0=closed, 1=open, 2=half_open)",
)


class MetricsCollector:
    """Helper class for collecting metrics."""

    @staticmethod
    def record_webhook_event(event_type: str, status: str, duration_seconds: float) -> None:
        """Record webhook event processing."""
        webhook_events_received_total.labels(event_type=event_type).inc()
        webhook_events_processed_total.labels(event_type=event_type, status=status).inc()
        webhook_processing_duration_seconds.labels(event_type=event_type).observe(
            duration_seconds
        )

    @staticmethod
    def record_settlement(status: str, match_funding_amount: int | None = None) -> None:
        """Record a settlement outcome."""
        settlements_total.labels(status=status).inc()
        if match_funding_amount is not None:
            match_funding_allocated_minor_units.observe(match_funding_amount)

    @staticmethod
    def record_settlement_failure(kind: str) -> None:
        settlement_failures_total.labels(kind=kind).inc()

    @staticmethod
    def record_stripe_api_call(
        operation: str, status: str, duration_seconds: float
    ) -> None:
        """Record Stripe API call."""
        stripe_api_requests_total.labels(operation=operation, status=status).inc()
        stripe_api_duration_seconds.labels(operation=operation).observe(duration_seconds)

    @staticmethod
    def record_stripe_api_error(error_type: str) -> None:
        """Record Stripe API error."""
        stripe_api_errors_total.labels(error_type=error_type).inc()

    @staticmethod
    def set_circuit_breaker_state(state: str) -> None:
        """Set circuit breaker state."""
        state_map = {"closed": 0, "open": 1, "half_open": 2}
        stripe_circuit_breaker_state.set(state_map.get(state, 0))


# Export singleton instance
metrics = MetricsCollector()
