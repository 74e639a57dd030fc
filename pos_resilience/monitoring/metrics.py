"""
Prometheus metrics for terminal payment and offline-sync monitoring.

Tracks:
- Payment requests by outcome
- Gateway attempts and circuit state
- Payment processing duration
- Offline transactions stored
- Sync results, duration and queue depth
"""
import time

from prometheus_client import Counter, Gauge, Histogram

# Payment metrics
payment_requests_total = Counter(
    "pos_payment_requests_total",
    "Total number of payment requests",
    ["status", "method"],
)

payment_processing_duration_seconds = Histogram(
    "pos_payment_processing_duration_seconds",
    "Payment processing duration in seconds",
    buckets=(0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0),
)

payment_fallback_total = Counter(
    "pos_payment_fallback_total",
    "Payments approved by a non-primary gateway",
    ["gateway"],
)

# Gateway metrics
gateway_attempts_total = Counter(
    "pos_gateway_attempts_total",
    "Charge attempts per gateway",
    ["gateway", "outcome"],  # approved, declined, timeout, error
)

gateway_circuit_state = Gauge(
    "pos_gateway_circuit_state",
    "Gateway circuit breaker state (0=closed, 1=open, 2=half_open)",
    ["gateway"],
)

# Offline store metrics
offline_transactions_stored_total = Counter(
    "pos_offline_transactions_stored_total",
    "Total offline transactions written to the local store",
)

offline_unsynced_depth = Gauge(
    "pos_offline_unsynced_depth",
    "Number of offline transactions waiting for sync",
)

# Sync metrics
sync_records_total = Counter(
    "pos_sync_records_total",
    "Offline transactions processed by sync",
    ["result"],  # synced, integrity_failed, remote_failed
)

sync_cycle_duration_seconds = Histogram(
    "pos_sync_cycle_duration_seconds",
    "Sync cycle duration in seconds",
    buckets=(0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0),
)

sync_last_run_timestamp = Gauge(
    "pos_sync_last_run_timestamp",
    "Timestamp of last completed sync cycle",
)


class MetricsCollector:
    """Helper class for collecting metrics."""

    @staticmethod
    def record_payment_request(status: str, method: str, duration_seconds: float) -> None:
        """Record a dispatched payment."""
        payment_requests_total.labels(status=status, method=method).inc()
        payment_processing_duration_seconds.observe(duration_seconds)

    @staticmethod
    def record_fallback(gateway: str) -> None:
        """Record an approval on a non-primary gateway."""
        payment_fallback_total.labels(gateway=gateway).inc()

    @staticmethod
    def record_gateway_attempt(gateway: str, outcome: str) -> None:
        """Record one charge attempt."""
        gateway_attempts_total.labels(gateway=gateway, outcome=outcome).inc()

    @staticmethod
    def set_circuit_state(gateway: str, state: str) -> None:
        """Set circuit breaker state for a gateway."""
        state_map = {"closed": 0, "open": 1, "half_open": 2}
        gateway_circuit_state.labels(gateway=gateway).set(state_map.get(state, 0))

    @staticmethod
    def record_offline_transaction_stored() -> None:
        """Record an offline transaction write."""
        offline_transactions_stored_total.inc()

    @staticmethod
    def set_unsynced_depth(depth: int) -> None:
        """Set number of transactions waiting for sync."""
        offline_unsynced_depth.set(depth)

    @staticmethod
    def record_sync_record(result: str) -> None:
        """Record the outcome of one synced record."""
        sync_records_total.labels(result=result).inc()

    @staticmethod
    def record_sync_cycle(duration_seconds: float) -> None:
        """Record a completed sync cycle."""
        sync_cycle_duration_seconds.observe(duration_seconds)
        sync_last_run_timestamp.set(time.time())


# Export singleton instance
metrics = MetricsCollector()
