"""Prometheus metrics for debt volume, settlement outcomes, and notification delivery"""

from prometheus_client import Counter, Histogram

# Debt lifecycle metrics
debt_created_counter = Counter(
    "debt_created_total",
    "Debts created by requesters",
)

debt_cancelled_counter = Counter(
    "debt_cancelled_total",
    "Debts cancelled",
    ["actor"],  # requester | debtor
)

otp_issued_counter = Counter(
    "debt_otp_issued_total",
    "Payment OTPs issued",
)

# Settlement metrics
settlement_counter = Counter(
    "debt_settlement_total",
    "Settlement attempts by outcome",
    ["outcome"],  # settled | rejected | insufficient_balance | invalid_state
)

settlement_amount_histogram = Histogram(
    "debt_settlement_amount",
    "Settled amounts in minor units",
    buckets=[1_000, 10_000, 50_000, 100_000, 500_000, 1_000_000, 10_000_000],
)

# Notifier metrics
mail_latency_histogram = Histogram(
    "mail_latency_seconds",
    "Mail relay response time",
    buckets=[0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

notification_failure_counter = Counter(
    "notification_failures_total",
    "Notifications that could not be delivered",
    ["channel"],  # email | in_app
)

# Auth metrics
auth_failures_counter = Counter(
    "auth_failures_total",
    "Rejected or unverifiable access tokens",
)

# Service health
request_duration_histogram = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint", "status"],
)


def record_settlement(outcome: str, amount: int = 0) -> None:
    """Record settlement outcome; amounts are only observed for completed transfers"""
    settlement_counter.labels(outcome=outcome).inc()
    if outcome == "settled":
        settlement_amount_histogram.observe(amount)
