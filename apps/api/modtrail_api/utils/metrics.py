"""Prometheus metrics."""

from prometheus_client import Counter, Gauge, Histogram

# Ledger metrics
ledger_appends = Counter(
    "modtrail_ledger_appends_total",
    "Total ledger append attempts",
    ["event_type", "outcome"],
)

ledger_append_conflicts = Counter(
    "modtrail_ledger_append_conflicts_total",
    "Appends re-issued after losing a uniqueness race",
)

# Integrity metrics
integrity_runs = Counter(
    "modtrail_integrity_runs_total",
    "Integrity check runs",
    ["outcome"],  # passed, violations, retrying, failed
)

integrity_score = Gauge(
    "modtrail_integrity_score",
    "Integrity score of the last completed verification",
)

integrity_violations = Gauge(
    "modtrail_integrity_violations",
    "Violations found by the last completed verification",
)

verification_duration = Histogram(
    "modtrail_verification_duration_seconds",
    "Verification pass duration",
)

alerts_sent = Counter(
    "modtrail_alerts_total",
    "Alerts raised",
    ["kind"],
)
