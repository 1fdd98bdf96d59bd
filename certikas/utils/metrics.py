"""Prometheus metrics."""

from prometheus_client import Counter, Gauge, Histogram

# Issuance metrics
certificates_issued = Counter(
    "certikas_certificates_issued_total",
    "Total certificates issued",
    ["category"],
)

issuance_failures = Counter(
    "certikas_issuance_failures_total",
    "Issuance attempts rejected or failed",
    ["error_code"],
)

ledger_submit_duration = Histogram(
    "certikas_ledger_submit_duration_seconds",
    "Ledger submission duration",
)

certificates_revoked = Counter(
    "certikas_certificates_revoked_total",
    "Total certificates revoked",
)

# Confirmation tracking metrics
active_trackers = Gauge(
    "certikas_active_trackers",
    "Confirmation trackers currently running",
)

ledger_polls = Counter(
    "certikas_ledger_polls_total",
    "Confirmation polls by outcome",
    ["outcome"],  # advanced, unchanged, stale, error
)

certificates_confirmed = Counter(
    "certikas_certificates_confirmed_total",
    "Certificates that reached the confirmation threshold",
)

tracker_timeouts = Counter(
    "certikas_tracker_timeouts_total",
    "Trackers that exhausted their poll budget",
)

# Side-effect metrics
rewards = Counter(
    "certikas_rewards_total",
    "Reward attempts by status",
    ["status"],  # paid, disabled, failed
)

webhook_deliveries = Counter(
    "certikas_webhook_deliveries_total",
    "Total webhook deliveries",
    ["status"],
)
