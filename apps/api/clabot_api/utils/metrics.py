"""Prometheus metrics."""

from prometheus_client import Counter, Histogram

# Webhook metrics
webhook_deliveries = Counter(
    "clabot_webhook_deliveries_total",
    "GitHub webhook deliveries by event and outcome",
    ["event", "outcome"],
)

webhook_duration = Histogram(
    "clabot_webhook_duration_seconds",
    "Webhook handling duration",
    ["event"],
)

# Reconciliation metrics
check_conclusions = Counter(
    "clabot_check_conclusions_total",
    "Check runs written by decision",
    ["decision", "conclusion"],
)

# Signing metrics
signatures_created = Counter(
    "clabot_signatures_created_total",
    "CLA signatures recorded",
)

# Convergence metrics
convergence_runs = Counter(
    "clabot_convergence_runs_total",
    "Convergence runs by trigger and status",
    ["trigger", "status"],
)

convergence_pr_errors = Counter(
    "clabot_convergence_pr_errors_total",
    "Pull requests that failed to reconcile during convergence",
)
