"""Prometheus metrics for posting outcomes, bill lifecycle and batch runs"""

from prometheus_client import Counter, Histogram

from card_billing.domain.models import BatchResult

# Posting metrics
posting_counter = Counter(
    "card_billing_postings_total",
    "Transactions posted to bills",
    ["outcome"],  # posted | failed
)

# Bill lifecycle
bills_opened_counter = Counter(
    "card_billing_bills_opened_total",
    "Bills created",
    ["trigger"],  # posting | batch
)

bills_closed_counter = Counter(
    "card_billing_bills_closed_total",
    "Bills closed",
)

stale_active_bill_counter = Counter(
    "card_billing_stale_active_bills_total",
    "ACTIVE bills found for a month other than the processing month",
)

# Batch metrics
batch_item_counter = Counter(
    "card_billing_batch_items_total",
    "Bulk open/close items by outcome",
    ["step", "outcome"],  # open|close x success|skipped|failed
)

batch_duration_histogram = Histogram(
    "card_billing_batch_duration_seconds",
    "Bulk open/close run time",
    ["step"],
    buckets=[1.0, 5.0, 15.0, 60.0, 300.0, 900.0, 3600.0],
)

# Service health
request_duration_histogram = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint", "status"],
)


def record_batch(result: BatchResult, duration_seconds: float) -> None:
    """Record per-item outcome counts and run time of a bulk run"""
    batch_item_counter.labels(step=result.step, outcome="success").inc(result.success_count)
    batch_item_counter.labels(step=result.step, outcome="skipped").inc(result.skipped_count)
    batch_item_counter.labels(step=result.step, outcome="failed").inc(result.failure_count)
    batch_duration_histogram.labels(step=result.step).observe(duration_seconds)
