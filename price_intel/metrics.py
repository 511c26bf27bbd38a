"""Prometheus metrics for the price intelligence engine."""

import time

from prometheus_client import Counter, Histogram, Info

# Application info
app_info = Info("price_intel", "Price intelligence engine info")
app_info.info({"version": "0.1.0", "name": "price-intel"})

# Market deals
market_deals_runs_total = Counter(
    "market_deals_runs_total",
    "Total number of market deal computations",
    ["status"],
)

market_deals_emitted_total = Counter(
    "market_deals_emitted_total",
    "Eligible market deals produced, by reason",
    ["reason"],
)

market_deals_excluded_total = Counter(
    "market_deals_excluded_total",
    "Candidate products dropped before or during classification",
    ["cause"],
)

# Price check
price_checks_total = Counter(
    "price_checks_total",
    "Total number of price checks",
    ["caliber", "classification"],
)

# Store
observation_store_query_seconds = Histogram(
    "observation_store_query_seconds",
    "Time spent in observation store queries",
    ["query"],
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 15.0],
)

observation_store_errors_total = Counter(
    "observation_store_errors_total",
    "Failed or timed-out observation store reads",
    ["operation", "error_type"],
)

# Cache
result_cache_requests_total = Counter(
    "result_cache_requests_total",
    "Result cache lookups",
    ["namespace", "result"],
)

# Worker jobs
job_runs_total = Counter(
    "job_runs_total",
    "Total number of background job runs",
    ["job", "status"],
)


def record_market_deals_run(success: bool):
    """Record a market deals computation."""
    status = "success" if success else "error"
    market_deals_runs_total.labels(status=status).inc()


def record_deal_emitted(reason: str):
    """Record an eligible deal."""
    market_deals_emitted_total.labels(reason=reason).inc()


def record_deal_excluded(cause: str, count: int = 1):
    """Record candidates excluded from classification."""
    if count:
        market_deals_excluded_total.labels(cause=cause).inc(count)


def record_price_check(caliber: str, classification: str):
    """Record a price check result."""
    price_checks_total.labels(caliber=caliber, classification=classification).inc()


def record_store_query(query: str, started: float):
    """Record store query duration since `started` (time.perf_counter())."""
    observation_store_query_seconds.labels(query=query).observe(time.perf_counter() - started)


def record_store_error(operation: str, error_type: str):
    """Record a store failure."""
    observation_store_errors_total.labels(operation=operation, error_type=error_type).inc()


def record_cache_lookup(namespace: str, hit: bool):
    """Record a cache hit or miss."""
    result = "hit" if hit else "miss"
    result_cache_requests_total.labels(namespace=namespace, result=result).inc()


def record_job_run(job: str, success: bool):
    """Record a background job run."""
    status = "success" if success else "error"
    job_runs_total.labels(job=job, status=status).inc()
