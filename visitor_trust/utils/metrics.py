"""
Prometheus metrics - visitor trust service

Key metrics:
- Visitor classifications by user type and risk level (Counter)
- Classification latency (Histogram)
- Signal store failures absorbed by scorers (Counter)
- Session analyses by verdict (Counter)
- Allow/deny list cache hits and misses (Counter)
"""

from prometheus_client import CollectorRegistry, Counter, Histogram, generate_latest

# Custom registry (default process metrics excluded)
registry = CollectorRegistry()

visitor_classifications_total = Counter(
    "visitor_classifications_total",
    "Visitor classifications produced by the trust engine",
    ["user_type", "risk_level"],
    registry=registry,
)

visitor_classification_duration_seconds = Histogram(
    "visitor_classification_duration_seconds",
    "Time spent classifying one visitor (seconds)",
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5),
    registry=registry,
)

signal_store_failures_total = Counter(
    "signal_store_failures_total",
    "Signal store lookups that failed and fell back to the missing-record path",
    ["scorer"],
    registry=registry,
)

session_analyses_total = Counter(
    "session_analyses_total",
    "Session batches analyzed",
    ["result"],
    registry=registry,
)

access_list_cache_lookups_total = Counter(
    "access_list_cache_lookups_total",
    "Allow/deny list cache lookups",
    ["hit"],
    registry=registry,
)


def record_classification(user_type: str, risk_level: str, duration_seconds: float):
    visitor_classifications_total.labels(
        user_type=user_type, risk_level=risk_level
    ).inc()
    visitor_classification_duration_seconds.observe(duration_seconds)


def record_store_failure(scorer: str):
    signal_store_failures_total.labels(scorer=scorer).inc()


def record_session_analysis(result: str):
    session_analyses_total.labels(result=result).inc()


def record_cache_lookup(hit: bool):
    access_list_cache_lookups_total.labels(hit=str(hit).lower()).inc()


def export_metrics() -> bytes:
    """Serialize the registry in the Prometheus text exposition format"""
    return generate_latest(registry)
