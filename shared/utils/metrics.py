"""Prometheus metrics helpers."""

from prometheus_client import REGISTRY, CollectorRegistry, Counter, Histogram


def create_counter(
    name: str,
    description: str,
    labels: list[str] | None = None,
    registry: CollectorRegistry = REGISTRY,
) -> Counter:
    """Create a Prometheus counter metric.

    Args:
        name: Metric name (e.g., 'facility_import_rows_total')
        description: Human-readable description
        labels: List of label names for the metric
        registry: Registry to attach the metric to
    """
    return Counter(name, description, labels or [], registry=registry)


def create_histogram(
    name: str,
    description: str,
    labels: list[str] | None = None,
    buckets: tuple[float, ...] | None = None,
    registry: CollectorRegistry = REGISTRY,
) -> Histogram:
    """Create a Prometheus histogram metric.

    Args:
        name: Metric name (e.g., 'facility_import_geocode_batch_seconds')
        description: Human-readable description
        labels: List of label names for the metric
        buckets: Custom bucket boundaries (defaults to Prometheus defaults)
        registry: Registry to attach the metric to
    """
    if buckets is None:
        buckets = (0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0)
    return Histogram(name, description, labels or [], buckets=buckets, registry=registry)
