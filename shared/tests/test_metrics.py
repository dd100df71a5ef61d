"""Tests for Prometheus metric helpers."""

from prometheus_client import CollectorRegistry

from shared.utils.metrics import create_counter, create_histogram


def test_create_counter_with_labels():
    registry = CollectorRegistry()
    counter = create_counter("test_rows_total", "Rows seen", ["result"], registry=registry)

    counter.labels(result="prepared").inc(3)

    assert registry.get_sample_value("test_rows_total", {"result": "prepared"}) == 3.0


def test_create_histogram_buckets():
    registry = CollectorRegistry()
    histogram = create_histogram(
        "test_batch_seconds",
        "Batch duration",
        buckets=(0.5, 1.0),
        registry=registry,
    )

    histogram.observe(0.7)

    assert registry.get_sample_value("test_batch_seconds_bucket", {"le": "0.5"}) == 0.0
    assert registry.get_sample_value("test_batch_seconds_bucket", {"le": "1.0"}) == 1.0
    assert registry.get_sample_value("test_batch_seconds_count") == 1.0
