"""Prometheus metrics for the import pipeline."""

from shared.utils.metrics import create_counter, create_histogram

ROWS_TOTAL = create_counter(
    "facility_import_rows_total",
    "Uploaded rows processed by ingestion",
    ["result"],
)

GEOCODE_RESULTS_TOTAL = create_counter(
    "facility_import_geocode_results_total",
    "Geocoding outcomes by address match quality",
    ["quality"],
)

GEOCODE_BATCH_SECONDS = create_histogram(
    "facility_import_geocode_batch_seconds",
    "Wall time of one concurrent geocoding batch",
    buckets=(0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
)
