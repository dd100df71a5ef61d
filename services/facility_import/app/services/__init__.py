"""Facility import services module."""

from services.facility_import.app.services.geocoding_processor import GeocodingProcessor
from services.facility_import.app.services.job_manager import JobManager
from services.facility_import.app.services.pipeline import ImportPipeline
from services.facility_import.app.services.record_ingestor import RecordIngestor
from services.facility_import.app.services.review_queue import ReviewQueue

__all__ = [
    "GeocodingProcessor",
    "ImportPipeline",
    "JobManager",
    "RecordIngestor",
    "ReviewQueue",
]
