"""Core models and utilities for the Facility Import Service."""

from services.facility_import.app.core.errors import (
    ExternalServiceError,
    ImportPipelineError,
    InvalidStateError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from services.facility_import.app.core.models import (
    AddressMatchQuality,
    FacilityModel,
    ImportedRecordModel,
    ImportJobModel,
    ImportStatus,
)
from services.facility_import.app.core.schemas import (
    FacilityRow,
    GeocodeCandidate,
    GeocodeOutcome,
    ImportedRecord,
    ImportJob,
    ImportStats,
    validate_rows,
)

__all__ = [
    "ExternalServiceError",
    "ImportPipelineError",
    "InvalidStateError",
    "NotFoundError",
    "PersistenceError",
    "ValidationError",
    "AddressMatchQuality",
    "FacilityModel",
    "ImportedRecordModel",
    "ImportJobModel",
    "ImportStatus",
    "FacilityRow",
    "GeocodeCandidate",
    "GeocodeOutcome",
    "ImportedRecord",
    "ImportJob",
    "ImportStats",
    "validate_rows",
]
