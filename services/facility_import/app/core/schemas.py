"""Pydantic schemas for the Facility Import Service."""

from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    HttpUrl,
    computed_field,
    field_validator,
)
from pydantic import ValidationError as PydanticValidationError

from services.facility_import.app.core.errors import ValidationError
from services.facility_import.app.core.models import AddressMatchQuality, ImportStatus


class FacilityRow(BaseModel):
    """One normalized upload row.

    Accepts snake_case keys as well as the spreadsheet headers used by
    the admin upload template.
    """

    model_config = ConfigDict(populate_by_name=True, str_strip_whitespace=True)

    name: str = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("name", "Facility Name"),
    )
    website: Optional[HttpUrl] = Field(
        None,
        validation_alias=AliasChoices("website", "Facility Website"),
    )
    raw_address: str = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("raw_address", "address", "Facility Address"),
    )

    @field_validator("website", mode="before")
    @classmethod
    def blank_website_is_none(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value


def validate_rows(raw_rows: list[dict[str, Any]]) -> list[FacilityRow]:
    """Validate every raw row, aggregating all violations.

    Args:
        raw_rows: Parsed rows keyed by column name

    Returns:
        Validated rows in input order

    Raises:
        ValidationError: If any row is invalid; carries every violation
    """
    rows: list[FacilityRow] = []
    errors: list[dict[str, Any]] = []

    for index, raw in enumerate(raw_rows):
        try:
            rows.append(FacilityRow.model_validate(raw))
        except PydanticValidationError as e:
            for error in e.errors():
                errors.append({
                    "row": index,
                    "field": ".".join(str(part) for part in error["loc"]),
                    "message": error["msg"],
                })

    if errors:
        raise ValidationError(errors)

    return rows


class ImportStats(BaseModel):
    """Aggregate progress counters for an import job."""

    total_records: int = 0
    processed_records: int = 0
    failed_records: int = 0
    geocoded_addresses: int = 0
    partial_matches: int = 0
    failed_geocoding: int = 0
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


class ImportJob(BaseModel):
    """Import job schema."""

    job_id: UUID
    file_name: str
    status: ImportStatus
    stats: ImportStats
    created_by: str
    error_message: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @computed_field
    @property
    def progress(self) -> float:
        """Percent complete: ingestion is the first half, geocoding the second."""
        total = self.stats.total_records
        if self.status == ImportStatus.COMPLETED:
            return 100.0
        if not total:
            return 0.0
        if self.status == ImportStatus.IMPORTING:
            return self.stats.processed_records / total * 50
        if self.status == ImportStatus.GEOCODING:
            return 50 + self.stats.geocoded_addresses / total * 50
        return 0.0


class ImportedRecord(BaseModel):
    """Imported record schema."""

    record_id: UUID
    job_id: UUID
    facility_id: UUID
    name: str
    website: Optional[str] = None
    raw_address: str
    address_match_quality: AddressMatchQuality
    needs_review: bool
    geocoding_error: Optional[str] = None
    processed_at: Optional[datetime] = None


class AddressComponent(BaseModel):
    """Typed part of a geocoded address."""

    long_name: str
    short_name: str
    types: list[str] = Field(default_factory=list)


class GeocodeCandidate(BaseModel):
    """One candidate match returned by a geocoding provider."""

    formatted_address: str
    latitude: float
    longitude: float
    partial_match: bool = False
    address_components: list[AddressComponent] = Field(default_factory=list)

    def component(self, component_type: str) -> AddressComponent | None:
        """Return the first component carrying the given type."""
        for part in self.address_components:
            if component_type in part.types:
                return part
        return None


class GeocodeOutcome(BaseModel):
    """Classified result of geocoding one address."""

    quality: AddressMatchQuality
    formatted_address: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    city: str = ""
    state: str = ""
    error: Optional[str] = None

    @property
    def needs_review(self) -> bool:
        return self.quality in (AddressMatchQuality.PARTIAL, AddressMatchQuality.NONE)

    @property
    def resolved(self) -> bool:
        return self.quality in (AddressMatchQuality.EXACT, AddressMatchQuality.PARTIAL)
