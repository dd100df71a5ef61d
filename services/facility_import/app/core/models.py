"""SQLAlchemy models for the Facility Import Service."""

from datetime import datetime, timezone
from enum import Enum
from uuid import UUID, uuid4

from sqlalchemy import (
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Uuid,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def utc_now() -> datetime:
    """Return current UTC time with timezone info."""
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """Base class for SQLAlchemy models."""
    pass


class ImportStatus(str, Enum):
    """Import job status."""
    PENDING = "pending"
    IMPORTING = "importing"
    GEOCODING = "geocoding"
    COMPLETED = "completed"
    FAILED = "failed"


class AddressMatchQuality(str, Enum):
    """Geocoding outcome for one imported record."""
    PENDING = "pending"
    EXACT = "exact"
    PARTIAL = "partial"
    NONE = "none"


class ImportJobModel(Base):
    """SQLAlchemy model for import_jobs table."""

    __tablename__ = "import_jobs"

    job_id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    file_name: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[str] = mapped_column(
        String(20),
        default=ImportStatus.PENDING.value,
        nullable=False,
    )
    created_by: Mapped[str] = mapped_column(String(128), nullable=False)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Stats
    total_records: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    processed_records: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    failed_records: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    geocoded_addresses: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    partial_matches: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    failed_geocoding: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    started_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        nullable=False,
    )
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        onupdate=utc_now,
        nullable=False,
    )

    records: Mapped[list["ImportedRecordModel"]] = relationship(
        "ImportedRecordModel",
        back_populates="job",
    )

    __table_args__ = (
        Index("idx_import_jobs_status", "status"),
        Index("idx_import_jobs_created_at", "created_at"),
    )


class ImportedRecordModel(Base):
    """SQLAlchemy model for imported_records table.

    Tracks the geocoding progress of one uploaded row, independently of
    the facility it produced.
    """

    __tablename__ = "imported_records"

    record_id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    job_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("import_jobs.job_id"),
        nullable=False,
    )
    facility_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("facilities.facility_id"),
        nullable=False,
    )

    name: Mapped[str] = mapped_column(String(500), nullable=False)
    website: Mapped[str | None] = mapped_column(Text, nullable=True)
    raw_address: Mapped[str] = mapped_column(Text, nullable=False)

    address_match_quality: Mapped[str] = mapped_column(
        String(20),
        default=AddressMatchQuality.PENDING.value,
        nullable=False,
    )
    needs_review: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    geocoding_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    processed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        nullable=False,
    )

    job: Mapped["ImportJobModel"] = relationship(
        "ImportJobModel",
        back_populates="records",
    )
    facility: Mapped["FacilityModel"] = relationship("FacilityModel")

    __table_args__ = (
        Index("idx_imported_records_job_quality", "job_id", "address_match_quality"),
        Index("idx_imported_records_needs_review", "needs_review"),
    )


class FacilityModel(Base):
    """SQLAlchemy model for facilities table.

    Only the columns the import pipeline creates or updates are mapped
    here; the rest of the listing belongs to the surrounding application.
    """

    __tablename__ = "facilities"

    facility_id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    name: Mapped[str] = mapped_column(String(500), nullable=False)
    slug: Mapped[str] = mapped_column(String(600), nullable=False)
    owner_id: Mapped[str] = mapped_column(String(128), nullable=False)
    description: Mapped[str] = mapped_column(Text, default="", nullable=False)
    website: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Location
    location: Mapped[str] = mapped_column(Text, default="", nullable=False)
    city: Mapped[str] = mapped_column(String(255), default="", nullable=False)
    state: Mapped[str] = mapped_column(String(64), default="", nullable=False)
    latitude: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    longitude: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)

    # Listing flags
    rating: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    review_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    is_verified: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_featured: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    moderation_status: Mapped[str] = mapped_column(String(20), nullable=False)
    claim_status: Mapped[str] = mapped_column(String(20), default="unclaimed", nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        onupdate=utc_now,
        nullable=False,
    )

    __table_args__ = (
        Index("idx_facilities_slug", "slug"),
    )
