"""Error taxonomy for the import pipeline."""

from typing import Any


class ImportPipelineError(Exception):
    """Base class for all import pipeline errors."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ValidationError(ImportPipelineError):
    """Raised when uploaded rows fail validation.

    All violations are collected before raising, so callers can report
    every bad row at once.
    """

    def __init__(self, errors: list[dict[str, Any]], message: str | None = None):
        self.errors = errors
        super().__init__(message or f"{len(errors)} validation error(s) in uploaded rows")


class NotFoundError(ImportPipelineError):
    """Raised when a job or record ID does not exist."""

    def __init__(self, entity: str, entity_id: Any):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} not found: {entity_id}")


class InvalidStateError(ImportPipelineError):
    """Raised when an operation is illegal for the job's current status."""

    def __init__(self, current_state: str, target: str, message: str | None = None):
        self.current_state = current_state
        self.target = target
        super().__init__(message or f"Invalid transition from {current_state} to {target}")


class ExternalServiceError(ImportPipelineError):
    """Raised when the geocoding provider cannot be reached or rejects a call."""

    def __init__(self, message: str, provider_status: str | None = None):
        self.provider_status = provider_status
        super().__init__(message)


class PersistenceError(ImportPipelineError):
    """Raised when a store write fails."""
