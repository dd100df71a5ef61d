"""Import job state machine for lifecycle management."""

from services.facility_import.app.core.errors import InvalidStateError
from services.facility_import.app.core.models import ImportStatus


class JobStateMachine:
    """Import job lifecycle state machine.

    Valid transitions:
    - pending -> importing (ingestion starts)
    - importing -> geocoding (rows committed)
    - geocoding -> completed (all batches drained)
    - pending/importing/geocoding -> failed (phase error or cancellation)

    No transition re-enters an earlier phase.
    """

    VALID_TRANSITIONS: set[tuple[ImportStatus, ImportStatus]] = {
        (ImportStatus.PENDING, ImportStatus.IMPORTING),
        (ImportStatus.IMPORTING, ImportStatus.GEOCODING),
        (ImportStatus.GEOCODING, ImportStatus.COMPLETED),
        (ImportStatus.PENDING, ImportStatus.FAILED),
        (ImportStatus.IMPORTING, ImportStatus.FAILED),
        (ImportStatus.GEOCODING, ImportStatus.FAILED),
    }

    CANCELLABLE: frozenset[ImportStatus] = frozenset({
        ImportStatus.IMPORTING,
        ImportStatus.GEOCODING,
    })

    @classmethod
    def is_valid_transition(
        cls,
        current_state: ImportStatus,
        target_state: ImportStatus,
    ) -> bool:
        """Check if a state transition is valid.

        Args:
            current_state: Current job state
            target_state: Desired new state

        Returns:
            True if transition is valid, False otherwise
        """
        return (current_state, target_state) in cls.VALID_TRANSITIONS

    @classmethod
    def validate_transition(
        cls,
        current_state: ImportStatus,
        target_state: ImportStatus,
    ) -> None:
        """Validate a state transition, raising an error if invalid.

        Raises:
            InvalidStateError: If transition is not valid
        """
        if not cls.is_valid_transition(current_state, target_state):
            raise InvalidStateError(current_state.value, target_state.value)

    @classmethod
    def can_cancel(cls, state: ImportStatus) -> bool:
        """Check if a job in this state can be cancelled."""
        return state in cls.CANCELLABLE
