"""Keystone Exception Hierarchy.

All custom exceptions inherit from KeystoneError.

Only storage and infrastructure faults are fatal. Semantic misses
(classifier fallback, unresolved time fragments, transcripts that are
not schedule commands, voice candidates that conflict) are returned as
values and never raised. A manual entry that overlaps an existing
booking raises ScheduleConflictError.

Exception Hierarchy:
    KeystoneError (base)
    ├── ConfigurationError
    ├── ValidationError
    │   └── InvalidReferenceError
    │       └── SessionNotFoundError
    ├── StateConflictError
    │   ├── OutOfOrderResponseError
    │   ├── SessionAlreadyCompleteError
    │   ├── SessionBusyError
    │   └── ScheduleConflictError
    └── DatabaseError
"""


class KeystoneError(Exception):
    """Base exception for all Keystone errors."""

    pass


class ConfigurationError(KeystoneError):
    """Configuration is invalid or missing.

    Raised when:
        - Timezone name cannot be resolved
        - Question graph file is malformed
    """

    pass


class ValidationError(KeystoneError):
    """Input validation failed.

    Raised before any state change, so the caller can retry
    with corrected input.

    Raised when:
        - Required field is missing or empty
        - Field value is invalid format
        - Time range is empty or inverted
    """

    pass


class InvalidReferenceError(ValidationError):
    """A referenced lead, property, or question does not exist."""

    pass


class SessionNotFoundError(InvalidReferenceError):
    """Interview session does not exist."""

    pass


class StateConflictError(KeystoneError):
    """Request conflicts with the current state of a resource.

    The resource is left untouched.
    """

    pass


class OutOfOrderResponseError(StateConflictError):
    """Response was submitted for a question that is not currently pending.

    Sessions are single-threaded per prospect: no skipping, no replay.
    """

    pass


class SessionAlreadyCompleteError(StateConflictError):
    """Response was submitted to a session that already completed."""

    pass


class SessionBusyError(StateConflictError):
    """Another submission for the same session is already in flight."""

    pass


class ScheduleConflictError(StateConflictError):
    """Manual schedule entry overlaps one of the agent's bookings."""

    pass


class DatabaseError(KeystoneError):
    """Database operation failed.

    Raised when:
        - Database file cannot be opened
        - Database is locked
        - Query execution fails
        - Constraint violated
    """

    pass
