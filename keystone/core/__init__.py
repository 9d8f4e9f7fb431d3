"""Core package - Configuration, logging, exceptions, locks.

This package provides foundational infrastructure used by all other layers.

Modules:
    - config: Environment and configuration management
    - logging: Structured JSON logging
    - exceptions: Custom exception hierarchy
    - locks: Per-key mutual exclusion for sessions and agents
"""

from keystone.core.exceptions import (
    ConfigurationError,
    DatabaseError,
    InvalidReferenceError,
    KeystoneError,
    OutOfOrderResponseError,
    ScheduleConflictError,
    SessionAlreadyCompleteError,
    SessionBusyError,
    SessionNotFoundError,
    StateConflictError,
    ValidationError,
)

__all__ = [
    "KeystoneError",
    "ConfigurationError",
    "ValidationError",
    "InvalidReferenceError",
    "SessionNotFoundError",
    "StateConflictError",
    "OutOfOrderResponseError",
    "SessionAlreadyCompleteError",
    "SessionBusyError",
    "ScheduleConflictError",
    "DatabaseError",
]
