"""Database package - SQLite storage and models.

Modules:
    - database: SQLite connection, transactions and CRUD operations
    - models: Data models and enumerations
"""

from keystone.db.models import (
    CategorySummary,
    EntryStatus,
    FeedbackCategory,
    InteractionType,
    InterviewSession,
    Lead,
    LeadInteraction,
    Property,
    Response,
    ResponseMethod,
    ScheduleEntry,
    ScheduleIntent,
    ScheduleSource,
    SessionStatus,
    SessionType,
    TimeRange,
)

__all__ = [
    "SessionType",
    "SessionStatus",
    "ResponseMethod",
    "FeedbackCategory",
    "ScheduleIntent",
    "ScheduleSource",
    "EntryStatus",
    "InteractionType",
    "TimeRange",
    "Property",
    "Lead",
    "InterviewSession",
    "Response",
    "CategorySummary",
    "ScheduleEntry",
    "LeadInteraction",
]
