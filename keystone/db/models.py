"""Data models and enumerations for Keystone.

All enums stored as TEXT in SQLite.
Dataclasses use frozen=False for mutability during processing,
except TimeRange, which is a value.

This module defines:
    - Enumerations for all categorical fields
    - Dataclasses for database records
    - TimeRange, the half-open interval shared by the resolver,
      conflict checker and scheduler
"""

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from decimal import Decimal
from enum import Enum
from typing import Optional

# =============================================================================
# ENUMERATIONS
# =============================================================================


class SessionType(str, Enum):
    """Which question graph a session runs.

    Values:
        DISCOVERY: New lead, learning needs, timeline and budget
        POST_TOUR: Prospect just toured a property
    """

    DISCOVERY = "discovery"
    POST_TOUR = "post_tour"


class SessionStatus(str, Enum):
    """Interview session lifecycle. There is no way back from COMPLETE."""

    ACTIVE = "active"
    COMPLETE = "complete"


class ResponseMethod(str, Enum):
    """How the prospect answered a question."""

    TEXT = "text"
    CHOICE = "choice"
    VOICE = "voice"


# Front-end widget names that map onto ResponseMethod
_RESPONSE_METHOD_ALIASES = {
    "dropdown": ResponseMethod.CHOICE,
    "emoji": ResponseMethod.CHOICE,
    "select": ResponseMethod.CHOICE,
    "typed": ResponseMethod.TEXT,
    "speech": ResponseMethod.VOICE,
}


def parse_response_method(value: str) -> ResponseMethod:
    """Parse a response method, accepting front-end widget aliases.

    Raises:
        ValueError: If the value is not a known method or alias
    """
    key = (value or "").strip().lower()
    if key in _RESPONSE_METHOD_ALIASES:
        return _RESPONSE_METHOD_ALIASES[key]
    return ResponseMethod(key)


class FeedbackCategory(str, Enum):
    """Closed set of feedback topics.

    GENERAL is the fallback and means "needs human review".
    """

    PRICE = "price"
    AMENITIES = "amenities"
    LOCATION = "location"
    SIZE = "size"
    COMPARISON = "comparison"
    SUGGESTIONS = "suggestions"
    GENERAL = "general"


class ScheduleIntent(str, Enum):
    """What a scheduling transcript asks for. UNKNOWN is the fallback."""

    BOOK = "book"
    CANCEL = "cancel"
    QUERY = "query"
    UNKNOWN = "unknown"


class ScheduleSource(str, Enum):
    """Where a schedule entry came from."""

    MANUAL = "manual"
    VOICE = "voice"


class EntryStatus(str, Enum):
    """Schedule entry status. Cancelled entries never conflict."""

    SCHEDULED = "scheduled"
    CANCELLED = "cancelled"


class InteractionType(str, Enum):
    """Lead interaction log entry type."""

    FEEDBACK_STARTED = "feedback_started"
    FEEDBACK_COMPLETED = "feedback_completed"
    SHOWING_BOOKED = "showing_booked"


# =============================================================================
# VALUES
# =============================================================================


@dataclass(frozen=True)
class TimeRange:
    """Half-open time interval [start, end).

    Attributes:
        start: Inclusive start instant
        end: Exclusive end instant
    """

    start: datetime
    end: datetime

    @property
    def duration(self) -> timedelta:
        return self.end - self.start

    @property
    def is_empty(self) -> bool:
        """Zero-length or inverted ranges are not bookable."""
        return self.end <= self.start

    def overlaps(self, other: "TimeRange") -> bool:
        """Half-open overlap. Empty ranges never overlap anything."""
        if self.is_empty or other.is_empty:
            return False
        return self.start < other.end and other.start < self.end


# =============================================================================
# DATACLASSES
# =============================================================================


@dataclass
class Property:
    """Rental property record.

    Attributes:
        id: Primary key
        name: Display name
        address: Street address
        bedrooms: Bedroom description ("2", "Studio")
        rent: Listed monthly rent
        available: Whether the unit is on the market
        created_at: Record creation time
    """

    id: Optional[int] = None
    name: str = ""
    address: str = ""
    bedrooms: Optional[str] = None
    rent: Optional[Decimal] = None
    available: bool = True
    created_at: Optional[datetime] = None


@dataclass
class Lead:
    """Prospective tenant.

    Attributes:
        id: Primary key
        name: Full name
        email: Email address
        phone: Phone number
        status: Pipeline status (new, contacted, touring, ...)
        source: Lead source
        property_id: Property the lead is interested in
        created_at: Record creation time
    """

    id: Optional[int] = None
    name: str = ""
    email: str = ""
    phone: Optional[str] = None
    status: str = "new"
    source: Optional[str] = None
    property_id: Optional[int] = None
    created_at: Optional[datetime] = None

    @property
    def first_name(self) -> str:
        """First word of the name."""
        parts = self.name.split()
        return parts[0] if parts else ""


@dataclass
class InterviewSession:
    """One prospect's run through a question graph.

    Created by start_session, mutated only by submit_response,
    never deleted.

    Attributes:
        id: Primary key
        lead_id: Lead being interviewed
        property_id: Property the feedback is about
        session_type: Which question graph is running
        asked_question_ids: Question ids already answered, in order
        current_question_id: Pending question (None once complete)
        status: ACTIVE or COMPLETE
        discovered_budget: Monthly budget extracted from answers
        proposed_move_in_date: Move-in date extracted from answers
        interest_level: Interest 1-10 extracted from answers
        preferred_response_method: Method the prospect uses most
        created_at: When the session started
        completed_at: When the last question was answered
    """

    id: Optional[int] = None
    lead_id: int = 0
    property_id: int = 0
    session_type: SessionType = SessionType.POST_TOUR
    asked_question_ids: list[str] = field(default_factory=list)
    current_question_id: Optional[str] = None
    status: SessionStatus = SessionStatus.ACTIVE
    discovered_budget: Optional[int] = None
    proposed_move_in_date: Optional[date] = None
    interest_level: Optional[int] = None
    preferred_response_method: Optional[ResponseMethod] = None
    created_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @property
    def is_complete(self) -> bool:
        return self.status == SessionStatus.COMPLETE


@dataclass
class Response:
    """One answer to one question. Immutable once written.

    Attributes:
        id: Primary key
        session_id: Owning session
        question_id: Question answered
        question_text: Rendered question text at the time of asking
        response_method: text, choice or voice
        response_value: Raw value (choice label or free text)
        response_text: Optional free-text elaboration
        category: Category assigned by the classifier
        confidence: Classifier confidence
        created_at: When recorded
    """

    id: Optional[int] = None
    session_id: int = 0
    question_id: str = ""
    question_text: str = ""
    response_method: ResponseMethod = ResponseMethod.TEXT
    response_value: str = ""
    response_text: Optional[str] = None
    category: FeedbackCategory = FeedbackCategory.GENERAL
    confidence: float = 0.0
    created_at: Optional[datetime] = None

    @property
    def text(self) -> str:
        """The most descriptive text available for this answer."""
        return (self.response_text or self.response_value or "").strip()


@dataclass
class CategorySummary:
    """Summary of all feedback for one (property, category) pair.

    Once is_edited is set, automatic regeneration stops until an
    explicit reset.

    Attributes:
        id: Primary key
        property_id: Property summarized
        category: Feedback category
        summary_text: Current summary
        is_edited: A human owns this text
        edited_by: Who edited it
        updated_at: Last write time
        responses: Backing responses, oldest first
    """

    id: Optional[int] = None
    property_id: int = 0
    category: FeedbackCategory = FeedbackCategory.GENERAL
    summary_text: str = ""
    is_edited: bool = False
    edited_by: Optional[str] = None
    updated_at: Optional[datetime] = None
    responses: list[Response] = field(default_factory=list)


@dataclass
class ScheduleEntry:
    """An agent's booked block for a property.

    No two scheduled entries for the same agent may overlap.

    Attributes:
        id: Primary key
        agent_id: Agent booked
        property_id: Property shown
        start: Inclusive start instant
        end: Exclusive end instant
        source: manual or voice
        status: scheduled or cancelled
        note: Originating transcript or manual note
        created_at: When booked
    """

    id: Optional[int] = None
    agent_id: int = 0
    property_id: int = 0
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    source: ScheduleSource = ScheduleSource.MANUAL
    status: EntryStatus = EntryStatus.SCHEDULED
    note: Optional[str] = None
    created_at: Optional[datetime] = None

    @property
    def time_range(self) -> TimeRange:
        if self.start is None or self.end is None:
            raise ValueError(f"Schedule entry {self.id} has no time range")
        return TimeRange(self.start, self.end)

    @property
    def is_active(self) -> bool:
        return self.status == EntryStatus.SCHEDULED


@dataclass
class LeadInteraction:
    """Audit log entry on a lead.

    Attributes:
        id: Primary key
        lead_id: Lead the interaction belongs to
        interaction_type: What happened
        description: Human-readable description
        metadata: JSON blob
        created_at: When logged
    """

    id: Optional[int] = None
    lead_id: int = 0
    interaction_type: InteractionType = InteractionType.FEEDBACK_STARTED
    description: str = ""
    metadata: Optional[str] = None  # JSON
    created_at: Optional[datetime] = None
