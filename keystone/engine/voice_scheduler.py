"""Voice scheduling interpreter.

Turns a spoken transcript into zero or more booked showings:

    "Book a showing tomorrow at 3pm and Wednesday at 10am"
        -> classify intent (must be book)
        -> resolve time ranges
        -> pick agent and property ("agent 3", "property 7", or defaults)
        -> check and commit each range on its own

Each candidate is accepted or rejected independently, so one bad slot
never sinks the others. Each booking goes through
keystone.engine.bookings.book_if_free(), which checks and commits under
the agent's lock inside one transaction.

Outcomes are values, never exceptions:
    NOT_A_SCHEDULE_COMMAND, NO_TIME_FOUND, MISSING_PROPERTY, PROCESSED
"""

import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta, tzinfo
from enum import Enum
from typing import Callable, Optional

from keystone.ai.classifier import Classification, Domain, classify
from keystone.ai.time_resolver import UnresolvedFragment, resolve
from keystone.core.config import Config, get_config
from keystone.core.exceptions import InvalidReferenceError, ValidationError
from keystone.core.logging import get_logger
from keystone.db.database import Database
from keystone.db.models import (
    ScheduleEntry,
    ScheduleIntent,
    ScheduleSource,
    TimeRange,
)
from keystone.engine.bookings import book_if_free

logger = get_logger(__name__)


class OutcomeKind(str, Enum):
    NOT_A_SCHEDULE_COMMAND = "not_a_schedule_command"
    NO_TIME_FOUND = "no_time_found"
    MISSING_PROPERTY = "missing_property"
    PROCESSED = "processed"


class RejectionReason(str, Enum):
    """Why a candidate was not booked.

    Values:
        CONFLICT: Overlaps the agent's bookings or a slot booked earlier
            from the same transcript
        INVALID_RANGE: Empty or inverted range
        IN_PAST: Starts before the reference instant
    """

    CONFLICT = "conflict"
    INVALID_RANGE = "invalid_range"
    IN_PAST = "in_past"


@dataclass
class Candidate:
    """One requested time range and what happened to it.

    Attributes:
        time_range: Requested range
        entry: Booked entry when accepted
        reason: Rejection reason when rejected
        conflicting_entry_ids: Existing bookings it collided with
    """

    time_range: TimeRange
    entry: Optional[ScheduleEntry] = None
    reason: Optional[RejectionReason] = None
    conflicting_entry_ids: list[int] = field(default_factory=list)

    @property
    def accepted(self) -> bool:
        return self.entry is not None


@dataclass
class SchedulingOutcome:
    """Result of processing one transcript.

    Attributes:
        kind: Overall outcome
        message: Human-readable summary
        intent: Scheduling intent classification
        agent_id: Agent the showings were booked for
        property_id: Property shown
        candidates: Per-range results, in mention order
        unresolved: Time fragments that could not be placed
    """

    kind: OutcomeKind
    message: str
    intent: Optional[Classification] = None
    agent_id: Optional[int] = None
    property_id: Optional[int] = None
    candidates: list[Candidate] = field(default_factory=list)
    unresolved: list[UnresolvedFragment] = field(default_factory=list)

    @property
    def accepted(self) -> list[Candidate]:
        return [c for c in self.candidates if c.accepted]

    @property
    def rejected(self) -> list[Candidate]:
        return [c for c in self.candidates if not c.accepted]

    @property
    def schedules(self) -> list[ScheduleEntry]:
        return [c.entry for c in self.candidates if c.entry is not None]


_AGENT_PATTERN = re.compile(r"\bagent\s*(?:#|number|no\.?|id)?\s*(\d+)\b", re.IGNORECASE)
_PROPERTY_PATTERN = re.compile(
    r"\b(?:property|listing)\s*(?:#|number|no\.?|id)?\s*(\d+)\b", re.IGNORECASE
)

_INTENT_MESSAGES = {
    ScheduleIntent.CANCEL: "That sounds like a cancellation; voice commands can only book showings",
    ScheduleIntent.QUERY: "That sounds like a schedule question; voice commands can only book showings",
    ScheduleIntent.UNKNOWN: "No scheduling request found",
}


def describe_range(time_range: TimeRange, tz: tzinfo) -> str:
    """Short spoken form of a range start, e.g. "Wednesday 10am"."""
    start = time_range.start.astimezone(tz)
    hour = start.hour % 12 or 12
    suffix = "am" if start.hour < 12 else "pm"
    clock = f"{hour}{suffix}" if start.minute == 0 else f"{hour}:{start.minute:02d}{suffix}"
    return f"{start:%A} {clock}"


class VoiceSchedulingInterpreter:
    """Books showings from voice transcripts."""

    def __init__(
        self,
        db: Database,
        config: Optional[Config] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.db = db
        self.config = config or get_config()
        self._clock = clock

    def _now(self) -> datetime:
        if self._clock is not None:
            return self._clock()
        return datetime.now(self.config.tzinfo)

    def process(
        self,
        transcript: str,
        property_id: Optional[int] = None,
        agent_id: Optional[int] = None,
        reference: Optional[datetime] = None,
    ) -> SchedulingOutcome:
        """Interpret a transcript and book what it asks for.

        Args:
            transcript: Spoken command
            property_id: Property to use when the transcript names none
            agent_id: Agent to use when the transcript names none
                (falls back to the configured default agent)
            reference: Instant "now" means (defaults to the clock)

        Raises:
            ValidationError: If the transcript is empty
            InvalidReferenceError: If the property does not exist
        """
        text = (transcript or "").strip()
        if not text:
            raise ValidationError("A transcript is required")

        tz = self.config.tzinfo
        reference = reference or self._now()
        if reference.tzinfo is None:
            reference = reference.replace(tzinfo=tz)

        intent = classify(text, Domain.SCHEDULING, threshold=self.config.classifier_threshold)
        if intent.label != ScheduleIntent.BOOK:
            message = _INTENT_MESSAGES.get(intent.label, _INTENT_MESSAGES[ScheduleIntent.UNKNOWN])
            logger.info(
                "Transcript is not a booking request",
                extra={"context": {"intent": intent.label.value, "confidence": intent.confidence}},
            )
            return SchedulingOutcome(
                kind=OutcomeKind.NOT_A_SCHEDULE_COMMAND,
                message=f"{message}: \"{text}\"",
                intent=intent,
            )

        spoken_agent = _AGENT_PATTERN.search(text)
        spoken_property = _PROPERTY_PATTERN.search(text)
        # Ids must not be read as clock times
        time_text = _PROPERTY_PATTERN.sub(" ", _AGENT_PATTERN.sub(" ", text))

        resolution = resolve(
            time_text,
            reference,
            tz,
            default_duration=timedelta(minutes=self.config.showing_minutes),
        )
        if not resolution.ranges:
            fragments = ", ".join(f.text for f in resolution.unresolved)
            message = "No time found in the request"
            if fragments:
                message += f"; could not place: {fragments}"
            logger.info(
                "No time found in transcript",
                extra={"context": {"unresolved": [f.text for f in resolution.unresolved]}},
            )
            return SchedulingOutcome(
                kind=OutcomeKind.NO_TIME_FOUND,
                message=message,
                intent=intent,
                unresolved=resolution.unresolved,
            )

        if spoken_agent:
            agent_id = int(spoken_agent.group(1))
        elif agent_id is None:
            agent_id = self.config.default_agent_id

        if spoken_property:
            property_id = int(spoken_property.group(1))
        if property_id is None:
            return SchedulingOutcome(
                kind=OutcomeKind.MISSING_PROPERTY,
                message="Which property are these showings for?",
                intent=intent,
                agent_id=agent_id,
                unresolved=resolution.unresolved,
            )
        if self.db.get_property(property_id) is None:
            raise InvalidReferenceError(f"Property not found: {property_id}")

        candidates: list[Candidate] = []
        for time_range in resolution.ranges:
            candidate = self._evaluate(
                time_range, agent_id, property_id, reference, text, candidates
            )
            candidates.append(candidate)

        outcome = SchedulingOutcome(
            kind=OutcomeKind.PROCESSED,
            message=self._message(candidates, resolution.unresolved, tz),
            intent=intent,
            agent_id=agent_id,
            property_id=property_id,
            candidates=candidates,
            unresolved=resolution.unresolved,
        )
        logger.info(
            "Voice schedule processed",
            extra={"context": {
                "agent_id": agent_id,
                "property_id": property_id,
                "requested": len(candidates),
                "booked": len(outcome.accepted),
            }},
        )
        return outcome

    def _evaluate(
        self,
        time_range: TimeRange,
        agent_id: int,
        property_id: int,
        reference: datetime,
        transcript: str,
        earlier: list[Candidate],
    ) -> Candidate:
        """Check one range and book it if it is free."""
        if time_range.is_empty:
            return Candidate(time_range, reason=RejectionReason.INVALID_RANGE)
        if time_range.start < reference:
            return Candidate(time_range, reason=RejectionReason.IN_PAST)
        # Only slots this transcript actually booked can block later ones
        for other in earlier:
            if other.accepted and time_range.overlaps(other.time_range):
                return Candidate(time_range, reason=RejectionReason.CONFLICT)

        entry = ScheduleEntry(
            agent_id=agent_id,
            property_id=property_id,
            start=time_range.start,
            end=time_range.end,
            source=ScheduleSource.VOICE,
            note=transcript,
        )
        result = book_if_free(self.db, entry)
        if not result.booked:
            return Candidate(
                time_range,
                reason=RejectionReason.CONFLICT,
                conflicting_entry_ids=result.conflicting_entry_ids,
            )
        return Candidate(time_range, entry=result.entry)

    @staticmethod
    def _message(
        candidates: list[Candidate], unresolved: list[UnresolvedFragment], tz: tzinfo
    ) -> str:
        booked = sum(1 for c in candidates if c.accepted)
        total = len(candidates)
        noun = "showing" if total == 1 else "showings"
        parts = [f"Booked {booked} of {total} requested {noun}"]
        for candidate in candidates:
            if candidate.accepted:
                continue
            when = describe_range(candidate.time_range, tz)
            if candidate.reason == RejectionReason.CONFLICT and candidate.conflicting_entry_ids:
                parts.append(f"{when} conflicts with an existing booking")
            elif candidate.reason == RejectionReason.CONFLICT:
                parts.append(f"{when} overlaps another requested time")
            elif candidate.reason == RejectionReason.IN_PAST:
                parts.append(f"{when} is in the past")
            else:
                parts.append(f"{when} is not a valid time range")
        if unresolved:
            parts.append("could not place: " + ", ".join(f.text for f in unresolved))
        return "; ".join(parts)
