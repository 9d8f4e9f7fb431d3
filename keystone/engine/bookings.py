"""Conflict-checked schedule writes.

Every new schedule entry, spoken or typed, goes through book_if_free():

    agent lock -> transaction -> read agent's entries -> find_conflicts
        -> insert only when nothing overlaps

The lock and the transaction together make check and commit one unit
per agent, so two concurrent bookings for the same slot cannot both
pass the check.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional

from keystone.core.config import Config, get_config
from keystone.core.exceptions import (
    InvalidReferenceError,
    ScheduleConflictError,
    ValidationError,
)
from keystone.core.locks import AGENT_LOCKS
from keystone.core.logging import get_logger
from keystone.db.database import Database
from keystone.db.models import ScheduleEntry, ScheduleSource, TimeRange
from keystone.engine.conflicts import find_conflicts

logger = get_logger(__name__)


@dataclass
class BookingResult:
    """Outcome of one conflict-checked write.

    Attributes:
        entry: Stored entry when booked
        conflicts: Existing entries that blocked the booking
    """

    entry: Optional[ScheduleEntry] = None
    conflicts: list[ScheduleEntry] = field(default_factory=list)

    @property
    def booked(self) -> bool:
        return self.entry is not None

    @property
    def conflicting_entry_ids(self) -> list[int]:
        return [c.id for c in self.conflicts if c.id is not None]


def book_if_free(db: Database, entry: ScheduleEntry) -> BookingResult:
    """Insert the entry unless it overlaps one of its agent's bookings.

    Raises:
        ValidationError: If the entry has no range or an empty one
    """
    if entry.start is None or entry.end is None:
        raise ValidationError("A schedule entry needs a start and an end")
    time_range = TimeRange(entry.start, entry.end)
    if time_range.is_empty:
        raise ValidationError("A schedule entry must end after it starts")

    with AGENT_LOCKS.hold(entry.agent_id), db.transaction():
        existing = db.get_schedule_entries(agent_id=entry.agent_id)
        conflicts = find_conflicts(entry.agent_id, time_range, existing)
        if conflicts:
            logger.info(
                "Booking rejected: conflict",
                extra={"context": {
                    "agent_id": entry.agent_id,
                    "start": time_range.start.isoformat(),
                    "conflicts": [c.id for c in conflicts],
                }},
            )
            return BookingResult(conflicts=conflicts)
        entry.id = db.create_schedule_entry(entry)

    logger.info(
        "Showing booked",
        extra={"context": {
            "entry_id": entry.id,
            "agent_id": entry.agent_id,
            "property_id": entry.property_id,
            "source": entry.source.value,
            "start": time_range.start.isoformat(),
        }},
    )
    return BookingResult(entry=entry)


class ScheduleBook:
    """Manual schedule entries for agents."""

    def __init__(self, db: Database, config: Optional[Config] = None) -> None:
        self.db = db
        self.config = config or get_config()

    def add_entry(
        self,
        property_id: int,
        start: datetime,
        end: datetime,
        agent_id: Optional[int] = None,
        note: Optional[str] = None,
    ) -> ScheduleEntry:
        """Book a manual entry.

        Naive instants are read in the configured timezone. Without an
        agent the configured default agent is booked.

        Raises:
            InvalidReferenceError: If the property does not exist
            ValidationError: If the range is empty or inverted
            ScheduleConflictError: If the agent is already booked then
        """
        if self.db.get_property(property_id) is None:
            raise InvalidReferenceError(f"Property not found: {property_id}")
        if agent_id is None:
            agent_id = self.config.default_agent_id

        tz = self.config.tzinfo
        if start.tzinfo is None:
            start = start.replace(tzinfo=tz)
        if end.tzinfo is None:
            end = end.replace(tzinfo=tz)

        entry = ScheduleEntry(
            agent_id=agent_id,
            property_id=property_id,
            start=start,
            end=end,
            source=ScheduleSource.MANUAL,
            note=note,
        )
        result = book_if_free(self.db, entry)
        if not result.booked:
            ids = ", ".join(str(i) for i in result.conflicting_entry_ids)
            raise ScheduleConflictError(
                f"Agent {agent_id} is already booked then (entries: {ids})"
            )
        return entry
