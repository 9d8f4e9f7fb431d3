"""Schedule conflict checking.

Ranges are half-open [start, end): back-to-back bookings do not
conflict. Only an agent's own scheduled entries count; cancelled
entries and other agents' entries never conflict.

Pure functions. Callers that check and then write must hold the
agent's lock across both (see keystone.core.locks).
"""

from typing import Iterable

from keystone.db.models import ScheduleEntry, TimeRange


def ranges_overlap(a: TimeRange, b: TimeRange) -> bool:
    """Symmetric half-open overlap test. Empty ranges never overlap."""
    return a.overlaps(b)


def find_conflicts(
    agent_id: int,
    proposed: TimeRange,
    existing: Iterable[ScheduleEntry],
) -> list[ScheduleEntry]:
    """Entries of this agent that the proposed range overlaps.

    Args:
        agent_id: Agent to check
        proposed: Range being booked
        existing: Candidate entries (any agents, any status)

    Returns:
        Conflicting entries in input order
    """
    if proposed.is_empty:
        return []
    return [
        entry
        for entry in existing
        if entry.agent_id == agent_id
        and entry.is_active
        and entry.start is not None
        and entry.end is not None
        and proposed.overlaps(entry.time_range)
    ]


def has_conflict(
    agent_id: int,
    proposed: TimeRange,
    existing: Iterable[ScheduleEntry],
) -> bool:
    """True when the proposed range overlaps one of the agent's bookings."""
    if proposed.is_empty:
        return False
    for entry in existing:
        if entry.agent_id != agent_id or not entry.is_active:
            continue
        if entry.start is None or entry.end is None:
            continue
        if proposed.overlaps(entry.time_range):
            return True
    return False
