"""Engine package - Business logic layer.

Modules:
    - conflicts: Schedule overlap checks
    - bookings: Conflict-checked schedule writes and manual entries
    - question_graph: Branching question graphs and their registry
    - question_bank: Built-in discovery and post-tour graphs
    - summaries: Category summary text
    - interview: Feedback interview engine
    - voice_scheduler: Voice scheduling interpreter
"""

from keystone.engine.bookings import BookingResult, ScheduleBook, book_if_free
from keystone.engine.conflicts import find_conflicts, has_conflict, ranges_overlap
from keystone.engine.interview import FeedbackInterviewEngine, NextStep, Question, StartResult
from keystone.engine.voice_scheduler import (
    Candidate,
    OutcomeKind,
    RejectionReason,
    SchedulingOutcome,
    VoiceSchedulingInterpreter,
)

__all__ = [
    "ranges_overlap",
    "find_conflicts",
    "has_conflict",
    "book_if_free",
    "BookingResult",
    "ScheduleBook",
    "FeedbackInterviewEngine",
    "Question",
    "StartResult",
    "NextStep",
    "VoiceSchedulingInterpreter",
    "SchedulingOutcome",
    "OutcomeKind",
    "Candidate",
    "RejectionReason",
]
