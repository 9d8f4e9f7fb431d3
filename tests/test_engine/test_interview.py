"""Tests for the feedback interview engine."""

from datetime import date

import pytest

from keystone.core.exceptions import (
    DatabaseError,
    InvalidReferenceError,
    OutOfOrderResponseError,
    SessionAlreadyCompleteError,
    SessionBusyError,
    SessionNotFoundError,
    ValidationError,
)
from keystone.core.locks import SESSION_LOCKS
from keystone.db.database import Database
from keystone.db.models import (
    FeedbackCategory,
    InteractionType,
    Property,
    ResponseMethod,
    SessionStatus,
    SessionType,
)
from keystone.engine.interview import FeedbackInterviewEngine
from keystone.engine.question_graph import QuestionGraph, register_graph

# Post-tour answers that walk every question of the built-in graph
POST_TOUR_ANSWERS = [
    ("tour_rating", "choice", "Good"),
    ("liked_most", "text", "The pool and gym were great"),
    ("concerns", "text", "the rent feels too high for this area"),
    ("fair_rent", "choice", "10% less"),
    ("pricing_follow_up", "choice", "$200 less"),
    ("move_in_date", "text", "July 1st"),
]


def _walk(engine: FeedbackInterviewEngine, session_id: int, answers=POST_TOUR_ANSWERS):
    steps = []
    for question_id, method, value in answers:
        steps.append(engine.submit_response(session_id, question_id, method, value))
    return steps


class TestStartSession:
    """Starting interviews."""

    def test_returns_first_question(self, interview_engine: FeedbackInterviewEngine):
        started = interview_engine.start_session(1, 1, SessionType.POST_TOUR)
        assert started.session_id > 0
        assert started.first_question.id == "tour_rating"
        assert started.first_question.options == ["Excellent", "Good", "Fair", "Poor"]
        assert "Maple Court 2B" in started.first_question.text
        assert not started.is_complete

    def test_session_persisted_active(
        self, interview_engine: FeedbackInterviewEngine, populated_db: Database
    ):
        started = interview_engine.start_session(1, 1, "discovery")
        session = populated_db.get_session(started.session_id)
        assert session.status == SessionStatus.ACTIVE
        assert session.current_question_id == "property_type"
        assert session.asked_question_ids == []

    def test_logs_started_interaction(
        self, interview_engine: FeedbackInterviewEngine, populated_db: Database
    ):
        interview_engine.start_session(1, 1, "post_tour")
        kinds = [i.interaction_type for i in populated_db.get_interactions(1)]
        assert kinds == [InteractionType.FEEDBACK_STARTED]

    def test_unknown_session_type(self, interview_engine: FeedbackInterviewEngine):
        with pytest.raises(ValidationError):
            interview_engine.start_session(1, 1, "exit_interview")

    def test_unknown_lead(self, interview_engine: FeedbackInterviewEngine):
        with pytest.raises(InvalidReferenceError):
            interview_engine.start_session(99, 1, "post_tour")

    def test_unknown_property(self, interview_engine: FeedbackInterviewEngine):
        with pytest.raises(InvalidReferenceError):
            interview_engine.start_session(1, 99, "post_tour")

    def test_empty_graph_completes_immediately(
        self, interview_engine: FeedbackInterviewEngine, populated_db: Database
    ):
        register_graph(SessionType.POST_TOUR, QuestionGraph(name="empty"))
        started = interview_engine.start_session(1, 1, "post_tour")
        assert started.is_complete
        assert started.first_question is None
        session = populated_db.get_session(started.session_id)
        assert session.status == SessionStatus.COMPLETE
        assert session.completed_at is not None
        kinds = [i.interaction_type for i in populated_db.get_interactions(1)]
        assert kinds == [InteractionType.FEEDBACK_STARTED, InteractionType.FEEDBACK_COMPLETED]


class TestSubmitResponse:
    """Answering questions."""

    def test_first_answer_advances(self, interview_engine: FeedbackInterviewEngine):
        started = interview_engine.start_session(1, 1, "post_tour")
        step = interview_engine.submit_response(
            started.session_id, "tour_rating", "choice", "Good"
        )
        assert not step.is_complete
        assert step.next_question.id == "liked_most"
        assert step.response.category == FeedbackCategory.GENERAL
        assert [s.category for s in step.updated_summaries] == [FeedbackCategory.GENERAL]
        assert step.updated_summaries[0].summary_text == "1 response on general: Good"

    def test_branch_on_poor_rating(self, interview_engine: FeedbackInterviewEngine):
        started = interview_engine.start_session(1, 1, "post_tour")
        step = interview_engine.submit_response(
            started.session_id, "tour_rating", "choice", "Poor"
        )
        assert step.next_question.id == "concerns"
        assert interview_engine.get_session(started.session_id).interest_level == 2

    def test_free_text_is_classified(self, interview_engine: FeedbackInterviewEngine):
        started = interview_engine.start_session(1, 1, "post_tour")
        _walk(interview_engine, started.session_id, POST_TOUR_ANSWERS[:2])
        step = interview_engine.submit_response(
            started.session_id, "concerns", "text", "the rent feels too high for this area"
        )
        assert step.response.category == FeedbackCategory.PRICE
        assert step.response.confidence == 0.75

    def test_full_walk_completes(
        self, interview_engine: FeedbackInterviewEngine, populated_db: Database
    ):
        started = interview_engine.start_session(1, 1, "post_tour")
        steps = _walk(interview_engine, started.session_id)
        final = steps[-1]

        assert all(not s.is_complete for s in steps[:-1])
        assert final.is_complete
        assert final.next_question is None
        assert [s.category for s in final.updated_summaries] == [
            FeedbackCategory.PRICE,
            FeedbackCategory.AMENITIES,
            FeedbackCategory.GENERAL,
        ]
        price = final.updated_summaries[0]
        assert price.summary_text == (
            "3 responses on price: $200 less | 10% less | the rent feels too high for this area"
        )
        assert len(price.responses) == 3

        session = populated_db.get_session(started.session_id)
        assert session.status == SessionStatus.COMPLETE
        assert session.current_question_id is None
        assert session.asked_question_ids == [q for q, _, _ in POST_TOUR_ANSWERS]
        assert session.interest_level == 7
        assert session.proposed_move_in_date == date(2026, 7, 1)
        assert session.completed_at is not None

        kinds = [i.interaction_type for i in populated_db.get_interactions(1)]
        assert kinds == [InteractionType.FEEDBACK_STARTED, InteractionType.FEEDBACK_COMPLETED]

    def test_discovery_captures_budget(self, interview_engine: FeedbackInterviewEngine):
        started = interview_engine.start_session(1, 1, "discovery")
        sid = started.session_id
        interview_engine.submit_response(sid, "property_type", "choice", "Apartment")
        interview_engine.submit_response(sid, "move_in_timeline", "choice", "Within 30 days")
        interview_engine.submit_response(sid, "budget", "choice", "$1,500 - $2,000")
        session = interview_engine.get_session(sid)
        assert session.discovered_budget == 2000
        assert session.proposed_move_in_date == date(2026, 7, 1)

    def test_not_yet_ends_discovery_early(self, interview_engine: FeedbackInterviewEngine):
        started = interview_engine.start_session(1, 1, "discovery")
        sid = started.session_id
        interview_engine.submit_response(sid, "property_type", "choice", "House")
        interview_engine.submit_response(sid, "move_in_timeline", "choice", "Immediately")
        interview_engine.submit_response(sid, "budget", "choice", "$2,500+")
        interview_engine.submit_response(sid, "amenities", "text", "Parking and laundry")
        step = interview_engine.submit_response(sid, "tour_interest", "choice", "Not yet")
        assert step.is_complete

    def test_preferred_method_tracks_majority(self, interview_engine: FeedbackInterviewEngine):
        started = interview_engine.start_session(1, 1, "post_tour")
        sid = started.session_id
        interview_engine.submit_response(sid, "tour_rating", "dropdown", "Good")
        interview_engine.submit_response(sid, "liked_most", "voice", "the kitchen")
        interview_engine.submit_response(sid, "concerns", "voice", "street noise")
        assert interview_engine.get_session(sid).preferred_response_method == ResponseMethod.VOICE

    def test_widget_alias_is_choice(self, interview_engine: FeedbackInterviewEngine):
        started = interview_engine.start_session(1, 1, "post_tour")
        step = interview_engine.submit_response(
            started.session_id, "tour_rating", "emoji", "Poor"
        )
        assert step.response.response_method == ResponseMethod.CHOICE
        assert step.next_question.id == "concerns"

    def test_elaboration_text_is_classified(self, interview_engine: FeedbackInterviewEngine):
        started = interview_engine.start_session(1, 1, "post_tour")
        step = interview_engine.submit_response(
            started.session_id,
            "tour_rating",
            "choice",
            "Fair",
            response_text="The pool and gym were great but it felt dated",
        )
        assert step.response.category == FeedbackCategory.AMENITIES
        assert step.response.response_value == "Fair"


class TestSubmitErrors:
    """Rejected submissions leave the session untouched."""

    def test_out_of_order(self, interview_engine: FeedbackInterviewEngine):
        started = interview_engine.start_session(1, 1, "post_tour")
        sid = started.session_id
        with pytest.raises(OutOfOrderResponseError):
            interview_engine.submit_response(sid, "concerns", "text", "None")
        session = interview_engine.get_session(sid)
        assert session.current_question_id == "tour_rating"
        assert interview_engine.get_session_responses(sid) == []

    def test_out_of_order_repeats_identically(self, interview_engine: FeedbackInterviewEngine):
        """Retrying a rejected answer fails the same way."""
        started = interview_engine.start_session(1, 1, "post_tour")
        sid = started.session_id
        interview_engine.submit_response(sid, "tour_rating", "choice", "Good")
        for _ in range(2):
            with pytest.raises(OutOfOrderResponseError):
                interview_engine.submit_response(sid, "tour_rating", "choice", "Good")
        assert len(interview_engine.get_session_responses(sid)) == 1
        assert interview_engine.get_session(sid).current_question_id == "liked_most"

    def test_already_complete(self, interview_engine: FeedbackInterviewEngine):
        started = interview_engine.start_session(1, 1, "post_tour")
        _walk(interview_engine, started.session_id)
        with pytest.raises(SessionAlreadyCompleteError):
            interview_engine.submit_response(started.session_id, "move_in_date", "text", "Now")

    def test_unknown_session(self, interview_engine: FeedbackInterviewEngine):
        with pytest.raises(SessionNotFoundError):
            interview_engine.submit_response(404, "tour_rating", "choice", "Good")

    def test_empty_answer(self, interview_engine: FeedbackInterviewEngine):
        started = interview_engine.start_session(1, 1, "post_tour")
        with pytest.raises(ValidationError):
            interview_engine.submit_response(started.session_id, "tour_rating", "choice", "  ")

    def test_unknown_method(self, interview_engine: FeedbackInterviewEngine):
        started = interview_engine.start_session(1, 1, "post_tour")
        with pytest.raises(ValidationError):
            interview_engine.submit_response(
                started.session_id, "tour_rating", "telepathy", "Good"
            )

    def test_busy_session(self, interview_engine: FeedbackInterviewEngine):
        started = interview_engine.start_session(1, 1, "post_tour")
        sid = started.session_id
        with SESSION_LOCKS.hold(sid):
            with pytest.raises(SessionBusyError):
                interview_engine.submit_response(sid, "tour_rating", "choice", "Good")
        assert interview_engine.get_session_responses(sid) == []

    def test_failed_write_rolls_back(
        self,
        interview_engine: FeedbackInterviewEngine,
        populated_db: Database,
        monkeypatch: pytest.MonkeyPatch,
    ):
        """Response, summary and session progress commit together or not at all."""
        started = interview_engine.start_session(1, 1, "post_tour")
        sid = started.session_id

        def fail(session):
            raise DatabaseError("disk full")

        monkeypatch.setattr(populated_db, "update_session", fail)
        with pytest.raises(DatabaseError):
            interview_engine.submit_response(sid, "tour_rating", "choice", "Good")
        monkeypatch.undo()

        assert populated_db.get_responses(sid) == []
        assert populated_db.get_summaries(1) == []
        assert populated_db.get_session(sid).current_question_id == "tour_rating"


class TestSummaries:
    """Summary editing and regeneration."""

    def _answer_price(self, engine: FeedbackInterviewEngine, text: str) -> None:
        started = engine.start_session(1, 1, "post_tour")
        sid = started.session_id
        engine.submit_response(sid, "tour_rating", "choice", "Good")
        engine.submit_response(sid, "liked_most", "text", "The layout")
        engine.submit_response(sid, "concerns", "text", text)

    def test_edited_summary_survives_new_responses(
        self, interview_engine: FeedbackInterviewEngine
    ):
        self._answer_price(interview_engine, "the rent feels too high for this area")
        edited = interview_engine.update_summary(1, "price", "Prospects find it pricey", "agent-7")
        assert edited.is_edited
        assert edited.edited_by == "agent-7"

        self._answer_price(interview_engine, "too expensive for what it is")
        summaries = {s.category: s for s in interview_engine.get_summaries(1)}
        price = summaries[FeedbackCategory.PRICE]
        assert price.summary_text == "Prospects find it pricey"
        assert price.is_edited
        assert len(price.responses) == 2

    def test_reset_hands_back_to_automation(self, interview_engine: FeedbackInterviewEngine):
        self._answer_price(interview_engine, "the rent feels too high for this area")
        interview_engine.update_summary(1, FeedbackCategory.PRICE, "Pricey", "agent-7")
        summary = interview_engine.reset_summary(1, "price")
        assert not summary.is_edited
        assert summary.edited_by is None
        assert summary.summary_text == "1 response on price: the rent feels too high for this area"

    def test_edit_without_responses(self, interview_engine: FeedbackInterviewEngine):
        summary = interview_engine.update_summary(1, "location", "Great block", "agent-7")
        assert summary.summary_text == "Great block"
        assert summary.responses == []

    def test_last_edit_wins(self, interview_engine: FeedbackInterviewEngine):
        interview_engine.update_summary(1, "size", "First", "agent-1")
        summary = interview_engine.update_summary(1, "size", "Second", "agent-2")
        assert summary.summary_text == "Second"
        assert summary.edited_by == "agent-2"

    def test_edit_requires_editor(self, interview_engine: FeedbackInterviewEngine):
        with pytest.raises(ValidationError):
            interview_engine.update_summary(1, "price", "text", "")

    def test_edit_unknown_category(self, interview_engine: FeedbackInterviewEngine):
        with pytest.raises(ValidationError):
            interview_engine.update_summary(1, "vibes", "text", "agent-7")

    def test_edit_unknown_property(self, interview_engine: FeedbackInterviewEngine):
        with pytest.raises(InvalidReferenceError):
            interview_engine.update_summary(99, "price", "text", "agent-7")

    def test_summaries_are_per_property(
        self, interview_engine: FeedbackInterviewEngine, populated_db: Database
    ):
        self._answer_price(interview_engine, "the rent feels too high for this area")
        other = populated_db.create_property(Property(name="Oak Lane 4"))
        assert interview_engine.get_summaries(other) == []


class TestQueries:
    """Read-side operations."""

    def test_current_question(self, interview_engine: FeedbackInterviewEngine):
        started = interview_engine.start_session(1, 1, "post_tour")
        assert interview_engine.get_current_question(started.session_id).id == "tour_rating"

    def test_current_question_none_when_complete(
        self, interview_engine: FeedbackInterviewEngine
    ):
        started = interview_engine.start_session(1, 1, "post_tour")
        _walk(interview_engine, started.session_id)
        assert interview_engine.get_current_question(started.session_id) is None

    def test_responses_in_order(self, interview_engine: FeedbackInterviewEngine):
        started = interview_engine.start_session(1, 1, "post_tour")
        _walk(interview_engine, started.session_id, POST_TOUR_ANSWERS[:3])
        responses = interview_engine.get_session_responses(started.session_id)
        assert [r.question_id for r in responses] == ["tour_rating", "liked_most", "concerns"]
        assert responses[0].question_text.startswith("Thanks for touring Maple Court 2B")

    def test_list_sessions_by_lead(self, interview_engine: FeedbackInterviewEngine):
        interview_engine.start_session(1, 1, "post_tour")
        interview_engine.start_session(1, 1, "discovery")
        assert len(interview_engine.list_sessions(lead_id=1)) == 2
        assert interview_engine.list_sessions(lead_id=2) == []

    def test_get_missing_session(self, interview_engine: FeedbackInterviewEngine):
        with pytest.raises(SessionNotFoundError):
            interview_engine.get_session(404)

    def test_same_answers_same_summaries(self, populated_db: Database, mock_config, reference_instant):
        """Two engines given the same answers produce the same summary text."""
        engine = FeedbackInterviewEngine(populated_db, mock_config, clock=lambda: reference_instant)
        started = engine.start_session(1, 1, "post_tour")
        _walk(engine, started.session_id)
        first = [s.summary_text for s in engine.get_summaries(1)]
        engine.reset_summary(1, "price")
        engine.reset_summary(1, "amenities")
        engine.reset_summary(1, "general")
        second = [s.summary_text for s in engine.get_summaries(1)]
        assert first == second
