"""Feedback interview engine.

Runs one branching question/response session per prospect and keeps
per-property category summaries current.

Session lifecycle:
    start_session  -> ACTIVE, first question pending (COMPLETE at once
                      when the graph is empty)
    submit_response -> records the answer, classifies it, follows the
                      graph edge; COMPLETE when no question follows

Rules:
    - Only the pending question may be answered; anything else is
      OutOfOrderResponseError and leaves the session untouched
    - One submission per session at a time (SessionBusyError otherwise)
    - The response write, summary regeneration and session update
      commit together
    - A human-edited summary is never regenerated until reset_summary

Usage:
    from keystone.engine.interview import FeedbackInterviewEngine

    engine = FeedbackInterviewEngine(db)
    started = engine.start_session(lead_id=1, property_id=7, session_type="post_tour")
    step = engine.submit_response(
        started.session_id, started.first_question.id, "choice", "Good"
    )
"""

import json
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Optional

from keystone.ai.classifier import Domain, classify
from keystone.ai.discovery import extract
from keystone.core.config import Config, get_config
from keystone.core.exceptions import (
    InvalidReferenceError,
    OutOfOrderResponseError,
    SessionAlreadyCompleteError,
    SessionNotFoundError,
    ValidationError,
)
from keystone.core.locks import SESSION_LOCKS
from keystone.core.logging import get_logger
from keystone.db.database import Database
from keystone.db.models import (
    CategorySummary,
    FeedbackCategory,
    InteractionType,
    InterviewSession,
    Lead,
    LeadInteraction,
    Property,
    Response,
    ResponseMethod,
    SessionStatus,
    SessionType,
    parse_response_method,
)
from keystone.engine.question_graph import QuestionNode, get_graph
from keystone.engine.summaries import build_summary

logger = get_logger(__name__)


@dataclass
class Question:
    """A question as shown to the prospect.

    Attributes:
        id: Question id within its graph
        text: Rendered question text
        kind: "choice" or "open"
        options: Choice labels (empty for open questions)
    """

    id: str
    text: str
    kind: str
    options: list[str] = field(default_factory=list)

    @classmethod
    def from_node(
        cls, node: QuestionNode, lead: Optional[Lead], prop: Optional[Property]
    ) -> "Question":
        return cls(
            id=node.id,
            text=node.render(lead=lead, prop=prop),
            kind=node.kind,
            options=list(node.options),
        )


@dataclass
class StartResult:
    """Result of start_session."""

    session_id: int
    first_question: Optional[Question]
    session: InterviewSession

    @property
    def is_complete(self) -> bool:
        return self.first_question is None


@dataclass
class NextStep:
    """Result of submit_response.

    Attributes:
        session_id: Session answered
        response: The recorded response
        is_complete: True when no question follows
        next_question: Next pending question (None when complete)
        updated_summaries: Summary for this response's category; on
            completion, every category the session contributed to
    """

    session_id: int
    response: Response
    is_complete: bool
    next_question: Optional[Question] = None
    updated_summaries: list[CategorySummary] = field(default_factory=list)


class FeedbackInterviewEngine:
    """Owns interview sessions, responses and category summaries."""

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

    # =========================================================================
    # SESSIONS
    # =========================================================================

    def start_session(
        self,
        lead_id: int,
        property_id: int,
        session_type: SessionType | str,
    ) -> StartResult:
        """Start an interview for a lead about a property.

        Raises:
            ValidationError: If session_type is unknown
            InvalidReferenceError: If the lead or property does not exist
        """
        try:
            session_type = SessionType(session_type)
        except ValueError:
            raise ValidationError(f"Unknown session type: {session_type}") from None

        lead = self.db.get_lead(lead_id)
        if lead is None:
            raise InvalidReferenceError(f"Lead not found: {lead_id}")
        prop = self.db.get_property(property_id)
        if prop is None:
            raise InvalidReferenceError(f"Property not found: {property_id}")

        graph = get_graph(session_type)
        first = graph.first()
        now = self._now()

        session = InterviewSession(
            lead_id=lead_id,
            property_id=property_id,
            session_type=session_type,
            current_question_id=first.id if first else None,
            status=SessionStatus.ACTIVE if first else SessionStatus.COMPLETE,
            created_at=now,
            completed_at=None if first else now,
        )

        with self.db.transaction():
            session.id = self.db.create_session(session)
            self._log_interaction(session, InteractionType.FEEDBACK_STARTED)
            if first is None:
                self._log_interaction(session, InteractionType.FEEDBACK_COMPLETED)

        logger.info(
            "Interview session started",
            extra={"context": {
                "session_id": session.id,
                "lead_id": lead_id,
                "property_id": property_id,
                "session_type": session_type.value,
                "empty_graph": first is None,
            }},
        )

        question = Question.from_node(first, lead, prop) if first else None
        return StartResult(session_id=session.id, first_question=question, session=session)

    def submit_response(
        self,
        session_id: int,
        question_id: str,
        response_method: ResponseMethod | str,
        response_value: str,
        response_text: Optional[str] = None,
    ) -> NextStep:
        """Answer the pending question of a session.

        Raises:
            ValidationError: If the method is unknown or the answer is empty
            SessionNotFoundError: If the session does not exist
            SessionAlreadyCompleteError: If the session already completed
            OutOfOrderResponseError: If question_id is not the pending question
            SessionBusyError: If another submission for the session is in flight
        """
        try:
            method = parse_response_method(response_method)
        except ValueError:
            raise ValidationError(f"Unknown response method: {response_method}") from None
        value = (response_value or "").strip()
        text = (response_text or "").strip() or None
        if not value and not text:
            raise ValidationError("A response value is required")

        with SESSION_LOCKS.try_hold(session_id):
            session = self.db.get_session(session_id)
            if session is None:
                raise SessionNotFoundError(f"Session not found: {session_id}")
            if session.is_complete:
                raise SessionAlreadyCompleteError(f"Session {session_id} is already complete")
            if question_id != session.current_question_id:
                logger.info(
                    "Out-of-order response rejected",
                    extra={"context": {
                        "session_id": session_id,
                        "question_id": question_id,
                        "pending": session.current_question_id,
                    }},
                )
                raise OutOfOrderResponseError(
                    f"Question {question_id} is not pending in session {session_id} "
                    f"(pending: {session.current_question_id})"
                )
            return self._record(session, question_id, method, value, text)

    def _record(
        self,
        session: InterviewSession,
        question_id: str,
        method: ResponseMethod,
        value: str,
        text: Optional[str],
    ) -> NextStep:
        graph = get_graph(session.session_type)
        node = graph.get(question_id)
        lead = self.db.get_lead(session.lead_id)
        prop = self.db.get_property(session.property_id)
        now = self._now()

        answer_text = text or value
        classification = classify(
            answer_text, Domain.FEEDBACK, threshold=self.config.classifier_threshold
        )
        category = classification.label

        next_id = graph.next_question_id(question_id, method, value)
        discoveries = extract(node.captures, f"{value} {text or ''}", now.date())
        previous = self.db.get_responses(session.id)

        response = Response(
            session_id=session.id,
            question_id=question_id,
            question_text=node.render(lead=lead, prop=prop),
            response_method=method,
            response_value=value,
            response_text=text,
            category=category,
            confidence=classification.confidence,
            created_at=now,
        )

        session.asked_question_ids.append(question_id)
        session.current_question_id = next_id
        if next_id is None:
            session.status = SessionStatus.COMPLETE
            session.completed_at = now
        if discoveries.budget is not None:
            session.discovered_budget = discoveries.budget
        if discoveries.move_in_date is not None:
            session.proposed_move_in_date = discoveries.move_in_date
        if discoveries.interest_level is not None:
            session.interest_level = discoveries.interest_level
        methods = Counter(r.response_method for r in previous)
        methods[method] += 1
        session.preferred_response_method = methods.most_common(1)[0][0]

        with self.db.transaction():
            response.id = self.db.create_response(response)
            summary = self._regenerate(session.property_id, category, now)
            self.db.update_session(session)
            if session.is_complete:
                self._log_interaction(session, InteractionType.FEEDBACK_COMPLETED)

        logger.info(
            "Response recorded",
            extra={"context": {
                "session_id": session.id,
                "question_id": question_id,
                "category": category.value,
                "confidence": classification.confidence,
                "needs_review": classification.is_fallback,
                "next_question_id": next_id,
            }},
        )

        if session.is_complete:
            logger.info(
                "Interview session complete",
                extra={"context": {"session_id": session.id, "answers": len(previous) + 1}},
            )
            categories = {r.category for r in previous} | {category}
            summaries = [
                s
                for s in self.db.get_summaries(session.property_id)
                if s.category in categories
            ]
            return NextStep(
                session_id=session.id,
                response=response,
                is_complete=True,
                updated_summaries=summaries,
            )

        return NextStep(
            session_id=session.id,
            response=response,
            is_complete=False,
            next_question=Question.from_node(graph.get(next_id), lead, prop),
            updated_summaries=[summary],
        )

    def get_session(self, session_id: int) -> InterviewSession:
        """Raises SessionNotFoundError if missing."""
        session = self.db.get_session(session_id)
        if session is None:
            raise SessionNotFoundError(f"Session not found: {session_id}")
        return session

    def get_current_question(self, session_id: int) -> Optional[Question]:
        """The pending question, or None once complete."""
        session = self.get_session(session_id)
        if session.current_question_id is None:
            return None
        node = get_graph(session.session_type).get(session.current_question_id)
        return Question.from_node(
            node,
            self.db.get_lead(session.lead_id),
            self.db.get_property(session.property_id),
        )

    def get_session_responses(self, session_id: int) -> list[Response]:
        self.get_session(session_id)
        return self.db.get_responses(session_id)

    def list_sessions(self, lead_id: Optional[int] = None) -> list[InterviewSession]:
        return self.db.get_sessions(lead_id=lead_id)

    # =========================================================================
    # SUMMARIES
    # =========================================================================

    def get_summaries(self, property_id: int) -> list[CategorySummary]:
        """A property's summaries with their backing responses."""
        self._require_property(property_id)
        return self.db.get_summaries(property_id, with_responses=True)

    def update_summary(
        self,
        property_id: int,
        category: FeedbackCategory | str,
        summary_text: str,
        editor_id: str,
    ) -> CategorySummary:
        """Replace a summary with human text. Last write wins.

        The summary stays human-owned until reset_summary.

        Raises:
            ValidationError: If category or editor is invalid
            InvalidReferenceError: If the property does not exist
        """
        category = self._parse_category(category)
        editor = str(editor_id or "").strip()
        if not editor:
            raise ValidationError("An editor id is required")
        self._require_property(property_id)

        self.db.upsert_summary(
            CategorySummary(
                property_id=property_id,
                category=category,
                summary_text=summary_text or "",
                is_edited=True,
                edited_by=editor,
                updated_at=self._now(),
            )
        )
        logger.info(
            "Summary edited",
            extra={"context": {
                "property_id": property_id,
                "category": category.value,
                "editor": editor,
            }},
        )
        return self.db.get_summary(property_id, category, with_responses=True)

    def reset_summary(
        self, property_id: int, category: FeedbackCategory | str
    ) -> CategorySummary:
        """Hand a summary back to automation and regenerate it now."""
        category = self._parse_category(category)
        self._require_property(property_id)
        now = self._now()
        with self.db.transaction():
            self.db.upsert_summary(
                CategorySummary(property_id=property_id, category=category, updated_at=now)
            )
            summary = self._regenerate(property_id, category, now)
        logger.info(
            "Summary reset",
            extra={"context": {"property_id": property_id, "category": category.value}},
        )
        return summary

    def _regenerate(
        self, property_id: int, category: FeedbackCategory, now: datetime
    ) -> CategorySummary:
        """Recompute a summary unless a human owns it. Runs inside the caller's transaction."""
        existing = self.db.get_summary(property_id, category, with_responses=True)
        if existing is not None and existing.is_edited:
            logger.debug(
                "Skipped regeneration of edited summary",
                extra={"context": {"property_id": property_id, "category": category.value}},
            )
            return existing

        responses = self.db.get_category_responses(property_id, category)
        summary = CategorySummary(
            property_id=property_id,
            category=category,
            summary_text=build_summary(category, responses),
            is_edited=False,
            edited_by=None,
            updated_at=now,
            responses=responses,
        )
        summary.id = self.db.upsert_summary(summary)
        logger.info(
            "Summary regenerated",
            extra={"context": {
                "property_id": property_id,
                "category": category.value,
                "responses": len(responses),
            }},
        )
        return summary

    # =========================================================================
    # HELPERS
    # =========================================================================

    def _require_property(self, property_id: int) -> Property:
        prop = self.db.get_property(property_id)
        if prop is None:
            raise InvalidReferenceError(f"Property not found: {property_id}")
        return prop

    @staticmethod
    def _parse_category(category: FeedbackCategory | str) -> FeedbackCategory:
        try:
            return FeedbackCategory(category)
        except ValueError:
            raise ValidationError(f"Unknown feedback category: {category}") from None

    def _log_interaction(self, session: InterviewSession, kind: InteractionType) -> None:
        verb = "started" if kind == InteractionType.FEEDBACK_STARTED else "completed"
        self.db.create_interaction(
            LeadInteraction(
                lead_id=session.lead_id,
                interaction_type=kind,
                description=f"Feedback session {verb} ({session.session_type.value})",
                metadata=json.dumps(
                    {"session_id": session.id, "session_type": session.session_type.value}
                ),
            )
        )
