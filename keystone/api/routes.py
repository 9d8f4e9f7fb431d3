"""HTTP routes for feedback interviews and voice scheduling.

Routes are thin: parse the body, call the engine, shape the result.
Domain exceptions are mapped to status codes in keystone.api.app.
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request

from keystone.api.schemas import (
    CandidateOut,
    CreateScheduleRequest,
    QuestionOut,
    ResponseOut,
    ScheduleOut,
    SessionOut,
    StartSessionRequest,
    StartSessionResponse,
    SubmitResponseRequest,
    SubmitResponseResponse,
    SummaryOut,
    UpdateSummaryRequest,
    VoiceScheduleRequest,
    VoiceScheduleResponse,
)
from keystone.core.logging import get_logger
from keystone.db.database import Database
from keystone.engine.bookings import ScheduleBook
from keystone.engine.interview import FeedbackInterviewEngine
from keystone.engine.voice_scheduler import VoiceSchedulingInterpreter

logger = get_logger(__name__)

router = APIRouter(prefix="/api")


def get_interview(request: Request) -> FeedbackInterviewEngine:
    return request.app.state.interview


def get_scheduler(request: Request) -> VoiceSchedulingInterpreter:
    return request.app.state.scheduler


def get_schedule_book(request: Request) -> ScheduleBook:
    return request.app.state.schedule_book


def get_db(request: Request) -> Database:
    return request.app.state.db


# -------------------------
# Feedback interviews
# -------------------------


@router.post("/feedback/start-session", response_model=StartSessionResponse)
def start_session(
    payload: StartSessionRequest,
    interview: FeedbackInterviewEngine = Depends(get_interview),
):
    started = interview.start_session(payload.lead_id, payload.property_id, payload.session_type)
    questions = [started.first_question] if started.first_question else []
    return StartSessionResponse(
        session_id=started.session_id,
        initial_questions=[QuestionOut.model_validate(q) for q in questions],
        is_complete=started.is_complete,
    )


@router.post("/feedback/submit-response", response_model=SubmitResponseResponse)
def submit_response(
    payload: SubmitResponseRequest,
    interview: FeedbackInterviewEngine = Depends(get_interview),
):
    step = interview.submit_response(
        payload.session_id,
        payload.question_id,
        payload.response_method,
        payload.response_value,
        payload.response_text,
    )
    return SubmitResponseResponse(
        is_complete=step.is_complete,
        next_question=QuestionOut.model_validate(step.next_question) if step.next_question else None,
        category=step.response.category,
        summary=[SummaryOut.model_validate(s) for s in step.updated_summaries],
    )


@router.get("/feedback/sessions", response_model=List[SessionOut])
def list_sessions(
    lead_id: Optional[int] = Query(None, alias="leadId"),
    interview: FeedbackInterviewEngine = Depends(get_interview),
):
    return [SessionOut.model_validate(s) for s in interview.list_sessions(lead_id=lead_id)]


@router.get("/feedback/sessions/{session_id}", response_model=SessionOut)
def get_session(
    session_id: int,
    interview: FeedbackInterviewEngine = Depends(get_interview),
):
    return SessionOut.model_validate(interview.get_session(session_id))


@router.get("/feedback/sessions/{session_id}/responses", response_model=List[ResponseOut])
def list_session_responses(
    session_id: int,
    interview: FeedbackInterviewEngine = Depends(get_interview),
):
    return [ResponseOut.model_validate(r) for r in interview.get_session_responses(session_id)]


@router.get("/properties/{property_id}/feedback-summaries", response_model=List[SummaryOut])
def list_summaries(
    property_id: int,
    interview: FeedbackInterviewEngine = Depends(get_interview),
):
    return [SummaryOut.model_validate(s) for s in interview.get_summaries(property_id)]


@router.patch(
    "/properties/{property_id}/feedback-summaries/{category}",
    response_model=SummaryOut,
)
def update_summary(
    property_id: int,
    category: str,
    payload: UpdateSummaryRequest,
    interview: FeedbackInterviewEngine = Depends(get_interview),
):
    summary = interview.update_summary(
        property_id, category, payload.summary_text, payload.editor_id
    )
    return SummaryOut.model_validate(summary)


@router.post(
    "/properties/{property_id}/feedback-summaries/{category}/reset",
    response_model=SummaryOut,
)
def reset_summary(
    property_id: int,
    category: str,
    interview: FeedbackInterviewEngine = Depends(get_interview),
):
    return SummaryOut.model_validate(interview.reset_summary(property_id, category))


# -------------------------
# Scheduling
# -------------------------


@router.post("/voice-schedule", response_model=VoiceScheduleResponse)
def voice_schedule(
    payload: VoiceScheduleRequest,
    scheduler: VoiceSchedulingInterpreter = Depends(get_scheduler),
):
    outcome = scheduler.process(
        payload.transcript,
        property_id=payload.property_id,
        agent_id=payload.agent_id,
    )
    return VoiceScheduleResponse(
        outcome=outcome.kind.value,
        message=outcome.message,
        intent=outcome.intent.label.value if outcome.intent else None,
        agent_id=outcome.agent_id,
        property_id=outcome.property_id,
        schedules=[ScheduleOut.model_validate(e) for e in outcome.schedules],
        candidates=[
            CandidateOut(
                start=c.time_range.start,
                end=c.time_range.end,
                accepted=c.accepted,
                reason=c.reason.value if c.reason else None,
                conflicting_entry_ids=c.conflicting_entry_ids,
            )
            for c in outcome.candidates
        ],
        unresolved=[f.text for f in outcome.unresolved],
    )


@router.get("/schedules", response_model=List[ScheduleOut])
def list_schedules(
    agent_id: Optional[int] = Query(None, alias="agentId"),
    property_id: Optional[int] = Query(None, alias="propertyId"),
    db: Database = Depends(get_db),
):
    entries = db.get_schedule_entries(agent_id=agent_id, property_id=property_id)
    return [ScheduleOut.model_validate(e) for e in entries]


@router.post("/schedules", response_model=ScheduleOut, status_code=201)
def create_schedule(
    payload: CreateScheduleRequest,
    book: ScheduleBook = Depends(get_schedule_book),
):
    entry = book.add_entry(
        payload.property_id,
        payload.start,
        payload.end,
        agent_id=payload.agent_id,
        note=payload.note,
    )
    return ScheduleOut.model_validate(entry)
