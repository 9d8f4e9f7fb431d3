"""Request and response bodies for the HTTP API.

Field names are snake_case in Python and camelCase on the wire
("leadId", "sessionType", ...). Either spelling is accepted on input.
"""

from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from keystone.db.models import (
    EntryStatus,
    FeedbackCategory,
    ResponseMethod,
    ScheduleSource,
    SessionStatus,
    SessionType,
)


class ApiModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


# -------------------------
# Feedback
# -------------------------


class StartSessionRequest(ApiModel):
    lead_id: int
    property_id: int
    session_type: str = SessionType.POST_TOUR.value


class QuestionOut(ApiModel):
    id: str
    text: str
    kind: str
    options: List[str] = []


class StartSessionResponse(ApiModel):
    session_id: int
    initial_questions: List[QuestionOut]
    is_complete: bool


class SubmitResponseRequest(ApiModel):
    session_id: int
    question_id: str
    response_method: str
    response_value: str
    response_text: Optional[str] = None


class ResponseOut(ApiModel):
    id: Optional[int] = None
    session_id: int
    question_id: str
    question_text: str
    response_method: ResponseMethod
    response_value: str
    response_text: Optional[str] = None
    category: FeedbackCategory
    confidence: float
    created_at: Optional[datetime] = None


class SummaryOut(ApiModel):
    property_id: int
    category: FeedbackCategory
    summary_text: str
    is_edited: bool
    edited_by: Optional[str] = None
    updated_at: Optional[datetime] = None
    responses: List[ResponseOut] = []


class SubmitResponseResponse(ApiModel):
    is_complete: bool
    next_question: Optional[QuestionOut] = None
    category: FeedbackCategory
    summary: List[SummaryOut] = []


class SessionOut(ApiModel):
    id: int
    lead_id: int
    property_id: int
    session_type: SessionType
    status: SessionStatus
    current_question_id: Optional[str] = None
    asked_question_ids: List[str] = []
    discovered_budget: Optional[int] = None
    proposed_move_in_date: Optional[date] = None
    interest_level: Optional[int] = None
    preferred_response_method: Optional[ResponseMethod] = None
    created_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


class UpdateSummaryRequest(ApiModel):
    summary_text: str
    editor_id: str


# -------------------------
# Scheduling
# -------------------------


class VoiceScheduleRequest(ApiModel):
    transcript: str
    property_id: Optional[int] = None
    agent_id: Optional[int] = None


class CreateScheduleRequest(ApiModel):
    property_id: int
    start: datetime
    end: datetime
    agent_id: Optional[int] = None
    note: Optional[str] = None


class ScheduleOut(ApiModel):
    id: Optional[int] = None
    agent_id: int
    property_id: int
    start: datetime
    end: datetime
    source: ScheduleSource
    status: EntryStatus
    note: Optional[str] = None


class CandidateOut(ApiModel):
    start: datetime
    end: datetime
    accepted: bool
    reason: Optional[str] = None
    conflicting_entry_ids: List[int] = []


class VoiceScheduleResponse(ApiModel):
    outcome: str
    message: str
    intent: Optional[str] = None
    agent_id: Optional[int] = None
    property_id: Optional[int] = None
    schedules: List[ScheduleOut] = []
    candidates: List[CandidateOut] = []
    unresolved: List[str] = []
