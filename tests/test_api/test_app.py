"""Tests for the HTTP API."""

from datetime import datetime

import pytest
from fastapi.testclient import TestClient

from keystone.api.app import create_app, status_for
from keystone.core.config import Config
from keystone.core.exceptions import (
    DatabaseError,
    InvalidReferenceError,
    OutOfOrderResponseError,
    ScheduleConflictError,
    SessionNotFoundError,
    ValidationError,
)
from keystone.db.database import Database
from keystone.engine.interview import FeedbackInterviewEngine
from keystone.engine.voice_scheduler import VoiceSchedulingInterpreter


@pytest.fixture
def client(populated_db: Database, mock_config: Config, reference_instant: datetime) -> TestClient:
    """API client on the populated database with a fixed clock."""
    app = create_app(db=populated_db, config=mock_config)
    app.state.interview = FeedbackInterviewEngine(
        populated_db, mock_config, clock=lambda: reference_instant
    )
    app.state.scheduler = VoiceSchedulingInterpreter(
        populated_db, mock_config, clock=lambda: reference_instant
    )
    return TestClient(app)


def _start(client: TestClient, session_type: str = "post_tour") -> dict:
    response = client.post(
        "/api/feedback/start-session",
        json={"leadId": 1, "propertyId": 1, "sessionType": session_type},
    )
    assert response.status_code == 200
    return response.json()


def _submit(client: TestClient, session_id: int, question_id: str, method: str, value: str):
    return client.post(
        "/api/feedback/submit-response",
        json={
            "sessionId": session_id,
            "questionId": question_id,
            "responseMethod": method,
            "responseValue": value,
        },
    )


class TestStatusMapping:
    """Domain errors map to HTTP status codes."""

    def test_codes(self):
        assert status_for(ValidationError("x")) == 400
        assert status_for(InvalidReferenceError("x")) == 404
        assert status_for(SessionNotFoundError("x")) == 404
        assert status_for(OutOfOrderResponseError("x")) == 409
        assert status_for(ScheduleConflictError("x")) == 409
        assert status_for(DatabaseError("x")) == 500


class TestFeedbackEndpoints:
    """Interview endpoints."""

    def test_start_session(self, client: TestClient):
        body = _start(client)
        assert body["sessionId"] > 0
        assert body["isComplete"] is False
        question = body["initialQuestions"][0]
        assert question["id"] == "tour_rating"
        assert question["options"] == ["Excellent", "Good", "Fair", "Poor"]

    def test_start_session_unknown_lead(self, client: TestClient):
        response = client.post(
            "/api/feedback/start-session", json={"leadId": 99, "propertyId": 1}
        )
        assert response.status_code == 404
        assert response.json()["error"] == "InvalidReferenceError"

    def test_start_session_bad_type(self, client: TestClient):
        response = client.post(
            "/api/feedback/start-session",
            json={"leadId": 1, "propertyId": 1, "sessionType": "exit"},
        )
        assert response.status_code == 400

    def test_snake_case_body_accepted(self, client: TestClient):
        response = client.post(
            "/api/feedback/start-session",
            json={"lead_id": 1, "property_id": 1, "session_type": "discovery"},
        )
        assert response.status_code == 200
        assert response.json()["initialQuestions"][0]["id"] == "property_type"

    def test_submit_response(self, client: TestClient):
        started = _start(client)
        response = _submit(client, started["sessionId"], "tour_rating", "choice", "Poor")
        assert response.status_code == 200
        body = response.json()
        assert body["isComplete"] is False
        assert body["nextQuestion"]["id"] == "concerns"
        assert body["category"] == "general"
        assert body["summary"][0]["summaryText"] == "1 response on general: Poor"

    def test_out_of_order_is_conflict(self, client: TestClient):
        started = _start(client)
        response = _submit(client, started["sessionId"], "concerns", "text", "Noise")
        assert response.status_code == 409
        assert response.json()["error"] == "OutOfOrderResponseError"

    def test_unknown_session_is_not_found(self, client: TestClient):
        response = _submit(client, 404, "tour_rating", "choice", "Good")
        assert response.status_code == 404

    def test_empty_value_is_bad_request(self, client: TestClient):
        started = _start(client)
        response = _submit(client, started["sessionId"], "tour_rating", "choice", "")
        assert response.status_code == 400

    def test_session_views(self, client: TestClient):
        started = _start(client)
        sid = started["sessionId"]
        _submit(client, sid, "tour_rating", "choice", "Good")

        session = client.get(f"/api/feedback/sessions/{sid}").json()
        assert session["currentQuestionId"] == "liked_most"
        assert session["askedQuestionIds"] == ["tour_rating"]
        assert session["interestLevel"] == 7

        responses = client.get(f"/api/feedback/sessions/{sid}/responses").json()
        assert [r["questionId"] for r in responses] == ["tour_rating"]

        listed = client.get("/api/feedback/sessions", params={"leadId": 1}).json()
        assert [s["id"] for s in listed] == [sid]

    def test_missing_session_view(self, client: TestClient):
        assert client.get("/api/feedback/sessions/404").status_code == 404


class TestSummaryEndpoints:
    """Summary listing, editing and reset."""

    def test_edit_then_reset(self, client: TestClient):
        started = _start(client)
        sid = started["sessionId"]
        _submit(client, sid, "tour_rating", "choice", "Good")
        _submit(client, sid, "liked_most", "text", "The pool and gym were great")

        edited = client.patch(
            "/api/properties/1/feedback-summaries/amenities",
            json={"summaryText": "Amenities land well", "editorId": "agent-7"},
        )
        assert edited.status_code == 200
        assert edited.json()["isEdited"] is True

        summaries = client.get("/api/properties/1/feedback-summaries").json()
        by_category = {s["category"]: s for s in summaries}
        assert by_category["amenities"]["summaryText"] == "Amenities land well"
        assert len(by_category["amenities"]["responses"]) == 1

        reset = client.post("/api/properties/1/feedback-summaries/amenities/reset")
        assert reset.status_code == 200
        assert reset.json()["isEdited"] is False
        assert reset.json()["summaryText"] == (
            "1 response on amenities: The pool and gym were great"
        )

    def test_unknown_category(self, client: TestClient):
        response = client.patch(
            "/api/properties/1/feedback-summaries/vibes",
            json={"summaryText": "x", "editorId": "agent-7"},
        )
        assert response.status_code == 400

    def test_unknown_property(self, client: TestClient):
        assert client.get("/api/properties/99/feedback-summaries").status_code == 404


class TestVoiceScheduleEndpoint:
    """Voice scheduling over HTTP."""

    def test_books_and_reports_conflict(self, client: TestClient):
        first = client.post(
            "/api/voice-schedule",
            json={"transcript": "Book a showing Wednesday at 10am", "propertyId": 1, "agentId": 7},
        )
        assert first.status_code == 200
        assert first.json()["outcome"] == "processed"
        assert len(first.json()["schedules"]) == 1

        second = client.post(
            "/api/voice-schedule",
            json={
                "transcript": "Book a showing tomorrow at 3pm and Wednesday at 10am",
                "propertyId": 1,
                "agentId": 7,
            },
        )
        body = second.json()
        assert body["message"] == (
            "Booked 1 of 2 requested showings; Wednesday 10am conflicts with an existing booking"
        )
        assert [c["accepted"] for c in body["candidates"]] == [True, False]
        assert body["candidates"][1]["reason"] == "conflict"
        assert body["candidates"][1]["conflictingEntryIds"] == [first.json()["schedules"][0]["id"]]

        listed = client.get("/api/schedules", params={"agentId": 7}).json()
        assert len(listed) == 2
        assert all(entry["source"] == "voice" for entry in listed)

    def test_not_a_schedule_command(self, client: TestClient):
        response = client.post(
            "/api/voice-schedule",
            json={"transcript": "agents should call back prospects faster", "propertyId": 1},
        )
        assert response.status_code == 200
        body = response.json()
        assert body["outcome"] == "not_a_schedule_command"
        assert body["intent"] == "unknown"
        assert body["schedules"] == []

    def test_missing_property(self, client: TestClient):
        response = client.post(
            "/api/voice-schedule", json={"transcript": "Book a showing tomorrow at 3pm"}
        )
        assert response.json()["outcome"] == "missing_property"

    def test_unknown_property(self, client: TestClient):
        response = client.post(
            "/api/voice-schedule",
            json={"transcript": "Book a showing tomorrow at 3pm", "propertyId": 99},
        )
        assert response.status_code == 404

    def test_empty_transcript(self, client: TestClient):
        response = client.post("/api/voice-schedule", json={"transcript": " ", "propertyId": 1})
        assert response.status_code == 400


class TestManualScheduleEndpoint:
    """Manual schedule entries over HTTP."""

    def _create(self, client: TestClient, start: str, end: str, agent_id: int = 7):
        return client.post(
            "/api/schedules",
            json={"agentId": agent_id, "propertyId": 1, "start": start, "end": end},
        )

    def test_creates_manual_entry(self, client: TestClient):
        response = self._create(client, "2026-06-02T10:00:00-05:00", "2026-06-02T11:00:00-05:00")
        assert response.status_code == 201
        body = response.json()
        assert body["source"] == "manual"
        assert body["agentId"] == 7

        listed = client.get("/api/schedules", params={"agentId": 7}).json()
        assert [entry["id"] for entry in listed] == [body["id"]]

    def test_overlap_is_conflict(self, client: TestClient):
        first = self._create(client, "2026-06-02T10:00:00-05:00", "2026-06-02T11:00:00-05:00")
        second = self._create(client, "2026-06-02T10:30:00-05:00", "2026-06-02T11:30:00-05:00")
        assert second.status_code == 409
        assert second.json()["error"] == "ScheduleConflictError"
        assert str(first.json()["id"]) in second.json()["detail"]
        assert len(client.get("/api/schedules", params={"agentId": 7}).json()) == 1

    def test_back_to_back_is_allowed(self, client: TestClient):
        self._create(client, "2026-06-02T10:00:00-05:00", "2026-06-02T11:00:00-05:00")
        response = self._create(client, "2026-06-02T11:00:00-05:00", "2026-06-02T12:00:00-05:00")
        assert response.status_code == 201

    def test_manual_entry_blocks_voice_booking(self, client: TestClient):
        manual = self._create(client, "2026-06-02T15:00:00-05:00", "2026-06-02T16:00:00-05:00")
        voice = client.post(
            "/api/voice-schedule",
            json={"transcript": "Book a showing tomorrow at 3pm", "propertyId": 1, "agentId": 7},
        ).json()
        assert voice["schedules"] == []
        assert voice["candidates"][0]["conflictingEntryIds"] == [manual.json()["id"]]

    def test_inverted_range_is_bad_request(self, client: TestClient):
        response = self._create(client, "2026-06-02T11:00:00-05:00", "2026-06-02T10:00:00-05:00")
        assert response.status_code == 400

    def test_unknown_property(self, client: TestClient):
        response = client.post(
            "/api/schedules",
            json={
                "propertyId": 99,
                "start": "2026-06-02T10:00:00-05:00",
                "end": "2026-06-02T11:00:00-05:00",
            },
        )
        assert response.status_code == 404
