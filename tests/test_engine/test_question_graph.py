"""Tests for question graphs, rendering and the graph registry."""

import json
from decimal import Decimal
from pathlib import Path

import pytest

from keystone.core.exceptions import ValidationError
from keystone.db.models import Lead, Property, ResponseMethod, SessionType
from keystone.engine.question_bank import BUILTIN_GRAPHS
from keystone.engine.question_graph import (
    QuestionGraph,
    QuestionNode,
    get_graph,
    load_graph_dir,
    load_graph_file,
    register_graph,
)


def _two_step() -> dict:
    return {
        "name": "short",
        "start": "q1",
        "questions": [
            {
                "id": "q1",
                "text": "Rate it",
                "kind": "choice",
                "options": ["Good", "Bad"],
                "edges": {"Bad": "q2"},
                "default_next": None,
            },
            {"id": "q2", "text": "What went wrong?", "kind": "open"},
        ],
    }


class TestBuiltinGraphs:
    """Built-in discovery and post-tour graphs."""

    @pytest.mark.parametrize("name", sorted(BUILTIN_GRAPHS))
    def test_builtin_graphs_validate(self, name: str):
        assert QuestionGraph.from_dict(BUILTIN_GRAPHS[name]).validate() == []

    def test_post_tour_starts_with_rating(self):
        graph = get_graph(SessionType.POST_TOUR)
        assert graph.first().id == "tour_rating"

    def test_poor_rating_branches_to_concerns(self):
        graph = get_graph(SessionType.POST_TOUR)
        assert graph.next_question_id("tour_rating", ResponseMethod.CHOICE, "Poor") == "concerns"

    def test_edge_match_is_case_insensitive(self):
        graph = get_graph(SessionType.POST_TOUR)
        assert graph.next_question_id("tour_rating", ResponseMethod.CHOICE, " poor ") == "concerns"

    def test_unmatched_choice_takes_default(self):
        graph = get_graph(SessionType.POST_TOUR)
        assert graph.next_question_id("tour_rating", ResponseMethod.CHOICE, "Good") == "liked_most"

    def test_text_answers_take_default_edge(self):
        """Edges only apply to choice answers."""
        graph = get_graph(SessionType.POST_TOUR)
        assert graph.next_question_id("tour_rating", ResponseMethod.TEXT, "Poor") == "liked_most"

    def test_edge_to_none_ends_interview(self):
        graph = get_graph("discovery")
        assert graph.next_question_id("tour_interest", ResponseMethod.CHOICE, "Not yet") is None

    def test_last_question_has_no_next(self):
        graph = get_graph(SessionType.POST_TOUR)
        assert graph.next_question_id("move_in_date", ResponseMethod.TEXT, "July") is None

    def test_unknown_question_raises(self):
        graph = get_graph(SessionType.POST_TOUR)
        with pytest.raises(ValidationError):
            graph.get("nope")


class TestRendering:
    """Question text templates."""

    def test_renders_lead_and_property(self):
        node = get_graph(SessionType.POST_TOUR).first()
        text = node.render(
            lead=Lead(name="Casey Jordan"), prop=Property(name="Maple Court 2B")
        )
        assert text.startswith("Thanks for touring Maple Court 2B, Casey!")

    def test_renders_without_context(self):
        node = get_graph(SessionType.POST_TOUR).first()
        assert node.render().startswith("Thanks for touring the property!")

    def test_renders_rent(self):
        node = get_graph(SessionType.POST_TOUR).get("fair_rent")
        text = node.render(prop=Property(name="Maple Court 2B", rent=Decimal("1850")))
        assert text.startswith("The rent is listed at $1,850 a month.")

    def test_broken_template_returns_raw_text(self):
        node = QuestionNode(id="q", text="Hello {{ lead.name")
        assert node.render() == "Hello {{ lead.name"


class TestValidation:
    """Graph integrity checks."""

    def test_valid_graph(self):
        assert QuestionGraph.from_dict(_two_step()).validate() == []

    def test_missing_target(self):
        data = _two_step()
        data["questions"][0]["edges"] = {"Bad": "q9"}
        issues = QuestionGraph.from_dict(data).validate()
        assert any("missing question: q9" in issue for issue in issues)

    def test_edge_for_unknown_option(self):
        data = _two_step()
        data["questions"][0]["edges"] = {"Meh": "q2"}
        issues = QuestionGraph.from_dict(data).validate()
        assert any("unknown option: Meh" in issue for issue in issues)

    def test_choice_without_options(self):
        data = _two_step()
        data["questions"][0]["options"] = []
        data["questions"][0]["edges"] = {}
        issues = QuestionGraph.from_dict(data).validate()
        assert any("has no options" in issue for issue in issues)

    def test_unknown_capture(self):
        data = _two_step()
        data["questions"][1]["captures"] = ["shoe_size"]
        issues = QuestionGraph.from_dict(data).validate()
        assert any("shoe_size" in issue for issue in issues)

    def test_missing_start(self):
        data = _two_step()
        data["start"] = "q0"
        issues = QuestionGraph.from_dict(data).validate()
        assert any("Start question not found" in issue for issue in issues)

    def test_empty_graph_is_valid(self):
        graph = QuestionGraph(name="empty")
        assert graph.is_empty
        assert graph.first() is None
        assert graph.validate() == []

    def test_duplicate_ids_rejected(self):
        data = _two_step()
        data["questions"][1]["id"] = "q1"
        with pytest.raises(ValidationError):
            QuestionGraph.from_dict(data)

    def test_dict_round_trip(self):
        graph = QuestionGraph.from_dict(_two_step())
        assert QuestionGraph.from_dict(graph.to_dict()) == graph


class TestRegistry:
    """Per-session-type graph registration."""

    def test_registered_graph_replaces_builtin(self):
        register_graph(SessionType.POST_TOUR, QuestionGraph.from_dict(_two_step()))
        assert get_graph(SessionType.POST_TOUR).first().id == "q1"
        assert get_graph(SessionType.DISCOVERY).first().id == "property_type"

    def test_invalid_graph_not_registered(self):
        data = _two_step()
        data["questions"][0]["default_next"] = "missing"
        with pytest.raises(ValidationError):
            register_graph(SessionType.POST_TOUR, QuestionGraph.from_dict(data))
        assert get_graph(SessionType.POST_TOUR).first().id == "tour_rating"

    def test_accepts_string_session_type(self):
        register_graph("discovery", QuestionGraph(name="empty"))
        assert get_graph(SessionType.DISCOVERY).is_empty


class TestGraphFiles:
    """Loading graphs from JSON files."""

    def test_load_graph_file(self, tmp_path: Path):
        path = tmp_path / "post_tour.json"
        path.write_text(json.dumps(_two_step()))
        graph = load_graph_file(path)
        assert graph.start_id == "q1"
        assert len(graph.nodes) == 2

    def test_bad_json(self, tmp_path: Path):
        path = tmp_path / "post_tour.json"
        path.write_text("{not json")
        with pytest.raises(ValidationError):
            load_graph_file(path)

    def test_missing_file(self, tmp_path: Path):
        with pytest.raises(ValidationError):
            load_graph_file(tmp_path / "nope.json")

    def test_question_without_id(self, tmp_path: Path):
        path = tmp_path / "post_tour.json"
        path.write_text(json.dumps({"start": "q1", "questions": [{"text": "Hi"}]}))
        with pytest.raises(ValidationError):
            load_graph_file(path)

    def test_load_graph_dir(self, tmp_path: Path):
        (tmp_path / "post_tour.json").write_text(json.dumps(_two_step()))
        (tmp_path / "unrelated.json").write_text("{}")
        assert load_graph_dir(tmp_path) == 1
        assert get_graph(SessionType.POST_TOUR).first().id == "q1"
