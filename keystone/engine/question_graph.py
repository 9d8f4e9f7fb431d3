"""Branching question graphs for feedback interviews.

A graph is data: question nodes with answer-keyed edges and a default
edge. Choice answers follow the edge for their value (case-insensitive)
or the default edge; free-text and voice answers always follow the
default edge. An edge to None ends the interview.

Question text is a Jinja2 template rendered with the lead and property:
    "How would you rate your tour of {{ property.name }}?"

Graphs are registered per session type. Built-ins come from
question_bank; JSON files named <session_type>.json in the configured
graph directory replace them.

Usage:
    from keystone.engine.question_graph import get_graph

    graph = get_graph(SessionType.POST_TOUR)
    node = graph.first()
    next_id = graph.next_question_id(node.id, ResponseMethod.CHOICE, "Poor")
"""

import json
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import jinja2

from keystone.core.exceptions import ValidationError
from keystone.core.logging import get_logger
from keystone.db.models import Lead, Property, ResponseMethod, SessionType

logger = get_logger(__name__)

CHOICE = "choice"
OPEN = "open"

_KNOWN_CAPTURES = {"budget", "move_in", "interest"}

# Plain-text environment, created once
_env = jinja2.Environment(autoescape=False, undefined=jinja2.Undefined)


@dataclass
class QuestionNode:
    """One question in a graph.

    Attributes:
        id: Unique id within the graph
        text: Jinja2 template for the question text
        kind: "choice" or "open"
        options: Choice labels offered to the prospect
        edges: Choice label -> next question id (None ends the interview)
        default_next: Next question id when no edge matches
        captures: Discovery extractors to run on the answer
    """

    id: str
    text: str
    kind: str = OPEN
    options: list[str] = field(default_factory=list)
    edges: dict[str, Optional[str]] = field(default_factory=dict)
    default_next: Optional[str] = None
    captures: list[str] = field(default_factory=list)

    def render(self, lead: Optional[Lead] = None, prop: Optional[Property] = None) -> str:
        """Render the question text for one prospect."""
        try:
            template = _env.from_string(self.text)
            return template.render(lead=lead, property=prop).strip()
        except jinja2.TemplateError as e:
            logger.warning(
                f"Question template failed to render: {e}",
                extra={"context": {"question_id": self.id}},
            )
            return self.text

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "text": self.text,
            "kind": self.kind,
            "options": list(self.options),
            "edges": dict(self.edges),
            "default_next": self.default_next,
            "captures": list(self.captures),
        }


@dataclass
class QuestionGraph:
    """Directed graph of questions.

    Attributes:
        name: Graph name (usually the session type)
        start_id: First question; None for an empty graph
        nodes: Question id -> node
    """

    name: str
    start_id: Optional[str] = None
    nodes: dict[str, QuestionNode] = field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        return self.start_id is None

    def first(self) -> Optional[QuestionNode]:
        """The first question, or None for an empty graph."""
        if self.start_id is None:
            return None
        return self.nodes[self.start_id]

    def get(self, question_id: str) -> QuestionNode:
        try:
            return self.nodes[question_id]
        except KeyError:
            raise ValidationError(f"Unknown question in {self.name}: {question_id}") from None

    def next_question_id(
        self,
        question_id: str,
        method: ResponseMethod,
        value: str,
    ) -> Optional[str]:
        """Follow the edge for an answer.

        Returns:
            Next question id, or None when the interview ends
        """
        node = self.get(question_id)
        if method == ResponseMethod.CHOICE:
            wanted = (value or "").strip().lower()
            for answer, target in node.edges.items():
                if answer.strip().lower() == wanted:
                    return target
        return node.default_next

    def validate(self) -> list[str]:
        """Check graph integrity.

        Checks:
            - Start node exists (or graph is empty)
            - Every edge and default edge points at a node
            - Choice nodes have options and edges keyed by those options
            - Captures name known extractors

        Returns:
            List of issues (empty if valid)
        """
        issues: list[str] = []
        if self.start_id is None:
            if self.nodes:
                issues.append(f"Graph {self.name} has nodes but no start question")
            return issues
        if self.start_id not in self.nodes:
            issues.append(f"Start question not found: {self.start_id}")

        for node_id, node in self.nodes.items():
            if node.id != node_id:
                issues.append(f"Question {node_id} is registered under another id ({node.id})")
            if node.kind not in (CHOICE, OPEN):
                issues.append(f"Question {node_id} has unknown kind: {node.kind}")
            if node.kind == CHOICE and not node.options:
                issues.append(f"Choice question {node_id} has no options")
            lowered = {o.strip().lower() for o in node.options}
            for answer, target in node.edges.items():
                if node.kind == CHOICE and answer.strip().lower() not in lowered:
                    issues.append(f"Question {node_id} has an edge for unknown option: {answer}")
                if target is not None and target not in self.nodes:
                    issues.append(f"Question {node_id} points at missing question: {target}")
            if node.default_next is not None and node.default_next not in self.nodes:
                issues.append(
                    f"Question {node_id} default points at missing question: {node.default_next}"
                )
            for capture in node.captures:
                if capture not in _KNOWN_CAPTURES:
                    issues.append(f"Question {node_id} captures unknown field: {capture}")
            try:
                _env.parse(node.text)
            except jinja2.TemplateSyntaxError as e:
                issues.append(f"Question {node_id} template syntax error: {e}")
        return issues

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "start": self.start_id,
            "questions": [node.to_dict() for node in self.nodes.values()],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "QuestionGraph":
        """Build a graph from its dict/JSON form.

        Shape:
            {"name": ..., "start": "q1",
             "questions": [{"id": "q1", "text": ..., "kind": "choice",
                            "options": [...], "edges": {...},
                            "default_next": "q2", "captures": [...]}]}
        """
        nodes: dict[str, QuestionNode] = {}
        for raw in data.get("questions", []):
            node = QuestionNode(
                id=raw["id"],
                text=raw.get("text", ""),
                kind=raw.get("kind", OPEN),
                options=list(raw.get("options", [])),
                edges=dict(raw.get("edges", {})),
                default_next=raw.get("default_next"),
                captures=list(raw.get("captures", [])),
            )
            if node.id in nodes:
                raise ValidationError(f"Duplicate question id: {node.id}")
            nodes[node.id] = node
        return cls(name=data.get("name", ""), start_id=data.get("start"), nodes=nodes)


def load_graph_file(path: Path) -> QuestionGraph:
    """Load and validate a graph from a JSON file.

    Raises:
        ValidationError: If the file is unreadable or the graph is invalid
    """
    try:
        data = json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise ValidationError(f"Cannot load question graph {path}: {e}") from e
    if not isinstance(data, dict):
        raise ValidationError(f"Question graph {path} must be a JSON object")
    data.setdefault("name", Path(path).stem)
    try:
        graph = QuestionGraph.from_dict(data)
    except (KeyError, TypeError, AttributeError) as e:
        raise ValidationError(f"Malformed question in graph {path}: {e}") from e
    issues = graph.validate()
    if issues:
        raise ValidationError(f"Invalid question graph {path}: " + "; ".join(issues))
    return graph


# =============================================================================
# REGISTRY
# =============================================================================

_registry: dict[SessionType, QuestionGraph] = {}
_registry_lock = threading.Lock()


def register_graph(session_type: SessionType, graph: QuestionGraph) -> None:
    """Register the graph used for a session type.

    Raises:
        ValidationError: If the graph does not validate
    """
    session_type = SessionType(session_type)
    issues = graph.validate()
    if issues:
        raise ValidationError(
            f"Invalid question graph for {session_type.value}: " + "; ".join(issues)
        )
    with _registry_lock:
        _registry[session_type] = graph
    logger.info(
        "Question graph registered",
        extra={"context": {"session_type": session_type.value, "questions": len(graph.nodes)}},
    )


def load_graph_dir(directory: Path) -> int:
    """Register every <session_type>.json found in a directory.

    Returns:
        Number of graphs registered
    """
    count = 0
    for session_type in SessionType:
        path = Path(directory) / f"{session_type.value}.json"
        if path.exists():
            register_graph(session_type, load_graph_file(path))
            count += 1
    return count


def get_graph(session_type: SessionType) -> QuestionGraph:
    """Graph for a session type, falling back to the built-in one."""
    from keystone.engine.question_bank import BUILTIN_GRAPHS

    session_type = SessionType(session_type)
    with _registry_lock:
        graph = _registry.get(session_type)
    if graph is not None:
        return graph
    return QuestionGraph.from_dict(BUILTIN_GRAPHS[session_type.value])


def reset_graphs() -> None:
    """Drop registered graphs so built-ins apply again."""
    with _registry_lock:
        _registry.clear()
