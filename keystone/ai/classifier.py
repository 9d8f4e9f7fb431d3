"""Rule-based intent and category classifier.

Maps free text to one label from a closed set using weighted keyword
and phrase matches:
    - Feedback categories: price, amenities, location, size,
      comparison, suggestions (fallback: general)
    - Scheduling intents: book, cancel, query (fallback: unknown)

Scoring:
    Each matched term adds its weight to its label (multi-word phrases
    weigh 2, single words 1; a term counts once however often it occurs).
    confidence = (top score / total score) * min(1, top score / 2)
    so a label needs both a clear lead and enough evidence.

Ties are broken by a fixed label priority (earlier wins):
    feedback:   price > amenities > location > size > comparison > suggestions
    scheduling: cancel > query > book

Confidence below the threshold yields the fallback label. Callers treat
the fallback as "needs human review", never as an error.

Pure: same text, domain and threshold always give the same result.
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Union

from keystone.core.logging import get_logger
from keystone.db.models import FeedbackCategory, ScheduleIntent

logger = get_logger(__name__)

DEFAULT_THRESHOLD = 0.5

# Top score at which evidence counts as strong
_STRONG_EVIDENCE = 2.0


class Domain(str, Enum):
    """Which label set to classify into."""

    FEEDBACK = "feedback"
    SCHEDULING = "scheduling"


Label = Union[FeedbackCategory, ScheduleIntent]


@dataclass
class Classification:
    """Result of classifying one text.

    Attributes:
        label: Winning label, or the domain fallback
        confidence: Confidence 0-1 of the winning label
        is_fallback: True when the label is the fallback
        scores: Raw score per label that matched anything
        matched_terms: Terms that matched, per label
    """

    label: Label
    confidence: float
    is_fallback: bool = False
    scores: dict[str, float] = field(default_factory=dict)
    matched_terms: dict[str, list[str]] = field(default_factory=dict)


# =============================================================================
# VOCABULARY
# =============================================================================

_FEEDBACK_TERMS: dict[FeedbackCategory, list[str]] = {
    FeedbackCategory.PRICE: [
        "rent", "rents", "price", "prices", "pricing", "priced", "overpriced",
        "cost", "costs", "costly", "expensive", "cheap", "cheaper", "afford",
        "affordable", "budget", "deposit", "fee", "fees", "utilities", "discount",
        "reduction", "$", "% less", "too high", "too much", "per month", "a month",
        "monthly", "as listed", "pay",
    ],
    FeedbackCategory.AMENITIES: [
        "amenity", "amenities", "parking", "garage", "gym", "fitness", "pool",
        "laundry", "washer", "dryer", "dishwasher", "pet", "pets", "dog", "dogs",
        "cat", "cats", "balcony", "patio", "kitchen", "appliances", "elevator",
        "yard", "rooftop", "doorman", "wifi", "internet", "storage",
        "pet-friendly", "pet friendly", "in-unit", "in unit", "air conditioning",
    ],
    FeedbackCategory.LOCATION: [
        "location", "located", "area", "neighborhood", "neighbourhood", "commute",
        "downtown", "walkable", "transit", "bus", "train", "subway", "highway",
        "school", "schools", "noisy", "noise", "quiet", "safe", "safety", "street",
        "traffic", "nearby", "shops", "restaurants", "walking distance",
        "close to", "far from",
    ],
    FeedbackCategory.SIZE: [
        "size", "small", "smaller", "tiny", "big", "bigger", "large", "larger",
        "spacious", "cramped", "space", "sqft", "footage", "bedroom", "bedrooms",
        "bathroom", "bathrooms", "studio", "room", "rooms", "roomy", "layout",
        "closet", "closets", "square feet", "sq ft", "floor plan",
    ],
    FeedbackCategory.COMPARISON: [
        "compared", "compare", "comparing", "comparison", "competitor",
        "elsewhere", "alternatives", "other places", "other apartments",
        "other properties", "another property", "other listings", "last place",
        "better than", "worse than", "similar to",
    ],
    FeedbackCategory.SUGGESTIONS: [
        "suggest", "suggestion", "suggestions", "recommend", "wish", "should",
        "improve", "improvement", "upgrade", "repaint", "consider",
        "would be nice", "it would help", "please add", "could use",
    ],
}

_SCHEDULING_TERMS: dict[ScheduleIntent, list[str]] = {
    ScheduleIntent.BOOK: [
        "book", "booking", "schedule", "reserve", "arrange", "showing", "showings",
        "tour", "tours", "viewing", "viewings", "appointment", "availability",
        "available", "set up", "sign up", "open house", "open houses",
        "set availability", "pencil in", "block off", "put me down",
    ],
    ScheduleIntent.CANCEL: [
        "cancel", "cancelled", "canceled", "canceling", "cancellation", "unbook",
        "remove", "delete", "scrap", "call off", "take off", "no longer", "cancel my",
        "cancel the", "cancel all",
    ],
    # Question phrasing only; a bare "when" or "free" also turns up in
    # booking commands ("...when the agent is free")
    ScheduleIntent.QUERY: [
        "what", "what's", "when is", "when's", "when are", "when do",
        "what's on", "list", "check my", "am i free", "are we free",
        "do i have", "am i", "is there", "are there", "show me", "any showings",
    ],
}

_PRIORITY: dict[Domain, list[Label]] = {
    Domain.FEEDBACK: [
        FeedbackCategory.PRICE,
        FeedbackCategory.AMENITIES,
        FeedbackCategory.LOCATION,
        FeedbackCategory.SIZE,
        FeedbackCategory.COMPARISON,
        FeedbackCategory.SUGGESTIONS,
    ],
    Domain.SCHEDULING: [
        ScheduleIntent.CANCEL,
        ScheduleIntent.QUERY,
        ScheduleIntent.BOOK,
    ],
}

_FALLBACK: dict[Domain, Label] = {
    Domain.FEEDBACK: FeedbackCategory.GENERAL,
    Domain.SCHEDULING: ScheduleIntent.UNKNOWN,
}


def _term_pattern(term: str) -> re.Pattern:
    """Whole-word pattern; symbol edges (like "$") match anywhere."""
    left = r"(?<![a-z0-9])" if term[0].isalnum() else ""
    right = r"(?![a-z0-9])" if term[-1].isalnum() else ""
    return re.compile(left + re.escape(term) + right)


def _compile(table: dict) -> dict[Label, list[tuple[str, float, re.Pattern]]]:
    return {
        label: [(term, 2.0 if " " in term else 1.0, _term_pattern(term)) for term in terms]
        for label, terms in table.items()
    }


_COMPILED = {
    Domain.FEEDBACK: _compile(_FEEDBACK_TERMS),
    Domain.SCHEDULING: _compile(_SCHEDULING_TERMS),
}


def normalize_text(text: str) -> str:
    """Lowercase, straighten quotes and collapse whitespace."""
    text = (text or "").lower().replace("’", "'").replace("‘", "'")
    return re.sub(r"\s+", " ", text).strip()


def classify(
    text: str,
    domain: Domain | str,
    threshold: Optional[float] = None,
) -> Classification:
    """Classify text into one label of the domain.

    Args:
        text: Free text (answer, transcript)
        domain: Domain selecting the label set
        threshold: Minimum confidence; defaults to DEFAULT_THRESHOLD

    Returns:
        Classification; fallback label when nothing scores high enough
    """
    domain = Domain(domain)
    if threshold is None:
        threshold = DEFAULT_THRESHOLD
    fallback = _FALLBACK[domain]
    normalized = normalize_text(text)

    scores: dict[Label, float] = {}
    matched: dict[Label, list[str]] = {}
    for label, terms in _COMPILED[domain].items():
        for term, weight, pattern in terms:
            if pattern.search(normalized):
                scores[label] = scores.get(label, 0.0) + weight
                matched.setdefault(label, []).append(term)

    raw_scores = {label.value: score for label, score in scores.items()}
    raw_matches = {label.value: terms for label, terms in matched.items()}

    if not scores:
        return Classification(label=fallback, confidence=0.0, is_fallback=True)

    priority = _PRIORITY[domain]
    best = min(scores, key=lambda label: (-scores[label], priority.index(label)))
    top = scores[best]
    total = sum(scores.values())
    confidence = round((top / total) * min(1.0, top / _STRONG_EVIDENCE), 3)

    if confidence < threshold:
        logger.debug(
            "Classification below threshold",
            extra={"context": {
                "domain": domain.value,
                "best": best.value,
                "confidence": confidence,
            }},
        )
        return Classification(
            label=fallback,
            confidence=confidence,
            is_fallback=True,
            scores=raw_scores,
            matched_terms=raw_matches,
        )

    return Classification(
        label=best,
        confidence=confidence,
        is_fallback=False,
        scores=raw_scores,
        matched_terms=raw_matches,
    )
