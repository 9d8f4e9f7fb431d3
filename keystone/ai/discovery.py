"""Discovery extraction from interview answers.

Pulls structured facts out of free-text or choice answers so the
session record carries them:
    - Budget: "$2,000", "2k", "1800 a month", "$1,500 - $2,000"
    - Move-in date: "immediately", "within 2 weeks", "next month", "July 1st"
    - Interest level 1-10: "8 out of 10", "very interested", "Excellent"

Each extractor returns None when the answer says nothing usable.
"""

import re
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Optional

from keystone.ai.time_resolver import resolve_dates
from keystone.core.logging import get_logger

logger = get_logger(__name__)

# Plausible monthly rent bounds; anything outside is not a budget
_MIN_BUDGET = 300
_MAX_BUDGET = 50_000

_MONEY_PATTERN = re.compile(
    r"(?P<dollar>\$)?\s*(?P<amount>\d{1,3}(?:,\d{3})+|\d+(?:\.\d+)?)\s*(?P<k>k\b)?"
    r"(?P<suffix>\s*(?:/\s*mo\b|a month|per month|monthly|/month))?"
)

_INTEREST_WORDS = [
    ("not interested", 2),
    ("not very interested", 3),
    ("not sure", 5),
    ("somewhat interested", 6),
    ("very interested", 9),
    ("extremely interested", 10),
    ("love it", 9),
    ("interested", 7),
    ("excellent", 9),
    ("good", 7),
    ("fair", 5),
    ("poor", 2),
]

_IMMEDIATE = re.compile(r"\b(?:immediately|asap|right away|right now|as soon as possible)\b")
_WITHIN = re.compile(
    r"\b(?:within|in)\s+(?:the\s+next\s+)?(?P<n>\d+|a|one|two|three|four|six)"
    r"(?:\s*-\s*\d+)?\s+(?P<unit>days?|weeks?|months?)\b"
)
_NEXT_MONTH = re.compile(r"\bnext month\b")
_WORDS = {"a": 1, "one": 1, "two": 2, "three": 3, "four": 4, "six": 6}


@dataclass
class Discoveries:
    """Facts found in one answer."""

    budget: Optional[int] = None
    move_in_date: Optional[date] = None
    interest_level: Optional[int] = None

    def is_empty(self) -> bool:
        return self.budget is None and self.move_in_date is None and self.interest_level is None


def extract_budget(text: str) -> Optional[int]:
    """Monthly budget in whole dollars.

    A range ("$1,500 - $2,000") reports its upper bound, since that is
    what the prospect says they can stretch to.
    """
    amounts: list[int] = []
    for match in _MONEY_PATTERN.finditer((text or "").lower()):
        raw = match.group("amount").replace(",", "")
        value = float(raw)
        if match.group("k"):
            value *= 1000
        elif not (match.group("dollar") or match.group("suffix")) and value < 1000:
            # Bare small numbers are more likely counts than dollars
            continue
        amount = int(round(value))
        if _MIN_BUDGET <= amount <= _MAX_BUDGET:
            amounts.append(amount)
    return max(amounts) if amounts else None


def extract_move_in(text: str, reference: date) -> Optional[date]:
    """Move-in date relative to the reference date."""
    lowered = (text or "").lower()
    if _IMMEDIATE.search(lowered):
        return reference

    match = _WITHIN.search(lowered)
    if match:
        raw = match.group("n")
        n = int(raw) if raw.isdigit() else _WORDS[raw]
        unit = match.group("unit")
        if unit.startswith("day"):
            return reference + timedelta(days=n)
        if unit.startswith("week"):
            return reference + timedelta(weeks=n)
        return _add_months(reference, n)

    if _NEXT_MONTH.search(lowered):
        return _add_months(reference, 1).replace(day=1)

    dates = resolve_dates(lowered, reference)
    return dates[0] if dates else None


def extract_interest_level(text: str) -> Optional[int]:
    """Interest on a 1-10 scale."""
    lowered = (text or "").lower()
    match = re.search(r"\b(?P<n>10|[1-9])\s*(?:/\s*10|out of 10)\b", lowered)
    if match:
        return int(match.group("n"))
    for phrase, level in _INTEREST_WORDS:
        if re.search(rf"\b{re.escape(phrase)}\b", lowered):
            return level
    return None


_EXTRACTORS = {
    "budget": lambda text, ref: extract_budget(text),
    "move_in": extract_move_in,
    "interest": lambda text, ref: extract_interest_level(text),
}


def extract(captures: list[str], text: str, reference: date) -> Discoveries:
    """Run the named extractors over one answer.

    Args:
        captures: Extractor names: "budget", "move_in", "interest"
        text: Answer text
        reference: Date relative expressions are read against

    Returns:
        Discoveries with whatever was found
    """
    found = Discoveries()
    for name in captures:
        extractor = _EXTRACTORS.get(name)
        if extractor is None:
            logger.warning(f"Unknown discovery capture: {name}")
            continue
        value = extractor(text, reference)
        if value is None:
            continue
        if name == "budget":
            found.budget = value
        elif name == "move_in":
            found.move_in_date = value
        else:
            found.interest_level = value
    return found


def _add_months(day: date, months: int) -> date:
    month_index = day.month - 1 + months
    year = day.year + month_index // 12
    month = month_index % 12 + 1
    for candidate_day in (day.day, 30, 29, 28):
        try:
            return date(year, month, candidate_day)
        except ValueError:
            continue
    raise ValueError(f"Cannot add {months} months to {day}")
