"""Natural-language time expression resolver.

Turns spoken or typed time expressions into absolute, half-open
TimeRanges, relative to an explicit reference instant and timezone.
Never reads the clock.

Understands:
    - Absolute dates: "2026-06-05", "6/5", "June 5th", "the 5th of June", "the 12th"
    - Relative days: "today", "tonight", "tomorrow", "day after tomorrow",
      "next Tuesday", "this Friday", "in 3 days", "in two weeks", "next week"
    - Day sets: "Monday through Friday", "weekends", "weekdays"
    - Times: "3pm", "3:30 pm", "15:00", "at 4", "noon", "midnight"
    - Time ranges: "2 PM to 4 PM", "10 to noon", "between 2 and 4", "2-4pm"
    - Day parts: "morning", "afternoon", "evening" (alone, or as an
      am/pm hint for a bare hour next to them)
    - Conjunctions: "Monday and Wednesday at 3pm",
      "tomorrow at 3pm and Wednesday at 10am"

Rules:
    - Bare weekday (and "next <weekday>") is the next occurrence strictly
      after the reference date; "this <weekday>" may be the reference date.
    - Bare hours 1-7 read as PM, 8-11 as AM.
    - A time with no date is the reference day if still ahead, else the
      next day.
    - A start-only time lasts default_duration.
    - A month/day already past rolls to next year.

Fragments that cannot be resolved (vague words, impossible dates or
times, dates with no time of day) are dropped and reported as
UnresolvedFragment; the rest of the expression still resolves.
"""

import re
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, tzinfo
from typing import Iterator, Optional, Union
from zoneinfo import ZoneInfo

from keystone.core.logging import get_logger
from keystone.db.models import TimeRange

logger = get_logger(__name__)

DEFAULT_DURATION = timedelta(minutes=30)


@dataclass(frozen=True)
class UnresolvedFragment:
    """A piece of the expression that was dropped.

    Attributes:
        text: The fragment as written
        reason: Why it was dropped
        position: Character offset in the normalized expression
    """

    text: str
    reason: str
    position: int = 0


@dataclass
class Resolution:
    """Result of resolving one expression.

    Iterates and sizes like its list of ranges.

    Attributes:
        ranges: Resolved ranges, in the order they were mentioned
        unresolved: Dropped fragments
    """

    ranges: list[TimeRange] = field(default_factory=list)
    unresolved: list[UnresolvedFragment] = field(default_factory=list)

    def __iter__(self) -> Iterator[TimeRange]:
        return iter(self.ranges)

    def __len__(self) -> int:
        return len(self.ranges)

    def __getitem__(self, index: int) -> TimeRange:
        return self.ranges[index]


# =============================================================================
# VOCABULARY
# =============================================================================

# Day name to weekday number (Monday=0, Sunday=6)
_DAY_NAMES = {
    "monday": 0,
    "mon": 0,
    "tuesday": 1,
    "tues": 1,
    "tue": 1,
    "wednesday": 2,
    "wed": 2,
    "thursday": 3,
    "thurs": 3,
    "thur": 3,
    "thu": 3,
    "friday": 4,
    "fri": 4,
    "saturday": 5,
    "sunday": 6,
}

_MONTH_NAMES = {
    "january": 1,
    "jan": 1,
    "february": 2,
    "feb": 2,
    "march": 3,
    "mar": 3,
    "april": 4,
    "apr": 4,
    "may": 5,
    "june": 6,
    "jun": 6,
    "july": 7,
    "jul": 7,
    "august": 8,
    "aug": 8,
    "september": 9,
    "sept": 9,
    "sep": 9,
    "october": 10,
    "oct": 10,
    "november": 11,
    "nov": 11,
    "december": 12,
    "dec": 12,
}

_NUMBER_WORDS = {
    "a": 1,
    "an": 1,
    "one": 1,
    "two": 2,
    "three": 3,
    "four": 4,
    "five": 5,
    "six": 6,
    "seven": 7,
    "eight": 8,
    "nine": 9,
    "ten": 10,
    "a couple": 2,
    "a couple of": 2,
    "a few": 3,
}

# Day part -> (start minute, end minute, meridiem hint)
_DAY_PARTS = {
    "morning": (9 * 60, 12 * 60, "am"),
    "afternoon": (12 * 60, 17 * 60, "pm"),
    "evening": (17 * 60, 20 * 60, "pm"),
}


def _alternation(names) -> str:
    return "|".join(sorted(names, key=len, reverse=True))


_WD = _alternation(_DAY_NAMES)
_MON = _alternation(_MONTH_NAMES)
_NUM = _alternation(re.escape(k) for k in _NUMBER_WORDS)


def _time_token(p: str) -> str:
    """Clock time sub-pattern with group names prefixed by p."""
    return (
        rf"(?:(?P<{p}h>\d{{1,2}})(?::(?P<{p}m>\d{{2}}))?\s*(?P<{p}mer>am|pm)?"
        rf"|(?P<{p}word>noon|midday|midnight))"
    )


# (kind, pattern) in claiming priority order; a span claimed by an
# earlier pattern cannot be claimed by a later one
_PATTERNS: list[tuple[str, re.Pattern]] = [
    ("iso_date", re.compile(r"\b(?P<y>\d{4})-(?P<mo>\d{1,2})-(?P<d>\d{1,2})\b")),
    (
        "slash_date",
        re.compile(r"\b(?P<mo>\d{1,2})/(?P<d>\d{1,2})(?:/(?P<y>\d{2}|\d{4}))?\b"),
    ),
    (
        "month_day",
        re.compile(
            rf"\b(?P<mon>{_MON})\.?\s+(?P<d>\d{{1,2}})(?:st|nd|rd|th)?\b"
            rf"(?!\s*(?::|am\b|pm\b))(?:,?\s+(?P<y>\d{{4}}))?"
        ),
    ),
    (
        "day_of_month",
        re.compile(
            rf"\b(?:the\s+)?(?P<d>\d{{1,2}})(?:st|nd|rd|th)?\s+of\s+(?P<mon>{_MON})\b"
            rf"(?:,?\s+(?P<y>\d{{4}}))?"
        ),
    ),
    (
        "time_between",
        re.compile(rf"\bbetween\s+{_time_token('a')}\s+and\s+{_time_token('b')}\b"),
    ),
    (
        "time_range",
        re.compile(
            rf"(?:\b(?P<lead>from|at)\s+)?(?<![\d:/]){_time_token('a')}\s*"
            rf"(?:to|-|until|till|til|through|thru)\s*{_time_token('b')}\b"
        ),
    ),
    (
        "time",
        re.compile(r"(?<![\d:/])\b(?P<ah>\d{1,2})(?::(?P<am>\d{2}))?\s*(?P<amer>am|pm)\b"),
    ),
    ("time", re.compile(r"\b(?P<aword>noon|midday|midnight)\b")),
    ("time", re.compile(r"(?<![\d:/])\b(?P<ah>\d{1,2}):(?P<am>\d{2})\b(?!/)")),
    # A bare "at 4" is a time only before a boundary, a conjunction, a day
    # part or a date word; "at 12 oak street" is an address
    (
        "time",
        re.compile(
            rf"\bat\s+(?P<ah>\d{{1,2}})\b"
            rf"(?=\s*(?:$|[,.;:!?)]|(?:and|or|on|in|this|next|tomorrow|today|tonight"
            rf"|morning|afternoon|evening|the\s+day\s+after|{_WD}s?|{_MON})\b))"
        ),
    ),
    (
        "day_range",
        re.compile(
            rf"\b(?:from\s+)?(?P<wd1>{_WD})s?\s*(?:to|through|thru|-|until|till)\s*"
            rf"(?P<wd2>{_WD})s?\b"
        ),
    ),
    ("weekends", re.compile(r"\b(?:(?:this|next|the)\s+)?weekends?\b")),
    ("weekdays", re.compile(r"\bweekdays\b")),
    ("day_after_tomorrow", re.compile(r"\b(?:the\s+)?day after tomorrow\b")),
    ("tomorrow", re.compile(r"\btomorrow\b")),
    ("today", re.compile(r"\btoday\b")),
    ("tonight", re.compile(r"\btonight\b")),
    ("next_week", re.compile(r"\bnext\s+week\b")),
    (
        "in_n",
        re.compile(rf"\bin\s+(?P<n>\d+|{_NUM})\s+(?P<unit>days?|weeks?)\b"),
    ),
    (
        "weekday",
        re.compile(rf"\b(?:(?P<mod>next|this|coming)\s+)?(?P<wd>{_WD})s?\b"),
    ),
    ("ordinal_day", re.compile(r"\b(?:on\s+)?the\s+(?P<d>\d{1,2})(?:st|nd|rd|th)\b")),
    ("day_part", re.compile(r"\b(?:in\s+the\s+)?(?P<part>morning|afternoon|evening)s?\b")),
    (
        "vague",
        re.compile(
            r"\b(?:sometime|some time|whenever|soon|later|at some point|asap|eventually)\b"
        ),
    ),
]


# =============================================================================
# INTERNAL STRUCTURES
# =============================================================================


@dataclass
class _Clock:
    """A parsed clock reading. Bare readings keep their 1-12 hour."""

    hour: int
    minute: int
    explicit: bool
    is_midnight: bool = False


@dataclass
class _Mention:
    kind: str  # "date", "time", "day_part", "unresolved"
    position: int
    text: str
    dates: list[date] = field(default_factory=list)
    start_clock: Optional[_Clock] = None
    end_clock: Optional[_Clock] = None
    day_part: Optional[str] = None
    hint: Optional[str] = None
    reason: str = ""


@dataclass
class _TimeSpec:
    """Minutes after midnight; end may be None (use default duration)."""

    start: int
    end: Optional[int]


# =============================================================================
# HELPERS
# =============================================================================


def _normalize(expression: str) -> str:
    text = (expression or "").lower()
    text = text.replace("’", "'").replace("–", "-").replace("—", "-")
    text = re.sub(r"\b([ap])\.\s?m\.?", r"\1m", text)
    text = re.sub(r"\bo'?clock\b", "", text)
    return re.sub(r"\s+", " ", text).strip()


def _next_weekday(reference: date, weekday: int, allow_today: bool = False) -> date:
    days_ahead = weekday - reference.weekday()
    if days_ahead < 0 or (days_ahead == 0 and not allow_today):
        days_ahead += 7
    return reference + timedelta(days=days_ahead)


def _safe_date(year: int, month: int, day: int) -> Optional[date]:
    try:
        return date(year, month, day)
    except ValueError:
        return None


def _month_day(reference: date, month: int, day: int, year: Optional[str]) -> Optional[date]:
    """Resolve month/day; without a year, roll past dates to next year."""
    if year:
        y = int(year)
        if y < 100:
            y += 2000
        return _safe_date(y, month, day)
    candidate = _safe_date(reference.year, month, day)
    if candidate is None:
        # Feb 29 may exist next year even when it does not this year
        candidate = _safe_date(reference.year + 1, month, day)
        return candidate
    if candidate < reference:
        candidate = _safe_date(reference.year + 1, month, day)
    return candidate


def _clock(
    hour: Optional[str], minute: Optional[str], meridiem: Optional[str], word: Optional[str]
) -> Optional[_Clock]:
    """Parse one clock reading. Returns None when impossible."""
    if word:
        if word == "midnight":
            return _Clock(0, 0, True, is_midnight=True)
        return _Clock(12, 0, True)
    if hour is None:
        return None
    h = int(hour)
    m = int(minute) if minute else 0
    if m > 59:
        return None
    if meridiem:
        if not 1 <= h <= 12:
            return None
        return _Clock(h % 12 + (12 if meridiem == "pm" else 0), m, True)
    if h > 23:
        return None
    if h >= 13 or h == 0 or (minute is not None and hour.startswith("0")):
        return _Clock(h, m, True)
    return _Clock(h, m, False)


def _candidates(clock: _Clock) -> list[int]:
    """Both am and pm readings of a bare clock, in minutes."""
    base = (clock.hour % 12) * 60 + clock.minute
    return [base, base + 12 * 60]


def _infer(clock: _Clock, hint: Optional[str]) -> int:
    """Minutes after midnight for a clock, inferring am/pm for bare hours."""
    if clock.explicit:
        return clock.hour * 60 + clock.minute
    h = clock.hour
    if hint == "pm":
        h = h % 12 + 12
    elif hint == "am":
        h = h % 12
    elif 1 <= h <= 7:
        h += 12
    return h * 60 + clock.minute


def _end_minutes(clock: _Clock) -> int:
    if clock.is_midnight:
        return 24 * 60
    return clock.hour * 60 + clock.minute


def _time_spec(mention: _Mention) -> Optional[_TimeSpec]:
    """Convert a time mention to minutes. Returns None when inconsistent."""
    if mention.day_part is not None:
        start, end, _ = _DAY_PARTS[mention.day_part]
        return _TimeSpec(start, end)

    start_c = mention.start_clock
    end_c = mention.end_clock
    if start_c is None:
        return None

    if end_c is None:
        return _TimeSpec(_infer(start_c, mention.hint), None)

    if end_c.explicit and not start_c.explicit:
        end = _end_minutes(end_c)
        earlier = [c for c in _candidates(start_c) if c < end]
        start = max(earlier) if earlier else _infer(start_c, mention.hint)
    elif start_c.explicit and not end_c.explicit:
        start = _infer(start_c, None)
        later = [c for c in _candidates(end_c) if c > start]
        end = min(later) if later else (end_c.hour % 12) * 60 + end_c.minute + 24 * 60
    elif not start_c.explicit and not end_c.explicit:
        start = _infer(start_c, mention.hint)
        later = [c for c in _candidates(end_c) if c > start]
        end = min(later) if later else (end_c.hour % 12) * 60 + end_c.minute + 24 * 60
    else:
        start = _infer(start_c, None)
        end = _end_minutes(end_c)

    if start_c.is_midnight:
        start = 0
    if end <= start:
        return None
    return _TimeSpec(start, end)


# =============================================================================
# SCANNING
# =============================================================================


def _scan(text: str, reference: date) -> list[_Mention]:
    """Find date, time and unresolved mentions in text order."""
    claimed: list[tuple[int, int]] = []
    mentions: list[_Mention] = []

    def free(start: int, end: int) -> bool:
        return all(end <= s or start >= e for s, e in claimed)

    for kind, pattern in _PATTERNS:
        for match in pattern.finditer(text):
            span = match.span()
            if span[0] == span[1] or not free(*span):
                continue
            mention = _to_mention(kind, match, reference)
            if mention is None:
                continue
            claimed.append(span)
            mentions.extend(mention)

    mentions.sort(key=lambda m: m.position)
    return mentions


def _to_mention(kind: str, match: re.Match, reference: date) -> Optional[list[_Mention]]:
    """Build mentions for one match. None means "do not claim this span"."""
    g = match.groupdict()
    pos = match.start()
    text = match.group(0).strip()

    def unresolved(reason: str) -> list[_Mention]:
        return [_Mention("unresolved", pos, text, reason=reason)]

    def dated(*dates: date) -> list[_Mention]:
        return [_Mention("date", pos, text, dates=list(dates))]

    if kind == "iso_date":
        d = _safe_date(int(g["y"]), int(g["mo"]), int(g["d"]))
        return dated(d) if d else unresolved("invalid date")

    if kind == "slash_date":
        d = _month_day(reference, int(g["mo"]), int(g["d"]), g["y"])
        return dated(d) if d else unresolved("invalid date")

    if kind in ("month_day", "day_of_month"):
        d = _month_day(reference, _MONTH_NAMES[g["mon"]], int(g["d"]), g["y"])
        return dated(d) if d else unresolved("invalid date")

    if kind in ("time_between", "time_range"):
        start = _clock(g["ah"], g["am"], g["amer"], g["aword"])
        end = _clock(g["bh"], g["bm"], g["bmer"], g["bword"])
        anchored = kind == "time_between" or bool(g.get("lead"))
        if not anchored and not (
            (start and start.explicit) or (end and end.explicit)
        ):
            # "2 to 3" with nothing marking it as a time is probably a count
            return None
        if start is None or end is None:
            return unresolved("invalid time")
        return [_Mention("time", pos, text, start_clock=start, end_clock=end)]

    if kind == "time":
        clock = _clock(g.get("ah"), g.get("am"), g.get("amer"), g.get("aword"))
        if clock is None:
            return unresolved("invalid time")
        return [_Mention("time", pos, text, start_clock=clock)]

    if kind == "day_range":
        first, last = _DAY_NAMES[g["wd1"]], _DAY_NAMES[g["wd2"]]
        weekdays = [(first + i) % 7 for i in range((last - first) % 7 + 1)]
        return dated(*sorted(_next_weekday(reference, wd) for wd in weekdays))

    if kind == "weekends":
        return dated(*sorted(_next_weekday(reference, wd) for wd in (5, 6)))

    if kind == "weekdays":
        return dated(*sorted(_next_weekday(reference, wd) for wd in range(5)))

    if kind == "day_after_tomorrow":
        return dated(reference + timedelta(days=2))

    if kind == "tomorrow":
        return dated(reference + timedelta(days=1))

    if kind == "today":
        return dated(reference)

    if kind == "tonight":
        return [
            _Mention("date", pos, text, dates=[reference]),
            _Mention("day_part", pos, text, day_part="evening"),
        ]

    if kind == "next_week":
        return dated(reference + timedelta(days=7))

    if kind == "in_n":
        raw = g["n"]
        n = int(raw) if raw.isdigit() else _NUMBER_WORDS[raw]
        days = n * 7 if g["unit"].startswith("week") else n
        return dated(reference + timedelta(days=days))

    if kind == "weekday":
        allow_today = g["mod"] == "this"
        return dated(_next_weekday(reference, _DAY_NAMES[g["wd"]], allow_today=allow_today))

    if kind == "ordinal_day":
        day = int(g["d"])
        candidate = _safe_date(reference.year, reference.month, day)
        if candidate is not None and candidate < reference:
            candidate = None
        if candidate is None:
            year = reference.year + (1 if reference.month == 12 else 0)
            month = 1 if reference.month == 12 else reference.month + 1
            candidate = _safe_date(year, month, day)
        return dated(candidate) if candidate else unresolved("invalid date")

    if kind == "day_part":
        return [_Mention("day_part", pos, text, day_part=g["part"])]

    if kind == "vague":
        return unresolved("vague time reference")

    return None


def _merge_day_parts(mentions: list[_Mention]) -> list[_Mention]:
    """Fold a day part into an adjacent bare time as an am/pm hint.

    "tomorrow morning at 10" and "3 in the afternoon" keep the clock
    time; a day part with no adjacent time stands as its own range.
    """
    merged: list[_Mention] = []
    skip: set[int] = set()
    for i, mention in enumerate(mentions):
        if i in skip:
            continue
        if mention.kind != "day_part":
            merged.append(mention)
            continue
        hint = _DAY_PARTS[mention.day_part][2]
        nxt = mentions[i + 1] if i + 1 < len(mentions) else None
        prev = merged[-1] if merged else None
        if nxt is not None and nxt.kind == "time":
            nxt.hint = nxt.hint or hint
            continue
        if prev is not None and prev.kind == "time" and prev.hint is None:
            prev.hint = hint
            continue
        mention.kind = "time"
        merged.append(mention)
    return merged


# =============================================================================
# PUBLIC API
# =============================================================================


def resolve(
    expression: str,
    reference: datetime,
    timezone: Union[str, tzinfo],
    default_duration: timedelta = DEFAULT_DURATION,
) -> Resolution:
    """Resolve every time mention in an expression.

    Args:
        expression: Free text, e.g. a voice transcript
        reference: The instant "now" means; naive values are read
            as wall time in timezone
        timezone: IANA name or tzinfo that wall times are read in
        default_duration: Length of ranges given only a start time

    Returns:
        Resolution with ranges in mention order (duplicates dropped)
        and the fragments that could not be resolved
    """
    tz = ZoneInfo(timezone) if isinstance(timezone, str) else timezone
    if reference.tzinfo is None:
        local_ref = reference.replace(tzinfo=tz)
    else:
        local_ref = reference.astimezone(tz)
    ref_date = local_ref.date()

    text = _normalize(expression)
    mentions = _merge_day_parts(_scan(text, ref_date))

    result = Resolution()
    slots: list[tuple[date, _Mention]] = []
    pending_dates: list[date] = []
    pending_date_mentions: list[_Mention] = []
    pending_times: list[_Mention] = []
    last_dates: list[date] = []
    last_time: Optional[_Mention] = None
    time_first = False

    for mention in mentions:
        if mention.kind == "unresolved":
            result.unresolved.append(
                UnresolvedFragment(mention.text, mention.reason, mention.position)
            )
        elif mention.kind == "date":
            if pending_times and not pending_dates:
                # "at 3pm tomorrow"
                slots.extend((d, t) for t in pending_times for d in mention.dates)
                last_time = pending_times[-1]
                pending_times = []
                last_dates = list(mention.dates)
                time_first = True
            else:
                pending_dates.extend(mention.dates)
                pending_date_mentions.append(mention)
        elif mention.kind == "time":
            if pending_dates:
                slots.extend((d, mention) for d in pending_dates)
                last_dates = pending_dates
                pending_dates = []
                pending_date_mentions = []
            elif last_dates and not time_first:
                # "tomorrow at 3pm and 5pm"
                slots.extend((d, mention) for d in last_dates)
            else:
                pending_times.append(mention)
                continue
            last_time = mention

    if pending_dates:
        if last_time is not None:
            slots.extend((d, last_time) for d in pending_dates)
        else:
            for mention in pending_date_mentions:
                result.unresolved.append(
                    UnresolvedFragment(mention.text, "no time of day", mention.position)
                )

    bad_date = any(f.reason == "invalid date" for f in result.unresolved)
    floating: list[_Mention] = []
    for mention in pending_times:
        if last_dates:
            slots.extend((d, mention) for d in last_dates)
        elif bad_date:
            # The day it belonged to could not be read; do not guess today
            result.unresolved.append(
                UnresolvedFragment(mention.text, "no valid date", mention.position)
            )
        else:
            floating.append(mention)

    seen: set[tuple[datetime, datetime]] = set()

    def add(day: date, spec: _TimeSpec) -> None:
        midnight = datetime.combine(day, time(0), tzinfo=tz)
        start = midnight + timedelta(minutes=spec.start)
        if spec.end is None:
            end = start + default_duration
        else:
            end = midnight + timedelta(minutes=spec.end)
        key = (start, end)
        if key not in seen:
            seen.add(key)
            result.ranges.append(TimeRange(start, end))

    bad_times: set[int] = set()
    for day, mention in slots:
        spec = _time_spec(mention)
        if spec is None:
            if id(mention) not in bad_times:
                bad_times.add(id(mention))
                result.unresolved.append(
                    UnresolvedFragment(mention.text, "end before start", mention.position)
                )
            continue
        add(day, spec)

    for mention in floating:
        spec = _time_spec(mention)
        if spec is None:
            result.unresolved.append(
                UnresolvedFragment(mention.text, "end before start", mention.position)
            )
            continue
        start = datetime.combine(ref_date, time(0), tzinfo=tz) + timedelta(minutes=spec.start)
        day = ref_date if start > local_ref else ref_date + timedelta(days=1)
        add(day, spec)

    if result.unresolved:
        logger.debug(
            "Dropped unresolved time fragments",
            extra={"context": {
                "fragments": [f.text for f in result.unresolved],
                "resolved": len(result.ranges),
            }},
        )

    return result


def resolve_dates(expression: str, reference: date) -> list[date]:
    """Dates mentioned in an expression, ignoring times of day.

    Used where only a calendar day matters, such as a move-in date.
    Unresolvable fragments are skipped.
    """
    dates: list[date] = []
    for mention in _scan(_normalize(expression), reference):
        if mention.kind == "date":
            dates.extend(d for d in mention.dates if d not in dates)
    return dates
