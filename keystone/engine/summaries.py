"""Category summary generation.

Summaries are a deterministic aggregate of the responses behind them:

    "3 responses on price: Too expensive for the area | 10% less | As listed"

Up to five most recent distinct texts are shown, newest first, with
"(+k more)" when some are left out. The same responses always give the
same text.
"""

from typing import Iterable

from keystone.db.models import FeedbackCategory, Response

MAX_QUOTED = 5
SEPARATOR = " | "


def build_summary(category: FeedbackCategory, responses: Iterable[Response]) -> str:
    """Summarize responses for one category.

    Args:
        category: Category summarized
        responses: Backing responses, oldest first

    Returns:
        Summary text (empty string when there are no responses)
    """
    items = list(responses)
    if not items:
        return ""

    distinct: list[str] = []
    seen: set[str] = set()
    for response in reversed(items):
        text = " ".join(response.text.split())
        key = text.lower()
        if not text or key in seen:
            continue
        seen.add(key)
        distinct.append(text)

    count = len(items)
    noun = "response" if count == 1 else "responses"
    label = FeedbackCategory(category).value
    summary = f"{count} {noun} on {label}: " + SEPARATOR.join(distinct[:MAX_QUOTED])
    hidden = len(distinct) - MAX_QUOTED
    if hidden > 0:
        summary += f" (+{hidden} more)"
    return summary
