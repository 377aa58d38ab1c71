"""Fuzzy title matching between generated tasks and calendar events."""
from typing import Optional, Sequence

from app.services.timeline_schema import CalendarEventSignal

DEFAULT_THRESHOLD = 0.8
DEFAULT_MIN_LENGTH = 10


def levenshtein_distance(a: str, b: str) -> int:
    """Edit distance with unit insert/delete/substitute cost."""
    if a == b:
        return 0
    if not a:
        return len(b)
    if not b:
        return len(a)

    previous = list(range(len(b) + 1))
    for i, char_a in enumerate(a, start=1):
        current = [i] + [0] * len(b)
        for j, char_b in enumerate(b, start=1):
            cost = 0 if char_a == char_b else 1
            current[j] = min(
                previous[j] + 1,
                current[j - 1] + 1,
                previous[j - 1] + cost,
            )
        previous = current
    return previous[len(b)]


def similarity(a: str, b: str) -> float:
    """
    Normalised similarity in [0, 1].

    1.0 for identical strings (including two empty strings), 0.0 when
    exactly one string is empty.
    """
    longest = max(len(a), len(b))
    if longest == 0:
        return 1.0
    return (longest - levenshtein_distance(a, b)) / longest


def match_event_to_task(
    task_title: str,
    events: Sequence[CalendarEventSignal],
    threshold: float = DEFAULT_THRESHOLD,
    min_length: int = DEFAULT_MIN_LENGTH,
) -> Optional[CalendarEventSignal]:
    """
    Return the first event (in input order) whose title is similar to the task title.

    Titles are compared case-insensitively after stripping. Short titles
    never match because edit distance is unreliable on them.

    Args:
        task_title: Title of the generated task
        events: Candidate calendar events
        threshold: Minimum similarity
        min_length: Minimum length of both titles

    Returns:
        Matching event or None
    """
    task_key = (task_title or "").strip().lower()
    if len(task_key) < min_length:
        return None

    for event in events:
        event_key = (event.title or "").strip().lower()
        if len(event_key) < min_length:
            continue
        if similarity(task_key, event_key) >= threshold:
            return event
    return None
