"""
Anti-cheat checks.
Stateless heuristics for duplicate titles, rapid completions and spam.
"""
from datetime import datetime, timedelta
from typing import Iterable, Optional, Sequence, Tuple, Union

from focusup.constants import (
    DUPLICATE_WINDOW_HOURS,
    DUPLICATE_MAX_DISTANCE,
    DUPLICATE_MIN_TITLE_LENGTH,
    RAPID_COMPLETION_COUNT,
    RAPID_COMPLETION_SECONDS,
    GENERIC_TITLE_MIN_LENGTH,
    GENERIC_TITLES,
    SPAM_WEIGHT_DUPLICATE,
    SPAM_WEIGHT_RAPID,
    SPAM_WEIGHT_GENERIC,
    SPAM_WEIGHT_VOLUME,
    SPAM_VOLUME_THRESHOLD,
)

# A recent title is either a bare string or (title, created_at)
RecentTitle = Union[str, Tuple[str, datetime]]


def normalize_title(title: str) -> str:
    """Lowercase, trim and collapse internal whitespace"""
    return " ".join((title or "").lower().split())


def levenshtein_distance(a: str, b: str) -> int:
    """Edit distance with unit cost for insert, delete and substitute"""
    if len(a) < len(b):
        a, b = b, a

    previous = list(range(len(b) + 1))
    for i, char_a in enumerate(a, start=1):
        current = [i]
        for j, char_b in enumerate(b, start=1):
            cost = 0 if char_a == char_b else 1
            current.append(min(
                previous[j] + 1,
                current[j - 1] + 1,
                previous[j - 1] + cost
            ))
        previous = current
    return previous[-1]


def is_duplicate_title(
    new_title: str,
    recent_titles: Iterable[RecentTitle],
    window: timedelta = timedelta(hours=DUPLICATE_WINDOW_HOURS),
    now: Optional[datetime] = None
) -> bool:
    """
    Check if a title repeats one of the recent titles.

    Duplicate when the normalized titles match exactly, or when the
    edit distance is below 3 and the new title is longer than 5 characters.
    Timestamped entries older than the window are ignored.

    Args:
        new_title: Title being completed
        recent_titles: Strings or (title, created_at) pairs
        window: How far back timestamped entries count
        now: Reference time (defaults to datetime.now())

    Returns:
        True if the title is a duplicate
    """
    now = now or datetime.now()
    cutoff = now - window
    candidate = normalize_title(new_title)

    for entry in recent_titles:
        if isinstance(entry, str):
            existing = entry
        else:
            existing, created_at = entry
            if created_at is not None and created_at <= cutoff:
                continue

        existing = normalize_title(existing)

        if candidate == existing:
            return True

        if (len(candidate) > DUPLICATE_MIN_TITLE_LENGTH
                and levenshtein_distance(candidate, existing) < DUPLICATE_MAX_DISTANCE):
            return True

    return False


def is_rapid_completion(timestamps: Sequence[datetime]) -> bool:
    """
    Detect bot-like completion bursts.

    True when at least 5 completions exist and the last 5 span
    less than 60 seconds. Timestamps are expected oldest first.
    """
    if len(timestamps) < RAPID_COMPLETION_COUNT:
        return False

    last = list(timestamps)[-RAPID_COMPLETION_COUNT:]
    span = max(last) - min(last)
    return span < timedelta(seconds=RAPID_COMPLETION_SECONDS)


def is_generic_title(title: str) -> bool:
    normalized = normalize_title(title)
    return normalized in GENERIC_TITLES or len(normalized) < GENERIC_TITLE_MIN_LENGTH


def spam_score(
    is_duplicate: bool,
    is_rapid: bool,
    is_generic: bool,
    completions_today: int
) -> float:
    """
    Composite spam score (0 = legit, 1 = definite spam).

    +0.3 duplicate, +0.3 rapid, +0.2 generic, +0.2 when more than
    20 completions today; capped at 1.0.
    """
    score = 0.0

    if is_duplicate:
        score += SPAM_WEIGHT_DUPLICATE
    if is_rapid:
        score += SPAM_WEIGHT_RAPID
    if is_generic:
        score += SPAM_WEIGHT_GENERIC
    if completions_today > SPAM_VOLUME_THRESHOLD:
        score += SPAM_WEIGHT_VOLUME

    return min(1.0, round(score, 2))
