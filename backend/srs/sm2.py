"""SM-2 spaced repetition scheduler.

A variant of the classic SuperMemo-2 algorithm tuned for explanation
practice, where answers are graded on a 1-5 scale:

- 1-2: Lapse. The card comes back tomorrow and its streak of successful
  reviews restarts. Unlike textbook SM-2, the ease factor is left alone.
- 3: Adequate. Counts as a success, but nudges the ease factor down.
- 4-5: Good/Excellent. Intervals grow, and a 5 raises the ease factor.

Key concepts:
- Ease factor (EF): Multiplier applied to the interval once a card has
  graduated past its first two reviews. Never drops below 1.3.
- Interval: Days until the next review, capped at one year.
- Repetitions: Consecutive successful reviews since the last lapse.
"""

import math
from dataclasses import dataclass, replace
from datetime import datetime, timedelta

from backend.config import utcnow

DEFAULT_EASE_FACTOR = 2.5
MIN_EASE_FACTOR = 1.3
MAX_INTERVAL_DAYS = 365

MIN_SCORE = 1
MAX_SCORE = 5
PASSING_SCORE = 3

# Fixed intervals for the first two successful reviews
FIRST_INTERVAL_DAYS = 1
SECOND_INTERVAL_DAYS = 3

# A card counts as mastered once its interval exceeds a week
MASTERED_INTERVAL_DAYS = 7


class InvalidScoreError(ValueError):
    """Raised when a review score is not an integer between 1 and 5."""

    def __init__(self, score: object) -> None:
        super().__init__(f"Score must be an integer from {MIN_SCORE} to {MAX_SCORE}, got {score!r}")
        self.score = score


@dataclass(frozen=True)
class CardSchedule:
    """The spaced-repetition state of a single question."""

    question_id: str
    next_review_date: datetime  # Naive UTC; the card is due once now >= this
    ease_factor: float = DEFAULT_EASE_FACTOR
    interval: int = 0  # Days
    repetitions: int = 0  # Successful reviews since the last lapse

    def is_due(self, now: datetime) -> bool:
        return self.next_review_date <= now


def validate_score(score: object) -> int:
    """Return the score if it is a valid 1-5 integer, else raise InvalidScoreError."""
    if isinstance(score, bool) or not isinstance(score, int):
        raise InvalidScoreError(score)
    if not MIN_SCORE <= score <= MAX_SCORE:
        raise InvalidScoreError(score)
    return score


def initial_schedule(question_id: str, now: datetime | None = None) -> CardSchedule:
    """Create the schedule for a question that has never been reviewed.

    The card is due immediately.
    """
    return CardSchedule(question_id=question_id, next_review_date=now or utcnow())


def compute_next_schedule(
    score: int,
    current: CardSchedule,
    now: datetime | None = None,
) -> CardSchedule:
    """Apply a review score to a schedule and return the updated schedule.

    Args:
        score: Review score (1-5). Anything else raises InvalidScoreError.
        current: The card's schedule before this review.
        now: When the review happened (defaults to now).

    Returns:
        A new CardSchedule; ``current`` is not modified.
    """
    score = validate_score(score)
    now = now or utcnow()

    ease_factor = current.ease_factor
    repetitions = current.repetitions

    if score < PASSING_SCORE:
        repetitions = 0
        interval = FIRST_INTERVAL_DAYS
    else:
        repetitions += 1
        if repetitions == 1:
            interval = FIRST_INTERVAL_DAYS
        elif repetitions == 2:
            interval = SECOND_INTERVAL_DAYS
        else:
            interval = _round_half_up(current.interval * ease_factor)

        ease_factor = _next_ease_factor(ease_factor, score)

    interval = min(interval, MAX_INTERVAL_DAYS)

    return replace(
        current,
        next_review_date=now + timedelta(days=interval),
        ease_factor=ease_factor,
        interval=interval,
        repetitions=repetitions,
    )


def _next_ease_factor(ease_factor: float, score: int) -> float:
    """EF' = EF + (0.1 - (5 - q) * (0.08 + (5 - q) * 0.02)), floored at 1.3."""
    miss = MAX_SCORE - score
    return max(MIN_EASE_FACTOR, ease_factor + (0.1 - miss * (0.08 + miss * 0.02)))


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def is_mastered(schedule: CardSchedule) -> bool:
    """Return True if the card's interval is longer than a week."""
    return schedule.interval > MASTERED_INTERVAL_DAYS


def mastery_level(schedule: CardSchedule) -> str:
    """Describe how well a card is known, from New to Mastered."""
    if schedule.repetitions == 0:
        return "New"
    if schedule.interval <= 1:
        return "Learning"
    if not is_mastered(schedule):
        return "Reviewing"
    if schedule.interval <= 30:
        return "Familiar"
    return "Mastered"


def next_review_text(schedule: CardSchedule, now: datetime | None = None) -> str:
    """Human-readable time until the card is next due."""
    now = now or utcnow()
    diff_days = math.ceil((schedule.next_review_date - now).total_seconds() / 86400)

    if diff_days <= 0:
        return "Due now"
    if diff_days == 1:
        return "Due tomorrow"
    if diff_days < 7:
        return f"Due in {diff_days} days"
    if diff_days < 30:
        weeks = _round_half_up(diff_days / 7)
        return f"Due in {weeks} week{'s' if weeks > 1 else ''}"
    months = _round_half_up(diff_days / 30)
    return f"Due in {months} month{'s' if months > 1 else ''}"
