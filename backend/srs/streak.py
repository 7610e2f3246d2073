"""Practice streaks and per-session statistics.

A streak counts consecutive calendar days with at least one finished
practice session. Dates are compared by calendar day only, so several
sessions on the same day count once.
"""

from dataclasses import dataclass, replace
from datetime import date, datetime, timedelta


@dataclass(frozen=True)
class StreakState:
    """Consecutive-day practice streak."""

    current_streak: int = 0
    longest_streak: int = 0
    last_practice_date: date | None = None


def record_session_end(stats: StreakState, session_date: date | datetime) -> StreakState:
    """Fold a finished session into the streak.

    Args:
        stats: Streak before the session.
        session_date: Local calendar date of the session. A datetime is
            reduced to its date.

    Returns:
        The updated streak. Unchanged if a session was already recorded
        on ``session_date``.
    """
    if isinstance(session_date, datetime):
        session_date = session_date.date()

    last = stats.last_practice_date
    if last == session_date:
        return stats

    if last is not None and session_date == last + timedelta(days=1):
        current = stats.current_streak + 1
    else:
        # First session ever, a missed day, or a clock that moved backwards
        current = 1

    return StreakState(
        current_streak=current,
        longest_streak=max(stats.longest_streak, current),
        last_practice_date=session_date,
    )


@dataclass(frozen=True)
class SessionStats:
    """Running totals for one practice session."""

    cards_reviewed: int = 0
    total_score: int = 0
    lapses: int = 0

    @property
    def average_score(self) -> float:
        """Mean score, rounded to one decimal (0.0 before any review)."""
        if self.cards_reviewed == 0:
            return 0.0
        return round(self.total_score / self.cards_reviewed, 1)

    def record(self, score: int) -> "SessionStats":
        """Return stats with one more reviewed card."""
        return replace(
            self,
            cards_reviewed=self.cards_reviewed + 1,
            total_score=self.total_score + score,
            lapses=self.lapses + (1 if score < 3 else 0),
        )
