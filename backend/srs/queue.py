"""Due-card selection for practice sessions.

Orders the cards that are due by the learner's category preferences,
then by how long they have been waiting.
"""

import logging
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from backend import repository
from backend.config import settings, utcnow
from backend.srs.categories import Category
from backend.srs.preferences import UserPreferences
from backend.srs.sm2 import CardSchedule

logger = logging.getLogger(__name__)

CategoryLookup = Mapping[str, Category] | Callable[[str], Category | None]


def select_due_cards(
    schedules: Iterable[CardSchedule],
    category_of: CategoryLookup,
    preferences: UserPreferences,
    now: datetime,
) -> list[CardSchedule]:
    """Return the schedules due at ``now``, in review order.

    Cards in a preferred category come first, ordered by the category's
    position in the preference list and then by due date. All other cards
    follow in due-date order. A card whose category can't be looked up is
    treated as "other". Ties fall back to the question id, so the same
    input always yields the same order.

    Args:
        schedules: Every known card schedule.
        category_of: Question id -> category, as a mapping or a callable.
        preferences: The learner's ranked categories.
        now: The reference time for "due".

    Returns:
        The due schedules, most urgent first.
    """
    lookup = category_of.get if isinstance(category_of, Mapping) else category_of

    def sort_key(schedule: CardSchedule) -> tuple[int, int, datetime, str]:
        priority = preferences.priority_of(lookup(schedule.question_id))
        if priority is None:
            return (1, 0, schedule.next_review_date, schedule.question_id)
        return (0, priority, schedule.next_review_date, schedule.question_id)

    due = [s for s in schedules if s.is_due(now)]
    return sorted(due, key=sort_key)


@dataclass
class ReviewQueue:
    """A prepared queue of cards for a practice session."""

    cards: list[CardSchedule] = field(default_factory=list)
    total_due: int = 0

    @property
    def total(self) -> int:
        return len(self.cards)


async def build_queue(
    session: AsyncSession,
    preferences: UserPreferences | None = None,
    now: datetime | None = None,
    limit: int | None = None,
) -> ReviewQueue:
    """Build a practice queue from every stored schedule.

    Args:
        session: Database session.
        preferences: Category priorities (defaults to the stored preferences).
        now: Current time (defaults to utcnow).
        limit: Max cards in the queue (defaults to the session limit setting).

    Returns:
        A ReviewQueue of the most urgent due cards.

    Raises:
        ValueError: If ``limit`` is less than 1.
    """
    now = now or utcnow()
    limit = settings.max_cards_per_session if limit is None else limit
    if limit < 1:
        raise ValueError(f"Queue limit must be at least 1, got {limit}")
    if preferences is None:
        preferences = await repository.get_preferences(session)

    schedules = await repository.list_card_schedules(session)
    categories = await repository.category_lookup(session)

    due = select_due_cards(schedules, categories, preferences, now)
    queue = ReviewQueue(cards=due[:limit], total_due=len(due))

    logger.info(
        "Built queue: %d of %d due cards (%d scheduled)",
        queue.total,
        queue.total_due,
        len(schedules),
    )
    return queue
