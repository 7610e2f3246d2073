"""Persistence for schedules, streaks, preferences and review history.

Translates between ORM rows and the immutable values the SRS core works
with. Functions add and flush but never commit; the caller owns the
transaction so that one review is written as one unit.
"""

import json
import logging
import uuid
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime, timedelta

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from backend.config import settings, utcnow
from backend.models.card import Card
from backend.models.concept_gap import ConceptGap
from backend.models.practice_session import PracticeSession
from backend.models.preferences import Preferences
from backend.models.question import Question
from backend.models.review_record import ReviewRecord
from backend.models.user_stats import UserStats
from backend.srs.categories import Category, Difficulty, parse_category
from backend.srs.preferences import UserPreferences, default_preferences
from backend.srs.sm2 import (
    DEFAULT_EASE_FACTOR,
    MASTERED_INTERVAL_DAYS,
    CardSchedule,
    initial_schedule,
)
from backend.srs.streak import StreakState

logger = logging.getLogger(__name__)

STATS_ROW_ID = 1
PREFERENCES_ROW_ID = 1

# SQL form of sm2.is_mastered, for counting mastered cards in queries
MASTERED = Card.interval > MASTERED_INTERVAL_DAYS


# --- Card schedules ---


def _to_schedule(card: Card) -> CardSchedule:
    return CardSchedule(
        question_id=card.question_id,
        next_review_date=card.next_review_date,
        ease_factor=card.ease_factor,
        interval=card.interval,
        repetitions=card.repetitions,
    )


async def get_card_schedule(session: AsyncSession, question_id: str) -> CardSchedule | None:
    card = await session.get(Card, question_id)
    return _to_schedule(card) if card else None


async def put_card_schedule(session: AsyncSession, schedule: CardSchedule) -> None:
    """Insert or overwrite the stored schedule for a question."""
    card = await session.get(Card, schedule.question_id)
    if card is None:
        card = Card(question_id=schedule.question_id)
        session.add(card)
    card.next_review_date = schedule.next_review_date
    card.ease_factor = schedule.ease_factor
    card.interval = schedule.interval
    card.repetitions = schedule.repetitions
    await session.flush()


async def list_card_schedules(session: AsyncSession) -> list[CardSchedule]:
    """Return every schedule whose question still exists."""
    stmt = select(Card).join(Question, Card.question_id == Question.id)
    result = await session.execute(stmt)
    return [_to_schedule(card) for card in result.scalars().all()]


async def category_lookup(session: AsyncSession) -> dict[str, Category]:
    """Map each question id to its category."""
    result = await session.execute(select(Question.id, Question.category))
    return {question_id: parse_category(category) for question_id, category in result.all()}


# --- Streak and counters ---


async def _stats_row(session: AsyncSession) -> UserStats:
    row = await session.get(UserStats, STATS_ROW_ID)
    if row is None:
        row = UserStats(
            id=STATS_ROW_ID,
            total_reviews=0,
            current_streak=0,
            longest_streak=0,
            last_practice_date=None,
        )
        session.add(row)
        await session.flush()
    return row


async def get_streak_state(session: AsyncSession) -> StreakState:
    row = await session.get(UserStats, STATS_ROW_ID)
    if row is None:
        return StreakState()
    return StreakState(
        current_streak=row.current_streak,
        longest_streak=row.longest_streak,
        last_practice_date=row.last_practice_date,
    )


async def put_streak_state(session: AsyncSession, state: StreakState) -> None:
    row = await _stats_row(session)
    row.current_streak = state.current_streak
    row.longest_streak = state.longest_streak
    row.last_practice_date = state.last_practice_date
    await session.flush()


async def get_total_reviews(session: AsyncSession) -> int:
    row = await session.get(UserStats, STATS_ROW_ID)
    return row.total_reviews if row else 0


async def increment_total_reviews(session: AsyncSession) -> int:
    row = await _stats_row(session)
    row.total_reviews += 1
    await session.flush()
    return row.total_reviews


# --- Preferences ---


async def get_preferences(session: AsyncSession) -> UserPreferences:
    """Return the stored category preferences, or the defaults if none are saved."""
    row = await session.get(Preferences, PREFERENCES_ROW_ID)
    if row is None:
        return default_preferences()
    try:
        categories = json.loads(row.preferred_categories or "[]")
        difficulties = json.loads(row.preferred_difficulties or "{}")
    except json.JSONDecodeError:
        logger.warning("Stored preferences are not valid JSON, using defaults")
        return default_preferences()
    return UserPreferences.from_raw(categories, difficulties)


async def save_preferences(session: AsyncSession, preferences: UserPreferences) -> None:
    row = await session.get(Preferences, PREFERENCES_ROW_ID)
    if row is None:
        row = Preferences(id=PREFERENCES_ROW_ID, onboarding_completed_at=utcnow())
        session.add(row)
    row.preferred_categories = json.dumps([c.value for c in preferences.preferred_categories])
    row.preferred_difficulties = json.dumps(
        {c.value: d.value for c, d in preferences.preferred_difficulties.items()}
    )
    await session.flush()


# --- Questions ---


def key_concepts_of(question: Question) -> list[str]:
    try:
        concepts = json.loads(question.key_concepts or "[]")
    except json.JSONDecodeError:
        return []
    return [str(c) for c in concepts] if isinstance(concepts, list) else []


async def add_question(
    session: AsyncSession,
    prompt: str,
    category: Category,
    difficulty: Difficulty,
    key_concepts: Iterable[str],
    is_custom: bool = True,
    now: datetime | None = None,
) -> Question:
    """Add a question together with its initial (due now) schedule."""
    question = Question(
        id=str(uuid.uuid4()),
        prompt=prompt,
        category=category.value,
        difficulty=difficulty.value,
        key_concepts=json.dumps(list(key_concepts)),
        is_custom=is_custom,
    )
    session.add(question)
    await session.flush()
    await put_card_schedule(session, initial_schedule(question.id, now))
    logger.debug("Added question %s (%s)", question.id, category.value)
    return question


async def get_question(session: AsyncSession, question_id: str) -> Question | None:
    return await session.get(Question, question_id)


async def find_question_by_prompt(session: AsyncSession, prompt: str) -> Question | None:
    stmt = select(Question).where(Question.prompt == prompt).limit(1)
    return (await session.execute(stmt)).scalar_one_or_none()


async def list_questions(
    session: AsyncSession,
    category: Category | None = None,
) -> list[Question]:
    stmt = select(Question).order_by(Question.created_at.asc(), Question.id.asc())
    if category is not None:
        stmt = stmt.where(Question.category == category.value)
    return list((await session.execute(stmt)).scalars().all())


async def _delete_questions(session: AsyncSession, ids: list[str]) -> None:
    await session.execute(delete(Card).where(Card.question_id.in_(ids)))
    await session.execute(delete(ReviewRecord).where(ReviewRecord.question_id.in_(ids)))
    await session.execute(delete(Question).where(Question.id.in_(ids)))


async def delete_question(session: AsyncSession, question_id: str) -> bool:
    """Delete a question with its schedule and review history.

    Returns False if no such question exists.
    """
    if await session.get(Question, question_id) is None:
        return False
    await _delete_questions(session, [question_id])
    logger.info("Deleted question %s", question_id)
    return True


async def delete_custom_questions(session: AsyncSession) -> int:
    """Delete learner-added questions along with their schedules and history."""
    ids = list(
        (await session.execute(select(Question.id).where(Question.is_custom.is_(True)))).scalars()
    )
    if not ids:
        return 0
    await _delete_questions(session, ids)
    logger.info("Deleted %d custom questions", len(ids))
    return len(ids)


# --- Review history ---


async def add_review_record(
    session: AsyncSession,
    question_id: str,
    user_answer: str,
    score: int,
    *,
    feedback: str = "",
    covered_well: str = "",
    missing: str = "",
    missed_concepts: Iterable[str] = (),
    model_answer: str = "",
    answer_type: str = "text",
    reviewed_at: datetime | None = None,
) -> ReviewRecord:
    """Log a graded answer and bump the total review counter."""
    record = ReviewRecord(
        question_id=question_id,
        user_answer=user_answer,
        answer_type=answer_type,
        score=score,
        ai_feedback=feedback,
        what_covered_well=covered_well,
        what_missing=missing,
        missed_concepts=json.dumps(list(missed_concepts)),
        model_answer=model_answer,
        reviewed_at=reviewed_at or utcnow(),
    )
    session.add(record)
    await increment_total_reviews(session)
    return record


async def review_history(
    session: AsyncSession,
    question_id: str | None = None,
    limit: int = 20,
) -> list[ReviewRecord]:
    stmt = select(ReviewRecord).order_by(ReviewRecord.reviewed_at.desc()).limit(limit)
    if question_id is not None:
        stmt = stmt.where(ReviewRecord.question_id == question_id)
    return list((await session.execute(stmt)).scalars().all())


async def update_concept_gaps(
    session: AsyncSession,
    missed_concepts: Iterable[str],
    question_id: str,
    category: Category,
    now: datetime | None = None,
) -> None:
    """Count each missed concept against the question it was missed on."""
    now = now or utcnow()
    for concept in dict.fromkeys(c.strip() for c in missed_concepts if c and c.strip()):
        gap = await session.get(ConceptGap, concept)
        if gap is None:
            session.add(
                ConceptGap(
                    concept=concept,
                    category=category.value,
                    missed_count=1,
                    last_missed_at=now,
                    question_ids=json.dumps([question_id]),
                )
            )
            continue
        question_ids = json.loads(gap.question_ids or "[]")
        if question_id not in question_ids:
            question_ids.append(question_id)
        gap.missed_count += 1
        gap.last_missed_at = now
        gap.question_ids = json.dumps(question_ids)
    await session.flush()


async def top_concept_gaps(session: AsyncSession, limit: int = 10) -> list[ConceptGap]:
    stmt = (
        select(ConceptGap)
        .order_by(ConceptGap.missed_count.desc(), ConceptGap.last_missed_at.desc())
        .limit(limit)
    )
    return list((await session.execute(stmt)).scalars().all())


# --- Practice sessions ---


async def start_practice_session(
    session: AsyncSession,
    duration_minutes: int | None = None,
    now: datetime | None = None,
) -> str:
    practice = PracticeSession(
        id=str(uuid.uuid4()),
        started_at=now or utcnow(),
        duration_minutes=duration_minutes or settings.session_duration_minutes,
        cards_reviewed=0,
        average_score=0.0,
        was_completed=False,
    )
    session.add(practice)
    await session.flush()
    return practice.id


async def end_practice_session(
    session: AsyncSession,
    session_id: str,
    cards_reviewed: int,
    average_score: float,
    was_completed: bool = True,
    now: datetime | None = None,
) -> None:
    practice = await session.get(PracticeSession, session_id)
    if practice is None:
        logger.warning("Practice session %s not found, nothing to close", session_id)
        return
    practice.ended_at = now or utcnow()
    practice.cards_reviewed = cards_reviewed
    practice.average_score = average_score
    practice.was_completed = was_completed
    await session.flush()


async def recent_sessions(session: AsyncSession, limit: int = 10) -> list[PracticeSession]:
    stmt = (
        select(PracticeSession)
        .where(PracticeSession.ended_at.is_not(None))
        .order_by(PracticeSession.started_at.desc())
        .limit(limit)
    )
    return list((await session.execute(stmt)).scalars().all())


# --- Aggregates ---


@dataclass
class CategoryStats:
    category: Category
    total_questions: int = 0
    reviewed_count: int = 0
    average_score: float = 0.0
    mastered_count: int = 0


async def category_stats(session: AsyncSession) -> list[CategoryStats]:
    """Per-category question counts, average score and mastered cards."""
    stats: dict[Category, CategoryStats] = {}

    def entry(raw: str) -> CategoryStats:
        category = parse_category(raw)
        return stats.setdefault(category, CategoryStats(category=category))

    totals = await session.execute(
        select(Question.category, func.count(Question.id)).group_by(Question.category)
    )
    for raw, count in totals.all():
        entry(raw).total_questions += count

    reviewed = await session.execute(
        select(
            Question.category,
            func.count(func.distinct(ReviewRecord.question_id)),
            func.sum(ReviewRecord.score),
            func.count(ReviewRecord.id),
        )
        .join(Question, ReviewRecord.question_id == Question.id)
        .group_by(Question.category)
    )
    score_totals: dict[Category, tuple[int, int]] = {}
    for raw, distinct_count, score_sum, review_count in reviewed.all():
        item = entry(raw)
        item.reviewed_count += distinct_count
        prev_sum, prev_count = score_totals.get(item.category, (0, 0))
        score_totals[item.category] = (prev_sum + (score_sum or 0), prev_count + review_count)

    mastered = await session.execute(
        select(Question.category, func.count(Card.question_id))
        .join(Question, Card.question_id == Question.id)
        .where(MASTERED)
        .group_by(Question.category)
    )
    for raw, count in mastered.all():
        entry(raw).mastered_count += count

    for category, (score_sum, review_count) in score_totals.items():
        if review_count:
            stats[category].average_score = round(score_sum / review_count, 1)

    order = {category: i for i, category in enumerate(Category)}
    return sorted(stats.values(), key=lambda s: order[s.category])


async def count_due_cards(session: AsyncSession, now: datetime | None = None) -> int:
    stmt = (
        select(func.count(Card.question_id))
        .join(Question, Card.question_id == Question.id)
        .where(Card.next_review_date <= (now or utcnow()))
    )
    return (await session.execute(stmt)).scalar() or 0


async def count_questions(session: AsyncSession) -> int:
    return (await session.execute(select(func.count(Question.id)))).scalar() or 0


async def count_mastered(session: AsyncSession) -> int:
    stmt = select(func.count(Card.question_id)).where(MASTERED)
    return (await session.execute(stmt)).scalar() or 0


async def weekly_review_count(session: AsyncSession, now: datetime | None = None) -> int:
    since = (now or utcnow()) - timedelta(days=7)
    stmt = select(func.count(ReviewRecord.id)).where(ReviewRecord.reviewed_at >= since)
    return (await session.execute(stmt)).scalar() or 0


async def average_score_since(session: AsyncSession, since: datetime) -> float:
    stmt = select(func.avg(ReviewRecord.score)).where(ReviewRecord.reviewed_at >= since)
    avg = (await session.execute(stmt)).scalar()
    return round(float(avg), 1) if avg else 0.0


# --- Reset ---


async def reset_all_progress(session: AsyncSession, now: datetime | None = None) -> None:
    """Wipe review history and put every card back to a fresh, due-now schedule.

    Questions and preferences survive. The longest streak is kept as a
    historical record.
    """
    now = now or utcnow()
    await session.execute(delete(ReviewRecord))
    await session.execute(delete(ConceptGap))
    await session.execute(delete(PracticeSession))

    row = await _stats_row(session)
    row.total_reviews = 0
    row.current_streak = 0
    row.last_practice_date = None

    await session.execute(
        update(Card).values(
            {
                Card.next_review_date: now,
                Card.ease_factor: DEFAULT_EASE_FACTOR,
                Card.interval: 0,
                Card.repetitions: 0,
            }
        )
    )
    await session.flush()
    logger.info("Reset all progress")
