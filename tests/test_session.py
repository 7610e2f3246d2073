"""Tests for the practice session flow (LLM mocked)."""

import json
from datetime import date, datetime, timedelta
from unittest.mock import MagicMock

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from backend import repository
from backend.config import settings
from backend.llm_client import LLMUnavailableError
from backend.srs.categories import Category, Difficulty
from backend.srs.sm2 import InvalidScoreError
from backend.srs.session import SessionExpiredError, start_session
from backend.srs.streak import StreakState

NOW = datetime(2025, 1, 10, 12, 0, 0)


async def _seed(db: AsyncSession, count: int = 2) -> list[str]:
    ids = []
    for i in range(count):
        question = await repository.add_question(
            db,
            prompt=f"Explain concept {i}.",
            category=Category.STATISTICS,
            difficulty=Difficulty.BEGINNER,
            key_concepts=["mean", "variance"],
            now=NOW - timedelta(days=count - i),
        )
        ids.append(question.id)
    await db.commit()
    return ids


@pytest.mark.asyncio
async def test_self_graded_session(db: AsyncSession) -> None:
    ids = await _seed(db)

    review = await start_session(db, now=NOW)
    assert review.queue.total == 2
    assert review.remaining == 2

    card = await review.get_next(db, now=NOW)
    assert card is not None
    assert card.question.id == ids[0]
    assert card.key_concepts == ["mean", "variance"]

    outcome = await review.submit_answer(db, card, "An answer.", score=5, now=NOW)
    assert outcome.score == 5
    assert outcome.previous.repetitions == 0
    assert outcome.schedule.repetitions == 1
    assert outcome.schedule.next_review_date == NOW + timedelta(days=1)
    assert outcome.evaluation is None
    assert review.remaining == 1

    card = await review.get_next(db, now=NOW)
    assert card is not None
    await review.submit_answer(db, card, "Another answer.", score=2, now=NOW)
    assert review.is_complete
    assert await review.get_next(db, now=NOW) is None

    streak = await review.end(db, today=date(2025, 1, 10))
    assert streak == StreakState(1, 1, date(2025, 1, 10))
    assert review.stats.cards_reviewed == 2
    assert review.stats.average_score == 3.5
    assert review.stats.lapses == 1

    assert await repository.get_total_reviews(db) == 2
    stored = await repository.get_card_schedule(db, ids[0])
    assert stored is not None
    assert stored.repetitions == 1
    [practice] = await repository.recent_sessions(db)
    assert practice.was_completed
    assert practice.cards_reviewed == 2


@pytest.mark.asyncio
async def test_llm_graded_answer_records_gaps(db: AsyncSession) -> None:
    await _seed(db, 1)
    llm = MagicMock()
    llm.create_message.return_value = json.dumps(
        {
            "score": 3,
            "whatWasCoveredWell": "Mean.",
            "whatWasMissing": "Variance.",
            "missedConcepts": ["variance"],
            "modelAnswer": "...",
            "fullFeedback": "Cover variance next time.",
        }
    )

    review = await start_session(db, now=NOW)
    card = await review.get_next(db, now=NOW)
    assert card is not None
    outcome = await review.submit_answer(db, card, "The mean is the average.", llm=llm, now=NOW)

    assert outcome.score == 3
    assert outcome.evaluation is not None
    assert outcome.evaluation.missed_concepts == ["variance"]
    [gap] = await repository.top_concept_gaps(db)
    assert gap.concept == "variance"
    [record] = await repository.review_history(db)
    assert record.ai_feedback == "Cover variance next time."


@pytest.mark.asyncio
async def test_invalid_score_leaves_card_untouched(db: AsyncSession) -> None:
    [question_id] = await _seed(db, 1)
    review = await start_session(db, now=NOW)
    card = await review.get_next(db, now=NOW)
    assert card is not None

    with pytest.raises(InvalidScoreError):
        await review.submit_answer(db, card, "An answer.", score=6, now=NOW)

    assert review.remaining == 1
    assert await repository.get_total_reviews(db) == 0
    stored = await repository.get_card_schedule(db, question_id)
    assert stored is not None
    assert stored.repetitions == 0


@pytest.mark.asyncio
async def test_no_score_and_no_llm(db: AsyncSession) -> None:
    await _seed(db, 1)
    review = await start_session(db, now=NOW)
    card = await review.get_next(db, now=NOW)
    assert card is not None

    with pytest.raises(LLMUnavailableError):
        await review.submit_answer(db, card, "An answer.", now=NOW)


@pytest.mark.asyncio
async def test_skip_and_limit(db: AsyncSession) -> None:
    await _seed(db, 3)
    review = await start_session(db, now=NOW, limit=2)
    assert review.queue.total == 2
    assert review.queue.total_due == 3

    review.skip()
    review.skip()
    assert review.is_complete
    review.skip()
    assert review.remaining == 0


@pytest.mark.asyncio
async def test_empty_session_does_not_count_toward_streak(db: AsyncSession) -> None:
    await repository.put_streak_state(db, StreakState(2, 4, date(2025, 1, 9)))
    await db.commit()

    review = await start_session(db, now=NOW)
    assert review.queue.total == 0
    streak = await review.end(db, completed=False, today=date(2025, 1, 10))

    assert streak == StreakState(2, 4, date(2025, 1, 9))


@pytest.mark.asyncio
async def test_second_session_same_day_keeps_streak(db: AsyncSession) -> None:
    await _seed(db, 2)
    today = date(2025, 1, 10)

    for _ in range(2):
        review = await start_session(db, now=NOW, limit=1)
        card = await review.get_next(db, now=NOW)
        assert card is not None
        await review.submit_answer(db, card, "An answer.", score=4, now=NOW)
        streak = await review.end(db, today=today)

    assert streak == StreakState(1, 1, today)


@pytest.mark.asyncio
async def test_session_is_time_boxed(db: AsyncSession) -> None:
    [question_id, _] = await _seed(db, 2)
    review = await start_session(db, now=NOW, duration_minutes=10)
    assert review.expires_at == NOW + timedelta(minutes=10)
    assert not review.is_expired(NOW + timedelta(minutes=9))

    card = await review.get_next(db, now=NOW + timedelta(minutes=9))
    assert card is not None

    with pytest.raises(SessionExpiredError):
        await review.submit_answer(db, card, "Late answer.", score=4, now=NOW + timedelta(hours=2))
    with pytest.raises(SessionExpiredError):
        await review.get_next(db, now=NOW + timedelta(minutes=10))

    assert review.remaining == 2
    assert review.stats.cards_reviewed == 0
    assert await repository.get_total_reviews(db) == 0
    stored = await repository.get_card_schedule(db, question_id)
    assert stored is not None
    assert stored.repetitions == 0


@pytest.mark.asyncio
async def test_running_out_of_time_completes_the_session(db: AsyncSession) -> None:
    await _seed(db, 2)
    review = await start_session(db, now=NOW, duration_minutes=5)
    card = await review.get_next(db, now=NOW)
    assert card is not None
    await review.submit_answer(db, card, "An answer.", score=4, now=NOW + timedelta(minutes=1))

    await review.end(db, today=date(2025, 1, 10), now=NOW + timedelta(minutes=6))

    [practice] = await repository.recent_sessions(db)
    assert practice.was_completed
    assert practice.duration_minutes == 5
    assert practice.cards_reviewed == 1
    assert practice.ended_at == NOW + timedelta(minutes=6)


@pytest.mark.asyncio
async def test_quitting_early_is_not_completed(db: AsyncSession) -> None:
    await _seed(db, 2)
    review = await start_session(db, now=NOW, duration_minutes=10)
    card = await review.get_next(db, now=NOW)
    assert card is not None
    await review.submit_answer(db, card, "An answer.", score=4, now=NOW)

    await review.end(db, today=date(2025, 1, 10), now=NOW + timedelta(minutes=2))

    [practice] = await repository.recent_sessions(db)
    assert not practice.was_completed


@pytest.mark.asyncio
async def test_default_duration_comes_from_settings(db: AsyncSession) -> None:
    review = await start_session(db, now=NOW)
    assert review.duration == timedelta(minutes=settings.session_duration_minutes)


@pytest.mark.asyncio
@pytest.mark.parametrize("limit", [0, -1])
async def test_rejects_card_limit_below_one(db: AsyncSession, limit: int) -> None:
    await _seed(db, 3)
    with pytest.raises(ValueError):
        await start_session(db, now=NOW, limit=limit)


@pytest.mark.asyncio
@pytest.mark.parametrize("minutes", [0, -5])
async def test_rejects_duration_below_one_minute(db: AsyncSession, minutes: int) -> None:
    with pytest.raises(ValueError):
        await start_session(db, now=NOW, duration_minutes=minutes)
