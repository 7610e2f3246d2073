"""API routes for progress statistics and dashboard data."""

import json
import logging
from datetime import timedelta

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from backend import repository
from backend.api.schemas import (
    CategoryStatsResponse,
    ConceptGapResponse,
    LearnerStatsResponse,
    PracticeSessionResponse,
)
from backend.config import utcnow
from backend.database import get_session
from backend.srs.categories import category_label

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/stats", tags=["stats"])


@router.get("", response_model=LearnerStatsResponse)
async def get_learner_stats(db: AsyncSession = Depends(get_session)) -> LearnerStatsResponse:
    """Get overall progress statistics."""
    now = utcnow()
    streak = await repository.get_streak_state(db)

    return LearnerStatsResponse(
        total_questions=await repository.count_questions(db),
        cards_due=await repository.count_due_cards(db, now),
        cards_mastered=await repository.count_mastered(db),
        total_reviews=await repository.get_total_reviews(db),
        reviews_this_week=await repository.weekly_review_count(db, now),
        average_score_this_week=await repository.average_score_since(db, now - timedelta(days=7)),
        current_streak=streak.current_streak,
        longest_streak=streak.longest_streak,
        last_practice_date=streak.last_practice_date,
    )


@router.get("/categories", response_model=list[CategoryStatsResponse])
async def get_category_stats(db: AsyncSession = Depends(get_session)) -> list[CategoryStatsResponse]:
    """Per-category progress."""
    return [
        CategoryStatsResponse(
            category=s.category.value,
            label=category_label(s.category),
            total_questions=s.total_questions,
            reviewed_count=s.reviewed_count,
            average_score=s.average_score,
            mastered_count=s.mastered_count,
        )
        for s in await repository.category_stats(db)
    ]


@router.get("/gaps", response_model=list[ConceptGapResponse])
async def get_concept_gaps(
    limit: int = 10,
    db: AsyncSession = Depends(get_session),
) -> list[ConceptGapResponse]:
    """Concepts most often missed in answers."""
    return [
        ConceptGapResponse(
            concept=gap.concept,
            category=gap.category,
            missed_count=gap.missed_count,
            last_missed_at=gap.last_missed_at,
            question_ids=json.loads(gap.question_ids or "[]"),
        )
        for gap in await repository.top_concept_gaps(db, limit)
    ]


@router.get("/sessions", response_model=list[PracticeSessionResponse])
async def get_recent_sessions(
    limit: int = Query(10, ge=1, le=100),
    db: AsyncSession = Depends(get_session),
) -> list[PracticeSessionResponse]:
    """Finished practice sessions, most recent first."""
    return [
        PracticeSessionResponse(
            id=p.id,
            started_at=p.started_at,
            ended_at=p.ended_at,
            duration_minutes=p.duration_minutes,
            cards_reviewed=p.cards_reviewed,
            average_score=p.average_score,
            was_completed=p.was_completed,
        )
        for p in await repository.recent_sessions(db, limit)
    ]


@router.post("/reset")
async def reset_progress(db: AsyncSession = Depends(get_session)) -> dict:
    """Clear all review history and reset every card to new."""
    await repository.reset_all_progress(db)
    await db.commit()
    return {"status": "reset"}
