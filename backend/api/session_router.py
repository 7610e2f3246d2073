"""API routes for practice sessions."""

import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from backend.api.errors import grading_http_error
from backend.api.schemas import (
    AnswerRequest,
    AnswerResponse,
    CardResponse,
    SessionEndResponse,
    SessionStartResponse,
    SessionStatsResponse,
)
from backend.config import utcnow
from backend.database import get_session
from backend.llm_client import LLMClient, LLMUnavailableError, get_llm_client
from backend.srs.grading import GradingError
from backend.srs.session import ReviewSession, SessionExpiredError, start_session
from backend.srs.sm2 import InvalidScoreError, mastery_level, next_review_text

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/session", tags=["session"])

# In-memory session store (single process, single user)
_active_sessions: dict[str, ReviewSession] = {}


def _get_active(session_id: str) -> ReviewSession:
    review_session = _active_sessions.get(session_id)
    if not review_session:
        raise HTTPException(status_code=404, detail="Session not found")
    return review_session


def _session_over(error: SessionExpiredError) -> HTTPException:
    return HTTPException(status_code=410, detail=f"Session time is up: {error}")


@router.post("/start", response_model=SessionStartResponse)
async def session_start(
    limit: int | None = Query(None, ge=1),
    minutes: int | None = Query(None, ge=1),
    db: AsyncSession = Depends(get_session),
) -> SessionStartResponse:
    """Start a new practice session over the cards due now."""
    review_session = await start_session(db, limit=limit, duration_minutes=minutes)

    if review_session.queue.total == 0:
        await review_session.end(db, completed=False)
        raise HTTPException(status_code=404, detail="No cards due for review")

    _active_sessions[review_session.session_id] = review_session

    return SessionStartResponse(
        session_id=review_session.session_id,
        total_cards=review_session.queue.total,
        total_due=review_session.queue.total_due,
        duration_minutes=int(review_session.duration.total_seconds() // 60),
        expires_at=review_session.expires_at,
    )


@router.get("/next/{session_id}", response_model=CardResponse)
async def session_next(
    session_id: str,
    db: AsyncSession = Depends(get_session),
) -> CardResponse:
    """Get the next question in the session."""
    review_session = _get_active(session_id)

    try:
        session_card = await review_session.get_next(db)
    except SessionExpiredError as e:
        raise _session_over(e) from e
    if session_card is None:
        raise HTTPException(status_code=410, detail="Session is complete")

    question = session_card.question
    return CardResponse(
        question_id=question.id,
        prompt=question.prompt,
        category=question.category,
        difficulty=question.difficulty,
        key_concepts=session_card.key_concepts,
        repetitions=session_card.schedule.repetitions,
        interval=session_card.schedule.interval,
        mastery=mastery_level(session_card.schedule),
        remaining=review_session.remaining,
    )


@router.post("/answer/{session_id}", response_model=AnswerResponse)
async def session_answer(
    session_id: str,
    request: AnswerRequest,
    db: AsyncSession = Depends(get_session),
) -> AnswerResponse:
    """Submit an answer for the current question."""
    review_session = _get_active(session_id)

    try:
        session_card = await review_session.get_next(db)
    except SessionExpiredError as e:
        raise _session_over(e) from e
    if session_card is None:
        raise HTTPException(status_code=410, detail="Session is complete")

    if session_card.question.id != request.question_id:
        raise HTTPException(status_code=400, detail="Question ID mismatch")

    llm: LLMClient | None = None
    if request.score is None:
        try:
            llm = get_llm_client()
        except LLMUnavailableError as e:
            raise HTTPException(status_code=503, detail=str(e)) from e

    try:
        outcome = await review_session.submit_answer(
            db,
            session_card,
            answer=request.answer,
            llm=llm,
            score=request.score,
        )
    except InvalidScoreError as e:
        raise HTTPException(status_code=422, detail=str(e)) from e
    except SessionExpiredError as e:
        raise _session_over(e) from e
    except GradingError as e:
        raise grading_http_error(e) from e

    evaluation = outcome.evaluation
    return AnswerResponse(
        score=outcome.score,
        feedback=evaluation.feedback if evaluation else "",
        what_covered_well=evaluation.covered_well if evaluation else "",
        what_missing=evaluation.missing if evaluation else "",
        missed_concepts=evaluation.missed_concepts if evaluation else [],
        model_answer=evaluation.model_answer if evaluation else "",
        next_review_date=outcome.schedule.next_review_date,
        interval=outcome.schedule.interval,
        ease_factor=outcome.schedule.ease_factor,
        repetitions=outcome.schedule.repetitions,
        next_review_text=next_review_text(outcome.schedule),
        remaining=review_session.remaining,
        session_complete=review_session.is_complete,
    )


@router.get("/stats/{session_id}", response_model=SessionStatsResponse)
async def session_stats(session_id: str) -> SessionStatsResponse:
    """Get stats for the current session."""
    review_session = _get_active(session_id)

    s = review_session.stats
    time_left = review_session.expires_at - utcnow()
    return SessionStatsResponse(
        cards_reviewed=s.cards_reviewed,
        average_score=s.average_score,
        lapses=s.lapses,
        remaining=review_session.remaining,
        seconds_remaining=max(0, int(time_left.total_seconds())),
        expired=review_session.is_expired(),
    )


@router.post("/end/{session_id}", response_model=SessionEndResponse)
async def session_end(
    session_id: str,
    db: AsyncSession = Depends(get_session),
) -> SessionEndResponse:
    """End a session, update the streak and clean up."""
    review_session = _get_active(session_id)

    streak = await review_session.end(db)
    # Only forget the session once it is safely recorded
    _active_sessions.pop(session_id, None)

    s = review_session.stats
    return SessionEndResponse(
        status="ended",
        cards_reviewed=s.cards_reviewed,
        average_score=s.average_score,
        current_streak=streak.current_streak,
        longest_streak=streak.longest_streak,
    )
