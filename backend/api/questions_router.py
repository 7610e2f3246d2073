"""API routes for the question bank."""

import json
import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from sqlalchemy.ext.asyncio import AsyncSession

from backend import repository
from backend.api.errors import grading_http_error
from backend.api.schemas import (
    GenerateRequest,
    QuestionCreateRequest,
    QuestionResponse,
    ReviewRecordResponse,
)
from backend.config import utcnow
from backend.database import get_session
from backend.llm_client import LLMUnavailableError, get_llm_client
from backend.models.question import Question
from backend.question_generator import generate_questions
from backend.srs.categories import Category, Difficulty, parse_category
from backend.srs.grading import GradingError
from backend.srs.sm2 import mastery_level

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/questions", tags=["questions"])


def _require_category(value: str) -> Category:
    category = parse_category(value)
    if category is Category.OTHER and value.strip().lower() != Category.OTHER.value:
        raise HTTPException(status_code=422, detail=f"Unknown category: {value}")
    return category


def _require_difficulty(value: str) -> Difficulty:
    try:
        return Difficulty(value.strip().lower())
    except ValueError as e:
        raise HTTPException(status_code=422, detail=f"Unknown difficulty: {value}") from e


async def _to_response(db: AsyncSession, question: Question) -> QuestionResponse:
    schedule = await repository.get_card_schedule(db, question.id)
    return QuestionResponse(
        id=question.id,
        prompt=question.prompt,
        category=question.category,
        difficulty=question.difficulty,
        key_concepts=repository.key_concepts_of(question),
        is_custom=question.is_custom,
        created_at=question.created_at,
        next_review_date=schedule.next_review_date if schedule else None,
        mastery=mastery_level(schedule) if schedule else None,
    )


@router.get("", response_model=list[QuestionResponse])
async def list_questions(
    category: str | None = None,
    db: AsyncSession = Depends(get_session),
) -> list[QuestionResponse]:
    """List questions, optionally filtered by category."""
    selected = _require_category(category) if category else None
    return [await _to_response(db, q) for q in await repository.list_questions(db, selected)]


@router.get("/{question_id}", response_model=QuestionResponse)
async def get_question(
    question_id: str,
    db: AsyncSession = Depends(get_session),
) -> QuestionResponse:
    question = await repository.get_question(db, question_id)
    if question is None:
        raise HTTPException(status_code=404, detail="Question not found")
    return await _to_response(db, question)


@router.get("/{question_id}/reviews", response_model=list[ReviewRecordResponse])
async def get_question_reviews(
    question_id: str,
    limit: int = Query(20, ge=1, le=200),
    db: AsyncSession = Depends(get_session),
) -> list[ReviewRecordResponse]:
    """Past answers to a question, newest first."""
    if await repository.get_question(db, question_id) is None:
        raise HTTPException(status_code=404, detail="Question not found")
    return [
        ReviewRecordResponse(
            id=r.id,
            question_id=r.question_id,
            user_answer=r.user_answer,
            answer_type=r.answer_type,
            score=r.score,
            feedback=r.ai_feedback,
            what_covered_well=r.what_covered_well,
            what_missing=r.what_missing,
            missed_concepts=json.loads(r.missed_concepts or "[]"),
            model_answer=r.model_answer,
            reviewed_at=r.reviewed_at,
        )
        for r in await repository.review_history(db, question_id, limit)
    ]


@router.delete("/{question_id}", status_code=204)
async def delete_question(
    question_id: str,
    db: AsyncSession = Depends(get_session),
) -> Response:
    """Remove a question together with its schedule and review history."""
    if not await repository.delete_question(db, question_id):
        raise HTTPException(status_code=404, detail="Question not found")
    await db.commit()
    return Response(status_code=204)


@router.post("", response_model=QuestionResponse, status_code=201)
async def create_question(
    request: QuestionCreateRequest,
    db: AsyncSession = Depends(get_session),
) -> QuestionResponse:
    """Add a custom question; it is due for review immediately."""
    question = await repository.add_question(
        db,
        prompt=request.prompt.strip(),
        category=_require_category(request.category),
        difficulty=_require_difficulty(request.difficulty),
        key_concepts=[c.strip() for c in request.key_concepts if c.strip()],
        is_custom=True,
    )
    await db.commit()
    return await _to_response(db, question)


@router.post("/generate", response_model=list[QuestionResponse])
async def generate(
    request: GenerateRequest,
    db: AsyncSession = Depends(get_session),
) -> list[QuestionResponse]:
    """Generate questions with the LLM and, unless ``save`` is false, add them to the bank."""
    category = _require_category(request.category)
    difficulty = _require_difficulty(request.difficulty)
    try:
        llm = get_llm_client()
        generated = generate_questions(category, difficulty, request.count, llm, request.sub_topic)
    except LLMUnavailableError as e:
        raise HTTPException(status_code=503, detail=str(e)) from e
    except GradingError as e:
        raise grading_http_error(e) from e

    if not request.save:
        return [
            QuestionResponse(
                id="",
                prompt=g.prompt,
                category=category.value,
                difficulty=g.difficulty.value,
                key_concepts=g.key_concepts,
                is_custom=True,
                created_at=utcnow(),
            )
            for g in generated
        ]

    saved = [
        await repository.add_question(
            db,
            prompt=g.prompt,
            category=category,
            difficulty=g.difficulty,
            key_concepts=g.key_concepts,
            is_custom=True,
        )
        for g in generated
    ]
    await db.commit()
    logger.info("Saved %d generated questions", len(saved))
    return [await _to_response(db, q) for q in saved]
