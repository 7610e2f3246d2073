"""Practice session orchestrator.

Coordinates the due-card queue, answer grading, the SM-2 scheduler,
review logging and streak accounting into a cohesive session flow.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from backend import repository
from backend.config import local_today, settings, utcnow
from backend.llm_client import LLMClient, LLMUnavailableError
from backend.models.question import Question
from backend.srs.categories import parse_category
from backend.srs.grading import Evaluation, evaluate_answer
from backend.srs.queue import ReviewQueue, build_queue
from backend.srs.sm2 import CardSchedule, compute_next_schedule, validate_score
from backend.srs.streak import SessionStats, StreakState, record_session_end

logger = logging.getLogger(__name__)


class SessionExpiredError(Exception):
    """Raised when a card is requested or answered after the session's time is up."""


@dataclass
class SessionCard:
    """A question presented during a session, with its schedule."""

    question: Question
    schedule: CardSchedule

    @property
    def key_concepts(self) -> list[str]:
        return repository.key_concepts_of(self.question)


@dataclass
class ReviewOutcome:
    """What happened when an answer was submitted."""

    score: int
    previous: CardSchedule
    schedule: CardSchedule
    evaluation: Evaluation | None = None


@dataclass
class ReviewSession:
    """Manages an active, time-boxed practice session."""

    session_id: str
    queue: ReviewQueue
    started_at: datetime = field(default_factory=utcnow)
    duration: timedelta = field(
        default_factory=lambda: timedelta(minutes=settings.session_duration_minutes)
    )
    stats: SessionStats = field(default_factory=SessionStats)
    _card_index: int = 0

    @property
    def remaining(self) -> int:
        """Return the number of cards left to review."""
        return max(0, self.queue.total - self._card_index)

    @property
    def is_complete(self) -> bool:
        """Return True if all cards have been reviewed."""
        return self._card_index >= self.queue.total

    @property
    def expires_at(self) -> datetime:
        return self.started_at + self.duration

    def is_expired(self, now: datetime | None = None) -> bool:
        """Return True once the session's time box has run out."""
        return (now or utcnow()) >= self.expires_at

    def _check_time(self, now: datetime | None) -> None:
        if self.is_expired(now):
            raise SessionExpiredError(f"Session {self.session_id} ran out of time")

    async def get_next(self, db: AsyncSession, now: datetime | None = None) -> SessionCard | None:
        """Get the next card to present, or None if the session is complete.

        Raises:
            SessionExpiredError: If cards remain but the time is up.
        """
        while not self.is_complete:
            self._check_time(now)
            schedule = self.queue.cards[self._card_index]
            question = await repository.get_question(db, schedule.question_id)
            if question is not None:
                return SessionCard(question=question, schedule=schedule)
            logger.warning("Skipping card %s: question no longer exists", schedule.question_id)
            self._card_index += 1
        return None

    def skip(self) -> None:
        """Move past the current card without reviewing it."""
        if not self.is_complete:
            self._card_index += 1

    async def submit_answer(
        self,
        db: AsyncSession,
        session_card: SessionCard,
        answer: str,
        llm: LLMClient | None = None,
        score: int | None = None,
        now: datetime | None = None,
    ) -> ReviewOutcome:
        """Grade an answer, reschedule the card and log the review.

        Args:
            db: Database session.
            session_card: The card being reviewed.
            answer: The learner's explanation.
            llm: LLM client used to grade the answer.
            score: A 1-5 score to apply directly instead of grading with the LLM.
            now: When the review happened (defaults to now).

        Returns:
            The applied score with the schedule before and after.

        Raises:
            InvalidScoreError: If ``score`` is given but not 1-5.
            GradingError: If grading fails.
            SessionExpiredError: If the session's time is up.
            LLMUnavailableError: If neither ``score`` nor ``llm`` is given.
        """
        now = now or utcnow()
        self._check_time(now)
        question = session_card.question
        evaluation: Evaluation | None = None

        if score is not None:
            score = validate_score(score)
        elif llm is None:
            raise LLMUnavailableError("No grading client available; supply a score instead")
        else:
            evaluation = evaluate_answer(question.prompt, session_card.key_concepts, answer, llm)
            score = evaluation.score

        # Re-read so a review applied elsewhere since the queue was built isn't lost
        current = await repository.get_card_schedule(db, question.id) or session_card.schedule
        new_schedule = compute_next_schedule(score, current, now)

        await repository.put_card_schedule(db, new_schedule)
        await repository.add_review_record(
            db,
            question_id=question.id,
            user_answer=answer,
            score=score,
            feedback=evaluation.feedback if evaluation else "",
            covered_well=evaluation.covered_well if evaluation else "",
            missing=evaluation.missing if evaluation else "",
            missed_concepts=evaluation.missed_concepts if evaluation else (),
            model_answer=evaluation.model_answer if evaluation else "",
            reviewed_at=now,
        )
        if evaluation and evaluation.missed_concepts:
            await repository.update_concept_gaps(
                db,
                evaluation.missed_concepts,
                question.id,
                parse_category(question.category),
                now,
            )
        await db.commit()

        self.stats = self.stats.record(score)
        self._card_index += 1

        logger.debug(
            "Reviewed %s: score %d, interval %d -> %d days",
            question.id,
            score,
            current.interval,
            new_schedule.interval,
        )
        return ReviewOutcome(
            score=score,
            previous=current,
            schedule=new_schedule,
            evaluation=evaluation,
        )

    async def end(
        self,
        db: AsyncSession,
        completed: bool | None = None,
        today: date | None = None,
        now: datetime | None = None,
    ) -> StreakState:
        """Close the session and fold it into the practice streak.

        Args:
            db: Database session.
            completed: Whether the session ran its course. Defaults to True when
                the queue is exhausted or the time is up, False when ended early.
            today: Local calendar date of the session (defaults to today).
            now: When the session ended (defaults to now).

        Returns:
            The updated streak (unchanged if no card was reviewed).
        """
        now = now or utcnow()
        if completed is None:
            completed = self.is_complete or self.is_expired(now)
        await repository.end_practice_session(
            db,
            self.session_id,
            cards_reviewed=self.stats.cards_reviewed,
            average_score=self.stats.average_score,
            was_completed=completed,
            now=now,
        )
        streak = await repository.get_streak_state(db)
        # A session where nothing was reviewed doesn't count as practice
        if self.stats.cards_reviewed > 0:
            streak = record_session_end(streak, today or local_today())
            await repository.put_streak_state(db, streak)
        await db.commit()

        logger.info(
            "Ended session %s: %d cards, avg %.1f, streak %d",
            self.session_id,
            self.stats.cards_reviewed,
            self.stats.average_score,
            streak.current_streak,
        )
        return streak


async def start_session(
    db: AsyncSession,
    now: datetime | None = None,
    limit: int | None = None,
    duration_minutes: int | None = None,
) -> ReviewSession:
    """Start a new practice session over the currently due cards.

    Args:
        db: Database session.
        now: Reference time for due cards (defaults to utcnow).
        limit: Max cards in the session (defaults to the configured limit).
        duration_minutes: Time box in minutes (defaults to the configured length).

    Returns:
        A ReviewSession ready for use.

    Raises:
        ValueError: If ``limit`` or ``duration_minutes`` is less than 1.
    """
    now = now or utcnow()
    if duration_minutes is None:
        duration_minutes = settings.session_duration_minutes
    if duration_minutes < 1:
        raise ValueError(f"Session length must be at least 1 minute, got {duration_minutes}")
    queue = await build_queue(db, now=now, limit=limit)
    session_id = await repository.start_practice_session(db, duration_minutes, now)
    await db.commit()

    session = ReviewSession(
        session_id=session_id,
        queue=queue,
        started_at=now,
        duration=timedelta(minutes=duration_minutes),
    )
    logger.info(
        "Started session %s: %d cards queued, %d minutes", session_id, queue.total, duration_minutes
    )
    return session
