"""Pydantic schemas for API request/response models."""

from datetime import date, datetime

from pydantic import BaseModel, Field

# --- Session ---


class SessionStartResponse(BaseModel):
    """Response when starting a new practice session."""

    session_id: str
    total_cards: int
    total_due: int
    duration_minutes: int
    expires_at: datetime


class CardResponse(BaseModel):
    """Response containing the next question to answer."""

    question_id: str
    prompt: str
    category: str
    difficulty: str
    key_concepts: list[str]
    repetitions: int
    interval: int
    mastery: str
    remaining: int


class AnswerRequest(BaseModel):
    """Request to submit an answer for the current question."""

    question_id: str
    answer: str = ""
    score: int | None = None  # Apply this 1-5 score instead of AI grading


class AnswerResponse(BaseModel):
    """Response after submitting an answer with feedback and scheduling info."""

    score: int
    feedback: str
    what_covered_well: str
    what_missing: str
    missed_concepts: list[str]
    model_answer: str
    next_review_date: datetime
    interval: int
    ease_factor: float
    repetitions: int
    next_review_text: str
    remaining: int
    session_complete: bool


class SessionStatsResponse(BaseModel):
    """Statistics for the current practice session."""

    cards_reviewed: int
    average_score: float
    lapses: int
    remaining: int
    seconds_remaining: int
    expired: bool


class SessionEndResponse(BaseModel):
    status: str
    cards_reviewed: int
    average_score: float
    current_streak: int
    longest_streak: int


# --- Stats ---


class LearnerStatsResponse(BaseModel):
    """Overall progress statistics."""

    total_questions: int
    cards_due: int
    cards_mastered: int  # interval > 7 days
    total_reviews: int
    reviews_this_week: int
    average_score_this_week: float
    current_streak: int
    longest_streak: int
    last_practice_date: date | None


class CategoryStatsResponse(BaseModel):
    category: str
    label: str
    total_questions: int
    reviewed_count: int
    average_score: float
    mastered_count: int


class ConceptGapResponse(BaseModel):
    concept: str
    category: str
    missed_count: int
    last_missed_at: datetime
    question_ids: list[str]


class PracticeSessionResponse(BaseModel):
    id: str
    started_at: datetime
    ended_at: datetime | None
    duration_minutes: int
    cards_reviewed: int
    average_score: float
    was_completed: bool


# --- Questions ---


class QuestionCreateRequest(BaseModel):
    prompt: str = Field(min_length=1)
    category: str
    difficulty: str = "intermediate"
    key_concepts: list[str] = Field(default_factory=list)


class QuestionResponse(BaseModel):
    id: str
    prompt: str
    category: str
    difficulty: str
    key_concepts: list[str]
    is_custom: bool
    created_at: datetime
    next_review_date: datetime | None = None
    mastery: str | None = None


class ReviewRecordResponse(BaseModel):
    """One graded answer to a question."""

    id: int
    question_id: str
    user_answer: str
    answer_type: str
    score: int
    feedback: str
    what_covered_well: str
    what_missing: str
    missed_concepts: list[str]
    model_answer: str
    reviewed_at: datetime


class GenerateRequest(BaseModel):
    category: str
    difficulty: str = "intermediate"
    count: int = Field(default=3, ge=1, le=10)
    sub_topic: str | None = None
    save: bool = True


# --- Preferences ---


class PreferencesPayload(BaseModel):
    preferred_categories: list[str]  # Highest priority first
    preferred_difficulties: dict[str, str] = Field(default_factory=dict)
