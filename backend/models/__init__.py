"""SQLAlchemy ORM models for the Concept Drill database."""

from backend.models.base import Base
from backend.models.card import Card
from backend.models.concept_gap import ConceptGap
from backend.models.practice_session import PracticeSession
from backend.models.preferences import Preferences
from backend.models.question import Question
from backend.models.review_record import ReviewRecord
from backend.models.user_stats import UserStats

__all__ = [
    "Base",
    "Card",
    "ConceptGap",
    "PracticeSession",
    "Preferences",
    "Question",
    "ReviewRecord",
    "UserStats",
]
