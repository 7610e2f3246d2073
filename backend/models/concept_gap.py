from datetime import datetime

from sqlalchemy import DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from backend.config import utcnow
from backend.models.base import Base


class ConceptGap(Base):
    """A key concept the learner keeps leaving out of their answers."""

    __tablename__ = "concept_gaps"

    concept: Mapped[str] = mapped_column(String(500), primary_key=True)
    category: Mapped[str] = mapped_column(String(50), nullable=False)
    missed_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_missed_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow)
    question_ids: Mapped[str] = mapped_column(Text, nullable=False, default="[]")  # JSON array
