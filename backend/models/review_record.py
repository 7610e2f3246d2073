from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backend.config import utcnow
from backend.models.base import Base


class ReviewRecord(Base):
    __tablename__ = "review_records"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    question_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("questions.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_answer: Mapped[str] = mapped_column(Text, nullable=False)
    answer_type: Mapped[str] = mapped_column(String(20), nullable=False, default="text")  # text, audio
    score: Mapped[int] = mapped_column(Integer, nullable=False)  # 1-5
    ai_feedback: Mapped[str] = mapped_column(Text, nullable=False, default="")
    what_covered_well: Mapped[str] = mapped_column(Text, nullable=False, default="")
    what_missing: Mapped[str] = mapped_column(Text, nullable=False, default="")
    missed_concepts: Mapped[str] = mapped_column(Text, nullable=False, default="[]")  # JSON array
    model_answer: Mapped[str] = mapped_column(Text, nullable=False, default="")
    reviewed_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow, index=True)

    question: Mapped["Question"] = relationship(back_populates="review_records")  # type: ignore[name-defined] # noqa: F821
