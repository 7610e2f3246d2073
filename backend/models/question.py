"""Question bank model."""

import uuid

from sqlalchemy import Boolean, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from backend.models.base import Base, TimestampMixin


def _new_id() -> str:
    return str(uuid.uuid4())


class Question(Base, TimestampMixin):
    """A prompt asking the learner to explain a concept."""

    __tablename__ = "questions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    prompt: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    difficulty: Mapped[str] = mapped_column(
        String(20), nullable=False, default="intermediate"
    )  # beginner, intermediate, advanced
    key_concepts: Mapped[str] = mapped_column(Text, nullable=False, default="[]")  # JSON array
    is_custom: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    card: Mapped["Card"] = relationship(back_populates="question", cascade="all, delete-orphan")  # type: ignore[name-defined] # noqa: F821
    review_records: Mapped[list["ReviewRecord"]] = relationship(  # type: ignore[name-defined] # noqa: F821
        back_populates="question", cascade="all, delete-orphan"
    )
