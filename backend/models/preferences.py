from datetime import datetime

from sqlalchemy import DateTime, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from backend.models.base import Base, TimestampMixin


class Preferences(Base, TimestampMixin):
    """Single-row table with the learner's profile and category priorities."""

    __tablename__ = "user_preferences"

    id: Mapped[int] = mapped_column(primary_key=True, default=1)
    experience_level: Mapped[str | None] = mapped_column(
        String(20), nullable=True
    )  # student, entry, mid, senior, career-change
    current_role: Mapped[str | None] = mapped_column(String(200), nullable=True)
    technical_background: Mapped[str | None] = mapped_column(Text, nullable=True)
    preferred_categories: Mapped[str] = mapped_column(Text, nullable=False, default="[]")  # JSON, priority order
    preferred_difficulties: Mapped[str] = mapped_column(Text, nullable=False, default="{}")  # JSON object
    onboarding_completed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
