from datetime import date

from sqlalchemy import Date, Integer
from sqlalchemy.orm import Mapped, mapped_column

from backend.models.base import Base


class UserStats(Base):
    """Single-row table holding the review counter and practice streak."""

    __tablename__ = "user_stats"

    id: Mapped[int] = mapped_column(primary_key=True, default=1)
    total_reviews: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    current_streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    longest_streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_practice_date: Mapped[date | None] = mapped_column(Date, nullable=True)
