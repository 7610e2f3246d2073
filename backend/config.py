from datetime import UTC, date, datetime
from pathlib import Path
from zoneinfo import ZoneInfo

from pydantic_settings import BaseSettings


def utcnow() -> datetime:
    """Return the current UTC time as a naive datetime.

    Replaces the deprecated ``datetime.utcnow()`` while keeping datetimes
    naive so they stay compatible with SQLite (which doesn't store tz info).
    """
    return datetime.now(UTC).replace(tzinfo=None)


class Settings(BaseSettings):
    app_name: str = "Concept Drill"
    database_url: str = f"sqlite+aiosqlite:///{Path(__file__).resolve().parent.parent / 'data' / 'concept_drill.db'}"
    anthropic_api_key: str = ""
    anthropic_model: str = "claude-sonnet-4-20250514"
    anthropic_max_retries: int = 3
    anthropic_rate_limit_rpm: int = 50
    max_cards_per_session: int = 20
    session_duration_minutes: int = 10
    max_answer_chars: int = 10_000
    timezone: str = ""  # IANA name; empty means the system local zone
    llm_input_price_per_million: float = 3.0
    llm_output_price_per_million: float = 15.0
    debug: bool = False

    model_config = {"env_prefix": "CONCEPT_DRILL_", "env_file": ".env"}


settings = Settings()


def local_today() -> date:
    """Return today's calendar date in the configured timezone."""
    if settings.timezone:
        return datetime.now(ZoneInfo(settings.timezone)).date()
    return datetime.now().date()
