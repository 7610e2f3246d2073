"""Shared fixtures: point the app at a throwaway SQLite database.

The environment is set before any ``backend`` import so that the settings
singleton and the engine pick up the test database.
"""

import os
import tempfile
from pathlib import Path

_db_dir = Path(tempfile.mkdtemp(prefix="concept_drill_test_"))
os.environ["CONCEPT_DRILL_DATABASE_URL"] = f"sqlite+aiosqlite:///{_db_dir / 'test.db'}"
os.environ["CONCEPT_DRILL_ANTHROPIC_API_KEY"] = ""

import pytest_asyncio  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession  # noqa: E402

from backend.database import async_session, engine, init_db  # noqa: E402
from backend.models import Base  # noqa: E402


@pytest_asyncio.fixture
async def db() -> AsyncSession:  # type: ignore[misc]
    """Yield a session on an empty database."""
    await init_db()
    async with engine.begin() as conn:
        for table in reversed(Base.metadata.sorted_tables):
            await conn.execute(table.delete())
    async with async_session() as session:
        yield session
