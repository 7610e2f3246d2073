"""Tests for CLI commands (non-interactive paths)."""

import argparse
import json
from pathlib import Path

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from backend import repository
from concept_drill.__main__ import cmd_add, cmd_due, cmd_reset, cmd_stats, ensure_db, positive_int
from scripts.load_questions import load_questions

SEED_FILE = Path(__file__).resolve().parent.parent / "data" / "seed_questions.json"


@pytest.mark.asyncio
async def test_ensure_db() -> None:
    """Database tables can be created."""
    await ensure_db()


@pytest.mark.asyncio
async def test_add_and_due(db: AsyncSession, capsys: pytest.CaptureFixture[str]) -> None:
    args = argparse.Namespace(
        prompt="Explain the bias-variance trade-off.",
        category="machine-learning",
        difficulty="intermediate",
        key_concepts=["bias", "variance"],
    )
    await cmd_add(args)
    assert "ready for review" in capsys.readouterr().out

    # Adding the same prompt again is refused
    await cmd_add(args)
    assert "already exists" in capsys.readouterr().out

    await cmd_due(argparse.Namespace())
    assert "1 of 1 cards due" in capsys.readouterr().out


@pytest.mark.asyncio
async def test_stats_on_empty_database(db: AsyncSession, capsys: pytest.CaptureFixture[str]) -> None:
    await cmd_stats(argparse.Namespace())
    out = capsys.readouterr().out
    assert "Total questions:" in out
    assert "Current streak:" in out


@pytest.mark.asyncio
async def test_reset_requires_confirmation(
    db: AsyncSession, capsys: pytest.CaptureFixture[str]
) -> None:
    await cmd_reset(argparse.Namespace(yes=False, custom=False))
    assert "--yes" in capsys.readouterr().out


@pytest.mark.asyncio
async def test_reset_custom_removes_custom_questions(
    db: AsyncSession, capsys: pytest.CaptureFixture[str]
) -> None:
    await cmd_add(
        argparse.Namespace(prompt="Explain CTEs.", category="sql", difficulty="beginner", key_concepts=[])
    )
    await cmd_reset(argparse.Namespace(yes=True, custom=True))
    assert "Progress reset." in capsys.readouterr().out
    assert await repository.count_questions(db) == 0


@pytest.mark.asyncio
async def test_load_seed_questions(db: AsyncSession) -> None:
    expected = len(json.loads(SEED_FILE.read_text(encoding="utf-8")))

    loaded = await load_questions(SEED_FILE)
    assert loaded == expected
    assert await repository.count_due_cards(db) == expected

    # Re-running skips duplicates
    assert await load_questions(SEED_FILE) == 0


@pytest.mark.asyncio
async def test_load_skips_entries_without_prompt(db: AsyncSession, tmp_path: Path) -> None:
    path = tmp_path / "questions.json"
    path.write_text(
        json.dumps(
            [
                {"prompt": "Explain p-values.", "category": "statistics", "key_concepts": ["alpha"]},
                {"category": "sql"},
                {"prompt": "Explain astrology.", "category": "astrology"},
            ]
        ),
        encoding="utf-8",
    )

    assert await load_questions(path, is_custom=True) == 2

    questions = await repository.list_questions(db)
    assert {q.category for q in questions} == {"statistics", "other"}
    assert all(q.is_custom for q in questions)


@pytest.mark.parametrize("value", ["0", "-3", "ten"])
def test_positive_int_rejects_bad_counts(value: str) -> None:
    with pytest.raises(argparse.ArgumentTypeError):
        positive_int(value)


def test_positive_int_accepts_counts() -> None:
    assert positive_int("5") == 5
