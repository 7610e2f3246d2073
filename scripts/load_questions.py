"""Load a question bank from JSON into the database.

Usage:
    python -m scripts.load_questions data/seed_questions.json
    python -m scripts.load_questions my_questions.json --custom

Each entry needs "prompt" and "category"; "difficulty" and "key_concepts"
are optional. Questions whose prompt already exists are skipped, so the
script is safe to re-run.
"""

import argparse
import asyncio
import json
import logging
from pathlib import Path

from backend import repository
from backend.database import async_session, init_db
from backend.srs.categories import Category, parse_category, parse_difficulty


async def load_questions(path: Path, is_custom: bool = False) -> int:
    """Insert questions (each with a due-now schedule); return how many were added."""
    data = json.loads(path.read_text(encoding="utf-8"))
    loaded = 0

    async with async_session() as session:
        for entry in data:
            prompt = (entry.get("prompt") or "").strip()
            if not prompt:
                logging.warning("Skipping entry without a prompt: %s", entry)
                continue

            if await repository.find_question_by_prompt(session, prompt):
                logging.info("Skipping duplicate: %s", prompt[:60])
                continue

            category = parse_category(entry.get("category"))
            if category is Category.OTHER:
                logging.warning("Unknown category %r for: %s", entry.get("category"), prompt[:60])

            await repository.add_question(
                session,
                prompt=prompt,
                category=category,
                difficulty=parse_difficulty(entry.get("difficulty")),
                key_concepts=entry.get("key_concepts", []),
                is_custom=is_custom,
            )
            loaded += 1

        await session.commit()

    logging.info("Loaded %d questions", loaded)
    return loaded


async def main_async(args: argparse.Namespace) -> None:
    await init_db()
    loaded = await load_questions(args.questions, is_custom=args.custom)
    print(f"Loaded {loaded} questions.")


def main() -> None:
    parser = argparse.ArgumentParser(description="Load questions into the database")
    parser.add_argument("questions", type=Path, help="Path to a JSON list of questions")
    parser.add_argument(
        "--custom",
        action="store_true",
        help="Mark the questions as custom (removed by 'reset --custom')",
    )
    parser.add_argument("-v", "--verbose", action="store_true")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )

    asyncio.run(main_async(args))
    print("Done.")


if __name__ == "__main__":
    main()
