"""CLI interface for Concept Drill.

Usage:
    python -m concept_drill review                      Start a practice session
    python -m concept_drill stats                       Show your statistics
    python -m concept_drill add "prompt" -c sql -k a b  Add a custom question
    python -m concept_drill due                         Show how many cards are due
    python -m concept_drill generate -c statistics      Generate questions with AI
    python -m concept_drill reset --yes                 Reset all progress
"""

import argparse
import asyncio
import logging
from datetime import timedelta

from backend import repository
from backend.config import settings, utcnow
from backend.database import async_session, init_db
from backend.llm_client import LLMClient, LLMUnavailableError, get_llm_client
from backend.question_generator import generate_questions
from backend.srs.categories import (
    ALL_CATEGORIES,
    Category,
    Difficulty,
    category_label,
    parse_category,
)
from backend.srs.grading import GradingError
from backend.srs.session import SessionExpiredError, start_session
from backend.srs.sm2 import MAX_SCORE, MIN_SCORE, next_review_text


async def ensure_db() -> None:
    """Create tables if they don't exist."""
    await init_db()


def positive_int(value: str) -> int:
    """argparse type for counts that must be at least 1."""
    try:
        number = int(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(f"{value!r} is not a whole number") from e
    if number < 1:
        raise argparse.ArgumentTypeError(f"must be at least 1, got {number}")
    return number


def _read_answer() -> str:
    """Read a multi-line answer, finished by an empty line."""
    print("  Your explanation (empty line to finish, 'q' to quit, 's' to skip):")
    lines: list[str] = []
    while True:
        line = input("  > ")
        if not lines and line.strip().lower() in ("q", "s"):
            return line.strip().lower()
        if not line.strip():
            break
        lines.append(line)
    return "\n".join(lines)


def _ask_score() -> int:
    while True:
        raw = input(f"  Rate your answer [{MIN_SCORE}-{MAX_SCORE}]: ").strip()
        if raw.isdigit() and MIN_SCORE <= int(raw) <= MAX_SCORE:
            return int(raw)


async def cmd_review(args: argparse.Namespace) -> None:
    """Run an interactive practice session."""
    await ensure_db()

    llm: LLMClient | None = None
    if not args.self_grade:
        try:
            llm = get_llm_client()
        except LLMUnavailableError:
            print("  No API key configured; you'll grade your own answers.")

    async with async_session() as db:
        review = await start_session(db, limit=args.max_cards, duration_minutes=args.minutes)

        if review.queue.total == 0:
            print("\nNo cards due for review. You're all caught up!")
            await review.end(db, completed=True)
            return

        print("\n  Practice Session")
        print(f"  {review.queue.total} cards ({review.queue.total_due} due), {args.minutes} minutes\n")

        position = 0
        while True:
            try:
                card = await review.get_next(db)
            except SessionExpiredError:
                print("\n  Time's up!")
                break
            if card is None:
                break
            position += 1
            category = category_label(parse_category(card.question.category))
            print(f"  [{position}/{review.queue.total}] {category}")
            print(f"  {card.question.prompt}\n")

            answer = _read_answer()
            if answer == "q":
                print("\n  Session ended early.")
                break
            if answer == "s":
                review.skip()
                continue

            score = _ask_score() if llm is None else None
            try:
                try:
                    outcome = await review.submit_answer(db, card, answer, llm=llm, score=score)
                except GradingError as e:
                    print(f"  Grading failed: {e}")
                    if e.code == "INVALID_INPUT":
                        continue
                    outcome = await review.submit_answer(db, card, answer, score=_ask_score())
            except SessionExpiredError:
                print("\n  Time's up! That answer came in after the session ended.")
                break

            print(f"\n  Score: {outcome.score}/{MAX_SCORE}")
            if outcome.evaluation:
                if outcome.evaluation.covered_well:
                    print(f"  Covered well: {outcome.evaluation.covered_well}")
                if outcome.evaluation.missing:
                    print(f"  Missing: {outcome.evaluation.missing}")
                if outcome.evaluation.feedback:
                    print(f"  {outcome.evaluation.feedback}")
            print(f"  {next_review_text(outcome.schedule)}\n")

        streak = await review.end(db)

    s = review.stats
    print("\n  Session Complete!")
    print(f"  Reviewed: {s.cards_reviewed}  Average score: {s.average_score:.1f}")
    print(f"  Streak: {streak.current_streak} days (best {streak.longest_streak})\n")


async def cmd_stats(args: argparse.Namespace) -> None:
    """Show progress statistics."""
    await ensure_db()
    now = utcnow()

    async with async_session() as db:
        total = await repository.count_questions(db)
        due = await repository.count_due_cards(db, now)
        mastered = await repository.count_mastered(db)
        reviews = await repository.get_total_reviews(db)
        weekly = await repository.weekly_review_count(db, now)
        weekly_avg = await repository.average_score_since(db, now - timedelta(days=7))
        streak = await repository.get_streak_state(db)
        categories = await repository.category_stats(db)
        gaps = await repository.top_concept_gaps(db, limit=5)

    print("\n  Concept Drill Statistics")
    print(f"  {'Total questions:':<22} {total}")
    print(f"  {'Due now:':<22} {due}")
    print(f"  {'Mastered (>7 days):':<22} {mastered}")
    print(f"  {'Total reviews:':<22} {reviews}")
    print(f"  {'Reviews this week:':<22} {weekly} (avg {weekly_avg:.1f})")
    print(f"  {'Current streak:':<22} {streak.current_streak}")
    print(f"  {'Longest streak:':<22} {streak.longest_streak}")

    if categories:
        print("\n  By category")
        for s in categories:
            print(
                f"  {category_label(s.category):<26} {s.reviewed_count:>3}/{s.total_questions:<3}"
                f" avg {s.average_score:.1f}  mastered {s.mastered_count}"
            )
    if gaps:
        print("\n  Most missed concepts")
        for gap in gaps:
            print(f"  {gap.missed_count:>3}x {gap.concept}")
    print()


async def cmd_add(args: argparse.Namespace) -> None:
    """Add a custom question with a due-now schedule."""
    await ensure_db()

    async with async_session() as db:
        existing = await repository.find_question_by_prompt(db, args.prompt)
        if existing:
            print(f"  That question already exists (id={existing.id}).")
            return

        question = await repository.add_question(
            db,
            prompt=args.prompt,
            category=Category(args.category),
            difficulty=Difficulty(args.difficulty),
            key_concepts=args.key_concepts,
            is_custom=True,
        )
        await db.commit()

    print(f"  Added question {question.id} (ready for review).")


async def cmd_due(args: argparse.Namespace) -> None:
    """Show how many cards are due."""
    await ensure_db()

    async with async_session() as db:
        due = await repository.count_due_cards(db, utcnow())
        total = await repository.count_questions(db)

    print(f"  {due} of {total} cards due")


async def cmd_generate(args: argparse.Namespace) -> None:
    """Generate questions with the LLM and add them to the bank."""
    await ensure_db()
    try:
        llm = get_llm_client()
    except LLMUnavailableError as e:
        print(f"  {e}")
        return

    category = Category(args.category)
    difficulty = Difficulty(args.difficulty)
    try:
        generated = generate_questions(category, difficulty, args.count, llm, args.sub_topic)
    except GradingError as e:
        print(f"  Generation failed: {e}")
        return

    async with async_session() as db:
        for g in generated:
            await repository.add_question(
                db,
                prompt=g.prompt,
                category=category,
                difficulty=g.difficulty,
                key_concepts=g.key_concepts,
                is_custom=True,
            )
            print(f"  + {g.prompt}")
        await db.commit()

    cost = llm.get_cost_estimate()
    print(f"  Added {len(generated)} questions (${cost['estimated_cost_usd']:.4f})")


async def cmd_reset(args: argparse.Namespace) -> None:
    """Reset review history and schedules."""
    if not args.yes:
        print("  This deletes all review history. Re-run with --yes to confirm.")
        return
    await ensure_db()

    async with async_session() as db:
        await repository.reset_all_progress(db)
        if args.custom:
            await repository.delete_custom_questions(db)
        await db.commit()

    print("  Progress reset.")


def main() -> None:
    """Entry point for the Concept Drill CLI application."""
    category_choices = [c.value for c in ALL_CATEGORIES]
    difficulty_choices = [d.value for d in Difficulty]

    parser = argparse.ArgumentParser(
        prog="concept_drill",
        description="Practice explaining technical concepts with spaced repetition",
    )
    parser.add_argument("-v", "--verbose", action="store_true")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # review
    review_parser = subparsers.add_parser("review", help="Start a practice session")
    review_parser.add_argument(
        "--max-cards",
        type=positive_int,
        default=settings.max_cards_per_session,
        help="Max cards per session",
    )
    review_parser.add_argument(
        "--minutes",
        type=positive_int,
        default=settings.session_duration_minutes,
        help="Session time box in minutes",
    )
    review_parser.add_argument(
        "--self-grade", action="store_true", help="Score your own answers instead of using AI"
    )

    # stats
    subparsers.add_parser("stats", help="Show your statistics")

    # add
    add_parser = subparsers.add_parser("add", help="Add a custom question")
    add_parser.add_argument("prompt", help="Question text")
    add_parser.add_argument("-c", "--category", required=True, choices=category_choices)
    add_parser.add_argument("-d", "--difficulty", default="intermediate", choices=difficulty_choices)
    add_parser.add_argument(
        "-k", "--key-concepts", nargs="*", default=[], help="Concepts a good answer covers"
    )

    # due
    subparsers.add_parser("due", help="Show cards due for review")

    # generate
    gen_parser = subparsers.add_parser("generate", help="Generate questions with AI")
    gen_parser.add_argument("-c", "--category", required=True, choices=category_choices)
    gen_parser.add_argument("-d", "--difficulty", default="intermediate", choices=difficulty_choices)
    gen_parser.add_argument("-n", "--count", type=int, default=3, help="Questions to generate (1-10)")
    gen_parser.add_argument("-t", "--sub-topic", default=None, help="Narrower focus")

    # reset
    reset_parser = subparsers.add_parser("reset", help="Reset all progress")
    reset_parser.add_argument("--yes", action="store_true", help="Confirm the reset")
    reset_parser.add_argument("--custom", action="store_true", help="Also delete custom questions")

    args = parser.parse_args()

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG)

    if not args.command:
        parser.print_help()
        return

    cmd_map = {
        "review": cmd_review,
        "stats": cmd_stats,
        "add": cmd_add,
        "due": cmd_due,
        "generate": cmd_generate,
        "reset": cmd_reset,
    }

    asyncio.run(cmd_map[args.command](args))


if __name__ == "__main__":
    main()
