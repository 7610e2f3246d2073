"""Question generation: ask the LLM for new explain-style flashcards."""

import json
import logging
from dataclasses import dataclass

import anthropic

from backend.llm_client import LLMClient, strip_code_fences
from backend.srs.categories import Category, Difficulty, category_label, parse_difficulty
from backend.srs.grading import GradingError, translate_api_error

logger = logging.getLogger(__name__)

MAX_QUESTIONS_PER_REQUEST = 10

GENERATION_SYSTEM_PROMPT = """\
You are an expert data science educator creating flashcard questions for self-study.

Each question should:
1. Ask the student to EXPLAIN a concept, not just define it
2. Require demonstration of understanding, not just recall
3. Be answerable in 2-4 paragraphs of written explanation
4. Test practical understanding, trade-offs and real-world application

Difficulty guidelines:
- beginner: foundational concepts, "What is X and why do we use it?"
- intermediate: application and comparison, "How does X differ from Y?"
- advanced: edge cases and trade-offs, "When would X fail and what are the alternatives?"

Respond with JSON only."""

GENERATION_USER_PROMPT = """\
Generate {count} practice questions for:
- Category: {category}
- Difficulty: {difficulty}
- Sub-topic: {sub_topic}

Return JSON:
{{
  "questions": [
    {{"prompt": "the question text", "keyConcepts": ["concept1", "concept2", "concept3"], "difficulty": "{difficulty}"}}
  ]
}}"""


@dataclass
class GeneratedQuestion:
    prompt: str
    key_concepts: list[str]
    difficulty: Difficulty


def generate_questions(
    category: Category,
    difficulty: Difficulty,
    count: int,
    llm: LLMClient,
    sub_topic: str | None = None,
) -> list[GeneratedQuestion]:
    """Generate new questions for a category at a given difficulty.

    Args:
        category: Topic for the questions.
        difficulty: Target difficulty.
        count: How many questions to request (1-10).
        llm: LLM client for generation.
        sub_topic: Optional narrower focus within the category.

    Returns:
        The questions that came back complete; malformed entries are dropped.

    Raises:
        GradingError: If ``count`` is out of range or the response can't be used.
    """
    if not 1 <= count <= MAX_QUESTIONS_PER_REQUEST:
        raise GradingError(
            f"Can generate between 1 and {MAX_QUESTIONS_PER_REQUEST} questions at a time",
            "INVALID_INPUT",
        )

    prompt = GENERATION_USER_PROMPT.format(
        count=count,
        category=category_label(category),
        difficulty=difficulty.value,
        sub_topic=sub_topic or "any",
    )
    logger.info("Generating %d %s questions for %s", count, difficulty.value, category.value)
    try:
        response = llm.create_message(
            prompt=prompt,
            system=GENERATION_SYSTEM_PROMPT,
            max_tokens=2048,
            temperature=0.7,
        )
    except anthropic.APIError as e:
        logger.exception("Question generation request failed")
        raise translate_api_error(e) from e

    return _parse_generation_response(response, difficulty)


def _parse_generation_response(response: str, default_difficulty: Difficulty) -> list[GeneratedQuestion]:
    """Parse the LLM response into GeneratedQuestion values."""
    try:
        data = json.loads(strip_code_fences(response))
    except json.JSONDecodeError as e:
        logger.error("Failed to parse generation response as JSON")
        raise GradingError("Failed to parse generated questions", "INVALID_RESPONSE", True) from e

    entries = data.get("questions", []) if isinstance(data, dict) else data
    if not isinstance(entries, list):
        raise GradingError("Generated questions are not a list", "INVALID_RESPONSE", True)

    questions = []
    for entry in entries:
        if not isinstance(entry, dict):
            continue
        prompt = str(entry.get("prompt") or "").strip()
        concepts = entry.get("keyConcepts") or []
        if not prompt or not isinstance(concepts, list) or not concepts:
            logger.warning("Skipping generated question with missing prompt or concepts: %s", entry)
            continue
        questions.append(
            GeneratedQuestion(
                prompt=prompt,
                key_concepts=[str(c) for c in concepts if c],
                difficulty=parse_difficulty(entry.get("difficulty") or default_difficulty),
            )
        )

    logger.info("Generated %d usable questions", len(questions))
    return questions
