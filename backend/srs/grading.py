"""Answer grading through the language model.

The learner explains a concept in free text; the model scores the
explanation 1-5 against the question's key concepts and returns
structured feedback. Only the score feeds the scheduler.
"""

import json
import logging
from collections.abc import Sequence
from dataclasses import dataclass, field

import anthropic
from tenacity import retry, retry_if_exception, stop_after_attempt, wait_exponential

from backend.config import settings
from backend.llm_client import LLMClient, strip_code_fences
from backend.srs.sm2 import MAX_SCORE, MIN_SCORE

logger = logging.getLogger(__name__)

# Extra attempts after the first when the model returns an unusable grade
GRADING_RETRIES = 2


class GradingError(Exception):
    """A grading or generation request failed.

    ``code`` is one of INVALID_INPUT, INVALID_RESPONSE, RATE_LIMIT,
    AUTH_ERROR, NETWORK or UNKNOWN. ``retryable`` tells the caller
    whether asking again might succeed.
    """

    def __init__(self, message: str, code: str = "UNKNOWN", retryable: bool = False) -> None:
        super().__init__(message)
        self.code = code
        self.retryable = retryable


@dataclass
class Evaluation:
    """The model's verdict on one answer."""

    score: int  # 1-5
    feedback: str
    covered_well: str = ""
    missing: str = ""
    missed_concepts: list[str] = field(default_factory=list)
    model_answer: str = ""


EVALUATION_SYSTEM_PROMPT = """\
You are a strict but fair data science interviewer evaluating a candidate's \
explanation. Grade rigorously as if in a technical interview. Be direct about \
errors. Respond with JSON only."""

EVALUATION_USER_PROMPT = """\
## Question
{question}

## Key Concepts Expected
{key_concepts}

## Candidate's Answer
{answer}

Keep feedback short for strong answers and detailed for weak ones.

Scoring guide:
- 5: All key concepts covered accurately and explained clearly
- 4: All key concepts mentioned but explanation lacks depth or precision
- 3: Core concept understood but 1-2 key concepts missing or incorrect
- 2: Partial understanding, multiple key concepts missing or confused
- 1: Fundamental misunderstanding or mostly incorrect

Return JSON:
{{
  "score": 1-5,
  "whatWasCoveredWell": "points explained correctly",
  "whatWasMissing": "each missing or incorrect concept",
  "missedConcepts": ["concepts from the expected list that were missed"],
  "modelAnswer": "a complete model answer",
  "fullFeedback": "corrective feedback"
}}"""


def validate_answer(answer: str) -> str:
    """Reject empty or oversized answers before spending an API call."""
    if not answer or not answer.strip():
        raise GradingError("Answer cannot be empty", "INVALID_INPUT")
    if len(answer) > settings.max_answer_chars:
        raise GradingError(
            f"Answer too long (max {settings.max_answer_chars:,} characters)", "INVALID_INPUT"
        )
    return answer.strip()


def parse_evaluation(text: str) -> Evaluation:
    """Parse the model's JSON verdict.

    Raises:
        GradingError: If the text isn't JSON (not retryable) or the score is
            missing or out of range (retryable).
    """
    try:
        data = json.loads(strip_code_fences(text))
    except json.JSONDecodeError as e:
        raise GradingError("Failed to parse grading response as JSON", "INVALID_RESPONSE") from e
    if not isinstance(data, dict):
        raise GradingError("Grading response is not a JSON object", "INVALID_RESPONSE")

    score = data.get("score")
    if isinstance(score, float) and score.is_integer():
        score = int(score)
    if isinstance(score, bool) or not isinstance(score, int) or not MIN_SCORE <= score <= MAX_SCORE:
        raise GradingError(f"Invalid score in grading response: {score!r}", "INVALID_RESPONSE", True)

    missed = data.get("missedConcepts")
    if not isinstance(missed, list):
        missed = []

    return Evaluation(
        score=score,
        feedback=str(data.get("fullFeedback") or ""),
        covered_well=str(data.get("whatWasCoveredWell") or ""),
        missing=str(data.get("whatWasMissing") or ""),
        missed_concepts=[str(c) for c in missed if c],
        model_answer=str(data.get("modelAnswer") or ""),
    )


def translate_api_error(error: anthropic.APIError) -> GradingError:
    """Map an Anthropic SDK error onto a GradingError code."""
    if isinstance(error, anthropic.RateLimitError):
        return GradingError("Rate limit exceeded. Please wait a moment.", "RATE_LIMIT", True)
    if isinstance(error, anthropic.AuthenticationError):
        return GradingError("Authentication with the grading service failed.", "AUTH_ERROR")
    if isinstance(error, anthropic.APITimeoutError):
        return GradingError("The grading service timed out.", "TIMEOUT", True)
    if isinstance(error, anthropic.APIConnectionError):
        return GradingError("Could not reach the grading service.", "NETWORK", True)
    return GradingError(f"Grading service error: {error}", "UNKNOWN", True)


def _is_retryable(error: BaseException) -> bool:
    return isinstance(error, GradingError) and error.retryable and error.code == "INVALID_RESPONSE"


@retry(
    retry=retry_if_exception(_is_retryable),
    stop=stop_after_attempt(GRADING_RETRIES + 1),
    wait=wait_exponential(multiplier=1, min=1, max=8),
    reraise=True,
)
def _request_evaluation(prompt: str, llm: LLMClient) -> Evaluation:
    try:
        text = llm.create_message(
            prompt=prompt,
            system=EVALUATION_SYSTEM_PROMPT,
            max_tokens=1024,
            temperature=0.2,
        )
    except anthropic.APIError as e:
        logger.exception("Grading request failed")
        raise translate_api_error(e) from e
    if not text:
        raise GradingError("Empty response from grading service", "INVALID_RESPONSE", True)
    return parse_evaluation(text)


def evaluate_answer(
    question: str,
    key_concepts: Sequence[str],
    answer: str,
    llm: LLMClient,
) -> Evaluation:
    """Grade a free-text explanation against the question's key concepts.

    Args:
        question: The question prompt.
        key_concepts: Concepts a complete answer must cover.
        answer: The learner's explanation.
        llm: LLM client used for grading.

    Returns:
        An Evaluation with a 1-5 score.

    Raises:
        GradingError: On invalid input or when the service can't produce a grade.
    """
    answer = validate_answer(answer)
    prompt = EVALUATION_USER_PROMPT.format(
        question=question,
        key_concepts=", ".join(key_concepts) or "(none listed)",
        answer=answer,
    )
    evaluation = _request_evaluation(prompt, llm)
    logger.info(
        "Graded answer: score %d, %d missed concepts",
        evaluation.score,
        len(evaluation.missed_concepts),
    )
    return evaluation
